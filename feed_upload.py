import io
import logging
import time
import uuid
from typing import Any, List, Optional, Sequence, Tuple
from http import HTTPStatus

import pandas as pd
from openpyxl import load_workbook
from openpyxl.cell.read_only import EmptyCell
from pydantic import BaseModel

from utils.result import Result

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Data created/updated successfully"
VALIDATION_FAILED_MESSAGE = "Validation failed"
UNEXPECTED_ERROR_PREFIX = "Unexpected error: "

# Number of leading rows treated as the header and never validated
HEADER_ROWS = 1

# (column index, display name) of every column a data row must fill in
REQUIRED_COLUMNS: Tuple[Tuple[int, str], ...] = (
    (0, "Feed Name"),
    (1, "Indicator"),
)

Row = Optional[Sequence[Any]]
Sheet = List[Optional[List[Any]]]


class LogContext:
    """Context manager for tracking and logging operation metrics"""
    def __init__(self, operation_name: str, **kwargs):
        self.operation_name = operation_name
        self.start_time = None
        self.request_id = kwargs.get('request_id', str(uuid.uuid4())[:8])
        self.extra = kwargs

    def __enter__(self):
        self.start_time = time.time()
        logger.info(f"Starting {self.operation_name}", extra={"request_id": self.request_id, **self.extra})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.time() - self.start_time
        if exc_type:
            logger.error(
                f"Failed {self.operation_name} in {duration:.2f}s: {str(exc_val)}",
                extra={"request_id": self.request_id, "duration": duration, **self.extra},
                exc_info=(exc_type, exc_val, exc_tb)
            )
        else:
            logger.info(
                f"Completed {self.operation_name} in {duration:.2f}s",
                extra={"request_id": self.request_id, "duration": duration, **self.extra}
            )


class UploadRequest(BaseModel):
    """
    A single spreadsheet upload.

    Attributes:
        file_contents: Raw bytes of the uploaded xlsx file
        target_system_id: Identifier of the system the feed data is destined for
        upload_name: Original filename, used for logging only
    """
    file_contents: bytes
    target_system_id: int
    upload_name: Optional[str] = None


class UploadResponse(BaseModel):
    """
    Response body of the upload endpoint.

    Attributes:
        success: Whether the upload passed validation
        message: Fixed success text, "Validation failed", or the unexpected error
        errors: Row/column validation messages; omitted when there are none
    """
    success: bool = True
    message: str = SUCCESS_MESSAGE
    errors: Optional[List[str]] = None


class FrameworkUpdateResponse(BaseModel):
    """
    Response body of the DQ framework update endpoint.

    Carries the HTTP status alongside the outcome so framework clients
    can log it without inspecting the transport.
    """
    success: bool
    status_code: int = HTTPStatus.OK.value
    status: str = HTTPStatus.OK.phrase
    message: str
    target_system_id: int
    errors: Optional[List[str]] = None


def is_blank(value: Any) -> bool:
    """Return True when a cell holds no usable value."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if pd.api.types.is_scalar(value):
        return bool(pd.isna(value))
    return False


def validate(sheet: Sequence[Row], target_system_id: int) -> List[str]:
    """
    Check that every data row of a sheet has its required columns filled in.

    The first row is the header and is skipped. Row numbers in the messages
    are the 1-based spreadsheet row numbers, so the first data row is "Row 2".
    All rows are checked; nothing stops the scan early.

    Args:
        sheet: Decoded worksheet, one entry per row; None marks an absent row
        target_system_id: Target system the upload is for. Only logged.

    Returns:
        List[str]: Validation messages in row-then-column order, empty when the sheet is valid
    """
    errors = []
    for row_index in range(HEADER_ROWS, len(sheet)):
        row = sheet[row_index]
        row_number = row_index + 1

        if row is None:
            errors.append(f"Row {row_number} is empty")
            continue

        for column_index, column_name in REQUIRED_COLUMNS:
            value = row[column_index] if column_index < len(row) else None
            if is_blank(value):
                errors.append(f"Row {row_number}, Column {column_index + 1} ({column_name}) is missing")

    logger.debug(
        "Validated sheet",
        extra={"target_system_id": target_system_id, "row_count": len(sheet), "error_count": len(errors)}
    )
    return errors


def row_from_cells(cells: Sequence[Any]) -> Optional[List[Any]]:
    """
    Turn one worksheet row into a list of cell values.

    A row with no cell record at all (only ``EmptyCell`` fillers) is absent
    and becomes None. A row that exists in the file keeps its cells, even
    when every value is empty.
    """
    if all(isinstance(cell, EmptyCell) for cell in cells):
        return None
    return [cell.value for cell in cells]


def load_sheet(file_contents: bytes) -> Sheet:
    """
    Decode the first worksheet of an xlsx file.

    Cell values are taken as stored (cached formula results, no NA-string
    filtering). Raises whatever openpyxl raises when the bytes are not a
    readable workbook.
    """
    wb = load_workbook(io.BytesIO(file_contents), read_only=True, data_only=True)
    try:
        ws = wb.worksheets[0]
        # Iterate the rows actually stored, not the declared dimension
        ws.reset_dimensions()
        return [row_from_cells(cells) for cells in ws.iter_rows()]
    finally:
        wb.close()


class UploadProcessor:
    """
    Runs one upload through decoding and validation.

    Never raises: every outcome comes back as a Result whose status code
    the HTTP layer can send as is.
    """

    @staticmethod
    def process_upload(request: UploadRequest) -> Result[List[str]]:
        """
        Decode and validate an uploaded spreadsheet.

        Args:
            request: UploadRequest with the file bytes and target system id

        Returns:
            Result[List[str]]: ok with an empty list, a validation failure with
            every message (400), or a server error with the exception message (500)
        """
        request_id = str(uuid.uuid4())[:8]
        log_context = {
            "request_id": request_id,
            "target_system_id": request.target_system_id,
            "upload_name": request.upload_name,
            "size_bytes": len(request.file_contents),
        }

        logger.info("Processing upload", extra=log_context)

        try:
            with LogContext("sheet decoding", **log_context):
                sheet = load_sheet(request.file_contents)

            log_context["row_count"] = len(sheet)

            with LogContext("row validation", **log_context):
                errors = validate(sheet, request.target_system_id)

            if errors:
                logger.warning(
                    f"Upload failed validation with {len(errors)} errors",
                    extra={**log_context, "error_count": len(errors)}
                )
                return Result.validation_failed(errors, VALIDATION_FAILED_MESSAGE)

            logger.info("Upload passed validation", extra=log_context)
            return Result.ok([])

        except Exception as e:
            logger.exception("Unexpected error during upload processing", extra={**log_context, "error": str(e)})
            return Result.server_error(f"{UNEXPECTED_ERROR_PREFIX}{str(e)}")
