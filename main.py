from fastapi import FastAPI, File, UploadFile
import os
import logging
from datetime import datetime
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from feed_upload import (
    FrameworkUpdateResponse,
    UploadProcessor,
    UploadRequest,
    UploadResponse,
    SUCCESS_MESSAGE,
    UNEXPECTED_ERROR_PREFIX,
)
from utils.result import Result


# Create logs directory if it doesn't exist
log_dir = settings.LOG_DIR
os.makedirs(log_dir, exist_ok=True)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)

# Add file handler to write logs to file
log_file_path = os.path.join(log_dir, f"app_{datetime.now().strftime('%Y%m%d')}.log")
file_handler = logging.FileHandler(log_file_path)
file_handler.setFormatter(logging.Formatter(settings.LOG_FORMAT))
logger.addHandler(file_handler)


# Initialize FastAPI app with metadata
app = FastAPI(
    title=settings.API_TITLE,
    description=settings.API_DESCRIPTION,
    version=settings.API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)


def build_upload_response(result: Result) -> UploadResponse:
    """
    Map a processing Result onto the upload response body.

    Args:
        result: Outcome of UploadProcessor.process_upload

    Returns:
        UploadResponse: success body, validation failure with errors, or unexpected error
    """
    if result.is_success():
        return UploadResponse(success=True, message=SUCCESS_MESSAGE)
    return UploadResponse(success=False, message=result.error, errors=result.errors)


def build_framework_response(result: Result, target_system_id: int) -> FrameworkUpdateResponse:
    """Map a processing Result onto the DQ framework response body."""
    return FrameworkUpdateResponse(
        success=result.is_success(),
        status_code=result.status_code.value,
        status=result.status_code.phrase,
        message=SUCCESS_MESSAGE if result.is_success() else result.error,
        target_system_id=target_system_id,
        errors=result.errors,
    )


async def read_upload(file: UploadFile, target_system_id: int) -> Result:
    """
    Read the multipart file and run it through the processor.

    Decoding is synchronous, so it runs in the threadpool instead of the event loop.
    """
    try:
        contents = await file.read()
    except Exception as e:
        logger.exception(f"Failed to read upload for targetSystemId: {target_system_id}")
        return Result.server_error(f"{UNEXPECTED_ERROR_PREFIX}{str(e)}")

    request = UploadRequest(
        file_contents=contents,
        target_system_id=target_system_id,
        upload_name=file.filename
    )
    return await run_in_threadpool(UploadProcessor.process_upload, request)


# API Endpoints
@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: status, application version and current server time
    """
    return {
        "status": "healthy",
        "version": settings.API_VERSION,
        "timestamp": datetime.now().isoformat()
    }


@app.post(
    "/dq-framework/{target_system_id}",
    response_model=FrameworkUpdateResponse,
    tags=["DQ Framework"]
)
async def update_dq_framework(target_system_id: int, file: UploadFile = File(...)):
    """
    Validate an uploaded feed spreadsheet for the DQ framework.

    Same validation as the plain upload endpoint, but the body also carries
    the HTTP status and the target system id.

    Returns:
        JSONResponse: 200, 400 with errors, or 500 with the unexpected error
    """
    logger.info(f"DQ framework update called with targetSystemId: {target_system_id}")

    result = await read_upload(file, target_system_id)
    response = build_framework_response(result, target_system_id)

    return JSONResponse(
        status_code=result.status_code.value,
        content=response.model_dump(exclude_none=True)
    )


@app.post(
    "/{target_system_id}",
    response_model=UploadResponse,
    response_model_exclude_none=True,
    tags=["Feed Upload"]
)
async def upload_feed(target_system_id: int, file: UploadFile = File(...)):
    """
    Upload a feed spreadsheet and validate its rows.

    Every row after the header must have a Feed Name (column 1) and an
    Indicator (column 2). All rows are checked before responding.

    Returns:
        JSONResponse with:
            - 200: {"success": true, "message": "Data created/updated successfully"}
            - 400: {"success": false, "message": "Validation failed", "errors": [...]}
            - 500: {"success": false, "message": "Unexpected error: <details>"}
    """
    logger.info(f"Upload called with targetSystemId: {target_system_id}")

    result = await read_upload(file, target_system_id)
    response = build_upload_response(result)

    # Single exit point
    return JSONResponse(
        status_code=result.status_code.value,
        content=response.model_dump(exclude_none=True)
    )


# Run the application if executed directly
if __name__ == "__main__":
    import uvicorn
    logger.info("Starting DQ Feed Upload API in development mode.")
    uvicorn.run("main:app", host=settings.HOST, port=settings.PORT, reload=settings.RELOAD)
