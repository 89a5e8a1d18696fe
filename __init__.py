"""
DQ Feed Upload Service

This package provides an API for uploading feed spreadsheets to the DQ
framework. Every data row must name a feed and an indicator; the service
checks all rows and reports every missing value in one response.

Key modules:
- main.py: FastAPI application with API endpoints
- feed_upload.py: Sheet decoding and row validation
- config.py: Environment-driven settings
- utils/result.py: Result pattern implementation for error handling
"""
