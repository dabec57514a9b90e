"""
Error mapping - turns jobspine errors into HTTP responses.

Every error body has the shape ``{"error": JobspineError.to_dict()}``.
"""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

from jobspine.core.errors import (
    CircuitOpenError,
    ConfigError,
    DatabaseError,
    JobAlreadyRunningError,
    JobNotFoundError,
    JobspineError,
    TransientError,
)
from jobspine.core.logging import get_logger

logger = get_logger(__name__)

# ── Error type → HTTP status mapping (first match wins) ──────────────────

ERROR_TYPE_TO_STATUS: list[tuple[type[JobspineError], int]] = [
    (JobNotFoundError, 404),
    (JobAlreadyRunningError, 409),
    (DatabaseError, 503),
    (TransientError, 503),
    (CircuitOpenError, 503),
    (ConfigError, 500),
]


def status_for_error(error: JobspineError) -> int:
    """Resolve an error to its HTTP status, defaulting to 500."""
    for error_type, status in ERROR_TYPE_TO_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


def error_response(error: JobspineError) -> JSONResponse:
    """Build the JSON error response for a jobspine error."""
    status = status_for_error(error)
    headers = {}
    if error.retry_after is not None:
        headers["Retry-After"] = str(error.retry_after)
    return JSONResponse(status_code=status, content={"error": error.to_dict()}, headers=headers)


async def jobspine_error_handler(request: Request, exc: JobspineError) -> JSONResponse:
    return error_response(exc)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions - returns 500 without internals."""
    logger.error("unhandled_api_error", path=request.url.path, error=str(exc), exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "error_type": "InternalError",
                "message": "An unexpected error occurred.",
                "category": "INTERNAL",
                "retryable": False,
            }
        },
    )
