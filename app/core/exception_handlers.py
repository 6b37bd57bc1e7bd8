"""Centralized exception handlers for the FastAPI app.

Register with register_exception_handlers(app). Maps domain error codes and
framework exceptions to JSON responses of the form {error, message, details}.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import get_settings
from app.domain.exceptions import FlowlineException

logger = logging.getLogger(__name__)

# Map domain error_code to HTTP status; anything unlisted is a 400.
_ERROR_CODE_STATUS: dict[str, int] = {
    "RESOURCE_NOT_FOUND": 404,
    "VALIDATION_ERROR": 400,
    "ACTIVATION_ERROR": 400,
    "WORKFLOW_VALIDATION_ERROR": 400,
    "WORKFLOW_NOT_ENABLED": 409,
    "EXECUTION_STATE_CONFLICT": 409,
    "EXECUTION_CONFLICT": 409,
    "WEBHOOK_SIGNATURE_INVALID": 401,
    "RUN_TIMEOUT": 408,
    "NODE_EXECUTION_ERROR": 422,
    "REPOSITORY_ERROR": 503,
    "SERVICE_UNAVAILABLE": 503,
}


def status_for(exc: FlowlineException) -> int:
    return _ERROR_CODE_STATUS.get(exc.error_code, 400)


def _flowline_exception_handler(request: Request, exc: FlowlineException) -> JSONResponse:
    """Return JSON from FlowlineException.to_dict() with the mapped status code."""
    status = status_for(exc)
    if status >= 500:
        logger.error("%s on %s %s: %s", exc.error_code, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status, content=exc.to_dict())


def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with validation error details."""
    return JSONResponse(
        status_code=422,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": exc.errors(),
        },
    )


def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return JSON for Starlette HTTP exceptions (status + detail)."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": "HTTP_ERROR", "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


def _generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return 500; include detail only when debug is True."""
    logger.exception("Unhandled exception: %s", exc)
    detail: Any = str(exc) if get_settings().debug else "Internal server error"
    return JSONResponse(
        status_code=500,
        content={"error": "INTERNAL_ERROR", "message": detail},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app.

    Handlers: FlowlineException (and subclasses), RequestValidationError,
    StarletteHTTPException, generic Exception.
    """
    app.add_exception_handler(FlowlineException, _flowline_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _generic_exception_handler)
