from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
import traceback
import logging
import json
from typing import Dict, Any, Optional
import hashlib
import time

from problem_api.services.errors import ProblemServiceError

# Dedicated logger for the error handlers
logger = logging.getLogger("problem_api.middleware.error_handler")


class ErrorDetail:
    """Standardized error payload: always carries an `error` message."""

    def __init__(
        self,
        status_code: int,
        message: str,
        error_type: str,
        details: Optional[Any] = None
    ):
        self.status_code = status_code
        self.message = message
        self.error_type = error_type
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        """Convert the error to a dictionary."""
        error_dict = {
            "error": self.message,
            "error_type": self.error_type,
            "status_code": self.status_code,
        }

        if self.details:
            error_dict["details"] = self.details

        return error_dict


def format_stack_trace(stack_trace: str) -> str:
    """Indent the stack trace so it reads as one block in the log."""
    lines = stack_trace.split('\n')
    formatted_lines = []
    for line in lines:
        if line.strip():
            formatted_lines.append(f"  │ {line}")

    return "\n".join(formatted_lines)


def _error_id(request: Request) -> str:
    return hashlib.md5(f"{time.time()}-{request.url.path}".encode()).hexdigest()[:8]


def _log_with_trace(message: str, exc: BaseException) -> None:
    stack_trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    formatted_trace = format_stack_trace(stack_trace)
    logger.error(f"{message}\n╭─ Stack Trace ─────────────────────────╮\n{formatted_trace}\n╰───────────────────────────────────────╯")


def setup_error_handlers(app):
    """
    Configure error handling for the FastAPI application.
    """
    @app.exception_handler(ProblemServiceError)
    async def problem_service_exception_handler(request, exc: ProblemServiceError):
        """Handler for the service's own errors (not found, transitions, store)."""
        error_id = _error_id(request)

        if exc.status_code >= 500:
            _log_with_trace(
                f"❌ {exc.error_type.upper()}#{error_id}: {request.method} {request.url.path} - {exc.message}",
                exc,
            )
        else:
            logger.warning(f"⚠️ {exc.error_type.upper()}#{error_id}: {exc.status_code} - {exc.message}")

        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorDetail(
                status_code=exc.status_code,
                message=exc.message,
                error_type=exc.error_type,
                details=exc.details,
            ).to_dict()
        )

    @app.exception_handler(SQLAlchemyError)
    async def store_exception_handler(request, exc: SQLAlchemyError):
        """Handler for store errors that were not translated by a service."""
        error_id = _error_id(request)
        _log_with_trace(
            f"❌ STORE#{error_id}: {request.method} {request.url.path} - {exc.__class__.__name__}",
            exc,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorDetail(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                message="Store operation failed",
                error_type="store_failure",
            ).to_dict()
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request, exc):
        """Handler for HTTP exceptions."""
        error_id = _error_id(request)
        logger.warning(f"⚠️ HTTP#{error_id}: {exc.status_code} - {exc.detail}")

        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorDetail(
                status_code=exc.status_code,
                message=str(exc.detail),
                error_type="http_exception",
            ).to_dict()
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request, exc):
        """Handler for request validation errors."""
        error_id = _error_id(request)

        validation_errors = json.loads(json.dumps(exc.errors(), default=str))
        error_details_str = json.dumps(validation_errors, indent=2)
        logger.warning(
            f"⚠️ VALID#{error_id}: Validation error on {request.method} {request.url.path}"
            f"\n╭─ Validation Errors ──────────────────╮\n  │ {error_details_str}\n╰───────────────────────────────────────╯"
        )

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=ErrorDetail(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                message="Invalid request data",
                error_type="validation_error",
                details=validation_errors
            ).to_dict()
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request, exc):
        """Handler for any other unhandled exception."""
        error_id = _error_id(request)
        _log_with_trace(
            f"❌ EXC#{error_id}: {request.method} {request.url.path} - {exc.__class__.__name__}: {str(exc)}",
            exc,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorDetail(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                message="Internal server error",
                error_type=exc.__class__.__name__,
            ).to_dict()
        )
