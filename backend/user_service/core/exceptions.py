"""Application error kinds and the FastAPI handlers that render them.

Every failure is returned to the client as ``{"success": false, "error": ...}``
with the status code of its kind.
"""

import logging
import traceback
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from user_service.core.config import settings

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for expected, client-facing errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ConflictError(AppError):
    """Duplicate email or username."""

    status_code = status.HTTP_409_CONFLICT


class UnauthorizedError(AppError):
    """Missing, invalid or expired credentials."""

    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(AppError):
    """Authenticated, but not allowed (inactive account or insufficient role)."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class InternalError(AppError):
    """Storage or signing failure. The message is logged, never returned."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def error_response(status_code: int, message: str, **extra: Any) -> JSONResponse:
    body = {"success": False, "error": message}
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body)


def _log_request_error(request: Request, status_code: int, message: str) -> None:
    log_fn = logger.error if status_code >= 500 else logger.warning
    log_fn(f"{request.method} {request.url.path} -> {status_code}: {message}")


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers mapping every error kind onto the response envelope"""

    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError):
        _log_request_error(request, exc.status_code, exc.message)
        message = exc.message
        if exc.status_code >= 500 and not settings.is_development:
            message = "Internal Server Error"
        return error_response(exc.status_code, message)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        details = [
            {"field": ".".join(str(part) for part in err["loc"][1:]), "message": err["msg"]}
            for err in exc.errors()
        ]
        message = ", ".join(f"{d['field']}: {d['message']}" for d in details) or "Validation error"
        _log_request_error(request, status.HTTP_400_BAD_REQUEST, message)
        return error_response(status.HTTP_400_BAD_REQUEST, message, details=details)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            message = "Route not found"
        else:
            message = str(exc.detail)
        _log_request_error(request, exc.status_code, message)
        return error_response(exc.status_code, message)

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        if settings.is_development:
            stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
            return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc), stack=stack)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error")
