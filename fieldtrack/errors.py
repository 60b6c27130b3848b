"""
FieldTrack - Error Taxonomy

Every failure the API reports derives from AppError and is rendered as
the same JSON envelope:

    {"success": false, "message": "...", "code": "...", "fields": [...]}

Rate-limit rejections use the same envelope with status 429.
Storage-layer exceptions and anything unexpected are logged server-side
and surfaced as a generic InternalError.
"""

import logging
from typing import List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from sqlalchemy.exc import SQLAlchemyError


logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors mapped to an HTTP response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, fields: Optional[List[str]] = None):
        self.message = message or self.default_message
        self.fields = list(fields or [])
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"success": False, "message": self.message, "code": self.code}
        if self.fields:
            body["fields"] = self.fields
        return body


class ValidationError(AppError):
    """Malformed, missing or out-of-range input."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"
    default_message = "Invalid input"


class AuthenticationError(AppError):
    """Credential absent, unverifiable or stale."""
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "AUTH_ERROR"
    default_message = "Authentication failed"


class MissingTokenError(AuthenticationError):
    code = "NO_TOKEN"
    default_message = "Token not provided"


class InvalidTokenError(AuthenticationError):
    code = "INVALID_TOKEN"
    default_message = "Invalid token"


class ExpiredTokenError(AuthenticationError):
    code = "TOKEN_EXPIRED"
    default_message = "Token expired"


class InvalidCredentialsError(AuthenticationError):
    code = "INVALID_CREDENTIALS"
    default_message = "Invalid credentials"


class ForbiddenError(AppError):
    """Valid credential, insufficient role or ownership."""
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"
    default_message = "Insufficient permissions"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    default_message = "Resource not found"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"
    default_message = "Resource already exists"


class RateLimitError(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "RATE_LIMITED"
    default_message = "Too many requests, please try again later"


class InternalError(AppError):
    pass


def _render(error: AppError) -> JSONResponse:
    headers = None
    if isinstance(error, AuthenticationError):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=error.status_code, content=error.to_dict(), headers=headers)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if isinstance(exc, InternalError):
        logger.error("Internal error on %s %s: %s", request.method, request.url.path, exc.message)
        exc = InternalError()
    return _render(exc)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        fields.append(".".join(loc) or "body")
    return _render(ValidationError("Invalid request data", fields=sorted(set(fields))))


def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Render slowapi rejections; called synchronously by its middleware."""
    logger.warning("Rate limit %s exceeded by %s on %s", exc.detail, get_remote_address(request), request.url.path)
    return _render(RateLimitError())


async def storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Storage failure on %s %s", request.method, request.url.path)
    return _render(InternalError())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _render(InternalError())


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the envelope renderers to an application."""
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(SQLAlchemyError, storage_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
