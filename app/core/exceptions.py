"""
Domain errors and global exception handlers — prevents stack-trace leakage to clients.

Services raise ``AppError`` subclasses; the handlers below turn them into
``{"success": false, "detail": ..., "error": ...}`` responses.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import (DBAPIError, IntegrityError, InterfaceError, OperationalError,
                            SQLAlchemyError)

logger = logging.getLogger(__name__)


# ── Domain errors ───────────────────────────────────────────────────
class AppError(Exception):
    status_code: int = 400
    code: str = "APP_ERROR"
    message: str = "Request could not be completed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.message
        super().__init__(self.message)


class ValidationFailed(AppError):
    code = "VALIDATION_ERROR"
    message = "Invalid request"


class DuplicateIdentity(AppError):
    code = "DUPLICATE_IDENTITY"
    message = "User with this email already exists"


class PendingRegistrationNotFound(AppError):
    code = "NOT_FOUND"
    message = "Invalid verification request or OTP expired"


class CodeExpired(AppError):
    code = "EXPIRED"
    message = "OTP has expired. Please try signup again."


class CodeMismatch(AppError):
    code = "MISMATCH"
    message = "Invalid OTP. Please try again."


class InvalidOrExpiredToken(AppError):
    code = "INVALID_OR_EXPIRED"
    message = "Invalid or expired reset token. Please request a new one."


class InvalidCredentials(AppError):
    status_code = 401
    code = "INVALID_CREDENTIALS"
    message = "Invalid email or password"


class EmailNotVerified(AppError):
    status_code = 401
    code = "EMAIL_NOT_VERIFIED"
    message = "Please verify your email before logging in"


class AccountInactive(AppError):
    status_code = 401
    code = "ACCOUNT_INACTIVE"
    message = "Account is deactivated"


class Unauthorized(AppError):
    status_code = 401
    code = "UNAUTHORIZED"
    message = "Could not validate credentials"


class AccountNotFound(AppError):
    status_code = 404
    code = "NOT_FOUND"
    message = "No account found with this email address"


class CouponNotFound(AppError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Coupon not found"


class AlreadyUsedOrExpired(AppError):
    code = "ALREADY_USED_OR_EXPIRED"
    message = "Coupon is already used or expired"


class DailyLimitReached(AppError):
    code = "DAILY_LIMIT_REACHED"
    message = "You have already spun the wheel today. Come back tomorrow for another chance!"


class InvalidOfferIndex(AppError):
    code = "INVALID_OFFER_INDEX"
    message = "Selected offer does not exist"


class MirrorNotConfigured(AppError):
    status_code = 404
    code = "NOT_CONFIGURED"
    message = "Google Sheets not configured"


class ServiceUnavailable(AppError):
    status_code = 503
    code = "SERVICE_UNAVAILABLE"
    message = "Database connection not available. Please try again later."


class MessageDispatchFailed(AppError):
    status_code = 502
    code = "DISPATCH_FAILED"
    message = "Failed to send email. Please try again."


class PersistenceFailure(AppError):
    status_code = 500
    code = "PERSISTENCE_FAILURE"
    message = "Could not save the coupon. Please try again."


# ── Handlers ────────────────────────────────────────────────────────
async def _app_error_handler(_request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s: %s", exc.code, exc.message)
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.code, "success": False},
        headers=headers,
    )


async def _http_exception_handler(_request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "success": False},
        headers=getattr(exc, "headers", None),
    )


async def _validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "detail": jsonable_encoder(exc.errors()),
            "error": ValidationFailed.code,
            "success": False,
        },
    )


async def _integrity_error_handler(_request: Request, exc: IntegrityError) -> JSONResponse:
    logger.error("Database integrity error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=409,
        content={"detail": "Database constraint violation", "success": False},
    )


def _storage_unavailable_response() -> JSONResponse:
    return JSONResponse(
        status_code=ServiceUnavailable.status_code,
        content={
            "detail": ServiceUnavailable.message,
            "error": ServiceUnavailable.code,
            "success": False,
        },
    )


async def _storage_unavailable_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.error("Storage unreachable: %s", exc)
    return _storage_unavailable_response()


async def _sqlalchemy_error_handler(_request: Request, exc: SQLAlchemyError) -> JSONResponse:
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        logger.error("Database connection lost: %s", exc)
        return _storage_unavailable_response()
    logger.error("Database error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal database error", "success": False},
    )


async def _generic_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "success": False},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI app."""
    app.add_exception_handler(AppError, _app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(IntegrityError, _integrity_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, _sqlalchemy_error_handler)  # type: ignore[arg-type]
    # Connection-level failures mean "try later", not a server bug
    for exc_class in (OperationalError, InterfaceError, OSError, TimeoutError):
        app.add_exception_handler(exc_class, _storage_unavailable_handler)
    app.add_exception_handler(Exception, _generic_exception_handler)
