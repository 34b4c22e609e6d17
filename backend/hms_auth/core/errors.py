import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """
    Base class for errors that surface to the caller as an HTTP status
    plus a JSON body of the form {"error": {"code": ..., "message": ...}}.
    """
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "internal_error"
    message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)

    @property
    def headers(self) -> dict[str, str] | None:
        return None


class InvalidCredentials(AppError):
    # Same response for unknown e-mail and wrong secret.
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_credentials"
    message = "Invalid email or password"


class InvalidResetToken(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_reset_token"
    message = "Invalid or expired reset token"


class MissingToken(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "missing_token"
    message = "Missing access token"

    @property
    def headers(self):
        return {"WWW-Authenticate": "Bearer"}


class TokenExpired(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "refresh_required"
    message = "Access token expired"

    @property
    def headers(self):
        return {"WWW-Authenticate": 'Bearer error="invalid_token", error_description="expired"'}


class ReauthenticationRequired(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "reauthentication_required"
    message = "Reauthentication required"

    @property
    def headers(self):
        return {"WWW-Authenticate": "Bearer"}


class TokenInvalid(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "token_invalid"
    message = "Invalid access token"


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"
    message = "Not enough privileges"


class AccountInactive(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "account_inactive"
    message = "Account is not active"


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    message = "Not found"


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"
    message = "Conflict"


def error_body(code: str, message: str) -> dict:
    return {"error": {"code": code, "message": message}}


async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.message),
        headers=exc.headers,
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    # Storage failures land here too; the caller only sees a generic 500.
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("internal_error", "Internal server error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
