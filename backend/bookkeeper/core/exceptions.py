import enum
import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorCode(enum.StrEnum):
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    LIMIT_EXCEEDED = "LIMIT_EXCEEDED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.INSUFFICIENT_PERMISSIONS: 403,
    ErrorCode.VALIDATION_ERROR: 422,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.LIMIT_EXCEEDED: 429,
    ErrorCode.INTERNAL_ERROR: 500,
}


class AppError(Exception):
    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details

    @property
    def status_code(self) -> int:
        return STATUS_BY_CODE[self.code]


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Authentication is required. Please sign in."):
        super().__init__(ErrorCode.UNAUTHORIZED, message)


class ForbiddenError(AppError):
    def __init__(self, message: str = "You do not have access to this organization."):
        super().__init__(ErrorCode.FORBIDDEN, message)


class InsufficientPermissionsError(AppError):
    def __init__(self, message: str = "Your role does not permit this action."):
        super().__init__(ErrorCode.INSUFFICIENT_PERMISSIONS, message)


class ValidationError(AppError):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(ErrorCode.VALIDATION_ERROR, message, details)


class NotFoundError(AppError):
    def __init__(self, resource: str):
        super().__init__(ErrorCode.NOT_FOUND, f"{resource} was not found.")


class LimitExceededError(AppError):
    def __init__(self, retry_after_seconds: int):
        super().__init__(
            ErrorCode.LIMIT_EXCEEDED,
            f"Too many requests. Try again in {retry_after_seconds} seconds.",
            {"retry_after_seconds": retry_after_seconds},
        )
        self.retry_after_seconds = retry_after_seconds


class InternalError(AppError):
    def __init__(
        self,
        message: str = "A system error occurred. Please try again later.",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(ErrorCode.INTERNAL_ERROR, message, details)


def error_response(
    code: str,
    message: str,
    status_code: int,
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": code,
                "message": message,
                "details": details,
            }
        },
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return error_response(exc.code, exc.message, exc.status_code, exc.details)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return error_response("HTTP_ERROR", exc.detail, exc.status_code)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return error_response(
            ErrorCode.INTERNAL_ERROR,
            "A system error occurred. Please try again later.",
            500,
        )
