"""
Error taxonomy for the account API.

Every error carries the status code it is rendered with; the exception
handlers registered by :func:`register_exception_handlers` turn them into the
uniform ``{statusCode, message, result}`` envelope.
"""
from typing import Any, Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = structlog.get_logger(__name__)


class AccountApiError(Exception):
    """Base class for errors rendered as an API response."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        result: Any = None,
    ) -> None:
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.result = result
        super().__init__(message)


class ValidationError(AccountApiError):
    """Malformed or missing input."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(AccountApiError):
    """Unknown user or resource."""

    status_code = status.HTTP_404_NOT_FOUND


class AuthenticationError(AccountApiError):
    """Bad credentials, locked-out or not-allowed sign-in, or no session."""

    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(AccountApiError):
    """Authenticated caller that fails a policy."""

    status_code = status.HTTP_403_FORBIDDEN


class DomainError(AccountApiError):
    """Business-rule violation with a caller-facing description."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, description: str, message: Optional[str] = None) -> None:
        self.description = description
        super().__init__(message or description)


class PersistenceError(AccountApiError):
    """Unexpected store failure."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def envelope(status_code: int, message: str, result: Any = None) -> dict[str, Any]:
    """Raw JSON body shared by success and error responses."""

    return {"statusCode": status_code, "message": message, "result": result}


async def account_api_error_handler(request: Request, exc: AccountApiError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=envelope(exc.status_code, exc.message, exc.result),
    )


async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', '')}"
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=envelope(status.HTTP_400_BAD_REQUEST, "User Model is Invalid", errors),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled error",
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the envelope-rendering handlers to ``app``."""

    app.add_exception_handler(AccountApiError, account_api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
