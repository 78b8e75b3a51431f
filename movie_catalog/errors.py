"""Error responses: the ``{"error": ...}`` envelope and the exceptions that produce it."""

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from .logger import logger

NOT_FOUND_MESSAGE = "the requested resource could not be found"
SERVER_ERROR_MESSAGE = "the server encountered a problem and could not process your request"
EDIT_CONFLICT_MESSAGE = "unable to update the record due to an edit conflict, please try again"
RATE_LIMIT_MESSAGE = "rate limit exceeded"
INVALID_CREDENTIALS_MESSAGE = "invalid authentication credentials"
INVALID_TOKEN_MESSAGE = "invalid or missing authentication token"
AUTHENTICATION_REQUIRED_MESSAGE = "you must be authenticated to access this resource"
INACTIVE_ACCOUNT_MESSAGE = "your user account must be activated to access this resource"
NOT_PERMITTED_MESSAGE = "your user account doesn't have the necessary permissions to access this resource"


def error_response(status_code: int, message, headers: dict | None = None) -> JSONResponse:
    """Build the envelope directly, for code running outside the router (middleware)."""
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)

# ==================== Exception Factories ====================


def bad_request_error(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


def failed_validation_error(errors: dict[str, str]) -> HTTPException:
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=errors)


def not_found_error() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_MESSAGE)


def edit_conflict_error() -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=EDIT_CONFLICT_MESSAGE)


def invalid_credentials_error() -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_CREDENTIALS_MESSAGE)


def authentication_required_error() -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=AUTHENTICATION_REQUIRED_MESSAGE)


def inactive_account_error() -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=INACTIVE_ACCOUNT_MESSAGE)


def not_permitted_error() -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=NOT_PERMITTED_MESSAGE)


def invalid_authentication_token_response() -> JSONResponse:
    return error_response(
        status.HTTP_401_UNAUTHORIZED,
        INVALID_TOKEN_MESSAGE,
        headers={"WWW-Authenticate": "Bearer"},
    )

# ==================== Exception Handlers ====================


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail
    if exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        detail = f"the {request.method} method is not supported for this resource"
    elif exc.status_code == status.HTTP_404_NOT_FOUND and detail == "Not Found":
        detail = NOT_FOUND_MESSAGE
    return error_response(exc.status_code, detail, headers=getattr(exc, "headers", None))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = {}
    for error in exc.errors():
        field = str(error["loc"][-1]) if error.get("loc") else "request"
        errors.setdefault(field, error.get("msg", "invalid value"))
    return error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, errors)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(f"Rate limit exceeded for {request.client.host if request.client else 'unknown'}")
    return error_response(status.HTTP_429_TOO_MANY_REQUESTS, RATE_LIMIT_MESSAGE)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
