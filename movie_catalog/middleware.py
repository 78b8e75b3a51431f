"""HTTP middleware for shutdown gating, tracing, recovery, CORS and authentication."""

from fastapi import Request
from fastapi.responses import JSONResponse, Response
import time
import uuid
from .auth import SCOPE_AUTHENTICATION, decode_access_token, looks_like_jwt
from .config import settings
from .dependencies import set_request_user
from .errors import SERVER_ERROR_MESSAGE, error_response, invalid_authentication_token_response
from .logger import logger
from .models import AnonymousUser, User
from .stores import Models, RecordNotFoundError
from .validator import Validator, validate_token_plaintext

# Import will be set by main.py to avoid circular dependency
shutdown_manager = None


def set_shutdown_manager(manager):
    """Set the shutdown manager instance (called from main.py)."""
    global shutdown_manager
    shutdown_manager = manager


# ==================== Graceful Shutdown Middleware ====================

async def graceful_shutdown_middleware(request: Request, call_next):
    """Track active requests and reject new requests during shutdown."""
    if shutdown_manager and shutdown_manager.is_shutting_down:
        logger.warning(
            f"Rejecting request {request.method} {request.url.path} - service is shutting down"
        )
        return JSONResponse(
            status_code=503,
            content={"error": "the server is shutting down, please retry"},
            headers={"Retry-After": "10"}
        )

    if shutdown_manager:
        shutdown_manager.request_started()

    try:
        return await call_next(request)
    finally:
        if shutdown_manager:
            shutdown_manager.request_finished()


# ==================== Request ID Middleware ====================

async def add_request_id_middleware(request: Request, call_next):
    """Add unique request ID to each request for tracing across logs."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id

    return response


# ==================== Request Logging Middleware ====================

async def request_logging_middleware(request: Request, call_next):
    """Log every request with its status and duration."""
    start_time = time.time()
    request_id = getattr(request.state, "request_id", "unknown")

    response = await call_next(request)
    duration = time.time() - start_time

    logger.info(
        f"[{request_id}] {request.method} {request.url.path} - "
        f"Status: {response.status_code} - "
        f"Duration: {duration:.3f}s"
    )
    return response


# ==================== Recover Middleware ====================

async def recover_middleware(request: Request, call_next):
    """Turn any unhandled exception into a 500 envelope and close the connection."""
    try:
        return await call_next(request)
    except Exception as e:
        request_id = getattr(request.state, "request_id", "unknown")
        logger.error(
            f"[{request_id}] {request.method} {request.url.path} - Error: {str(e)}",
            exc_info=True,
            extra={"properties": {"request_method": request.method, "request_url": str(request.url)}},
        )
        return error_response(500, SERVER_ERROR_MESSAGE, headers={"Connection": "close"})


# ==================== Security Headers Middleware ====================

async def security_headers_middleware(request: Request, call_next):
    """Add security headers to all responses."""
    response = await call_next(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

    if settings.APP_ENV == "production":
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

    return response


# ==================== CORS Middleware ====================

PREFLIGHT_ALLOW_METHODS = "OPTIONS, PUT, PATCH, DELETE"
PREFLIGHT_ALLOW_HEADERS = "Authorization, Content-Type"


async def cors_middleware(request: Request, call_next):
    """Echo trusted origins back and answer their preflight requests.

    Origins are compared exactly against CORS_TRUSTED_ORIGINS. Untrusted
    origins get a normal response with no CORS headers.
    """
    origin = request.headers.get("Origin")
    trusted = origin is not None and origin in settings.get_trusted_origins()
    is_preflight = request.method == "OPTIONS" and "Access-Control-Request-Method" in request.headers

    if trusted and is_preflight:
        response = Response(status_code=200)
        response.headers["Access-Control-Allow-Methods"] = PREFLIGHT_ALLOW_METHODS
        response.headers["Access-Control-Allow-Headers"] = PREFLIGHT_ALLOW_HEADERS
    else:
        response = await call_next(request)

    if trusted:
        response.headers["Access-Control-Allow-Origin"] = origin
    response.headers.add_vary_header("Origin")
    response.headers.add_vary_header("Access-Control-Request-Method")
    return response


# ==================== Authentication Middleware ====================

async def _user_for_bearer(models: Models, value: str) -> User | None:
    """Resolve a bearer value to its user: JWTs by signature, anything else as an opaque token."""
    if looks_like_jwt(value):
        user_id = decode_access_token(value)
        if user_id is None:
            return None
        try:
            return await models.users.get(user_id)
        except RecordNotFoundError:
            return None

    v = Validator()
    validate_token_plaintext(v, value)
    if not v.valid:
        return None
    try:
        return await models.users.get_for_token(SCOPE_AUTHENTICATION, value)
    except RecordNotFoundError:
        return None


async def authenticate_middleware(request: Request, call_next):
    """Attach the request principal; a bad Authorization header ends the request with 401."""
    authorization = request.headers.get("Authorization")

    if not authorization:
        set_request_user(request, AnonymousUser)
        response = await call_next(request)
    else:
        parts = authorization.split(" ")
        user = None
        if len(parts) == 2 and parts[0] == "Bearer":
            user = await _user_for_bearer(request.app.state.models, parts[1])

        if user is None:
            response = invalid_authentication_token_response()
        else:
            set_request_user(request, user)
            response = await call_next(request)

    response.headers.add_vary_header("Authorization")
    return response
