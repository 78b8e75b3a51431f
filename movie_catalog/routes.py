# API route definitions (HTTP layer)
# Defines ENDPOINTS under /v1

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from . import services
from .background import BackgroundTaskTracker
from .config import settings
from .dependencies import get_background, get_mailer, get_models, require_permission
from .filters import Filters
from .mailer import Mailer
from .schemas import (
    Credentials,
    EmailRequest,
    MovieInput,
    PasswordReset,
    UserActivate,
    UserRegister,
)
from .stores import Models
from .utils import read_csv, read_id_param, read_int, read_json, read_string
from .validator import Validator

router = APIRouter(prefix="/v1")

# One moving-window budget per client address, shared by every /v1 route
limiter = Limiter(
    key_func=get_remote_address,
    strategy="moving-window",
    enabled=settings.LIMITER_ENABLED,
)
api_limit = limiter.shared_limit(settings.get_rate_limit(), scope="api")


@router.get("/healthcheck")
@api_limit
async def healthcheck(request: Request):
    """Liveness check: reports availability, environment and version."""
    return {
        "status": "available",
        "system_info": {
            "environment": settings.APP_ENV,
            "version": settings.APP_VERSION,
        },
    }


# ============================================================================
# Movie Endpoints
# ============================================================================

@router.post("/movies", status_code=201, dependencies=[Depends(require_permission("movies:write"))])
@api_limit
async def create_movie(request: Request, models: Models = Depends(get_models)):
    """Create a movie; responds with a Location header pointing at it."""
    data = await read_json(request, MovieInput)
    movie = await services.create_movie(models, data)
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={"movie": movie.model_dump(mode="json")},
        headers={"Location": f"/v1/movies/{movie.id}"},
    )


@router.get("/movies/{id}", dependencies=[Depends(require_permission("movies:read"))])
@api_limit
async def show_movie(request: Request, models: Models = Depends(get_models)):
    movie = await services.get_movie(models, read_id_param(request))
    return {"movie": movie.model_dump(mode="json")}


@router.patch("/movies/{id}", dependencies=[Depends(require_permission("movies:write"))])
@api_limit
async def update_movie(request: Request, models: Models = Depends(get_models)):
    """Partially update a movie. Clients may pin the version with X-Expected-Version."""
    movie_id = read_id_param(request)
    data = await read_json(request, MovieInput)
    movie = await services.update_movie(
        models,
        movie_id,
        data,
        expected_version=request.headers.get("X-Expected-Version"),
    )
    return {"movie": movie.model_dump(mode="json")}


@router.delete("/movies/{id}", dependencies=[Depends(require_permission("movies:write"))])
@api_limit
async def delete_movie(request: Request, models: Models = Depends(get_models)):
    await services.delete_movie(models, read_id_param(request))
    return {"message": "movie successfully deleted"}


@router.get("/movies", dependencies=[Depends(require_permission("movies:read"))])
@api_limit
async def list_movies(request: Request, models: Models = Depends(get_models)):
    """List movies.

    Query parameters: title (substring, case-insensitive), genres (comma
    separated, all must match), page, page_size, sort (id, title, year,
    runtime; prefix with - for descending).
    """
    v = Validator()
    title = read_string(request, "title", "")
    genres = read_csv(request, "genres", [])
    filters = Filters(
        page=read_int(request, "page", settings.DEFAULT_PAGE, v),
        page_size=read_int(request, "page_size", settings.DEFAULT_PAGE_SIZE, v),
        sort=read_string(request, "sort", "id"),
        sort_safelist=services.MOVIE_SORT_SAFELIST,
    )
    movies, metadata = await services.list_movies(models, title, genres, filters, v)
    return {
        "movies": [movie.model_dump(mode="json") for movie in movies],
        "metadata": metadata.model_dump(),
    }


# ============================================================================
# User Endpoints
# ============================================================================

@router.post("/users", status_code=201)
@api_limit
async def register_user(
    request: Request,
    models: Models = Depends(get_models),
    mailer: Mailer = Depends(get_mailer),
    background: BackgroundTaskTracker = Depends(get_background),
):
    """Register a user. The account starts inactive; an activation token is emailed."""
    data = await read_json(request, UserRegister)
    user = await services.register_user(models, mailer, background, data)
    return {"user": user.model_dump(mode="json")}


@router.put("/users/activated")
@api_limit
async def activate_user(request: Request, models: Models = Depends(get_models)):
    data = await read_json(request, UserActivate)
    user = await services.activate_user(models, data)
    return {"user": user.model_dump(mode="json")}


@router.put("/users/password")
@api_limit
async def update_user_password(request: Request, models: Models = Depends(get_models)):
    data = await read_json(request, PasswordReset)
    message = await services.reset_password(models, data)
    return {"message": message}


# ============================================================================
# Token Endpoints
# ============================================================================

@router.post("/tokens/authentication", status_code=201)
@api_limit
async def create_authentication_token(request: Request, models: Models = Depends(get_models)):
    """Exchange email and password for an opaque bearer token (24h)."""
    data = await read_json(request, Credentials)
    token = await services.create_authentication_token(models, data)
    return {"authentication_token": token.model_dump(mode="json")}


@router.post("/tokens/jwt", status_code=201)
@api_limit
async def create_jwt(request: Request, models: Models = Depends(get_models)):
    """Exchange email and password for a signed JWT bearer token."""
    data = await read_json(request, Credentials)
    token, expiry = await services.create_jwt(models, data)
    return {"authentication_token": token, "expiry": expiry.isoformat()}


@router.post("/tokens/activation", status_code=202)
@api_limit
async def create_activation_token(
    request: Request,
    models: Models = Depends(get_models),
    mailer: Mailer = Depends(get_mailer),
    background: BackgroundTaskTracker = Depends(get_background),
):
    data = await read_json(request, EmailRequest)
    message = await services.create_activation_token(models, mailer, background, data)
    return {"message": message}


@router.post("/tokens/password-reset", status_code=202)
@api_limit
async def create_password_reset_token(
    request: Request,
    models: Models = Depends(get_models),
    mailer: Mailer = Depends(get_mailer),
    background: BackgroundTaskTracker = Depends(get_background),
):
    data = await read_json(request, EmailRequest)
    message = await services.create_password_reset_token(models, mailer, background, data)
    return {"message": message}
