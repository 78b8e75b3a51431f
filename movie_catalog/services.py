"""Business logic layer for movies, users and tokens.

Handlers decode the request and pass plain values in; these functions
validate, talk to the stores and raise ``HTTPException`` for every outcome
that is not a success.
"""

from datetime import datetime, timedelta

from .auth import (
    SCOPE_ACTIVATION,
    SCOPE_AUTHENTICATION,
    SCOPE_PASSWORD_RESET,
    Password,
    create_access_token,
)
from .background import BackgroundTaskTracker
from .cache import MOVIE_BY_ID_PREFIX, cache_manager, make_cache_key
from .config import settings
from .errors import (
    edit_conflict_error,
    failed_validation_error,
    invalid_credentials_error,
    not_found_error,
)
from .filters import Filters, Metadata
from .logger import logger
from .mailer import Mailer
from .models import Movie, User
from .schemas import (
    AuthenticationToken,
    Credentials,
    EmailRequest,
    MovieInput,
    MovieOut,
    PasswordReset,
    UserActivate,
    UserOut,
    UserRegister,
)
from .stores import DuplicateEmailError, EditConflictError, Models, RecordNotFoundError
from .utils import normalize_email
from .validator import (
    Validator,
    validate_email,
    validate_filters,
    validate_movie,
    validate_password_plaintext,
    validate_token_plaintext,
    validate_user,
)

MOVIE_SORT_SAFELIST = ("id", "title", "year", "runtime", "-id", "-title", "-year", "-runtime")
DEFAULT_USER_PERMISSIONS = ("movies:read",)

# ==================== Helper Functions ====================


def _ensure_valid(v: Validator) -> None:
    if not v.valid:
        raise failed_validation_error(v.errors)


async def _cache_movie(movie_out: MovieOut, only_if_absent: bool = False) -> None:
    if settings.CACHE_ENABLED:
        await cache_manager.set(
            make_cache_key(MOVIE_BY_ID_PREFIX, movie_out.id),
            movie_out.model_dump(mode="json"),
            only_if_absent=only_if_absent,
        )


async def _invalidate_movie_cache(movie_id: int) -> None:
    if settings.CACHE_ENABLED:
        await cache_manager.delete(make_cache_key(MOVIE_BY_ID_PREFIX, movie_id))

# ==================== Movie Operations ====================


async def create_movie(models: Models, data: MovieInput) -> MovieOut:
    v = Validator()
    validate_movie(v, data.title, data.year, data.runtime, data.genres)
    _ensure_valid(v)

    movie = Movie(title=data.title, year=data.year, runtime=data.runtime, genres=data.genres)
    movie = await models.movies.insert(movie)
    logger.info(f"Movie created: id={movie.id} title={movie.title!r}")
    return MovieOut.model_validate(movie)


async def get_movie(models: Models, movie_id: int) -> MovieOut:
    """Retrieve a movie by ID with caching."""
    if settings.CACHE_ENABLED:
        cached_data = await cache_manager.get(make_cache_key(MOVIE_BY_ID_PREFIX, movie_id))
        if cached_data:
            logger.debug(f"Cache hit for movie: id={movie_id}")
            return MovieOut.model_validate(cached_data)

    try:
        movie = await models.movies.get(movie_id)
    except RecordNotFoundError:
        raise not_found_error()

    movie_out = MovieOut.model_validate(movie)
    # A concurrent update may have cached a newer version since the read
    await _cache_movie(movie_out, only_if_absent=True)
    return movie_out


async def update_movie(
    models: Models,
    movie_id: int,
    data: MovieInput,
    expected_version: str | None = None,
) -> MovieOut:
    """Apply the non-null fields of data, guarded by the version read here.

    When the client sends an expected version it must match the stored one.
    """
    try:
        movie = await models.movies.get(movie_id)
    except RecordNotFoundError:
        raise not_found_error()

    if expected_version and expected_version != str(movie.version):
        raise edit_conflict_error()

    if data.title is not None:
        movie.title = data.title
    if data.year is not None:
        movie.year = data.year
    if data.runtime is not None:
        movie.runtime = data.runtime
    if data.genres is not None:
        movie.genres = data.genres

    v = Validator()
    validate_movie(v, movie.title, movie.year, movie.runtime, movie.genres)
    _ensure_valid(v)

    try:
        movie = await models.movies.update(movie)
    except EditConflictError:
        logger.warning(f"Edit conflict updating movie: id={movie_id}")
        raise edit_conflict_error()

    movie_out = MovieOut.model_validate(movie)
    await _cache_movie(movie_out)
    logger.info(f"Movie updated: id={movie.id} version={movie.version}")
    return movie_out


async def delete_movie(models: Models, movie_id: int) -> None:
    try:
        await models.movies.delete(movie_id)
    except RecordNotFoundError:
        raise not_found_error()

    await _invalidate_movie_cache(movie_id)
    logger.info(f"Movie deleted: id={movie_id}")


async def list_movies(
    models: Models,
    title: str,
    genres: list[str],
    filters: Filters,
    v: Validator,
) -> tuple[list[MovieOut], Metadata]:
    """List movies matching title and genres. v may already hold query-string errors."""
    validate_filters(v, filters.page, filters.page_size, filters.sort, filters.sort_safelist)
    _ensure_valid(v)

    movies, metadata = await models.movies.get_all(title, genres, filters)
    return [MovieOut.model_validate(movie) for movie in movies], metadata

# ==================== User Operations ====================


async def register_user(
    models: Models,
    mailer: Mailer,
    background: BackgroundTaskTracker,
    data: UserRegister,
) -> UserOut:
    """Create an inactive user, grant default permissions and email an activation token."""
    email = normalize_email(data.email or "")
    v = Validator()
    validate_user(v, data.username, email, data.password)
    _ensure_valid(v)

    password = Password()
    password.set(data.password)
    user = User(
        username=data.username,
        email=email,
        password_hash=password.hash,
        activated=False,
    )

    try:
        user = await models.users.insert(user)
    except DuplicateEmailError:
        logger.warning(f"Registration rejected - duplicate email: {email}")
        raise failed_validation_error({"email": "a user with this email address already exists"})

    await models.permissions.add_for_user(user.id, *DEFAULT_USER_PERMISSIONS)

    token = await models.tokens.new(
        user.id,
        timedelta(minutes=settings.ACTIVATION_TOKEN_TTL_MINUTES),
        SCOPE_ACTIVATION,
    )

    background.submit(
        mailer.send_async,
        user.email,
        "user_welcome",
        {"activation_token": token.plaintext, "user_id": user.id},
        name=f"welcome-email-{user.id}",
    )

    logger.info(f"User registered: id={user.id} email={user.email}")
    return UserOut.model_validate(user)


async def activate_user(models: Models, data: UserActivate) -> UserOut:
    v = Validator()
    validate_token_plaintext(v, data.token)
    _ensure_valid(v)

    try:
        user = await models.users.get_for_token(SCOPE_ACTIVATION, data.token)
    except RecordNotFoundError:
        raise failed_validation_error({"token": "invalid or expired activation token"})

    user.activated = True
    try:
        user = await models.users.update(user)
    except EditConflictError:
        raise edit_conflict_error()

    await models.tokens.delete_all_for_user(user.id, SCOPE_ACTIVATION)
    logger.info(f"User activated: id={user.id}")
    return UserOut.model_validate(user)


async def reset_password(models: Models, data: PasswordReset) -> str:
    v = Validator()
    validate_password_plaintext(v, data.password)
    validate_token_plaintext(v, data.token)
    _ensure_valid(v)

    try:
        user = await models.users.get_for_token(SCOPE_PASSWORD_RESET, data.token)
    except RecordNotFoundError:
        raise failed_validation_error({"token": "invalid or expired password reset token"})

    password = Password()
    password.set(data.password)
    user.password_hash = password.hash

    try:
        user = await models.users.update(user)
    except EditConflictError:
        raise edit_conflict_error()

    await models.tokens.delete_all_for_user(user.id, SCOPE_PASSWORD_RESET)
    logger.info(f"Password reset: id={user.id}")
    return "your password was successfully reset"

# ==================== Token Operations ====================


async def _authenticate(models: Models, data: Credentials) -> User:
    """User whose email and password match data. Unactivated users are accepted."""
    email = normalize_email(data.email or "")
    v = Validator()
    validate_email(v, email)
    validate_password_plaintext(v, data.password)
    _ensure_valid(v)

    try:
        user = await models.users.get_by_email(email)
    except RecordNotFoundError:
        logger.warning(f"Login failed - unknown email: {email}")
        raise invalid_credentials_error()

    if not Password(user.password_hash).matches(data.password):
        logger.warning(f"Login failed - wrong password: id={user.id}")
        raise invalid_credentials_error()

    return user


async def create_authentication_token(models: Models, data: Credentials) -> AuthenticationToken:
    user = await _authenticate(models, data)
    token = await models.tokens.new(
        user.id,
        timedelta(minutes=settings.AUTHENTICATION_TOKEN_TTL_MINUTES),
        SCOPE_AUTHENTICATION,
    )
    logger.info(f"Authentication token issued: user_id={user.id}")
    return AuthenticationToken(token=token.plaintext, expiry=token.expiry)


async def create_jwt(models: Models, data: Credentials) -> tuple[str, datetime]:
    user = await _authenticate(models, data)
    token, expiry = create_access_token(user.id)
    logger.info(f"JWT issued: user_id={user.id}")
    return token, expiry


async def create_activation_token(
    models: Models,
    mailer: Mailer,
    background: BackgroundTaskTracker,
    data: EmailRequest,
) -> str:
    email = normalize_email(data.email or "")
    v = Validator()
    validate_email(v, email)
    _ensure_valid(v)

    try:
        user = await models.users.get_by_email(email)
    except RecordNotFoundError:
        raise failed_validation_error({"email": "no matching email address found"})

    if user.activated:
        raise failed_validation_error({"email": "user has already been activated"})

    token = await models.tokens.new(
        user.id,
        timedelta(minutes=settings.ACTIVATION_TOKEN_TTL_MINUTES),
        SCOPE_ACTIVATION,
    )
    background.submit(
        mailer.send_async,
        user.email,
        "token_activation",
        {"activation_token": token.plaintext},
        name=f"activation-email-{user.id}",
    )
    return "an email will be sent to you containing activation instructions"


async def create_password_reset_token(
    models: Models,
    mailer: Mailer,
    background: BackgroundTaskTracker,
    data: EmailRequest,
) -> str:
    email = normalize_email(data.email or "")
    v = Validator()
    validate_email(v, email)
    _ensure_valid(v)

    try:
        user = await models.users.get_by_email(email)
    except RecordNotFoundError:
        raise failed_validation_error({"email": "no matching email address found"})

    if not user.activated:
        raise failed_validation_error({"email": "user account must be activated"})

    token = await models.tokens.new(
        user.id,
        timedelta(minutes=settings.PASSWORD_RESET_TOKEN_TTL_MINUTES),
        SCOPE_PASSWORD_RESET,
    )
    background.submit(
        mailer.send_async,
        user.email,
        "token_password_reset",
        {"password_reset_token": token.plaintext},
        name=f"password-reset-email-{user.id}",
    )
    return "an email will be sent to you containing password reset instructions"
