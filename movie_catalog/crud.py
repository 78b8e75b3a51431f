"""SQL implementations of the store interfaces.

Each operation opens its own session from the factory it was built with and
is bounded by ``DB_QUERY_TIMEOUT``.
"""

from datetime import datetime, timedelta, timezone

from sqlalchemy import BigInteger, Text, cast, delete, func, insert, literal, or_, select, update
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .auth import IssuedToken, generate_token, hash_token
from .db import with_query_timeout
from .filters import Filters, Metadata, calculate_metadata
from .logger import logger
from .models import Movie, Permission, Token, User, users_permissions
from .stores import (
    DuplicateEmailError,
    EditConflictError,
    Models,
    Permissions,
    RecordNotFoundError,
)


def _escape_like(value: str) -> str:
    """Escape LIKE wildcards so user input only ever matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")

# ==================== Movies ====================


class SqlMovieStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @with_query_timeout
    async def insert(self, movie: Movie) -> Movie:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(movie)
        logger.debug(f"Movie inserted: id={movie.id}")
        return movie

    @with_query_timeout
    async def get(self, movie_id: int) -> Movie:
        if movie_id < 1:
            raise RecordNotFoundError
        async with self._session_factory() as session:
            movie = await session.get(Movie, movie_id)
        if movie is None:
            raise RecordNotFoundError
        return movie

    @with_query_timeout
    async def update(self, movie: Movie) -> Movie:
        """Write movie back only if its version is unchanged; bumps the version."""
        stmt = (
            update(Movie)
            .where(Movie.id == movie.id, Movie.version == movie.version)
            .values(
                title=movie.title,
                year=movie.year,
                runtime=movie.runtime,
                genres=movie.genres,
                version=Movie.version + 1,
            )
            .returning(Movie.version)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(stmt)
                new_version = result.scalar_one_or_none()
        if new_version is None:
            raise EditConflictError
        movie.version = new_version
        return movie

    @with_query_timeout
    async def delete(self, movie_id: int) -> None:
        if movie_id < 1:
            raise RecordNotFoundError
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(delete(Movie).where(Movie.id == movie_id))
        if result.rowcount == 0:
            raise RecordNotFoundError

    @with_query_timeout
    async def get_all(self, title: str, genres: list[str], filters: Filters) -> tuple[list[Movie], Metadata]:
        """Filter, sort and paginate movies.

        An empty title or genre list matches every row. Ties on the sort
        column are broken by ascending id so pages are stable.
        """
        conditions = [
            or_(
                Movie.title.ilike(f"%{_escape_like(title)}%", escape="\\"),
                cast(literal(title), Text) == "",
            ),
            or_(
                Movie.genres.contains(genres),
                func.cardinality(cast(literal(genres, ARRAY(Text)), ARRAY(Text))) == 0,
            ),
        ]

        sort_column = getattr(Movie, filters.sort_column())
        if filters.sort_direction() == "DESC":
            order = sort_column.desc()
        else:
            order = sort_column.asc()

        count_stmt = select(func.count()).select_from(Movie).where(*conditions)
        stmt = (
            select(Movie)
            .where(*conditions)
            .order_by(order, Movie.id.asc())
            .limit(filters.limit())
            .offset(filters.offset())
        )

        async with self._session_factory() as session:
            total = (await session.execute(count_stmt)).scalar() or 0
            movies = list((await session.execute(stmt)).scalars().all())

        logger.debug(f"Movie query returned {len(movies)} of {total} rows")
        return movies, calculate_metadata(total, filters.page, filters.page_size)

# ==================== Users ====================


class SqlUserStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @with_query_timeout
    async def insert(self, user: User) -> User:
        """Insert user; id, created_at and version come back from the INSERT itself."""
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    session.add(user)
            except IntegrityError as e:
                logger.debug(f"Duplicate email rejected: {user.email}")
                raise DuplicateEmailError from e
        return user

    @with_query_timeout
    async def get(self, user_id: int) -> User:
        async with self._session_factory() as session:
            user = await session.get(User, user_id)
        if user is None:
            raise RecordNotFoundError
        return user

    @with_query_timeout
    async def get_by_email(self, email: str) -> User:
        async with self._session_factory() as session:
            result = await session.execute(select(User).where(User.email == email))
            user = result.scalars().first()
        if user is None:
            raise RecordNotFoundError
        return user

    @with_query_timeout
    async def update(self, user: User) -> User:
        stmt = (
            update(User)
            .where(User.id == user.id, User.version == user.version)
            .values(
                username=user.username,
                email=user.email,
                password_hash=user.password_hash,
                activated=user.activated,
                version=User.version + 1,
            )
            .returning(User.version)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    result = await session.execute(stmt)
                    new_version = result.scalar_one_or_none()
            except IntegrityError as e:
                raise DuplicateEmailError from e
        if new_version is None:
            raise EditConflictError
        user.version = new_version
        return user

    @with_query_timeout
    async def get_for_token(self, scope: str, plaintext: str) -> User:
        """User owning a non-expired token of this scope whose digest matches plaintext."""
        stmt = (
            select(User)
            .join(Token, Token.user_id == User.id)
            .where(
                Token.hash == hash_token(plaintext),
                Token.scope == scope,
                Token.expiry > datetime.now(timezone.utc),
            )
        )
        async with self._session_factory() as session:
            user = (await session.execute(stmt)).scalars().first()
        if user is None:
            raise RecordNotFoundError
        return user

# ==================== Tokens ====================


class SqlTokenStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def new(self, user_id: int, ttl: timedelta, scope: str) -> IssuedToken:
        token = generate_token(user_id, ttl, scope)
        await self.insert(token)
        return token

    @with_query_timeout
    async def insert(self, token: IssuedToken) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(Token(
                    hash=token.hash,
                    user_id=token.user_id,
                    expiry=token.expiry,
                    scope=token.scope,
                ))

    @with_query_timeout
    async def delete_all_for_user(self, user_id: int, scope: str) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(
                    delete(Token).where(Token.user_id == user_id, Token.scope == scope)
                )

# ==================== Permissions ====================


class SqlPermissionStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @with_query_timeout
    async def get_all_for_user(self, user_id: int) -> Permissions:
        stmt = (
            select(Permission.code)
            .join(users_permissions, users_permissions.c.permission_id == Permission.id)
            .where(users_permissions.c.user_id == user_id)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return Permissions(result.scalars().all())

    @with_query_timeout
    async def add_for_user(self, user_id: int, *codes: str) -> None:
        grant = insert(users_permissions).from_select(
            ["user_id", "permission_id"],
            select(literal(user_id, BigInteger), Permission.id).where(Permission.code.in_(codes)),
        )
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(grant)


def create_models(session_factory: async_sessionmaker[AsyncSession]) -> Models:
    return Models(
        movies=SqlMovieStore(session_factory),
        users=SqlUserStore(session_factory),
        tokens=SqlTokenStore(session_factory),
        permissions=SqlPermissionStore(session_factory),
    )
