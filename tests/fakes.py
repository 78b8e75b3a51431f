"""
In-memory implementations of the store interfaces, plus a recording mailer.
Used by the API and service tests in place of PostgreSQL and SMTP.
"""

import itertools
import smtplib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from movie_catalog.auth import IssuedToken, Password, generate_token, hash_token
from movie_catalog.filters import Filters, Metadata, calculate_metadata
from movie_catalog.models import Movie, User
from movie_catalog.stores import (
    DuplicateEmailError,
    EditConflictError,
    Models,
    Permissions,
    RecordNotFoundError,
)


@dataclass
class TokenRow:
    """What the tokens table holds: the digest, never the plaintext."""
    hash: bytes
    user_id: int
    expiry: datetime
    scope: str


def _copy_movie(movie: Movie) -> Movie:
    return Movie(
        id=movie.id,
        created_at=movie.created_at,
        title=movie.title,
        year=movie.year,
        runtime=movie.runtime,
        genres=list(movie.genres),
        version=movie.version,
    )


def _copy_user(user: User) -> User:
    return User(
        id=user.id,
        created_at=user.created_at,
        username=user.username,
        email=user.email,
        password_hash=user.password_hash,
        activated=user.activated,
        version=user.version,
    )


class MemoryDatabase:
    """Shared rows behind the in-memory stores."""

    def __init__(self):
        self.movies: dict[int, Movie] = {}
        self.users: dict[int, User] = {}
        self.tokens: dict[bytes, TokenRow] = {}
        self.permission_codes = {"movies:read", "movies:write"}
        self.user_permissions: dict[int, set[str]] = {}
        self.movie_ids = itertools.count(1)
        self.user_ids = itertools.count(1)


class InMemoryMovieStore:
    def __init__(self, db: MemoryDatabase):
        self.db = db

    async def insert(self, movie: Movie) -> Movie:
        movie.id = next(self.db.movie_ids)
        movie.created_at = datetime.now(timezone.utc)
        movie.version = 1
        self.db.movies[movie.id] = _copy_movie(movie)
        return movie

    async def get(self, movie_id: int) -> Movie:
        if movie_id not in self.db.movies:
            raise RecordNotFoundError
        return _copy_movie(self.db.movies[movie_id])

    async def update(self, movie: Movie) -> Movie:
        stored = self.db.movies.get(movie.id)
        if stored is None or stored.version != movie.version:
            raise EditConflictError
        movie.version += 1
        self.db.movies[movie.id] = _copy_movie(movie)
        return movie

    async def delete(self, movie_id: int) -> None:
        if self.db.movies.pop(movie_id, None) is None:
            raise RecordNotFoundError

    async def get_all(self, title: str, genres: list[str], filters: Filters) -> tuple[list[Movie], Metadata]:
        matched = [
            movie for movie in sorted(self.db.movies.values(), key=lambda m: m.id)
            if (title == "" or title.lower() in movie.title.lower())
            and all(genre in movie.genres for genre in genres)
        ]
        column = filters.sort_column()
        matched.sort(key=lambda m: getattr(m, column), reverse=filters.sort_direction() == "DESC")
        page = matched[filters.offset():filters.offset() + filters.limit()]
        return [_copy_movie(m) for m in page], calculate_metadata(len(matched), filters.page, filters.page_size)


class InMemoryUserStore:
    def __init__(self, db: MemoryDatabase):
        self.db = db

    async def insert(self, user: User) -> User:
        if any(existing.email == user.email for existing in self.db.users.values()):
            raise DuplicateEmailError
        user.id = next(self.db.user_ids)
        user.created_at = datetime.now(timezone.utc)
        user.version = 1
        self.db.users[user.id] = _copy_user(user)
        return user

    async def get(self, user_id: int) -> User:
        if user_id not in self.db.users:
            raise RecordNotFoundError
        return _copy_user(self.db.users[user_id])

    async def get_by_email(self, email: str) -> User:
        for user in self.db.users.values():
            if user.email == email:
                return _copy_user(user)
        raise RecordNotFoundError

    async def update(self, user: User) -> User:
        stored = self.db.users.get(user.id)
        if stored is None or stored.version != user.version:
            raise EditConflictError
        if any(other.email == user.email and other.id != user.id for other in self.db.users.values()):
            raise DuplicateEmailError
        user.version += 1
        self.db.users[user.id] = _copy_user(user)
        return user

    async def get_for_token(self, scope: str, plaintext: str) -> User:
        token = self.db.tokens.get(hash_token(plaintext))
        if token is None or token.scope != scope or token.expiry <= datetime.now(timezone.utc):
            raise RecordNotFoundError
        return await self.get(token.user_id)


class InMemoryTokenStore:
    def __init__(self, db: MemoryDatabase):
        self.db = db

    async def new(self, user_id: int, ttl: timedelta, scope: str) -> IssuedToken:
        token = generate_token(user_id, ttl, scope)
        await self.insert(token)
        return token

    async def insert(self, token: IssuedToken) -> None:
        self.db.tokens[token.hash] = TokenRow(
            hash=token.hash,
            user_id=token.user_id,
            expiry=token.expiry,
            scope=token.scope,
        )

    async def delete_all_for_user(self, user_id: int, scope: str) -> None:
        self.db.tokens = {
            digest: token for digest, token in self.db.tokens.items()
            if not (token.user_id == user_id and token.scope == scope)
        }


class InMemoryPermissionStore:
    def __init__(self, db: MemoryDatabase):
        self.db = db

    async def get_all_for_user(self, user_id: int) -> Permissions:
        return Permissions(sorted(self.db.user_permissions.get(user_id, set())))

    async def add_for_user(self, user_id: int, *codes: str) -> None:
        granted = self.db.user_permissions.setdefault(user_id, set())
        granted.update(code for code in codes if code in self.db.permission_codes)


def create_memory_models() -> tuple[Models, MemoryDatabase]:
    db = MemoryDatabase()
    models = Models(
        movies=InMemoryMovieStore(db),
        users=InMemoryUserStore(db),
        tokens=InMemoryTokenStore(db),
        permissions=InMemoryPermissionStore(db),
    )
    return models, db


class RecordingMailer:
    """Mailer double: remembers what would have been sent, or fails on demand."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[tuple[str, str, dict]] = []

    async def send_async(self, recipient: str, template_name: str, data: dict) -> None:
        if self.fail:
            raise smtplib.SMTPServerDisconnected("connection unexpectedly closed")
        self.sent.append((recipient, template_name, data))


# ==================== Seeding Helpers ====================


async def make_user(
    models: Models,
    email: str = "alice@example.com",
    password: str = "pa55word123",
    activated: bool = True,
    permissions: tuple[str, ...] = ("movies:read", "movies:write"),
) -> User:
    hashed = Password()
    hashed.set(password)
    user = await models.users.insert(User(
        username=email.split("@")[0],
        email=email,
        password_hash=hashed.hash,
        activated=activated,
    ))
    if permissions:
        await models.permissions.add_for_user(user.id, *permissions)
    return user


async def auth_header(models: Models, user: User) -> dict[str, str]:
    token = await models.tokens.new(user.id, timedelta(hours=1), "authentication")
    return {"Authorization": f"Bearer {token.plaintext}"}


async def make_movie(models: Models, title: str = "Casablanca", year: int = 1942, runtime: int = 102, genres=("drama", "romance")) -> Movie:
    return await models.movies.insert(Movie(title=title, year=year, runtime=runtime, genres=list(genres)))
