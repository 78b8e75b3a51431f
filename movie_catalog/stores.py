"""Store interfaces the service layer depends on.

Each store is a narrow capability; ``crud`` provides the SQL implementations
and the test suite provides in-memory ones.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Protocol

from .auth import IssuedToken
from .filters import Filters, Metadata
from .models import Movie, User


class RecordNotFoundError(Exception):
    """No row matched the lookup."""


class EditConflictError(Exception):
    """The row changed (or vanished) since the version the caller read."""


class DuplicateEmailError(Exception):
    """Another user already owns this email address."""


class Permissions(list):
    """Permission codes held by one user."""

    def include(self, code: str) -> bool:
        return code in self


class MovieStore(Protocol):
    async def insert(self, movie: Movie) -> Movie: ...

    async def get(self, movie_id: int) -> Movie: ...

    async def update(self, movie: Movie) -> Movie: ...

    async def delete(self, movie_id: int) -> None: ...

    async def get_all(self, title: str, genres: list[str], filters: Filters) -> tuple[list[Movie], Metadata]: ...


class UserStore(Protocol):
    async def insert(self, user: User) -> User: ...

    async def get(self, user_id: int) -> User: ...

    async def get_by_email(self, email: str) -> User: ...

    async def update(self, user: User) -> User: ...

    async def get_for_token(self, scope: str, plaintext: str) -> User: ...


class TokenStore(Protocol):
    async def new(self, user_id: int, ttl: timedelta, scope: str) -> IssuedToken: ...

    async def insert(self, token: IssuedToken) -> None: ...

    async def delete_all_for_user(self, user_id: int, scope: str) -> None: ...


class PermissionStore(Protocol):
    async def get_all_for_user(self, user_id: int) -> Permissions: ...

    async def add_for_user(self, user_id: int, *codes: str) -> None: ...


@dataclass
class Models:
    """Bundle of stores shared by the request handlers (``app.state.models``)."""

    movies: MovieStore
    users: UserStore
    tokens: TokenStore
    permissions: PermissionStore
