"""Field-level validation: an error accumulator plus the domain rules built on it."""

import re
from datetime import datetime
from typing import Iterable

from .config import settings

EMAIL_RX = re.compile(
    r"[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*"
)

TOKEN_PLAINTEXT_LENGTH = 26


class Validator:
    """Collects one error message per field; the first message recorded for a field wins."""

    def __init__(self):
        self.errors: dict[str, str] = {}

    @property
    def valid(self) -> bool:
        return not self.errors

    def add_error(self, key: str, message: str) -> None:
        if key not in self.errors:
            self.errors[key] = message

    def check(self, ok: bool, key: str, message: str) -> None:
        if not ok:
            self.add_error(key, message)


def permitted_value(value, *permitted) -> bool:
    return value in permitted


def matches(value: str, rx: re.Pattern) -> bool:
    return rx.fullmatch(value) is not None


def unique(values: Iterable) -> bool:
    values = list(values)
    return len(set(values)) == len(values)


def _byte_length(value: str) -> int:
    return len(value.encode("utf-8"))

# ==================== Users ====================


def validate_email(v: Validator, email: str | None) -> None:
    email = email or ""
    v.check(email != "", "email", "must be provided")
    v.check(matches(email, EMAIL_RX), "email", "must be a valid email address")


def validate_password_plaintext(v: Validator, password: str | None) -> None:
    password = password or ""
    v.check(password != "", "password", "must be provided")
    v.check(_byte_length(password) >= 8, "password", "must be at least 8 bytes long")
    v.check(_byte_length(password) <= 72, "password", "must not be more than 72 bytes long")


def validate_user(v: Validator, username: str | None, email: str | None, password: str | None) -> None:
    username = username or ""
    v.check(username != "", "username", "must be provided")
    v.check(_byte_length(username) <= 500, "username", "must not be more than 500 bytes long")
    validate_email(v, email)
    validate_password_plaintext(v, password)


def validate_token_plaintext(v: Validator, token: str | None) -> None:
    token = token or ""
    v.check(token != "", "token", "must be provided")
    v.check(len(token) == TOKEN_PLAINTEXT_LENGTH, "token", f"must be {TOKEN_PLAINTEXT_LENGTH} bytes long")

# ==================== Movies ====================


def validate_movie(v: Validator, title: str | None, year: int | None, runtime: int | None, genres: list[str] | None) -> None:
    title = title or ""
    v.check(title != "", "title", "must be provided")
    v.check(_byte_length(title) <= 500, "title", "must not be more than 500 bytes long")

    year = year or 0
    v.check(year != 0, "year", "must be provided")
    v.check(year >= 1888, "year", "must be greater than 1888")
    v.check(year <= datetime.now().year, "year", "must not be in the future")

    runtime = runtime or 0
    v.check(runtime != 0, "runtime", "must be provided")
    v.check(runtime > 0, "runtime", "must be a positive integer")

    v.check(genres is not None, "genres", "must be provided")
    genres = genres or []
    v.check(len(genres) >= 1, "genres", "must contain at least 1 genre")
    v.check(len(genres) <= 5, "genres", "must not contain more than 5 genres")
    v.check(unique(genres), "genres", "must not contain duplicate values")

# ==================== Listing ====================


def validate_filters(v: Validator, page: int, page_size: int, sort: str, sort_safelist: Iterable[str]) -> None:
    v.check(page > 0, "page", "must be greater than zero")
    v.check(page <= settings.MAX_PAGE, "page", "must be a maximum of 10 million")
    v.check(page_size > 0, "page_size", "must be greater than zero")
    v.check(page_size <= settings.MAX_PAGE_SIZE, "page_size", "must be a maximum of 100")
    v.check(permitted_value(sort, *sort_safelist), "sort", "invalid sort value")
