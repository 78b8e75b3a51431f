"""Pydantic schemas for request decoding and response serialization.

Input schemas are strict (no coercion between JSON types) and reject unknown
keys. Every input field is optional at the schema level: presence and range
rules are enforced by the validator so all field problems come back together.
"""

import re
from datetime import datetime
from typing import Annotated, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, PlainSerializer

# ==================== Runtime ====================

_RUNTIME_RX = re.compile(r"([+-]?[0-9]+) mins")
INT32_MIN, INT32_MAX = -(2**31), 2**31 - 1


class RuntimeFormatError(ValueError):
    def __init__(self):
        super().__init__("invalid runtime format")


def parse_runtime(value):
    """Decode the JSON form ``"<n> mins"`` into a number of minutes (a 32-bit integer)."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise RuntimeFormatError()
    match = _RUNTIME_RX.fullmatch(value)
    if match is None:
        raise RuntimeFormatError()
    minutes = int(match.group(1))
    if not INT32_MIN <= minutes <= INT32_MAX:
        raise RuntimeFormatError()
    return minutes


def format_runtime(minutes: int) -> str:
    return f"{minutes} mins"


def _runtime_minutes(value):
    return parse_runtime(value) if isinstance(value, str) else value


RuntimeIn = Annotated[Optional[int], BeforeValidator(parse_runtime)]
Runtime = Annotated[int, BeforeValidator(_runtime_minutes), PlainSerializer(format_runtime, return_type=str)]


class StrictInput(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)

# ==================== Movie Schemas ====================


class MovieInput(StrictInput):
    """Body for create and partial update; on update, null or absent fields are left unchanged."""
    title: Optional[str] = None
    year: Optional[int] = None
    runtime: RuntimeIn = None
    genres: Optional[list[str]] = None


class MovieOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    year: int
    runtime: Runtime
    genres: list[str]
    version: int

# ==================== User Schemas ====================


class UserRegister(StrictInput):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class UserActivate(StrictInput):
    token: Optional[str] = None


class PasswordReset(StrictInput):
    password: Optional[str] = None
    token: Optional[str] = None


class UserOut(BaseModel):
    """User output schema without password."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime
    username: str
    email: str
    activated: bool

# ==================== Token Schemas ====================


class Credentials(StrictInput):
    email: Optional[str] = None
    password: Optional[str] = None


class EmailRequest(StrictInput):
    email: Optional[str] = None


class AuthenticationToken(BaseModel):
    token: str
    expiry: datetime
