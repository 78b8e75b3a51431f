"""Request decoding helpers shared by the route handlers."""

import json
import re
from typing import TypeVar

from fastapi import Request
from pydantic import BaseModel, ValidationError

from .config import settings
from .errors import bad_request_error, not_found_error
from .validator import Validator

ModelT = TypeVar("ModelT", bound=BaseModel)

MAX_ID = 2**63 - 1
_ID_RX = re.compile(r"[0-9]+")
_INT_RX = re.compile(r"[+-]?[0-9]+")


def normalize_email(email: str) -> str:
    """Convert email to lowercase and strip whitespace."""
    return email.strip().lower()


async def _read_body(request: Request, max_bytes: int) -> bytes:
    too_large = bad_request_error(f"body must not be larger than {max_bytes} bytes")

    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > max_bytes:
        raise too_large

    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > max_bytes:
            raise too_large
    return bytes(body)


def _field_name(loc: tuple) -> str:
    return str(loc[0]) if loc else ""


async def read_json(request: Request, schema: type[ModelT]) -> ModelT:
    """Decode the request body strictly into schema; any problem is a 400 with a specific message."""
    max_bytes = settings.MAX_BODY_BYTES
    body = await _read_body(request, max_bytes)

    if not body.strip():
        raise bad_request_error("body must not be empty")

    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        if e.msg == "Extra data":
            raise bad_request_error("body must only contain a single JSON value")
        raise bad_request_error(f"body contains badly-formed JSON (at character {e.pos})")
    except UnicodeDecodeError:
        raise bad_request_error("body contains badly-formed JSON")

    try:
        return schema.model_validate(data)
    except ValidationError as e:
        error = e.errors()[0]
        field = _field_name(error["loc"])
        if error["type"] == "extra_forbidden":
            raise bad_request_error(f'body contains unknown key "{field}"')
        if error["type"] == "value_error":
            raise bad_request_error(str(error["ctx"]["error"]))
        if error["type"] == "model_type" or not field:
            raise bad_request_error("body contains incorrect JSON type")
        raise bad_request_error(f'body contains incorrect JSON type for field "{field}"')


def read_id_param(request: Request) -> int:
    """ASCII-decimal ``id`` path parameter in 1..2**63-1; anything else is a 404."""
    raw = request.path_params.get("id", "")
    if _ID_RX.fullmatch(raw) is None:
        raise not_found_error()
    value = int(raw)
    if not 1 <= value <= MAX_ID:
        raise not_found_error()
    return value

# ==================== Query String ====================


def read_string(request: Request, key: str, default: str) -> str:
    value = request.query_params.get(key, "")
    return value if value != "" else default


def read_csv(request: Request, key: str, default: list[str]) -> list[str]:
    value = request.query_params.get(key, "")
    if value == "":
        return default
    return value.split(",")


def read_int(request: Request, key: str, default: int, v: Validator) -> int:
    value = request.query_params.get(key, "")
    if value == "":
        return default
    if _INT_RX.fullmatch(value) is None:
        v.add_error(key, "must be an integer value")
        return default
    return int(value)
