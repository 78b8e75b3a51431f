"""Authentication utilities: password hashing, opaque tokens and JWTs."""

import base64
import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from .config import settings

# ==================== Password Hashing ====================


class Password:
    """A bcrypt password hash, optionally paired with the plaintext it was built from.

    The plaintext only lives on instances created through ``set`` and is
    never persisted.
    """

    def __init__(self, hash: bytes | None = None):
        self.plaintext: str | None = None
        self.hash = hash

    def set(self, plaintext: str) -> None:
        self.hash = bcrypt.hashpw(plaintext.encode("utf-8"), bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS))
        self.plaintext = plaintext

    def matches(self, plaintext: str) -> bool:
        """True when plaintext hashes to the stored value.

        A mismatch is an ordinary False; a corrupt stored hash raises ValueError.
        """
        if self.hash is None:
            raise ValueError("password hash is not set")
        return bcrypt.checkpw(plaintext.encode("utf-8"), self.hash)

# ==================== Opaque Tokens ====================

SCOPE_ACTIVATION = "activation"
SCOPE_AUTHENTICATION = "authentication"
SCOPE_PASSWORD_RESET = "password-reset"


@dataclass
class IssuedToken:
    plaintext: str
    hash: bytes
    user_id: int
    expiry: datetime
    scope: str


def hash_token(plaintext: str) -> bytes:
    return hashlib.sha256(plaintext.encode("utf-8")).digest()


def generate_token(user_id: int, ttl: timedelta, scope: str) -> IssuedToken:
    """Build a token from 16 random bytes: base-32 plaintext (26 chars) and its SHA-256 digest."""
    plaintext = base64.b32encode(secrets.token_bytes(16)).decode("ascii").rstrip("=")
    return IssuedToken(
        plaintext=plaintext,
        hash=hash_token(plaintext),
        user_id=user_id,
        expiry=datetime.now(timezone.utc) + ttl,
        scope=scope,
    )

# ==================== JWT Token Management ====================


def looks_like_jwt(value: str) -> bool:
    return value.count(".") == 2


def create_access_token(user_id: int, expires_delta: timedelta | None = None) -> tuple[str, datetime]:
    """Create a signed JWT for user_id. Returns the token and its expiry."""
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.JWT_EXPIRATION_MINUTES))
    claims = {
        "sub": str(user_id),
        "iat": now,
        "nbf": now,
        "exp": expire,
        "iss": settings.JWT_ISSUER,
        "aud": settings.JWT_AUDIENCE,
    }
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM), expire


def decode_access_token(token: str) -> int | None:
    """Verify signature, time claims, issuer and audience. Returns the user id or None."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            issuer=settings.JWT_ISSUER,
        )
    except JWTError:
        return None

    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        return None
