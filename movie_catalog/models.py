"""SQLAlchemy ORM models for database tables."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    LargeBinary,
    String,
    Table,
    Text,
    BigInteger,
)
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.sql import func
from .db import Base


class User(Base):
    """User model mapped to 'users' table."""

    __tablename__ = "users"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(BigInteger, primary_key=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    username = Column(Text, nullable=False)
    email = Column(Text, nullable=False, unique=True)
    password_hash = Column(LargeBinary, nullable=False)
    activated = Column(Boolean, nullable=False, default=False)
    version = Column(Integer, nullable=False, server_default="1")

    @property
    def is_anonymous(self) -> bool:
        return self is AnonymousUser


# Principal attached to requests that carry no Authorization header.
AnonymousUser = User(username="", email="", activated=False)


class Token(Base):
    """Stored form of an issued token: only the SHA-256 digest is kept."""

    __tablename__ = "tokens"

    hash = Column(LargeBinary, primary_key=True)
    user_id = Column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    expiry = Column(DateTime(timezone=True), nullable=False)
    scope = Column(Text, nullable=False)


class Permission(Base):
    """Permission code such as ``movies:read``."""

    __tablename__ = "permissions"

    id = Column(BigInteger, primary_key=True)
    code = Column(Text, nullable=False, unique=True)


users_permissions = Table(
    "users_permissions",
    Base.metadata,
    Column("user_id", BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", BigInteger, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)


class Movie(Base):
    """Movie model mapped to 'movies' table. Runtime is stored in minutes."""

    __tablename__ = "movies"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(BigInteger, primary_key=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    title = Column(String, nullable=False)
    year = Column(Integer, nullable=False)
    runtime = Column(Integer, nullable=False)
    genres = Column(ARRAY(Text), nullable=False)
    version = Column(Integer, nullable=False, server_default="1")
