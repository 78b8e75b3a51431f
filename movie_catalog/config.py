"""Configuration management and validation using Pydantic."""

import os
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator


class Settings(BaseSettings):
    """Application configuration settings loaded from environment variables or .env files."""

    @staticmethod
    def get_env_file() -> str | None:
        """Determine which .env file to load based on environment variables.

        Returns:
            None if SKIP_ENV_FILE is set (Docker/direct env vars)
            .env.{APP_ENV} file path otherwise (defaults to .env.dev)
        """
        if os.getenv("SKIP_ENV_FILE"):
            return None
        env = os.getenv("APP_ENV", "dev")
        env_file = f".env.{env}"
        if not os.path.exists(env_file):
            raise FileNotFoundError(
                f"Environment file '{env_file}' not found. "
                f"Create it or set SKIP_ENV_FILE to read settings from the environment."
            )
        return env_file

    model_config = SettingsConfigDict(
        env_file=get_env_file.__func__(),
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # ==================== Application Settings ====================
    APP_NAME: str = "Movie Catalog API"
    APP_ENV: str = "dev"
    APP_VERSION: str = "1.0.0"
    HOST: str = "0.0.0.0"
    PORT: int = 4000
    DB_URL: str  # Required, defined in .env files

    # ==================== Database Connection Pooling ====================
    DB_POOL_SIZE: int = 25  # Open connections kept in the pool
    DB_MAX_OVERFLOW: int = 0  # Hard cap: never open more than DB_POOL_SIZE
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for an available connection
    DB_POOL_RECYCLE: int = 900  # Recycle connections after 15 minutes

    # ==================== Database Timeouts ====================
    DB_QUERY_TIMEOUT: float = 3.0  # Upper bound for a single store operation (seconds)
    DB_CONNECT_TIMEOUT: int = 10  # Connection establishment timeout (seconds)

    # ==================== CORS Settings ====================
    CORS_TRUSTED_ORIGINS: str = ""  # Space or comma separated exact origins

    # ==================== Request Decoding ====================
    MAX_BODY_BYTES: int = 1_048_576

    # ==================== Pagination ====================
    DEFAULT_PAGE: int = 1
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE: int = 10_000_000
    MAX_PAGE_SIZE: int = 100

    # ==================== JWT Authentication ====================
    JWT_SECRET_KEY: str  # Required, defined in .env files
    JWT_ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "movie-catalog.local"
    JWT_AUDIENCE: str = "movie-catalog.local"
    JWT_EXPIRATION_MINUTES: int = 24 * 60

    # ==================== Tokens & Passwords ====================
    ACTIVATION_TOKEN_TTL_MINUTES: int = 3 * 24 * 60
    AUTHENTICATION_TOKEN_TTL_MINUTES: int = 24 * 60
    PASSWORD_RESET_TOKEN_TTL_MINUTES: int = 45
    BCRYPT_ROUNDS: int = 12

    # ==================== Rate Limiting ====================
    LIMITER_ENABLED: bool = True
    LIMITER_RPS: float = 2.0  # Sustained requests per second per client
    LIMITER_BURST: int = 4  # Requests allowed at once per client

    # ==================== SMTP ====================
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 25
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_SENDER: str = "Movie Catalog <no-reply@movie-catalog.local>"
    SMTP_TIMEOUT: int = 10

    # ==================== Graceful Shutdown ====================
    GRACEFUL_SHUTDOWN_TIMEOUT: int = 5  # Max wait for requests and background tasks (seconds)

    # ==================== Logging ====================
    LOG_LEVEL: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    LOG_FILE: str | None = "app.log"  # None to disable file logging
    LOG_FORMAT: str = "console"  # "console" for dev, "json" for production

    # ==================== Monitoring ====================
    ENABLE_METRICS: bool = True  # Expose Prometheus metrics at /metrics

    # ==================== Redis Caching ====================
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_TTL: int = 300  # Default TTL in seconds (5 minutes)
    CACHE_ENABLED: bool = True  # Global cache toggle

    @field_validator('DB_URL')
    @classmethod
    def validate_db_url(cls, v: str) -> str:
        """Validate that DB_URL is provided and properly formatted."""
        if not v:
            raise ValueError("DB_URL is required but not provided in environment variables")
        if not v.startswith(("postgresql://", "postgresql+asyncpg://")):
            raise ValueError("DB_URL must be a valid PostgreSQL connection string")
        return v

    @field_validator('JWT_SECRET_KEY')
    @classmethod
    def validate_jwt_secret(cls, v: str) -> str:
        """Validate that JWT_SECRET_KEY is provided and sufficiently long."""
        if not v:
            raise ValueError("JWT_SECRET_KEY is required but not provided in environment variables")
        if len(v) < 32:
            raise ValueError("JWT_SECRET_KEY must be at least 32 characters long for security")
        return v

    @field_validator('LIMITER_RPS')
    @classmethod
    def validate_limiter_rps(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("LIMITER_RPS must be greater than zero")
        return v

    def get_trusted_origins(self) -> list[str]:
        """Parse CORS_TRUSTED_ORIGINS into a list of exact origins."""
        return [origin for origin in self.CORS_TRUSTED_ORIGINS.replace(",", " ").split() if origin]

    def get_rate_limit(self) -> str:
        """Express the burst/refill pair as a `limits` rate string (e.g. "4 per 2 second")."""
        window = max(1, round(self.LIMITER_BURST / self.LIMITER_RPS))
        return f"{self.LIMITER_BURST} per {window} second"


settings = Settings()
