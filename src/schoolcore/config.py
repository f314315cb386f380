"""Configuration contract for schoolcore.

This module provides Pydantic-validated configuration models for the
service: logging, the document store backend, the auth provider and the
AuthContext cache.

Direct os.environ/os.getenv usage is FORBIDDEN outside
``load_config_from_env()``. Everything else receives a config object.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

THREE_YEARS_SECONDS = 3 * 365 * 24 * 3600
REDIS_URL_SCHEMES = ("redis://", "rediss://", "unix://")


class LogLevel(str, Enum):
    """Standard log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AuthProvider(str, Enum):
    """Supported identity providers.

    - LOCAL: email + bcrypt hash stored alongside the profile data,
      HMAC-signed bearer tokens.
    """

    LOCAL = "local"


class StoreBackend(str, Enum):
    """Supported document store backends.

    - MEMORY: in-process store (tests, single-process dev)
    - REDIS: shared store on redis, optimistic WATCH/MULTI transactions
    """

    MEMORY = "memory"
    REDIS = "redis"


class AuthConfig(BaseModel):
    """Identity and AuthContext settings.

    Environment variables:
        AUTH_PROVIDER        local
        TOKEN_SECRET         HMAC secret used to sign bearer tokens
        TOKEN_KEY_ID         kid embedded in issued tokens
        TOKEN_TTL_SECONDS    token lifetime (no refresh flow, so long)
        BCRYPT_ROUNDS        bcrypt cost factor
        AUTH_CACHE_TTL       AuthContext cache TTL in seconds
        SUPERADMIN_EMAIL     seeded super-admin identity (optional)
        SUPERADMIN_PASSWORD  seeded super-admin password (optional)
    """

    model_config = {"extra": "forbid"}

    provider: AuthProvider = Field(
        default=AuthProvider.LOCAL,
        description="Identity provider selected at startup",
    )
    token_secret: str = Field(
        default="",
        description="Server secret for token signatures (required for the local provider)",
    )
    token_key_id: str = Field(
        default="hmac-001",
        description="Key identifier (kid) written into issued tokens",
    )
    token_ttl_seconds: int = Field(
        default=THREE_YEARS_SECONDS,
        gt=0,
        description="Token lifetime in seconds (3 years)",
    )
    bcrypt_rounds: int = Field(
        default=10,
        ge=4,
        le=16,
        description="bcrypt cost factor",
    )
    cache_ttl_seconds: int = Field(
        default=300,
        gt=0,
        description="AuthContext cache TTL in seconds (5 minutes)",
    )
    superadmin_email: Optional[str] = Field(default=None)
    superadmin_password: Optional[str] = Field(default=None)


class SchoolCoreConfig(BaseModel):
    """Top-level configuration for a schoolcore process."""

    # Logging
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level for the service",
    )
    log_json: bool = Field(
        default=False,
        description="Use JSON log format (default: plain text)",
    )

    # Redis (AuthContext cache, redis store backend)
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis connection URL (e.g., redis://localhost:6379/0)",
    )

    # Document store
    store_backend: StoreBackend = Field(
        default=StoreBackend.MEMORY,
        description="Document store backend",
    )
    store_namespace: str = Field(
        default="schoolcore",
        min_length=1,
        description="Key prefix for the redis store backend",
    )
    transaction_max_attempts: int = Field(
        default=5,
        ge=1,
        description="Attempts before a conflicting scoped transaction is aborted",
    )

    default_classroom_capacity: int = Field(default=30, ge=1)

    auth: AuthConfig = Field(default_factory=AuthConfig)

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.startswith(REDIS_URL_SCHEMES):
            raise ValueError(f"Redis URL must start with one of {', '.join(REDIS_URL_SCHEMES)}")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: object) -> LogLevel:
        """Accept level names in any case."""
        name = v.value if isinstance(v, LogLevel) else str(v).upper()
        if name not in LogLevel.__members__:
            raise ValueError(f"Invalid log level: {v!r} (expected one of {', '.join(LogLevel.__members__)})")
        return LogLevel[name]

    model_config = {
        "extra": "forbid",
    }


def _truthy(value: str) -> bool:
    return value.lower() in ("true", "1", "yes", "on")


def load_config_from_env() -> SchoolCoreConfig:
    """Load configuration from environment variables.

    This is the ONLY place where os.getenv is allowed.

    Environment variables:
    - LOG_LEVEL, LOG_JSON
    - REDIS_URL
    - STORE_BACKEND, STORE_NAMESPACE, TRANSACTION_MAX_ATTEMPTS
    - AUTH_PROVIDER, TOKEN_SECRET, TOKEN_KEY_ID, TOKEN_TTL_SECONDS
    - BCRYPT_ROUNDS, AUTH_CACHE_TTL
    - SUPERADMIN_EMAIL, SUPERADMIN_PASSWORD

    Returns:
        SchoolCoreConfig instance with values from environment or defaults.
    """
    import os

    auth = AuthConfig(
        provider=os.getenv("AUTH_PROVIDER", "local"),
        token_secret=os.getenv("TOKEN_SECRET", ""),
        token_key_id=os.getenv("TOKEN_KEY_ID", "hmac-001"),
        token_ttl_seconds=int(os.getenv("TOKEN_TTL_SECONDS", str(THREE_YEARS_SECONDS))),
        bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", "10")),
        cache_ttl_seconds=int(os.getenv("AUTH_CACHE_TTL", "300")),
        superadmin_email=os.getenv("SUPERADMIN_EMAIL") or None,
        superadmin_password=os.getenv("SUPERADMIN_PASSWORD") or None,
    )

    return SchoolCoreConfig(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_json=_truthy(os.getenv("LOG_JSON", "false")),
        redis_url=os.getenv("REDIS_URL") or None,
        store_backend=os.getenv("STORE_BACKEND", "memory"),
        store_namespace=os.getenv("STORE_NAMESPACE", "schoolcore"),
        transaction_max_attempts=int(os.getenv("TRANSACTION_MAX_ATTEMPTS", "5")),
        auth=auth,
    )


__all__ = [
    "AuthConfig",
    "AuthProvider",
    "LogLevel",
    "SchoolCoreConfig",
    "StoreBackend",
    "load_config_from_env",
]
