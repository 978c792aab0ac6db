"""
Configuration for the session layer.

Values come from environment variables, with a local ``.env`` file loaded
first via python-dotenv:

- SESSION_SECRET_KEY (required)
- SESSION_BACKEND
- SESSION_TTL_SECONDS
- REDIS_URL
- SESSION_KEY_PREFIX
- DATABASE_URL
"""
import os
import logging
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

MIN_SECRET_LENGTH = 32

BackendName = Literal["memory", "redis", "sqlalchemy"]


class SessionConfig(BaseModel):
    secret_key: str = Field(..., repr=False, description="Signing secret for external session tokens")
    backend: BackendName = Field("memory", description="Which session store backend to use")
    ttl_seconds: Optional[int] = Field(None, gt=0, description="Default lifetime of new sessions")
    redis_url: str = Field("redis://localhost:6379", description="Connection URL for the redis backend")
    key_prefix: str = Field("async-session:", description="Namespace for keys in the redis backend")
    database_url: str = Field("sqlite:///./sessions.db", description="Connection URL for the SQLAlchemy backend")

    @field_validator("secret_key")
    @classmethod
    def _check_secret_length(cls, value: str) -> str:
        if len(value.encode("utf-8")) < MIN_SECRET_LENGTH:
            raise ValueError(f"secret_key must be at least {MIN_SECRET_LENGTH} bytes long")
        return value

    @classmethod
    def from_env(cls) -> "SessionConfig":
        """
        Build the configuration from environment variables.

        Raises:
            ValueError: If SESSION_SECRET_KEY is not set or a value is invalid
        """
        load_dotenv()

        if not (secret_key := os.getenv("SESSION_SECRET_KEY")):
            raise ValueError("SESSION_SECRET_KEY environment variable must be set")

        ttl = os.getenv("SESSION_TTL_SECONDS")
        config = cls(
            secret_key=secret_key,
            backend=os.getenv("SESSION_BACKEND", "memory").strip().lower(),
            ttl_seconds=int(ttl) if ttl else None,
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379"),
            key_prefix=os.getenv("SESSION_KEY_PREFIX", "async-session:"),
            database_url=os.getenv("DATABASE_URL", "sqlite:///./sessions.db"),
        )
        logger.info(f"Session configuration loaded (backend={config.backend}, ttl={config.ttl_seconds})")
        return config


__all__ = [
    "SessionConfig",
    "MIN_SECRET_LENGTH",
]
