import logging

from .backends import MemoryStore, RedisStore, SQLAlchemyStore
from .config import SessionConfig
from .store import SessionStore
from .tokens import TokenCodec

logger = logging.getLogger(__name__)


def create_session_store(config: SessionConfig) -> SessionStore:
    """
    Build the session store named by ``config.backend``.

    Raises:
        ValueError: If the backend name is unknown
    """
    codec = TokenCodec(config.secret_key)

    if config.backend == "memory":
        logger.warning("Using in-memory session store - not suitable for production")
        return MemoryStore(codec)

    if config.backend == "redis":
        return RedisStore.from_url(config.redis_url, codec, key_prefix=config.key_prefix)

    if config.backend == "sqlalchemy":
        return SQLAlchemyStore.from_url(config.database_url, codec)

    raise ValueError(f"Unknown session backend '{config.backend}'")


__all__ = [
    "create_session_store",
]
