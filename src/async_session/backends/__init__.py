"""Session store backends."""

from .memory import MemoryStore
from .redis_backend import RedisStore
from .sqlalchemy_backend import SQLAlchemyStore

__all__ = [
    "MemoryStore",
    "RedisStore",
    "SQLAlchemyStore",
]
