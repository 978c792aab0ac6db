import logging
from typing import NoReturn, Optional

import redis.asyncio as aioredis
from redis import RedisError, ConnectionError as RedisConnectionError

from ..exceptions import BackendUnavailableError
from ..serialization import SessionRecord
from ..session import utcnow
from ..store import SessionStore
from ..tokens import TokenCodec
from .redis_client import get_redis_client

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "async-session:"


def _escape_glob(value: str) -> str:
    for char in "\\*?[]":
        value = value.replace(char, f"\\{char}")
    return value


class RedisStore(SessionStore):
    """
    Session store on Redis.

    Each session is one string key holding the JSON record. Expiry is
    handed to Redis (``PXAT``), so expired records disappear on their own
    and :meth:`cleanup` has nothing to do. A ``SET`` replaces the whole
    value atomically, so concurrent writes for one id are last-writer-wins.
    """

    def __init__(self, redis_client: aioredis.Redis, codec: TokenCodec, key_prefix: str = DEFAULT_KEY_PREFIX):
        """Initialize the Redis store with an async Redis client."""
        super().__init__(codec)
        self.redis_client = redis_client
        self.key_prefix = key_prefix

    @classmethod
    def from_url(cls, redis_url: str, codec: TokenCodec, key_prefix: str = DEFAULT_KEY_PREFIX) -> "RedisStore":
        return cls(get_redis_client(redis_url), codec, key_prefix=key_prefix)

    def _key(self, session_id: str) -> str:
        return f"{self.key_prefix}{session_id}"

    def _handle_redis_error(self, operation: str, session_id: Optional[str], error: Exception) -> NoReturn:
        """Centralized error handling for Redis operations."""
        target = f"session {session_id[:8]}..." if session_id else "all sessions"
        if isinstance(error, RedisConnectionError):
            logger.error(f"Redis connection failed during {operation} for {target}: {error}")
            raise BackendUnavailableError(f"Database connection error during {operation}") from error
        logger.error(f"Redis error during {operation} for {target}: {error}")
        raise BackendUnavailableError(f"Database error during {operation}") from error

    async def _read(self, session_id: str) -> Optional[str]:
        try:
            return await self.redis_client.get(self._key(session_id))
        except RedisError as e:
            self._handle_redis_error("session read", session_id, e)

    async def _write(self, record: SessionRecord) -> None:
        key = self._key(record.id)
        try:
            if record.expiry is None:
                await self.redis_client.set(key, record.model_dump_json())
            elif record.expiry <= utcnow():
                # already expired, nothing worth keeping
                await self.redis_client.delete(key)
            else:
                expire_at_ms = int(record.expiry.timestamp() * 1000)
                await self.redis_client.set(key, record.model_dump_json(), pxat=expire_at_ms)
        except RedisError as e:
            self._handle_redis_error("session write", record.id, e)
        logger.debug(f"Session {record.id[:8]}... written to Redis")

    async def _delete(self, session_id: str) -> None:
        try:
            deleted_count = await self.redis_client.delete(self._key(session_id))
        except RedisError as e:
            self._handle_redis_error("session deletion", session_id, e)
        if deleted_count == 0:
            logger.debug(f"Session {session_id[:8]}... was already absent")

    async def clear_all(self) -> None:
        pattern = f"{_escape_glob(self.key_prefix)}*"
        removed = 0
        try:
            batch = []
            async for key in self.redis_client.scan_iter(match=pattern, count=500):
                batch.append(key)
                if len(batch) >= 500:
                    removed += await self.redis_client.delete(*batch)
                    batch = []
            if batch:
                removed += await self.redis_client.delete(*batch)
        except RedisError as e:
            self._handle_redis_error("clearing the store", None, e)
        logger.info(f"Cleared {removed} session(s) from Redis")


__all__ = [
    "RedisStore",
    "DEFAULT_KEY_PREFIX",
]
