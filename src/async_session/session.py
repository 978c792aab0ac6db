"""
The in-memory session entity.

A session moves through four states: fresh (just created, dirty), persisted
(clean), dirty (mutated since the last persist) and destroyed (terminal).
Stores read ``dirty`` to skip no-op writes and ``destroyed`` to turn a
write into a delete.
"""
import copy
import json
import logging
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional, Union

from .exceptions import SessionUsageError
from .tokens import TokenCodec

logger = logging.getLogger(__name__)

_MISSING = object()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_aware(instant: datetime) -> datetime:
    if not isinstance(instant, datetime) or instant.tzinfo is None or instant.utcoffset() is None:
        raise SessionUsageError("Session expiry must be a timezone-aware datetime")
    return instant


def _json_value(key: str, value: Any) -> Any:
    # Normalise through JSON so the in-memory copy equals what a reload yields
    try:
        return json.loads(json.dumps(value, allow_nan=False))
    except (TypeError, ValueError) as e:
        raise SessionUsageError(f"Value for session key '{key}' is not JSON serializable: {e}") from e


class Session:
    """
    Per-visitor state: an immutable id, an optional absolute expiry and a
    string-keyed payload of JSON values.

    A session is owned by one in-flight request at a time; it carries no
    locking of its own.
    """

    __slots__ = ("_id", "_expiry", "_data", "_dirty", "_destroyed", "_replaces")

    def __init__(
        self,
        session_id: str,
        data: Optional[Dict[str, Any]] = None,
        expiry: Optional[datetime] = None,
        *,
        dirty: bool = False,
    ):
        if not session_id:
            raise SessionUsageError("A session needs a non-empty id")
        self._id = session_id
        self._data: Dict[str, Any] = dict(data or {})
        self._expiry = _require_aware(expiry) if expiry is not None else None
        self._dirty = dirty
        self._destroyed = False
        self._replaces: Optional[str] = None

    @classmethod
    def create(cls, codec: TokenCodec) -> "Session":
        """Start a brand new session. It is dirty so the first store persists it."""
        return cls(codec.generate_id(), dirty=True)

    @classmethod
    def from_parts(
        cls,
        session_id: str,
        data: Optional[Dict[str, Any]] = None,
        expiry: Optional[datetime] = None,
    ) -> "Session":
        """Rebuild a session loaded from a backend, with clean flags."""
        return cls(session_id, data, expiry, dirty=False)

    # Identity and flags

    @property
    def id(self) -> str:
        return self._id

    @property
    def expiry(self) -> Optional[datetime]:
        return self._expiry

    @property
    def data(self) -> Mapping[str, Any]:
        """Read-only snapshot of the payload."""
        return MappingProxyType(copy.deepcopy(self._data))

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def replaces(self) -> Optional[str]:
        """Id of the session this one was regenerated from, until it is persisted."""
        return self._replaces

    def _check_alive(self) -> None:
        if self._destroyed:
            raise SessionUsageError(f"Session {self._id[:8]}... has been destroyed")

    # Payload

    def get(self, key: str, default: Any = None) -> Any:
        """Return a copy of the value under ``key``. Change it through :meth:`insert`."""
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def insert(self, key: str, value: Any) -> None:
        """Set ``key`` to ``value``. The value must be JSON serializable."""
        self._check_alive()
        if not isinstance(key, str):
            raise SessionUsageError(f"Session keys must be strings, got {type(key).__name__}")
        self._data[key] = _json_value(key, value)
        self._dirty = True

    def remove(self, key: str) -> None:
        """Delete ``key`` if present; only an actual removal marks the session dirty."""
        self._check_alive()
        if self._data.pop(key, _MISSING) is not _MISSING:
            self._dirty = True

    def take(self, key: str, default: Any = None) -> Any:
        """Remove ``key`` and return its value, or ``default`` if it was absent."""
        self._check_alive()
        value = self._data.pop(key, _MISSING)
        if value is _MISSING:
            return default
        self._dirty = True
        return value

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    # Expiry

    def set_expiry(self, instant: datetime) -> None:
        self._check_alive()
        self._expiry = _require_aware(instant)
        self._dirty = True

    def expire_in(self, ttl: Union[timedelta, int, float], now: Optional[datetime] = None) -> None:
        """Expire ``ttl`` (a timedelta or seconds) after ``now``."""
        if not isinstance(ttl, timedelta):
            ttl = timedelta(seconds=ttl)
        self.set_expiry((now or utcnow()) + ttl)

    def clear_expiry(self) -> None:
        self._check_alive()
        self._expiry = None
        self._dirty = True

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """True once ``now`` has reached the expiry. Sessions without expiry never expire."""
        if self._expiry is None:
            return False
        return _require_aware(now or utcnow()) >= self._expiry

    def expires_in(self, now: Optional[datetime] = None) -> Optional[timedelta]:
        """Time left before expiry, or None if there is no expiry or it has passed."""
        if self._expiry is None:
            return None
        remaining = self._expiry - _require_aware(now or utcnow())
        if remaining <= timedelta(0):
            return None
        return remaining

    # Lifecycle

    def destroy(self) -> None:
        """Mark the session as gone. Storing it afterwards deletes its record."""
        if not self._destroyed:
            logger.debug(f"Session {self._id[:8]}... marked as destroyed")
        self._destroyed = True

    def regenerate_id(self, codec: TokenCodec) -> "Session":
        """
        Return a copy of this session under a freshly generated id.

        The payload and expiry carry over. The new session remembers the id
        it replaces so that the store can delete the old record once the new
        one is written.
        """
        self._check_alive()
        renewed = Session(codec.generate_id(), copy.deepcopy(self._data), self._expiry, dirty=True)
        renewed._replaces = self._replaces or self._id
        return renewed

    def mark_persisted(self) -> None:
        """Called by stores after a successful write."""
        self._dirty = False
        self._replaces = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Session):
            return NotImplemented
        return self._id == other._id

    def __hash__(self) -> int:
        return hash(self._id)

    def __repr__(self) -> str:
        return (
            f"Session(id={self._id[:8]}..., keys={len(self._data)}, expiry={self._expiry}, "
            f"dirty={self._dirty}, destroyed={self._destroyed})"
        )


__all__ = [
    "Session",
    "utcnow",
]
