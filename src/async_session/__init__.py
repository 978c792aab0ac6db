"""Async, backend-agnostic HTTP sessions."""

from .exceptions import (
    SessionError,
    TokenDecodeError,
    SessionUsageError,
    BackendError,
    CorruptSessionError,
    BackendUnavailableError,
    ConcurrencyConflictError,
)
from .tokens import TokenCodec
from .session import Session
from .serialization import SessionRecord
from .store import SessionStore
from .manager import SessionManager
from .config import SessionConfig
from .factory import create_session_store

__version__ = "0.1.0"

__all__ = [
    "SessionError",
    "TokenDecodeError",
    "SessionUsageError",
    "BackendError",
    "CorruptSessionError",
    "BackendUnavailableError",
    "ConcurrencyConflictError",
    "TokenCodec",
    "Session",
    "SessionRecord",
    "SessionStore",
    "SessionManager",
    "SessionConfig",
    "create_session_store",
]
