"""Errors raised by the session layer.

Token decode failures and missing records are folded into "no session" by
:meth:`async_session.store.SessionStore.load`. Everything else propagates.
"""


class SessionError(Exception):
    """Base class for every error raised by async_session."""


class TokenDecodeError(SessionError):
    """The external token is malformed or its signature does not match."""

    def __init__(self, message: str = "Invalid session token"):
        super().__init__(message)


class SessionUsageError(SessionError):
    """A session was used in a way that is a programming error."""


class BackendError(SessionError):
    """Base class for failures reported by a session store backend."""


class CorruptSessionError(BackendError):
    """A record exists in the backend but cannot be decoded into a session."""


class BackendUnavailableError(BackendError):
    """The backend could not be reached or failed while doing I/O."""


class ConcurrencyConflictError(BackendError):
    """An optimistic write lost against a concurrent write for the same id."""


__all__ = [
    "SessionError",
    "TokenDecodeError",
    "SessionUsageError",
    "BackendError",
    "CorruptSessionError",
    "BackendUnavailableError",
    "ConcurrencyConflictError",
]
