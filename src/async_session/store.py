"""
The contract every session backend implements.

:class:`SessionStore` owns the parts that must behave identically across
backends: token verification, expiry checks, destroyed sessions turning
into deletes, and regeneration cleanup. Backends supply four primitives
(``_read``, ``_write``, ``_delete``, ``clear_all``) and optionally
``cleanup``.

Error behaviour:

- A token that fails verification, an unknown id, an expired record and a
  destroyed session all load as ``None``. Callers cannot tell them apart.
- A record that exists but cannot be decoded raises
  :class:`~async_session.exceptions.CorruptSessionError`.
- Backend I/O failures raise
  :class:`~async_session.exceptions.BackendUnavailableError` and are never
  retried or masked here.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Awaitable, Optional, TypeVar, Union

from .exceptions import CorruptSessionError, TokenDecodeError
from .serialization import SessionRecord, encode, loads
from .session import Session, utcnow
from .tokens import TokenCodec

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _shielded(operation: Awaitable[T], action: str, session_id: str) -> T:
    """
    Await ``operation`` so that cancelling the caller does not cancel it.

    If the caller is cancelled, the operation keeps running on its own and a
    later failure is logged here, since nobody is left to receive it.
    """
    task = asyncio.ensure_future(operation)
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        def _report(finished: "asyncio.Future[T]") -> None:
            if finished.cancelled():
                return
            error = finished.exception()
            if error is not None:
                logger.error(
                    f"Session {action} for {session_id[:8]}... failed after its caller was cancelled: {error}"
                )

        task.add_done_callback(_report)
        raise


class SessionStore(ABC):
    def __init__(self, codec: TokenCodec):
        self.codec = codec

    # Backend primitives

    @abstractmethod
    async def _read(self, session_id: str) -> Optional[Union[str, bytes]]:
        """Fetch the serialized record stored under ``session_id``, or None if there is none."""
        pass

    @abstractmethod
    async def _write(self, record: SessionRecord) -> None:
        """Replace the whole record stored under ``record.id`` in one atomic step."""
        pass

    @abstractmethod
    async def _delete(self, session_id: str) -> None:
        """Delete the record under ``session_id``. Deleting a missing record is not an error."""
        pass

    @abstractmethod
    async def clear_all(self) -> None:
        """Delete every record held by this store."""
        pass

    async def cleanup(self) -> int:
        """
        Purge expired records and return how many were removed.

        Nothing schedules this; callers that need it run it themselves.
        Backends with native expiry keep this default.
        """
        return 0

    async def close(self) -> None:
        """Release resources this store owns. Clients shared with other code are left alone."""
        pass

    async def _discard_expired(self, session: Session) -> None:
        """Hook for backends that drop expired records as they find them."""
        pass

    # Contract

    async def load(self, token: str, now: Optional[datetime] = None) -> Optional[Session]:
        """
        Return the live session the token refers to, or None.

        Raises:
            CorruptSessionError: If the stored record cannot be decoded
            BackendUnavailableError: If the backend fails
        """
        try:
            session_id = self.codec.decode(token)
        except TokenDecodeError:
            logger.warning("Rejected a session token that failed verification")
            return None

        raw = await self._read(session_id)
        if raw is None:
            logger.debug(f"No session stored for {session_id[:8]}...")
            return None

        session = loads(raw)
        if session.id != session_id:
            logger.error(f"Record stored under {session_id[:8]}... carries id {session.id[:8]}...")
            raise CorruptSessionError("Session record does not match its key")
        if session.is_expired(now or utcnow()):
            logger.debug(f"Session {session_id[:8]}... has expired")
            await self._discard_expired(session)
            return None
        return session

    async def store(self, session: Session) -> Optional[str]:
        """
        Persist ``session`` and return the token to hand back to the client.

        A destroyed session is deleted instead and None is returned, meaning
        the client should drop its token. Clean sessions are not rewritten.
        The token only changes when the id changed through
        :meth:`Session.regenerate_id`.
        """
        if session.destroyed:
            await self.destroy(session)
            return None

        if session.dirty:
            await _shielded(self._write(encode(session)), "write", session.id)
            logger.debug(f"Session {session.id[:8]}... stored")
        else:
            logger.debug(f"Session {session.id[:8]}... unchanged, skipping write")

        if session.replaces is not None:
            await _shielded(self._delete(session.replaces), "deletion", session.replaces)
            logger.debug(f"Session {session.replaces[:8]}... replaced by {session.id[:8]}...")

        session.mark_persisted()
        return self.codec.encode(session.id)

    async def destroy(self, session: Session) -> None:
        """Delete the session's record and mark the session destroyed. Idempotent."""
        session.destroy()
        await _shielded(self._delete(session.id), "deletion", session.id)
        if session.replaces is not None:
            await _shielded(self._delete(session.replaces), "deletion", session.replaces)
        logger.debug(f"Session {session.id[:8]}... destroyed")

    def new_session(self) -> Session:
        """Create an unsaved session with an id from this store's codec."""
        return Session.create(self.codec)


__all__ = [
    "SessionStore",
]
