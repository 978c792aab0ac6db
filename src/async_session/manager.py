"""
The request-facing side of the session layer.

Middleware calls :meth:`SessionManager.load_or_create` with whatever token
the client sent (or None), hands the session to request logic, then calls
:meth:`SessionManager.commit` and puts the returned token back on the
response. Attaching the token to a cookie or header is left to the web
framework.
"""
import logging
from typing import Optional

from .session import Session
from .store import SessionStore

logger = logging.getLogger(__name__)


class SessionManager:
    def __init__(self, store: SessionStore, ttl_seconds: Optional[int] = None):
        """
        Args:
            store: Backend the sessions live in
            ttl_seconds: Lifetime given to newly created sessions; None means no expiry
        """
        self.store = store
        self.ttl_seconds = ttl_seconds

    async def load_or_create(self, token: Optional[str]) -> Session:
        """
        Return the session for ``token``, or a new unsaved one if there is none.

        Invalid, expired and unknown tokens all yield a new session. Backend
        failures and corrupt records propagate.
        """
        if token:
            session = await self.store.load(token)
            if session is not None:
                return session

        session = self.store.new_session()
        if self.ttl_seconds:
            session.expire_in(self.ttl_seconds)
        logger.debug(f"Created new session {session.id[:8]}...")
        return session

    async def commit(self, session: Session) -> Optional[str]:
        """
        Persist the session at the end of a request.

        Returns:
            The token to send back, or None if the session was destroyed and
            the client should drop its token
        """
        return await self.store.store(session)

    def regenerate(self, session: Session) -> Session:
        """
        Rotate the session id, keeping its data, e.g. right after login.

        The returned session replaces ``session`` for the rest of the
        request; committing it removes the old record.
        """
        renewed = session.regenerate_id(self.store.codec)
        logger.info(f"Session {session.id[:8]}... regenerated as {renewed.id[:8]}...")
        return renewed


__all__ = [
    "SessionManager",
]
