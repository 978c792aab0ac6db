"""Session storage in a relational database through SQLAlchemy.

SQLAlchemy's engine here is the blocking one; every operation runs in a
worker thread with :func:`asyncio.to_thread` so the event loop is never
blocked. Each operation uses its own ORM session and transaction.
"""
import asyncio
import logging
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, NoReturn, Optional

from sqlalchemy import DateTime, MetaData, String, Text, create_engine, delete, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.sql import func

from ..exceptions import BackendUnavailableError
from ..serialization import SessionRecord
from ..session import utcnow
from ..store import SessionStore
from ..tokens import TokenCodec

logger = logging.getLogger(__name__)

convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=convention)


class SessionRow(Base):
    """One persisted session record."""

    __tablename__ = "async_sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    # naive UTC, used only for cleanup(); the payload carries the real expiry
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<SessionRow(id={self.id[:8]!r}...)>"


def get_connect_args(database_url: str) -> Dict[str, Any]:
    """Get database-specific connection arguments"""
    if database_url.startswith("sqlite"):
        # worker threads share the engine's connections
        return {"check_same_thread": False}
    return {}


def create_session_engine(database_url: str) -> Engine:
    return create_engine(database_url, connect_args=get_connect_args(database_url))


def _naive_utc(instant: Optional[datetime]) -> Optional[datetime]:
    if instant is None:
        return None
    return instant.astimezone(timezone.utc).replace(tzinfo=None)


class SQLAlchemyStore(SessionStore):
    """
    Session store on any database SQLAlchemy supports.

    The database has no native expiry, so expired rows stay until
    :meth:`cleanup` is called. They are never returned by :meth:`load`.
    """

    def __init__(self, engine: Engine, codec: TokenCodec):
        super().__init__(codec)
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
        self._table_ready = False
        self._table_lock = Lock()

    @classmethod
    def from_url(cls, database_url: str, codec: TokenCodec) -> "SQLAlchemyStore":
        return cls(create_session_engine(database_url), codec)

    def _ensure_table(self) -> None:
        """Create the sessions table on first use, once per store."""
        if self._table_ready:
            return
        with self._table_lock:
            if not self._table_ready:
                Base.metadata.create_all(bind=self.engine, tables=[SessionRow.__table__], checkfirst=True)
                self._table_ready = True
                logger.debug("Session table initialized")

    def _handle_database_error(self, operation: str, session_id: Optional[str], error: Exception) -> NoReturn:
        target = f"session {session_id[:8]}..." if session_id else "all sessions"
        logger.error(f"Database error during {operation} for {target}: {error}")
        raise BackendUnavailableError(f"Database error during {operation}") from error

    async def initialize(self) -> None:
        """Create the sessions table if needed. Optional; every operation does it lazily."""
        try:
            await asyncio.to_thread(self._ensure_table)
        except SQLAlchemyError as e:
            self._handle_database_error("table creation", None, e)

    # Blocking halves, run in a worker thread

    def _read_sync(self, session_id: str) -> Optional[str]:
        self._ensure_table()
        with self._session_factory() as db:
            return db.scalar(select(SessionRow.payload).where(SessionRow.id == session_id))

    def _write_sync(self, record: SessionRecord) -> None:
        self._ensure_table()
        values = {"payload": record.model_dump_json(), "expires_at": _naive_utc(record.expiry)}
        with self._session_factory() as db:
            try:
                result = db.execute(update(SessionRow).where(SessionRow.id == record.id).values(**values))
                if result.rowcount == 0:
                    db.add(SessionRow(id=record.id, **values))
                db.commit()
            except IntegrityError:
                # another writer inserted the same id between our UPDATE and INSERT
                db.rollback()
                logger.debug(f"Insert raced for session {record.id[:8]}..., retrying as update")
                db.execute(update(SessionRow).where(SessionRow.id == record.id).values(**values))
                db.commit()

    def _delete_sync(self, session_id: str) -> None:
        self._ensure_table()
        with self._session_factory() as db:
            db.execute(delete(SessionRow).where(SessionRow.id == session_id))
            db.commit()

    def _clear_sync(self) -> int:
        self._ensure_table()
        with self._session_factory() as db:
            result = db.execute(delete(SessionRow))
            db.commit()
            return result.rowcount

    def _cleanup_sync(self, now: datetime) -> int:
        self._ensure_table()
        with self._session_factory() as db:
            result = db.execute(
                delete(SessionRow).where(SessionRow.expires_at.is_not(None), SessionRow.expires_at <= now)
            )
            db.commit()
            return result.rowcount

    # Async primitives

    async def _read(self, session_id: str) -> Optional[str]:
        try:
            return await asyncio.to_thread(self._read_sync, session_id)
        except SQLAlchemyError as e:
            self._handle_database_error("session read", session_id, e)

    async def _write(self, record: SessionRecord) -> None:
        try:
            await asyncio.to_thread(self._write_sync, record)
        except SQLAlchemyError as e:
            self._handle_database_error("session write", record.id, e)

    async def _delete(self, session_id: str) -> None:
        try:
            await asyncio.to_thread(self._delete_sync, session_id)
        except SQLAlchemyError as e:
            self._handle_database_error("session deletion", session_id, e)

    async def clear_all(self) -> None:
        try:
            removed = await asyncio.to_thread(self._clear_sync)
        except SQLAlchemyError as e:
            self._handle_database_error("clearing the store", None, e)
        logger.info(f"Cleared {removed} session(s) from the database")

    async def cleanup(self) -> int:
        try:
            removed = await asyncio.to_thread(self._cleanup_sync, _naive_utc(utcnow()))
        except SQLAlchemyError as e:
            self._handle_database_error("expired session cleanup", None, e)
        if removed:
            logger.info(f"Removed {removed} expired session(s) from the database")
        return removed

    async def close(self) -> None:
        """Dispose of the engine's connection pool."""
        await asyncio.to_thread(self.engine.dispose)
        logger.debug("Session database engine disposed")

    async def count(self) -> int:
        """Number of rows currently held, expired ones included."""
        def _count() -> int:
            self._ensure_table()
            with self._session_factory() as db:
                return db.scalar(select(func.count()).select_from(SessionRow)) or 0

        try:
            return await asyncio.to_thread(_count)
        except SQLAlchemyError as e:
            self._handle_database_error("session count", None, e)


__all__ = [
    "SQLAlchemyStore",
    "SessionRow",
    "create_session_engine",
]
