import asyncio
import logging
from datetime import datetime
from typing import Dict, Optional

from pydantic import ValidationError

from ..serialization import SessionRecord
from ..session import Session, utcnow
from ..store import SessionStore
from ..tokens import TokenCodec

logger = logging.getLogger(__name__)


class MemoryStore(SessionStore):
    """
    In-process session store.

    Records are kept as JSON text so a loaded session never shares objects
    with the stored copy. Not suitable for production: data lives only as
    long as the process and is not shared between workers.
    """

    def __init__(self, codec: TokenCodec):
        super().__init__(codec)
        self._records: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def _read(self, session_id: str) -> Optional[str]:
        async with self._lock:
            return self._records.get(session_id)

    async def _write(self, record: SessionRecord) -> None:
        raw = record.model_dump_json()
        async with self._lock:
            self._records[record.id] = raw

    async def _delete(self, session_id: str) -> None:
        async with self._lock:
            self._records.pop(session_id, None)

    async def _discard_expired(self, session: Session) -> None:
        await self._delete(session.id)

    async def clear_all(self) -> None:
        async with self._lock:
            self._records.clear()
        logger.info("Memory session store cleared")

    async def cleanup(self) -> int:
        now = utcnow()
        async with self._lock:
            expired = [session_id for session_id, raw in self._records.items() if _is_expired(raw, now)]
            for session_id in expired:
                del self._records[session_id]
        if expired:
            logger.info(f"Removed {len(expired)} expired session(s) from memory store")
        return len(expired)

    async def count(self) -> int:
        """Number of records currently held, expired ones included."""
        async with self._lock:
            return len(self._records)


def _is_expired(raw: str, now: datetime) -> bool:
    try:
        record = SessionRecord.model_validate_json(raw)
    except ValidationError:
        # left in place, load() reports it as corrupt
        return False
    return record.expiry is not None and now >= record.expiry
