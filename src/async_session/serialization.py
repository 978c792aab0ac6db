"""
Conversion between :class:`Session` objects and the record a backend stores.

Only ``id``, ``expiry`` and ``data`` are persisted. ``dirty`` and
``destroyed`` are process-local and come back cleared after a load.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, JsonValue, ValidationError, field_validator

from .exceptions import CorruptSessionError
from .session import Session

logger = logging.getLogger(__name__)


class SessionRecord(BaseModel):
    """Backend-agnostic persisted form of a session."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(..., min_length=1, description="Session id, the storage key")
    expiry: Optional[datetime] = Field(None, description="Absolute expiry instant, UTC")
    data: Dict[str, JsonValue] = Field(default_factory=dict, description="Session payload")

    @field_validator("expiry")
    @classmethod
    def _expiry_is_aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            raise ValueError("expiry must carry a timezone")
        return value


def encode(session: Session) -> SessionRecord:
    expiry = session.expiry.astimezone(timezone.utc) if session.expiry is not None else None
    return SessionRecord(id=session.id, expiry=expiry, data=dict(session.data))


def decode(record: Union[SessionRecord, Dict[str, Any]]) -> Session:
    """
    Rebuild a session from its record.

    Raises:
        CorruptSessionError: If the record does not match the expected schema
    """
    if not isinstance(record, SessionRecord):
        try:
            record = SessionRecord.model_validate(record)
        except ValidationError as e:
            logger.error(f"Invalid session record format: {e.error_count()} validation error(s)")
            raise CorruptSessionError("Corrupted session record") from e
    return Session.from_parts(record.id, record.data, record.expiry)


def dumps(session: Session) -> str:
    """Serialize a session to JSON text."""
    return encode(session).model_dump_json()


def loads(raw: Union[str, bytes]) -> Session:
    """
    Deserialize JSON text produced by :func:`dumps`.

    Raises:
        CorruptSessionError: If the text is not valid JSON or does not match the schema
    """
    try:
        record = SessionRecord.model_validate_json(raw)
    except ValidationError as e:
        logger.error(f"Invalid session record format: {e.error_count()} validation error(s)")
        raise CorruptSessionError("Corrupted session record") from e
    return decode(record)


__all__ = [
    "SessionRecord",
    "encode",
    "decode",
    "dumps",
    "loads",
]
