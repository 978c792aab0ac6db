"""
Session identifiers and the signed tokens handed to the transport layer.

A session id is 32 bytes from the OS CSPRNG rendered as unpadded
URL-safe base64. The external token is ``<id>.<tag>``, where ``tag`` is an
HMAC-SHA256 of the id under the process-wide signing secret, also rendered
as unpadded URL-safe base64. Both halves are plain ASCII and safe to put in
a cookie or header.

Rotating the secret invalidates every token issued under the old one.
"""
import re
import hmac
import base64
import hashlib
import secrets
from typing import Union

from .exceptions import TokenDecodeError

ID_BYTES = 32
# Unpadded base64 length of ID_BYTES and of a SHA-256 digest
ID_LENGTH = 43
TAG_LENGTH = 43
SEPARATOR = "."
MIN_SECRET_BYTES = 32

_URLSAFE = re.compile(r"[A-Za-z0-9_-]+")


def _b64(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


class TokenCodec:
    """
    Generates session ids and signs/verifies external tokens.

    The codec is immutable once built; share one instance per process.
    """

    def __init__(self, secret_key: Union[str, bytes]):
        if isinstance(secret_key, str):
            secret_key = secret_key.encode("utf-8")
        if len(secret_key) < MIN_SECRET_BYTES:
            raise ValueError(f"Signing secret must be at least {MIN_SECRET_BYTES} bytes long")
        self._secret = bytes(secret_key)

    def __repr__(self) -> str:
        return "TokenCodec(secret=<hidden>)"

    @staticmethod
    def generate_id() -> str:
        """
        Draw a fresh session id from the OS random source.

        Any failure of the random source propagates; there is no fallback.
        """
        return secrets.token_urlsafe(ID_BYTES)

    def _sign(self, session_id: bytes) -> bytes:
        return _b64(hmac.new(self._secret, session_id, hashlib.sha256).digest()).encode("ascii")

    def encode(self, session_id: str) -> str:
        """Return the external token for ``session_id``."""
        if not self._is_well_formed_id(session_id):
            raise ValueError("Not a session id produced by generate_id()")
        return f"{session_id}{SEPARATOR}{self._sign(session_id.encode('ascii')).decode('ascii')}"

    def decode(self, token: str) -> str:
        """
        Verify ``token`` and return the session id it carries.

        The signature is always computed and compared, even for tokens that
        are structurally wrong, and every failure raises the same error.

        Raises:
            TokenDecodeError: If the token is malformed or tampered with
        """
        if not isinstance(token, str):
            token = ""
        session_id, _, tag = token.partition(SEPARATOR)
        id_bytes = session_id.encode("utf-8", "replace")
        tag_bytes = tag.encode("utf-8", "replace")

        signature_ok = hmac.compare_digest(self._sign(id_bytes), tag_bytes)
        shape_ok = self._is_well_formed_id(session_id) and len(tag) == TAG_LENGTH

        if signature_ok and shape_ok:
            return session_id
        raise TokenDecodeError()

    @staticmethod
    def _is_well_formed_id(session_id: str) -> bool:
        return (
            isinstance(session_id, str)
            and len(session_id) == ID_LENGTH
            and _URLSAFE.fullmatch(session_id) is not None
        )


__all__ = [
    "TokenCodec",
    "ID_BYTES",
    "ID_LENGTH",
    "TAG_LENGTH",
]
