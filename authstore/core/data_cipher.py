"""Serialization and optional encryption of the opaque authentication payload."""

from __future__ import annotations

import base64
import hashlib
import json
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from pydantic import JsonValue

from authstore.core.errors import StorageUnavailableError

ENCRYPTED_PREFIX = "fernet:"


def derive_key(secret: str) -> bytes:
    """Turn an arbitrary secret into a urlsafe Fernet key."""
    if not secret:
        raise ValueError("Authentication data encryption secret must be provided.")
    return base64.urlsafe_b64encode(hashlib.sha256(secret.encode("utf-8")).digest())


class AuthenticationDataCodec:
    """
    Turn ``authentication_data`` into the string persisted by repositories.

    Values are stored as compact JSON. Given a secret, the JSON is sealed with
    Fernet and tagged with ``fernet:``; untagged values written before the
    secret was configured are still readable.
    """

    def __init__(self, secret: Optional[str] = None) -> None:
        self._fernet = Fernet(derive_key(secret)) if secret is not None else None

    @property
    def encrypts(self) -> bool:
        return self._fernet is not None

    def encode(self, value: JsonValue) -> Optional[str]:
        if value is None:
            return None
        serialized = json.dumps(value, separators=(",", ":"))
        if self._fernet is None:
            return serialized
        token = self._fernet.encrypt(serialized.encode("utf-8"))
        return ENCRYPTED_PREFIX + token.decode("utf-8")

    def decode(self, stored: Optional[str]) -> JsonValue:
        if stored is None:
            return None
        if stored.startswith(ENCRYPTED_PREFIX):
            stored = self._open(stored[len(ENCRYPTED_PREFIX):])
        return json.loads(stored)

    def _open(self, token: str) -> str:
        if self._fernet is None:
            raise StorageUnavailableError(
                "Stored authentication data is encrypted but no encryption "
                "secret is configured."
            )
        try:
            return self._fernet.decrypt(token.encode("utf-8")).decode("utf-8")
        except InvalidToken as exc:
            raise StorageUnavailableError(
                "Failed to decrypt authentication data; the encryption secret "
                "does not match the one it was written with."
            ) from exc


__all__ = ["AuthenticationDataCodec", "ENCRYPTED_PREFIX", "derive_key"]
