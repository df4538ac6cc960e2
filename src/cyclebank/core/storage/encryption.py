"""Fernet encryption of cycle data at rest.

Every collection written to the SQLite key-value store (periods, daily logs,
symptoms, settings) is serialized to JSON and encrypted before it touches
disk. Retired keys can be supplied so data written before a key rotation
stays readable; new tokens always use the primary key.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

logger = logging.getLogger(__name__)


class EncryptionError(Exception):
    """Raised when encryption/decryption fails."""


def _fernet(key: str) -> Fernet:
    if not key or not key.strip():
        raise EncryptionError("Encryption key must not be empty")
    try:
        return Fernet(key.strip().encode())
    except (ValueError, TypeError) as exc:
        raise EncryptionError(f"Invalid encryption key: {exc}") from exc


class FieldEncryptor:
    """JSON-in, Fernet-token-out encryption for stored values.

    Usage::

        encryptor = FieldEncryptor(key, previous_keys=[old_key])
        token = encryptor.encrypt({"schema_version": 1, "records": []})
        encryptor.decrypt(token)     # {"schema_version": 1, "records": []}
        encryptor.rotate(old_token)  # same data, re-encrypted with ``key``

    Raises:
        EncryptionError: If any key is empty or not a valid Fernet key.
    """

    def __init__(self, key: str, previous_keys: Iterable[str] = ()) -> None:
        fernets = [_fernet(key)] + [_fernet(k) for k in previous_keys]
        self._fernet = MultiFernet(fernets)
        if len(fernets) > 1:
            logger.info("Encryptor accepts %d retired key(s) for reading", len(fernets) - 1)

    def encrypt(self, data: Any) -> str:
        """Encrypt a JSON-serializable value; ``None`` becomes ``""``."""
        if data is None:
            return ""
        try:
            payload = json.dumps(data, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise EncryptionError(f"Encryption failed: {exc}") from exc
        return self._fernet.encrypt(payload).decode("utf-8")

    def decrypt(self, token: str) -> Any:
        """Decrypt a token back to its value; ``""`` becomes ``None``."""
        if not token:
            return None
        try:
            payload = self._fernet.decrypt(token.encode("utf-8"))
        except InvalidToken as exc:
            raise EncryptionError("Decryption failed: invalid token or wrong key") from exc
        try:
            return json.loads(payload)
        except ValueError as exc:
            raise EncryptionError(f"Decryption failed: {exc}") from exc

    def rotate(self, token: str) -> str:
        """Re-encrypt ``token`` under the primary key."""
        if not token:
            return ""
        try:
            return self._fernet.rotate(token.encode("utf-8")).decode("utf-8")
        except InvalidToken as exc:
            raise EncryptionError("Rotation failed: invalid token or wrong key") from exc

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode("utf-8")
