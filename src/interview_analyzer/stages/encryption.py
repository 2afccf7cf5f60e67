"""
Transcript encryption.

AES-256-GCM via `cryptography`. Ciphertexts are serialized as
`<iv hex>:<ciphertext hex>:<tag hex>`.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
import os
from typing import TYPE_CHECKING

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from interview_analyzer.pipeline.errors import StageError

if TYPE_CHECKING:
    from interview_analyzer.config import Settings

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
IV_LENGTH = 16
TAG_LENGTH = 16

_session_key: bytes | None = None


def _get_session_key() -> bytes:
    global _session_key
    if _session_key is None:
        logger.warning(
            "ENCRYPTION_KEY not set; generated a per-process session key. "
            "Encrypted transcripts cannot be decrypted after a restart."
        )
        _session_key = AESGCM.generate_key(bit_length=256)
    return _session_key


def parse_key(key_hex: str) -> bytes:
    """Decode a 64-character hex key, raising ValueError on bad input."""
    key = bytes.fromhex(key_hex.strip())
    if len(key) != KEY_LENGTH:
        raise ValueError(f"encryption key must be {KEY_LENGTH} bytes ({KEY_LENGTH * 2} hex chars), got {len(key)}")
    return key


def hash_data(data: str) -> str:
    """One-way SHA-256 hex digest."""
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def secure_compare(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


class TranscriptCipher:
    """Encrypts and decrypts transcript text with one AES-256 key."""

    def __init__(self, key: bytes | None = None) -> None:
        """
        Initialize the cipher.

        Args:
            key: 32-byte key. Uses the process session key if None.
        """
        if key is not None and len(key) != KEY_LENGTH:
            raise ValueError(f"encryption key must be {KEY_LENGTH} bytes")
        self._aead = AESGCM(key or _get_session_key())

    @classmethod
    def from_settings(cls, settings: Settings) -> TranscriptCipher:
        key = parse_key(settings.encryption_key) if settings.encryption_key else None
        return cls(key)

    def encrypt(self, text: str) -> str:
        iv = os.urandom(IV_LENGTH)
        sealed = self._aead.encrypt(iv, text.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return f"{iv.hex()}:{ciphertext.hex()}:{tag.hex()}"

    def decrypt(self, payload: str) -> str:
        """
        Decrypt a payload produced by `encrypt`.

        Raises:
            ValueError: If the payload is malformed or fails authentication.
        """
        parts = payload.split(":")
        if len(parts) != 3:
            raise ValueError("Invalid encrypted data format")
        iv, ciphertext, tag = (bytes.fromhex(p) for p in parts)
        try:
            plaintext = self._aead.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            raise ValueError("Encrypted data failed authentication") from e
        return plaintext.decode("utf-8")

    async def encrypt_async(self, text: str) -> str:
        """Encrypt in a worker thread; failures surface as a StageError."""
        try:
            return await asyncio.to_thread(self.encrypt, text)
        except (ValueError, TypeError) as e:
            raise StageError("encryption", str(e)) from e
