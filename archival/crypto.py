"""
Bundle encryption.

AES-256-GCM with a deployment-wide key. Payload layout is
``nonce (12 bytes) || ciphertext || tag (16 bytes)``. Key management is
external: the key arrives as configuration.
"""

import base64
import binascii
import os
from typing import Protocol

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from archival.errors import PackagingError

NONCE_LENGTH = 12
KEY_LENGTH = 32


class EncryptionProvider(Protocol):
    """Symmetric, authenticated encryption of whole payloads."""

    def encrypt(self, data: bytes) -> bytes: ...

    def decrypt(self, data: bytes) -> bytes: ...


class AesGcmCipher:
    """AES-256-GCM encryption provider."""

    def __init__(self, key: bytes):
        if len(key) != KEY_LENGTH:
            raise ValueError(f"Archive key must be {KEY_LENGTH} bytes, got {len(key)}")
        self._aead = AESGCM(key)

    @classmethod
    def from_base64(cls, encoded: str) -> "AesGcmCipher":
        """Build from the base64 key string found in configuration."""
        if not encoded:
            raise ValueError("ARCHIVE_ENCRYPTION_KEY is not configured")
        try:
            key = base64.b64decode(encoded, validate=True)
        except binascii.Error as e:
            raise ValueError(f"ARCHIVE_ENCRYPTION_KEY is not valid base64: {e}") from e
        return cls(key)

    @staticmethod
    def generate_key() -> str:
        """New random key, base64-encoded for configuration."""
        return base64.b64encode(AESGCM.generate_key(bit_length=256)).decode("ascii")

    def encrypt(self, data: bytes) -> bytes:
        nonce = os.urandom(NONCE_LENGTH)
        return nonce + self._aead.encrypt(nonce, data, None)

    def decrypt(self, data: bytes) -> bytes:
        """
        Decrypt a payload produced by ``encrypt``.

        Raises:
            PackagingError: payload is truncated, tampered with, or was
                encrypted under a different key
        """
        if len(data) <= NONCE_LENGTH:
            raise PackagingError("Encrypted payload is truncated")
        nonce, ciphertext = data[:NONCE_LENGTH], data[NONCE_LENGTH:]
        try:
            return self._aead.decrypt(nonce, ciphertext, None)
        except InvalidTag as e:
            raise PackagingError("Encrypted payload failed integrity check") from e
