"""Machine-bound encryption, masking, and format checks for provider API keys.

Tokens are only readable on the machine that wrote them: the AES key is the
SHA-256 of ``hostname-platform-arch`` and is recomputed at every start, never
stored.

Token shapes accepted by :meth:`KeyManager.decrypt`, tried in order:
    1. ``<iv hex>:<ciphertext hex>`` (AES-256-CBC, PKCS7)
    2. base64 of the plaintext (legacy)
    3. the plaintext itself
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import os
import platform
import socket
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from quickllm.errors import ValidationError
from quickllm.log import get_logger

logger = get_logger(__name__)

_IV_LENGTH = 16
_MASK_MIN_LENGTH = 8


@dataclass
class KeyCheck:
    valid: bool
    reason: str


@dataclass
class StoredKey:
    encrypted: str
    hash: str
    masked: str
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


def machine_identity() -> str:
    """Stable description of the current machine used for key derivation."""
    return f"{socket.gethostname()}-{sys.platform}-{platform.machine()}"


class KeyManager:
    """Encrypts, decrypts, masks, and validates provider credentials."""

    def __init__(self, machine_id: str | None = None):
        self._machine_key = hashlib.sha256(
            (machine_id or machine_identity()).encode("utf-8")
        ).digest()

    def encrypt(self, secret: str) -> str:
        """Encrypt a secret into an ``ivHex:cipherHex`` token. Blank input gives ``""``."""
        if not secret or not secret.strip():
            return ""

        iv = os.urandom(_IV_LENGTH)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(secret.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._machine_key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return f"{iv.hex()}:{ciphertext.hex()}"

    def decrypt(self, token: str) -> str:
        """Recover a secret from any accepted token shape.

        Never raises: an unreadable token yields ``""`` so callers treat the
        credential as absent.
        """
        if not token or not token.strip():
            return ""

        if ":" in token:
            parts = token.split(":")
            if len(parts) != 2:
                logger.warning("key_decrypt_failed", reason="unexpected token shape")
                return ""
            try:
                return self._decrypt_cbc(parts[0], parts[1])
            except ValueError as e:
                # Tokens from another machine land here too.
                logger.warning("key_decrypt_failed", reason=type(e).__name__)
                return ""

        try:
            decoded = base64.b64decode(token, validate=True).decode("utf-8")
        except (binascii.Error, ValueError):
            return token
        if decoded and decoded.isprintable():
            return decoded
        return token

    def _decrypt_cbc(self, iv_hex: str, cipher_hex: str) -> str:
        iv = bytes.fromhex(iv_hex)
        if len(iv) != _IV_LENGTH:
            raise ValueError(f"invalid IV length {len(iv)}")
        ciphertext = bytes.fromhex(cipher_hex)

        decryptor = Cipher(algorithms.AES(self._machine_key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        plaintext = unpadder.update(padded) + unpadder.finalize()
        return plaintext.decode("utf-8")

    def hash(self, secret: str) -> str:
        """One-way fingerprint of a secret, bound to this machine."""
        if not secret or not secret.strip():
            return ""
        return hashlib.sha256((secret + self._machine_key.hex()).encode("utf-8")).hexdigest()

    def verify(self, secret: str, stored_hash: str) -> bool:
        if not secret or not stored_hash:
            return False
        return self.hash(secret) == stored_hash

    @staticmethod
    def mask(secret: str) -> str:
        """Show at most the first and last three characters."""
        if not secret:
            return ""
        if len(secret) < _MASK_MIN_LENGTH:
            return "***"
        return secret[:3] + "*" * max(len(secret) - 6, 4) + secret[-3:]

    @staticmethod
    def validate_format(provider: str, secret: str) -> KeyCheck:
        """Advisory shape check of a key for a provider kind."""
        if not secret or not secret.strip():
            return KeyCheck(False, "API key is required")

        key = secret.strip()
        match provider:
            case "groq":
                if key.startswith("gsk_") and len(key) == 56:
                    return KeyCheck(True, "Valid Groq API key format")
                return KeyCheck(
                    False,
                    "Invalid Groq API key format (should start with gsk_ and be 56 characters)",
                )
            case "openrouter":
                if key.startswith("sk-or-") and len(key) >= 20:
                    return KeyCheck(True, "Valid OpenRouter API key format")
                return KeyCheck(
                    False, "Invalid OpenRouter API key format (should start with sk-or-)"
                )
            case _:
                return KeyCheck(True, "Unknown provider, cannot validate format")

    def store(self, provider: str, secret: str) -> StoredKey:
        """Validate and encrypt a key, returning everything needed to persist it."""
        check = self.validate_format(provider, secret)
        if not check.valid:
            raise ValidationError(f"Invalid API key: {check.reason}")

        key = secret.strip()
        return StoredKey(
            encrypted=self.encrypt(key),
            hash=self.hash(key),
            masked=self.mask(key),
        )
