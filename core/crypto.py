"""
core/crypto.py -- Field-level encryption for secrets stored at rest.

Envelope format (the only on-disk representation of an encrypted field):

    base64(iv) ":" base64(tag) ":" base64(ciphertext)

  iv          16 random bytes, fresh for every encrypt() call
  tag         16-byte AES-GCM authentication tag
  ciphertext  AES-256-GCM output over the UTF-8 plaintext, tag stripped

Key derivation: SHA-256 of the configured secret (ENCRYPTION_KEY, falling
back to SECRET_KEY). Deterministic, so the one configuration value is the only
key material that has to be kept.

Legacy data: rows written before encryption was introduced hold plaintext.
Any value that is not exactly three non-empty colon-separated parts is
returned unchanged by decrypt(). A plaintext password that happens to contain
two colons is therefore attempted as an envelope, fails, and is still returned
unchanged -- same observable result, one wasted decrypt attempt.

Fail-open decrypt: decrypt() never raises. A corrupted or mis-keyed envelope
is logged and served as stored. try_decrypt() returns the same value wrapped
in a DecryptResult so callers can tell legacy plaintext from a failure.

Security note:
    Never log plaintext, ciphertext, or key material.

Layer rule: core/ is the kernel. No imports from api/, auth/, or vault/.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from core.errors import ConfigurationError, DecryptionFailure, EncryptionError

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("stashit.crypto")

IV_LENGTH = 16
TAG_LENGTH = 16
KEY_LENGTH = 32  # AES-256

_SEPARATOR = ":"

class DecryptStatus(str, Enum):
    """DecryptResult.status values. Compares equal to the plain strings."""

    DECRYPTED = "decrypted"
    LEGACY = "legacy"
    FAILED = "failed"


DECRYPTED = DecryptStatus.DECRYPTED
LEGACY = DecryptStatus.LEGACY
FAILED = DecryptStatus.FAILED


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------


def derive_key(secret: str) -> bytes:
    """Derive the 32-byte AES key from a configuration secret.

    Raises:
        ConfigurationError: If the secret is empty or None.
    """
    if not secret:
        raise ConfigurationError("ENCRYPTION_KEY or SECRET_KEY must be set")
    return hashlib.sha256(secret.encode("utf-8")).digest()


# ---------------------------------------------------------------------------
# Envelope shape
# ---------------------------------------------------------------------------


def _split_envelope(value: str) -> list[str] | None:
    parts = value.split(_SEPARATOR)
    if len(parts) != 3 or not all(parts):
        return None
    return parts


def _b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def _unb64(part: str) -> bytes:
    return base64.b64decode(part, validate=True)


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DecryptResult:
    """Outcome of CipherEnvelope.try_decrypt().

    value is what the caller should serve: the recovered plaintext on success,
    the stored string unchanged for legacy plaintext and for failures.
    """

    status: DecryptStatus
    value: str | None
    error: DecryptionFailure | None = None

    @property
    def ok(self) -> bool:
        return self.status != FAILED


# ---------------------------------------------------------------------------
# Cipher
# ---------------------------------------------------------------------------


class CipherEnvelope:
    """AES-256-GCM encrypt/decrypt for individual string fields.

    Holds only the derived key, which never changes after construction, so a
    single instance is safe to share across concurrent requests.

    Usage:
        cipher = CipherEnvelope.from_settings(settings)
        stored = cipher.encrypt("Tr0ub4dor&3")
        cipher.decrypt(stored)   # "Tr0ub4dor&3"
    """

    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_LENGTH:
            raise ConfigurationError(f"Encryption key must be {KEY_LENGTH} bytes")
        self._aead = AESGCM(key)

    @classmethod
    def from_secret(cls, secret: str) -> CipherEnvelope:
        return cls(derive_key(secret))

    @classmethod
    def from_settings(cls, settings: Settings) -> CipherEnvelope:
        """Build the cipher from ENCRYPTION_KEY, falling back to SECRET_KEY."""
        return cls.from_secret(settings.encryption_secret)

    def encrypt(self, plaintext: str | None) -> str | None:
        """Encrypt plaintext into an envelope. Empty or None input is returned unchanged.

        Raises:
            EncryptionError: If the underlying cipher operation fails.
        """
        if not plaintext:
            return plaintext
        iv = os.urandom(IV_LENGTH)
        try:
            sealed = self._aead.encrypt(iv, plaintext.encode("utf-8"), None)
        except (ValueError, OverflowError, UnicodeEncodeError) as exc:
            logger.error("Encryption failed: %s", type(exc).__name__)
            raise EncryptionError("Failed to encrypt data") from exc
        # cryptography appends the tag to the ciphertext; the envelope stores it separately.
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return _SEPARATOR.join((_b64(iv), _b64(tag), _b64(ciphertext)))

    def try_decrypt(self, stored: str | None) -> DecryptResult:
        """Decrypt stored, reporting whether it was an envelope, legacy plaintext, or corrupt."""
        if not stored:
            return DecryptResult(LEGACY, stored)
        parts = _split_envelope(stored)
        if parts is None:
            return DecryptResult(LEGACY, stored)
        try:
            iv, tag, ciphertext = (_unb64(p) for p in parts)
            if len(tag) != TAG_LENGTH:
                raise DecryptionFailure(f"authentication tag must be {TAG_LENGTH} bytes, got {len(tag)}")
            plaintext = self._aead.decrypt(iv, ciphertext + tag, None).decode("utf-8")
        except DecryptionFailure as exc:
            return DecryptResult(FAILED, stored, exc)
        except InvalidTag:
            return DecryptResult(FAILED, stored, DecryptionFailure("authentication tag mismatch"))
        except (binascii.Error, ValueError) as exc:
            # binascii.Error: bad base64. ValueError: unusable IV length.
            # UnicodeDecodeError is a ValueError subclass.
            return DecryptResult(FAILED, stored, DecryptionFailure(f"{type(exc).__name__}: {exc}"))
        return DecryptResult(DECRYPTED, plaintext)

    def decrypt(self, stored: str | None) -> str | None:
        """Decrypt stored; legacy plaintext and undecryptable values come back unchanged.

        Never raises. Failures are logged at WARNING without the value itself.
        """
        result = self.try_decrypt(stored)
        if not result.ok:
            logger.warning("Decryption failed, serving stored value unchanged (%s)", result.error)
        return result.value
