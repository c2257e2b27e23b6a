"""
crypto.py - Template Encryption at Rest

Provides:
  - AES-256-GCM authenticated encryption / decryption of template JSON
  - Key loading / generation (32-byte keys, hex in configuration)

Blob format (all segments lowercase hex):

    iv : authTag : ciphertext

The IV is 16 random bytes used as the GCM nonce; the tag is 16 bytes.
"""

import os
import logging

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────
# CONSTANTS
# ─────────────────────────────────────────────
KEY_LEN   = 32          # 256 bits for AES-256
IV_LEN    = 16
TAG_LEN   = 16          # GCM tag appended by cryptography library
SEPARATOR = ":"


# ─────────────────────────────────────────────
# ERRORS
# ─────────────────────────────────────────────
class BiometricCryptoError(Exception):
    pass


class EncryptionError(BiometricCryptoError):
    """Misconfigured key or randomness failure while encrypting."""


class DecryptionError(BiometricCryptoError):
    """Corrupted / tampered blob or key mismatch."""


# ─────────────────────────────────────────────
# KEYS
# ─────────────────────────────────────────────
def generate_key() -> str:
    """Return a fresh random 256-bit key, hex-encoded (for .env files)."""
    return os.urandom(KEY_LEN).hex()


def load_key(value, error_cls=EncryptionError) -> bytes:
    """
    Normalise *value* to a 32-byte AES key.

    Accepts raw bytes or a 64-character hex string.  Anything else raises
    *error_cls* (EncryptionError by default).
    """
    if isinstance(value, str):
        try:
            value = bytes.fromhex(value.strip())
        except ValueError as e:
            raise error_cls("key is not valid hex") from e
    if not isinstance(value, (bytes, bytearray)):
        raise error_cls(f"key must be bytes or hex str, got {type(value).__name__}")
    if len(value) != KEY_LEN:
        raise error_cls(f"key must be {KEY_LEN} bytes, got {len(value)}")
    return bytes(value)


# ─────────────────────────────────────────────
# AES-256-GCM ENCRYPTION / DECRYPTION
# ─────────────────────────────────────────────
def encrypt(plaintext: str, key) -> str:
    """
    Encrypt *plaintext* with AES-256-GCM under *key*.

    Returns the blob ``iv:authTag:ciphertext``.  A fresh IV is drawn for
    every call, so encrypting the same plaintext twice yields different blobs.
    """
    key = load_key(key, EncryptionError)
    try:
        iv = os.urandom(IV_LEN)
        sealed = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
    except (OSError, ValueError, TypeError, AttributeError) as e:
        raise EncryptionError(f"failed to encrypt template: {e}") from e

    ciphertext, tag = sealed[:-TAG_LEN], sealed[-TAG_LEN:]
    return SEPARATOR.join([iv.hex(), tag.hex(), ciphertext.hex()])


def decrypt(blob: str, key) -> str:
    """
    Decrypt a blob produced by encrypt().
    Raises DecryptionError on bad format, bad key, or GCM tag mismatch.
    """
    key = load_key(key, DecryptionError)
    if not isinstance(blob, str):
        raise DecryptionError("invalid format")

    parts = blob.split(SEPARATOR)
    if len(parts) != 3:
        raise DecryptionError("invalid format")

    try:
        iv, tag, ciphertext = (bytes.fromhex(p) for p in parts)
        if len(iv) != IV_LEN or len(tag) != TAG_LEN:
            raise ValueError(f"unexpected iv/tag length ({len(iv)}/{len(tag)})")
        plaintext = AESGCM(key).decrypt(iv, ciphertext + tag, None)
        return plaintext.decode("utf-8")
    except InvalidTag as e:
        raise DecryptionError("authentication tag mismatch") from e
    except ValueError as e:
        raise DecryptionError(f"failed to decrypt template: {e}") from e
