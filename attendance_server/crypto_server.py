"""
crypto_server.py - Server-side Cryptographic Helpers

Binds the process-wide template key and threshold from config to the
shared encryption helper and matcher; attendance_common never reads
configuration.
"""

from functools import lru_cache

from attendance_common.crypto import load_key, encrypt, decrypt
from attendance_common.matcher import verify
from attendance_common.models import MatchResult
from attendance_server import config


@lru_cache(maxsize=1)
def get_template_key() -> bytes:
    """Load the configured key once; raises EncryptionError if malformed."""
    return load_key(config.TEMPLATE_ENCRYPTION_KEY)


def seal_template(template_json: str) -> str:
    return encrypt(template_json, get_template_key())


def open_template(blob: str) -> str:
    return decrypt(blob, get_template_key())


def verify_against(input_template_json: str, stored_blob: str,
                   threshold: float = None) -> MatchResult:
    if threshold is None:
        threshold = config.CONFIDENCE_THRESHOLD
    return verify(input_template_json, stored_blob, get_template_key(), threshold)


__all__ = [
    "get_template_key",
    "seal_template",
    "open_template",
    "verify_against",
]
