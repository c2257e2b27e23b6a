"""
utils.py - Common Utility Functions
Timestamps, token nonces and log-safe views of biometric payloads.
"""

import time
import uuid
import hashlib

SENSITIVE_KEYS = ("biometric_data", "template", "template_data", "allTemplates")
DIGEST_CHARS = 12


def current_timestamp() -> int:
    return int(time.time())


def generate_nonce() -> str:
    """Single-use JWT nonce (UUID4)."""
    return str(uuid.uuid4())


def template_digest(value) -> str:
    """Short SHA-256 prefix that identifies a payload in logs without revealing it."""
    return hashlib.sha256(str(value).encode("utf-8")).hexdigest()[:DIGEST_CHARS]


def _mask_value(key: str, value) -> str:
    if isinstance(value, list):
        return f"<{key}: {len(value)} item(s)>"
    return f"<{key}: {len(str(value))} chars, sha256={template_digest(value)}>"


def mask_sensitive(data, keys=SENSITIVE_KEYS):
    """
    Copy of an enrollment / verification request safe for logging.

    Template payloads (at any depth, including inside lists of captures)
    are replaced by their length and a digest prefix.
    """
    if isinstance(data, list):
        return [mask_sensitive(v, keys) for v in data]
    if not isinstance(data, dict):
        return data
    return {
        k: _mask_value(k, v) if k in keys else mask_sensitive(v, keys)
        for k, v in data.items()
    }
