"""
capture.py - Fingerprint Capture (simulation)

Generates template documents the way a scanner SDK would hand them over:
{"template": <hex payload>, "format": "ANSI-378", "metadata": {...}}.
The payload is derived deterministically from the student id, and a
configurable fraction of characters is perturbed to mimic sensor noise.
"""

import hashlib
import json
import time
import logging

import numpy as np

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────
# CONSTANTS
# ─────────────────────────────────────────────
TEMPLATE_HEX_LEN = 446
TEMPLATE_FORMAT  = "ANSI-378"
SCANNER_MODEL    = "Digital Persona U.4500 (Simulated)"
HEX_DIGITS       = np.array(list("0123456789ABCDEF"))


def _seed(student_id: str) -> int:
    return int(hashlib.sha256(student_id.encode()).hexdigest(), 16) % (2**31)


# ─────────────────────────────────────────────
# TEMPLATE FORMAT
# ─────────────────────────────────────────────
def build_template(payload: str, quality: int, all_templates: list = None) -> dict:
    """Wrap a hex payload in the standard template envelope."""
    metadata = {
        "quality": quality,
        "capturedAt": int(time.time()),
        "scannerModel": SCANNER_MODEL,
    }
    if all_templates:
        metadata["allTemplates"] = list(all_templates)
    return {
        "template": payload,
        "format": TEMPLATE_FORMAT,
        "metadata": metadata,
    }


# ─────────────────────────────────────────────
# SIMULATION
# ─────────────────────────────────────────────
def simulate_payload(student_id: str, noise_rate: float = 0.0, length: int = TEMPLATE_HEX_LEN,
                     rng: np.random.Generator = None) -> str:
    """
    Deterministic hex payload for *student_id*.

    *noise_rate* is the fraction of positions replaced with a random hex
    digit, so consecutive captures of the same finger differ slightly.
    """
    base = np.random.default_rng(_seed(student_id)).choice(HEX_DIGITS, size=length)
    if noise_rate > 0:
        rng = rng or np.random.default_rng()
        mask = rng.random(length) < noise_rate
        base[mask] = rng.choice(HEX_DIGITS, size=int(mask.sum()))
    return "".join(base.tolist())


def capture_fingerprint(student_id: str, noise_rate: float = 0.02, quality: int = None,
                        rng: np.random.Generator = None) -> str:
    """
    Main entry point: returns the template document as a JSON string,
    ready to be sent as biometric_data.
    """
    rng = rng or np.random.default_rng()
    if quality is None:
        quality = int(rng.integers(85, 100))
    payload = simulate_payload(student_id, noise_rate=noise_rate, rng=rng)
    logger.info(f"Simulated capture for '{student_id}': {len(payload)} hex chars, "
                f"quality={quality}, noise={noise_rate:.1%}")
    return json.dumps(build_template(payload, quality))
