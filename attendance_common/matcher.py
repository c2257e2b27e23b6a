"""
matcher.py - Template Matcher

Provides helpers for:
  - Scoring two encoded template strings (character / n-gram / block)
  - Comparing a fresh capture against every enrolled variant
  - Deciding accept/reject against a confidence threshold

The score is a textual heuristic over the encoded payload, not minutiae
matching.  Weights, thresholds and the cap below must not change.
"""

import logging
import math

import numpy as np

from attendance_common.crypto import decrypt, DecryptionError
from attendance_common.models import TemplateDocument, MatchResult, MalformedTemplateError

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────
# SCORING CONSTANTS
# ─────────────────────────────────────────────
LENGTH_TOLERANCE = 0.05     # > 5% length mismatch → incompatible
NGRAM_SIZE       = 4
BLOCK_SIZE       = 20
BLOCK_MATCH_MIN  = 0.7      # strictly greater than → block counts

CHAR_WEIGHT  = 0.40
NGRAM_WEIGHT = 0.35
BLOCK_WEIGHT = 0.25

# (minimum character score, multiplier), checked top-down
BONUS_TIERS = (
    (0.90, 1.15),
    (0.85, 1.10),
    (0.80, 1.05),
)

MAX_SCORE = 100.0
DEFAULT_THRESHOLD = 75.0


def round_confidence(score: float) -> float:
    """Two decimal places, ties rounded up."""
    return math.floor(score * 100 + 0.5) / 100


def _as_array(s: str) -> np.ndarray:
    return np.array(list(s))


# ─────────────────────────────────────────────
# COMPONENT SCORES
# ─────────────────────────────────────────────
def character_score(a: str, b: str) -> float:
    """Fraction of aligned positions holding the same character."""
    n = min(len(a), len(b))
    if n == 0:
        return 0.0
    return float(np.mean(_as_array(a[:n]) == _as_array(b[:n])))


def _ngrams(s: str, n: int) -> set:
    return {s[i:i + n] for i in range(len(s) - n + 1)}


def ngram_score(a: str, b: str, n: int = NGRAM_SIZE) -> float:
    """Jaccard similarity of the two n-gram sets."""
    grams_a, grams_b = _ngrams(a, n), _ngrams(b, n)
    union = grams_a | grams_b
    if not union:
        return 0.0
    return len(grams_a & grams_b) / len(union)


def block_score(a: str, b: str, size: int = BLOCK_SIZE) -> float:
    """
    Share of full, non-overlapping blocks whose character agreement
    exceeds BLOCK_MATCH_MIN.  A trailing partial block is ignored.
    """
    n_blocks = min(len(a), len(b)) // size
    if n_blocks == 0:
        return 0.0
    span = n_blocks * size
    agree = (_as_array(a[:span]) == _as_array(b[:span])).reshape(n_blocks, size)
    per_block = agree.sum(axis=1) / size
    return int(np.count_nonzero(per_block > BLOCK_MATCH_MIN)) / n_blocks


def bonus_multiplier(char_score: float) -> float:
    for minimum, multiplier in BONUS_TIERS:
        if char_score >= minimum:
            return multiplier
    return 1.0


# ─────────────────────────────────────────────
# SIMILARITY
# ─────────────────────────────────────────────
def similarity(a: str, b: str) -> float:
    """
    Similarity of two template strings as a percentage in [0, 100].

    Strings whose lengths differ by more than LENGTH_TOLERANCE (relative to
    the longer one) score 0.  Otherwise both are cut to the shorter length
    and the weighted component scores are combined.
    """
    len_a, len_b = len(a), len(b)
    longest = max(len_a, len_b)
    if longest == 0:
        return 0.0
    if abs(len_a - len_b) / longest > LENGTH_TOLERANCE:
        return 0.0

    n = min(len_a, len_b)
    a, b = a[:n], b[:n]

    char = character_score(a, b)
    combined = (
        CHAR_WEIGHT * char
        + NGRAM_WEIGHT * ngram_score(a, b)
        + BLOCK_WEIGHT * block_score(a, b)
    )
    return min(combined * bonus_multiplier(char) * 100, MAX_SCORE)


def best_candidate(sample: str, candidates: list):
    """
    Score *sample* against every candidate.

    Returns (best_score, best_index); best_index is None when no candidate
    is a usable string.
    """
    best_score, best_index = 0.0, None
    for i, candidate in enumerate(candidates):
        if not isinstance(candidate, str) or not candidate:
            continue
        score = similarity(sample, candidate)
        if best_index is None or score > best_score:
            best_score, best_index = score, i
    return best_score, best_index


# ─────────────────────────────────────────────
# MATCHING DECISION
# ─────────────────────────────────────────────
def verify(input_template_json: str, stored_blob: str, key,
           threshold: float = DEFAULT_THRESHOLD) -> MatchResult:
    """
    Compare a freshly-captured template against the stored encrypted one.

    Every failure (bad blob, wrong key, unparsable JSON, empty template)
    yields MatchResult(matched=False, confidence=0.0); nothing is raised.
    """
    try:
        stored = TemplateDocument.from_json(decrypt(stored_blob, key))
        sample = TemplateDocument.from_json(input_template_json)
    except DecryptionError as e:
        logger.warning(f"Stored template unreadable: {e}")
        return MatchResult.no_match()
    except MalformedTemplateError as e:
        logger.warning(f"Malformed template: {e}")
        return MatchResult.no_match()

    candidates = stored.candidates()
    score, index = best_candidate(sample.template, candidates)
    logger.debug(f"Best candidate {index} of {len(candidates)} scored {score:.4f}")

    matched = score >= threshold
    logger.info(
        f"Verification → confidence={score:.2f} (th={threshold}) → "
        f"{'MATCH' if matched else 'NO MATCH'}"
    )
    return MatchResult(matched=matched, confidence=round_confidence(score))
