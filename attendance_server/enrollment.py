"""
enrollment.py - Enrollment Policy

Validates incoming captures and merges repeat scans of the same finger
into metadata.allTemplates before the document is encrypted and stored.
"""

import logging
import math

from attendance_common.models import TemplateDocument, MalformedTemplateError
from attendance_server import config

logger = logging.getLogger(__name__)


class EnrollmentRejected(Exception):
    """Capture is well-formed but does not satisfy enrollment policy."""


def parse_capture(biometric_data: str) -> TemplateDocument:
    """
    Parse a capture submitted for enrollment.
    Raises MalformedTemplateError.
    """
    doc = TemplateDocument.from_json(biometric_data)
    if doc.format != config.DEFAULT_FORMAT:
        logger.warning(f"Non-standard template format: {doc.format or '<none>'}")
    return doc


def check_quality(quality_score):
    """Reject captures below MIN_QUALITY_SCORE.  Unknown quality passes."""
    if quality_score is None:
        return
    try:
        quality = float(quality_score)
    except (TypeError, ValueError):
        raise EnrollmentRejected(f"Invalid quality score: {quality_score!r}")
    if not math.isfinite(quality):
        raise EnrollmentRejected(f"Invalid quality score: {quality_score!r}")
    if quality < config.MIN_QUALITY_SCORE:
        raise EnrollmentRejected(
            f"Quality score too low. Minimum required: {config.MIN_QUALITY_SCORE}"
        )


def merge_templates(existing: TemplateDocument, new: TemplateDocument,
                    limit: int = None) -> TemplateDocument:
    """
    Fold *new* into the variants already enrolled in *existing*.

    Existing variants keep their order, the new capture goes last,
    duplicates are dropped, and only the newest *limit* variants are kept.
    The returned document uses the new capture as its primary template.
    """
    if limit is None:
        limit = config.MAX_ENROLLED_TEMPLATES

    variants = []
    for t in existing.candidates() + [new.template]:
        if isinstance(t, str) and t and t not in variants:
            variants.append(t)
    if len(variants) > limit:
        variants = variants[-limit:]

    metadata = dict(existing.metadata)
    metadata.update(new.metadata)
    metadata["allTemplates"] = variants
    return TemplateDocument(template=new.template, format=new.format, metadata=metadata)


def prepare_enrollment(biometric_data: str, existing_json: str = None,
                       quality_score=None) -> TemplateDocument:
    """
    Build the document to store for an enrollment request.

    *existing_json* is the decrypted stored document when the caller asked
    to append; None means replace.  *quality_score* overrides the quality
    recorded in the capture metadata.
    """
    doc = parse_capture(biometric_data)
    check_quality(quality_score if quality_score is not None else doc.quality)
    if existing_json is None:
        return doc
    try:
        existing = TemplateDocument.from_json(existing_json)
    except MalformedTemplateError:
        logger.warning("Stored template is malformed; replacing instead of merging")
        return doc
    merged = merge_templates(existing, doc)
    logger.info(f"Merged capture into {len(merged.all_templates)} enrolled variant(s)")
    return merged
