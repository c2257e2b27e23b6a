"""
models.py - Shared Data Models
Common: template documents and match results
"""

from dataclasses import dataclass, field, asdict
import json


DEFAULT_FORMAT = "ANSI-378"


class MalformedTemplateError(ValueError):
    """Template JSON could not be parsed or lacks a usable 'template' string."""


@dataclass
class TemplateDocument:
    """Logical (decrypted) fingerprint template as exchanged with scanners."""
    template: str
    format: str = DEFAULT_FORMAT
    metadata: dict = field(default_factory=dict)

    @property
    def all_templates(self) -> list:
        """Enrolled variants from multi-scan enrollment, or [] if none."""
        variants = self.metadata.get("allTemplates")
        if isinstance(variants, list):
            return variants
        return []

    @property
    def quality(self):
        return self.metadata.get("quality")

    def candidates(self) -> list:
        """Strings a fresh capture is compared against."""
        return self.all_templates or [self.template]

    def to_dict(self):
        d = {"template": self.template, "format": self.format}
        if self.metadata:
            d["metadata"] = self.metadata
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @staticmethod
    def from_dict(d) -> "TemplateDocument":
        if not isinstance(d, dict):
            raise MalformedTemplateError("template document must be a JSON object")
        template = d.get("template")
        if not isinstance(template, str) or not template:
            raise MalformedTemplateError("missing or empty 'template' field")
        metadata = d.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise MalformedTemplateError("'metadata' must be a JSON object")
        return TemplateDocument(
            template=template,
            format=d.get("format") or "",
            metadata=metadata,
        )

    @staticmethod
    def from_json(raw) -> "TemplateDocument":
        try:
            d = json.loads(raw)
        except (TypeError, ValueError, RecursionError) as e:
            raise MalformedTemplateError(f"invalid template JSON: {e}") from e
        return TemplateDocument.from_dict(d)


@dataclass
class MatchResult:
    matched: bool
    confidence: float

    def to_dict(self):
        return asdict(self)

    @staticmethod
    def no_match() -> "MatchResult":
        return MatchResult(matched=False, confidence=0.0)
