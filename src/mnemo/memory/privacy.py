"""PII redaction - masks sensitive content before it is stored."""

import re
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Detector:
    """Named pattern and the placeholder that replaces its matches."""

    name: str
    pattern: re.Pattern[str]
    placeholder: str


@dataclass
class RedactionResult:
    redacted: str
    has_pii: bool
    patterns: list[str] = field(default_factory=list)


DEFAULT_DETECTORS: tuple[Detector, ...] = (
    Detector(
        "email",
        re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
        "[EMAIL REDACTED]",
    ),
    Detector(
        "phone",
        re.compile(r"(?<!\d)(?:\+?\d{1,3}[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}(?!\d)"),
        "[PHONE REDACTED]",
    ),
    Detector("ssn", re.compile(r"\b\d{3}-\d{2}-\d{4}\b"), "[SSN REDACTED]"),
    Detector(
        "credit_card",
        re.compile(r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b"),
        "[CARD REDACTED]",
    ),
    Detector("ip", re.compile(r"\b\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b"), "[IP REDACTED]"),
    # Coarse token heuristic; long plain words are an accepted false positive
    Detector("secret", re.compile(r"\b[A-Za-z0-9_-]{20,}\b"), "[SECRET REDACTED]"),
)


class PrivacyFilter:
    """Applies an ordered list of independent detectors to free text."""

    def __init__(self, detectors: tuple[Detector, ...] | list[Detector] = DEFAULT_DETECTORS):
        self.detectors = tuple(detectors)

    def redact(self, text: str) -> RedactionResult:
        redacted = text or ""
        found: list[str] = []

        for detector in self.detectors:
            redacted, count = detector.pattern.subn(detector.placeholder, redacted)
            if count:
                found.append(detector.name)

        return RedactionResult(redacted=redacted, has_pii=bool(found), patterns=found)


_default_filter = PrivacyFilter()


def redact(text: str) -> RedactionResult:
    """Redact text with the default detector set."""
    return _default_filter.redact(text)
