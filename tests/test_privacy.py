"""Tests for PII redaction."""

import re

from mnemo.memory.privacy import DEFAULT_DETECTORS, Detector, PrivacyFilter, redact


def test_clean_text_untouched():
    """Text without PII passes through unchanged."""
    result = redact("User prefers dark mode")
    assert result.redacted == "User prefers dark mode"
    assert result.has_pii is False
    assert result.patterns == []


def test_email_redacted():
    result = redact("Contact me at sam@example.com please")
    assert result.redacted == "Contact me at [EMAIL REDACTED] please"
    assert result.has_pii is True
    assert result.patterns == ["email"]


def test_phone_redacted():
    result = redact("Call 555-123-4567 tomorrow")
    assert "[PHONE REDACTED]" in result.redacted
    assert "555" not in result.redacted
    assert "phone" in result.patterns


def test_ssn_redacted():
    result = redact("SSN is 123-45-6789")
    assert result.redacted == "SSN is [SSN REDACTED]"
    assert result.patterns == ["ssn"]


def test_credit_card_redacted():
    result = redact("Card 4111 1111 1111 1111 on file")
    assert result.redacted == "Card [CARD REDACTED] on file"
    assert result.patterns == ["credit_card"]


def test_ip_redacted():
    result = redact("Server at 192.168.1.10 is down")
    assert result.redacted == "Server at [IP REDACTED] is down"
    assert result.patterns == ["ip"]


def test_secret_token_redacted():
    result = redact("token sk_live_abcdefghijklmnop1234 leaked")
    assert result.redacted == "token [SECRET REDACTED] leaked"
    assert result.patterns == ["secret"]


def test_multiple_detectors_fire_in_order():
    """Independent detectors all fire and are listed in detector order."""
    result = redact("Mail sam@example.com from 10.0.0.1")
    assert result.redacted == "Mail [EMAIL REDACTED] from [IP REDACTED]"
    assert result.patterns == ["email", "ip"]


def test_all_occurrences_replaced():
    result = redact("a@b.io and c@d.io")
    assert result.redacted == "[EMAIL REDACTED] and [EMAIL REDACTED]"
    assert result.patterns == ["email"]


def test_deterministic():
    text = "Reach sam@example.com or 555-123-4567"
    assert redact(text) == redact(text)


def test_custom_detectors():
    """Callers can extend the detector list."""
    detectors = list(DEFAULT_DETECTORS) + [
        Detector("badge", re.compile(r"\bBADGE-\d+\b"), "[BADGE REDACTED]")
    ]
    result = PrivacyFilter(detectors).redact("Badge BADGE-42 at gate")
    assert result.redacted == "Badge [BADGE REDACTED] at gate"
    assert result.patterns == ["badge"]
