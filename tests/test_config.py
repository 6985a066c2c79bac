"""Tests for configuration module."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from mnemo.core.config import Settings


def test_default_settings():
    """Settings load with defaults."""
    settings = Settings(
        _env_file=None,  # Don't load .env in tests
    )
    assert settings.data_dir == Path("data")
    assert settings.embedding_url == ""
    assert settings.semantic_threshold == 0.3
    assert settings.recall_limit == 10
    assert settings.reflection_limit == 100
    assert settings.decay_idle_days == 7
    assert settings.decay_rate_per_day == 5
    assert settings.decay_min_level == "intermediate"
    assert settings.consolidation_interval == 7 * 24 * 3600


def test_db_path():
    """Database path combines data_dir and db_name."""
    settings = Settings(
        data_dir=Path("/tmp/test"),
        db_name="test.db",
        _env_file=None,
    )
    assert settings.db_path == Path("/tmp/test/test.db")


def test_env_prefix(monkeypatch):
    monkeypatch.setenv("MNEMO_RECALL_LIMIT", "25")
    monkeypatch.setenv("MNEMO_EMBEDDING_URL", "http://localhost:11434/v1")
    settings = Settings(_env_file=None)
    assert settings.recall_limit == 25
    assert settings.embedding_url == "http://localhost:11434/v1"


def test_invalid_values_rejected():
    with pytest.raises(ValidationError):
        Settings(semantic_threshold=1.5, _env_file=None)
    with pytest.raises(ValidationError):
        Settings(decay_min_level="grandmaster", _env_file=None)
