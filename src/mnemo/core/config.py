"""
Configuration management.

Loads settings from environment variables and .env file.
Prefix: MNEMO_
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MNEMO_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Storage
    data_dir: Path = Field(default=Path("data"), description="Data storage directory")
    db_name: str = Field(default="mnemo.db", description="SQLite snapshot database name")

    # Embedding provider (OpenAI-compatible /embeddings endpoint)
    embedding_url: str = Field(
        default="",
        description="Embedding endpoint base URL, empty disables semantic indexing",
    )
    embedding_api_key: str = Field(default="", description="Embedding API key")
    embedding_model: str = Field(default="text-embedding-3-small", description="Embedding model")
    embedding_timeout: float = Field(default=10.0, gt=0, description="Embedding call timeout (s)")

    # Recall
    semantic_threshold: float = Field(default=0.3, ge=0, le=1, description="Min cosine similarity")
    semantic_limit: int = Field(default=5, ge=1, description="Semantic hits fused into recall")
    recall_limit: int = Field(default=10, ge=1, description="Default recall result cap")
    reflection_limit: int = Field(default=100, ge=1, description="Reflections kept")

    # Background sweeps (seconds)
    expiry_sweep_interval: float = Field(default=3600.0, gt=0, description="TTL sweep interval")
    decay_sweep_interval: float = Field(default=3600.0, gt=0, description="Skill decay interval")
    consolidation_interval: float = Field(
        default=7 * 24 * 3600.0, gt=0, description="Consolidation interval"
    )
    dedup_interval: float = Field(default=24 * 3600.0, gt=0, description="Deduplication interval")
    scheduler_tick: float = Field(default=1.0, gt=0, description="Scheduler poll interval")

    # Skill decay
    decay_enabled: bool = Field(default=True, description="Apply idle skill decay")
    decay_idle_days: float = Field(default=7.0, ge=0, description="Idle days before decay")
    decay_rate_per_day: float = Field(default=5.0, ge=0, description="XP lost per idle day")
    decay_min_level: Literal["beginner", "intermediate", "advanced", "expert", "master"] = Field(
        default="intermediate", description="Decay never drops a skill below this level"
    )

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_name


def get_settings() -> Settings:
    """Get settings instance."""
    return Settings()
