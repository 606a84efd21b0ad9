"""Application settings using Pydantic."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Graph store
    commit_debounce_ms: int = 300

    # Trigger bus (0 disables the per-edge stagger)
    trigger_stagger_ms: int = 500

    # Input discovery fallback polling
    discovery_poll_seconds: float = 2.0
    discovery_poll_backoff: float = 1.5
    discovery_poll_max_seconds: float = 10.0

    # Chunking defaults
    chunk_strategy: str = "recursive"
    chunk_size: int = 1000
    chunk_overlap: int = 200
    chunk_preserve_metadata: bool = True
    chunk_smart_boundaries: bool = False
    token_encoding: str = "cl100k_base"

    # Parsing
    parse_max_file_size_mb: float = 10.0

    # Logging
    log_level: str = "WARNING"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
