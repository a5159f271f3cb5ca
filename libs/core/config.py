"""Configuration management for Backforge."""

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """OpenAI-compatible chat completion endpoint."""

    base_url: str = Field(default="http://localhost:8000/v1", alias="LLM_BASE_URL")
    api_key: str = Field(default="backforge-local", alias="LLM_API_KEY")
    model: str = Field(default="gpt-4.1", alias="LLM_MODEL")
    timeout: float = Field(default=120.0, alias="LLM_TIMEOUT")
    temperature: float = Field(default=0.3, alias="LLM_TEMPERATURE")
    max_tokens: int = Field(default=8000, alias="LLM_MAX_TOKENS")


class PreliminarySettings(BaseSettings):
    """Context disclosure (preliminary) engine settings."""

    # Rounds of accepted disclosure requests before a session fails
    rag_limit: int = Field(default=10, ge=1, alias="PRELIMINARY_RAG_LIMIT")

    # Rejected replies fed back inside one round before a session fails
    validation_retry: int = Field(default=4, ge=1, alias="PRELIMINARY_VALIDATION_RETRY")

    # "skip" logs and ignores names missing from the available pool, "error" raises
    dangling_policy: Literal["skip", "error"] = Field(
        default="skip", alias="PRELIMINARY_DANGLING_POLICY"
    )


class BatchSettings(BaseSettings):
    """Batch execution settings."""

    semaphore: int = Field(default=8, ge=1, alias="BATCH_SEMAPHORE")

    # Operations declared per prerequisite session
    interface_capacity: int = Field(default=1, ge=1, alias="INTERFACE_CAPACITY")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    fail_fast: bool = Field(default=False, alias="FAIL_FAST")

    # Sub-settings
    llm: LLMSettings = Field(default_factory=LLMSettings)
    preliminary: PreliminarySettings = Field(default_factory=PreliminarySettings)
    batch: BatchSettings = Field(default_factory=BatchSettings)

    # Paths
    project_root: Path = Field(default_factory=lambda: Path(__file__).parent.parent.parent)

    @property
    def config_dir(self) -> Path:
        """Get config directory."""
        return self.project_root / "config"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


@lru_cache()
def load_rag_limits(path: Path | None = None) -> dict[str, int]:
    """
    Load per-source round limit overrides from YAML.

    The file maps a session source (e.g. ``interfacePrerequisite``) to its
    round limit::

        rag_limits:
          interfacePrerequisite: 6
          realizeWrite: 14

    A missing file means no overrides. Results are cached per path.
    """
    if path is None:
        path = get_settings().config_dir / "preliminary.yaml"
    if not path.exists():
        return {}

    with open(path) as f:
        data: dict[str, Any] = yaml.safe_load(f) or {}

    limits = data.get("rag_limits") or {}
    return {str(source): int(limit) for source, limit in limits.items()}


def get_rag_limit(source: str) -> int:
    """Round limit for a session source, falling back to the global default."""
    return load_rag_limits().get(source, get_settings().preliminary.rag_limit)
