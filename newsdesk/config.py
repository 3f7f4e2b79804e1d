"""
Configuration management for the newsdesk event pipeline.
Supports Gemini (Google) and any OpenAI-compatible endpoint as the text-generation provider.
"""

from functools import lru_cache
from typing import List, Tuple

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = Field(default="sqlite:///./newsdesk.db", alias="DATABASE_URL")

    # LLM Configuration
    # Provider: "gemini" (Google AI Studio keys) or "openai" (OpenAI-compatible endpoint)
    llm_provider: str = Field(default="gemini", alias="LLM_PROVIDER")
    llm_model: str = Field(default="gemini-2.0-flash", alias="LLM_MODEL")
    llm_base_url: str = Field(default="", alias="LLM_BASE_URL")
    llm_temperature: float = Field(default=0.3, alias="LLM_TEMPERATURE")
    llm_timeout_seconds: float = Field(default=60.0, alias="LLM_TIMEOUT_SECONDS")

    # Rotating credential pool, comma separated. Entries are either a bare secret
    # ("abc,def" -> KEY_1, KEY_2) or NAME=secret pairs ("Z1=abc,Z2=def").
    llm_api_keys: str = Field(default="", alias="LLM_API_KEYS")

    # Token estimate: 1 token ≈ N input characters (cheap proxy, no tokenizer)
    chars_per_token: int = Field(default=4, alias="CHARS_PER_TOKEN")

    # ── Summarization ──
    summarization_batch_size: int = Field(default=5, alias="SUMMARIZATION_BATCH_SIZE")
    summarization_delay_seconds: float = Field(default=2.0, alias="SUMMARIZATION_DELAY_SECONDS")

    # ── Aggregation ──
    # Cooperative throttle between per-event calls, layered on top of the key pool
    aggregation_delay_seconds: float = Field(default=1.0, alias="AGGREGATION_DELAY_SECONDS")

    # ── Merging ──
    merge_window_hours: int = Field(default=48, alias="MERGE_WINDOW_HOURS")
    merge_min_confidence: float = Field(default=0.7, alias="MERGE_MIN_CONFIDENCE")

    # API Settings
    api_key: str = Field(default="", alias="API_KEY")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True

    def get_api_keys(self) -> List[Tuple[str, str]]:
        """Parse the credential pool into ordered (name, secret) pairs."""
        keys = []
        for i, raw in enumerate(p.strip() for p in self.llm_api_keys.split(",")):
            if not raw:
                continue
            if "=" in raw:
                name, secret = raw.split("=", 1)
                keys.append((name.strip(), secret.strip()))
            else:
                keys.append((f"KEY_{i + 1}", raw))
        return keys

    def get_key_names(self) -> List[str]:
        return [name for name, _ in self.get_api_keys()]

    def get_llm_config(self) -> dict:
        """Get LLM configuration (without secrets) for health/status views."""
        return {
            "provider": self.llm_provider,
            "model": self.llm_model,
            "base_url": self.llm_base_url or None,
            "keys": self.get_key_names(),
        }


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
