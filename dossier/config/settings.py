"""Dossier configuration via environment / .env file."""

from __future__ import annotations

from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Case storage ---
    CASES_ROOT: str = "cases"

    # --- Logging ---
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    LOG_FILE: str = ""
    LOG_MAX_BYTES: int = 10 * 1024 * 1024
    LOG_BACKUP_COUNT: int = 5

    # --- LLM Provider (claim matching only) ---
    LLM_PROVIDER: Literal["ollama", "anthropic", "stub"] = "ollama"
    LLM_FALLBACK_ENABLED: bool = True

    # --- Ollama (local models, default) ---
    OLLAMA_HOST: str = "http://localhost:11434"
    OLLAMA_MODELS: dict[str, str] = {
        "fast": "llama3.2:3b",
        "balanced": "mistral:7b",
        "powerful": "deepseek-r1:14b",
    }
    OLLAMA_TIMEOUT: float = 120.0

    # --- Anthropic ---
    ANTHROPIC_API_KEY: str = ""
    MODEL_ROUTING: dict[str, str] = {
        "fast": "claude-3-5-haiku-20241022",
        "balanced": "claude-sonnet-4-20250514",
        "powerful": "claude-opus-4-20250514",
    }

    # --- Evidence capture ---
    FIRECRAWL_API_KEY: str = ""
    FIRECRAWL_URL: str = "https://api.firecrawl.dev/v1/scrape"
    CAPTURE_TIMEOUT: float = 60.0
    EVIDENCE_RECEIPT_KEY: str = ""

    # --- Coordination thresholds ---
    LEAD_CLAIM_STALE_MINUTES: float = 30.0
    ALLOCATION_STALE_MINUTES: float = 60.0
    LOCK_TIMEOUT: float = 5.0
    LOCK_RETRY_INTERVAL: float = 0.05
    LOCK_STALE_SECONDS: float = 30.0
    MAX_LEAD_DEPTH: int = 3
    BATCH_SIZE: int = 4

    @field_validator(
        "LEAD_CLAIM_STALE_MINUTES",
        "ALLOCATION_STALE_MINUTES",
        "LOCK_TIMEOUT",
        "LOCK_RETRY_INTERVAL",
        "LOCK_STALE_SECONDS",
    )
    @classmethod
    def _non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("threshold must be non-negative")
        return v

    @field_validator("MAX_LEAD_DEPTH", "BATCH_SIZE", "LOG_BACKUP_COUNT")
    @classmethod
    def _positive_int(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v


settings = Settings()
