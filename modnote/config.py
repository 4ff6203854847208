# Config
"""
Configuration for the ModNote content core.

Values come from the environment (or a local .env file) and fall back to the
defaults below. Retrieval constants were tuned empirically; treat them as
starting points rather than a contract.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: str = "INFO"
    dev_mode: bool = False
    log_file_path: Optional[Path] = None

    # Providers
    openai_api_key: Optional[str] = None
    vision_model: str = "gpt-4o-mini"
    speech_model: str = "whisper-1"
    supadata_api_key: Optional[str] = None
    supadata_base_url: str = "https://api.supadata.ai/v1"
    youtube_api_key: Optional[str] = None
    http_timeout_seconds: float = 30.0

    # Acquisition
    max_retries: int = Field(2, ge=0)
    base_delay_seconds: float = Field(1.0, ge=0.0)
    attempt_timeout_seconds: float = Field(30.0, gt=0.0)
    acquisition_deadline_seconds: float = Field(180.0, gt=0.0)
    max_total_attempts: int = Field(8, ge=1)
    min_significant_chars: int = Field(20, ge=1)
    min_text_layer_chars: int = Field(50, ge=1)
    metadata_timeout_seconds: float = Field(10.0, ge=0.0)

    # PDF / image processing
    max_pdf_size_bytes: int = 500 * 1024 * 1024  # 500MB
    max_image_size_bytes: int = 10 * 1024 * 1024  # 10MB
    ocr_language: str = "eng"
    max_ocr_pages: int = Field(10, ge=1)
    web_scrape_max_chars: int = 10000

    # Retrieval
    relevance_threshold: float = 0.25
    score_exponent: float = 3.0
    max_query_terms: int = Field(4, ge=1)
    min_term_length: int = Field(4, ge=1)
    max_sources: int = Field(4, ge=1)
    max_context_length: int = Field(3000, ge=1)
    chunk_size: int = Field(500, ge=1)
    use_nltk_sentences: bool = False  # punkt sentence splitting instead of punctuation regex

    # Cache
    cache_ttl_seconds: float = Field(120.0, gt=0.0)
    cache_max_entries: int = Field(30, ge=1)

    @model_validator(mode="after")
    def _check_retrieval_bounds(self) -> "Settings":
        if self.chunk_size >= self.max_context_length:
            raise ValueError("chunk_size must be smaller than max_context_length")
        if self.score_exponent <= 1:
            raise ValueError("score_exponent must be greater than 1")
        if not 0 < self.relevance_threshold <= 1:
            raise ValueError("relevance_threshold must be in (0, 1]")
        return self

    def get_log_file_path(self) -> Optional[Path]:
        return self.log_file_path


# Singleton instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
