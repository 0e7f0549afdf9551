"""Pipeline configuration via pydantic-settings (.env + env vars)."""

import sys
from pathlib import Path

from loguru import logger
from pydantic_settings import BaseSettings, SettingsConfigDict


class PipelineConfig(BaseSettings):
    """All pipeline configuration with layered resolution:
    .env file < environment variables < constructor kwargs.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # -- Vision providers (an empty key disables that provider) --
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_vision_model: str = "gpt-4o"
    gemini_api_key: str = ""
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_model: str = "gemini-1.5-pro"

    # -- Auxiliary inference (repair + batch validation, OpenAI-compatible) --
    repair_model: str = "gpt-4o-mini"
    validation_model: str = "gpt-4o-mini"

    # -- Metadata lookup --
    google_books_api_key: str = ""
    google_books_base_url: str = "https://www.googleapis.com/books/v1"
    lookup_match_threshold: float = 80.0
    lookup_cache_ttl: float = 3600.0
    lookup_cache_size: int = 512
    lookup_min_interval: float = 0.2
    lookup_workers: int = 8

    # -- Timeouts (seconds) --
    provider_timeout: float = 60.0
    provider_deadline: float = 180.0
    repair_timeout: float = 30.0
    validation_timeout: float = 60.0
    lookup_timeout: float = 5.0
    lookup_deadline: float = 30.0

    # -- Retry (provider calls only) --
    provider_attempts: int = 2
    retry_backoff: float = 0.8

    # -- Heuristics (empirical, tune against a labeled corpus) --
    batch_size: int = 20
    fuzzy_similarity_threshold: float = 0.5
    spine_index_window: int = 2

    # -- Behavior --
    lookup_enabled: bool = True
    validation_enabled: bool = True
    verbose: bool = False
    log_level: str = "INFO"
    log_dir: Path | None = None

    @property
    def configured_providers(self) -> list[str]:
        """Names of vision providers that have credentials."""
        names = []
        if self.openai_api_key:
            names.append("openai")
        if self.gemini_api_key:
            names.append("gemini")
        return names

    def setup_logging(self) -> None:
        """Configure loguru for the pipeline."""
        logger.remove()  # Remove default stderr handler

        log_format = (
            "{time:YYYY-MM-DDTHH:mm:ssZ} | {level:<8} | "
            "{extra[stage]:<14} | {message}"
        )

        def _default_extra(record):
            record["extra"].setdefault("stage", "")
            return True

        logger.add(
            sys.stderr,
            format=log_format,
            level=self.log_level.upper(),
            filter=_default_extra,
        )

        if self.log_dir is None:
            return

        self.log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(self.log_dir / "shelfscan.log"),
            format=log_format,
            level="DEBUG",
            rotation="10 MB",
            retention="30 days",
            filter=_default_extra,
        )
