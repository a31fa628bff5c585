"""Application configuration using Pydantic Settings.

Loads settings from environment variables and .env file.
All settings have sensible defaults for local development.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Valid Python logging levels
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# What to do with an unterminated line left in the decoder buffer at stream end
VALID_TRAILING_LINE_POLICIES = {"drop", "flush", "strict"}

DEFAULT_PROMPT_DIR = str(Path(__file__).resolve().parent.parent / "prompts")


class Settings(BaseSettings):
    """Service-wide configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Server ---
    service_env: str = "development"
    host: str = "0.0.0.0"
    port: int = 3001
    debug: bool = False

    # --- Logging ---
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize log level to uppercase.

        Falls back to INFO if an invalid level is provided.
        """
        normalized = v.upper().strip()
        if normalized not in VALID_LOG_LEVELS:
            # Log a warning (to stderr since logging may not be configured yet)
            import sys

            print(
                f"WARNING: Invalid LOG_LEVEL '{v}'. "
                f"Valid levels are: {', '.join(sorted(VALID_LOG_LEVELS))}. "
                "Falling back to INFO.",
                file=sys.stderr,
            )
            return "INFO"
        return normalized

    def get_log_level_int(self) -> int:
        """Return the integer value of the configured log level."""
        return getattr(logging, self.log_level, logging.INFO)

    # --- Model Provider ---
    default_provider: str = "groq"
    groq_api_key: str | None = None
    groq_base_url: str = "https://api.groq.com/openai/v1"
    default_temperature: float = 0.3  # Lower temperature for consistent rules
    default_max_tokens: int | None = None
    llm_timeout_seconds: int = 120
    llm_max_retries: int = 2

    # --- Streaming Protocol ---
    # Line the model emits between the rule body and the follow-up message
    follow_up_marker: str = "<<<FOLLOW_UP>>>"
    # drop: discard (legacy behaviour), flush: best-effort parse, strict: fail
    stream_trailing_line_policy: str = "drop"

    @field_validator("stream_trailing_line_policy")
    @classmethod
    def validate_trailing_line_policy(cls, v: str) -> str:
        normalized = v.lower().strip()
        if normalized not in VALID_TRAILING_LINE_POLICIES:
            raise ValueError(
                f"stream_trailing_line_policy must be one of "
                f"{', '.join(sorted(VALID_TRAILING_LINE_POLICIES))}"
            )
        return normalized

    # --- Prompt Templates ---
    prompt_template_dir: str = DEFAULT_PROMPT_DIR

    # --- CORS ---
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    def get_cors_origins(self) -> list[str]:
        """Parse cors_origins as JSON list or comma-separated string."""
        raw = self.cors_origins.strip()
        if raw.startswith("["):
            return json.loads(raw)
        return [o.strip() for o in raw.split(",") if o.strip()]


settings = Settings()
