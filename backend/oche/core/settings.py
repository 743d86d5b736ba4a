"""
Service configuration.

Loaded from environment variables prefixed with OCHE_ (or a .env file) by
pydantic-settings, e.g. OCHE_LOCK_TIMEOUT_S=0.25 or OCHE_LOG_FORMAT=json.
"""

from __future__ import annotations

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # How long a throw waits for its match before giving up with a retryable error.
    lock_timeout_s: float = 0.5

    max_players: int = 4

    # Server
    host: str = "0.0.0.0"
    port: int = 8080

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"  # "json" or "console"
    service_name: str = "oche"

    # Thin client origins
    cors_origins: list[str] = ["*"]

    model_config = SettingsConfigDict(
        env_prefix="OCHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("lock_timeout_s")
    @classmethod
    def validate_lock_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("lock_timeout_s must be > 0")
        return v

    @field_validator("max_players")
    @classmethod
    def validate_max_players(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_players must be >= 1")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return upper_v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        lower_v = v.lower()
        if lower_v not in {"json", "console"}:
            raise ValueError("log_format must be 'json' or 'console'")
        return lower_v


def get_settings() -> Settings:
    """
    Build settings from the current environment. Not cached, so tests can
    monkeypatch the environment and call it again.
    """
    return Settings()
