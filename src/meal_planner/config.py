"""Application configuration."""

import os
from urllib.parse import urlparse

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")

_PLACEHOLDER_MARKERS = ("your_supabase_url_here", "your_supabase_anon_key_here")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    supabase_bucket: str = "dish-images"
    storage_path: str = ".meal_planner/storage.json"
    seed_csv_path: str = "data/recipes.csv"
    remote_timeout_seconds: float = 10.0
    write_retry_attempts: int = 2
    write_retry_delay_seconds: float = 0.6
    log_level: str = "INFO"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def is_valid_http_url(value: str | None) -> bool:
    """Return whether a value parses as an http(s) URL with a host."""
    if not value:
        return False
    parsed = urlparse(value)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def is_placeholder(value: str | None) -> bool:
    """Return whether a value is missing or a template placeholder."""
    if not value:
        return True
    lowered = value.lower()
    return any(marker in lowered for marker in _PLACEHOLDER_MARKERS)


def is_remote_configured(url: str | None, key: str | None) -> bool:
    """Return whether the remote backend credentials look usable."""
    return (
        is_valid_http_url(url)
        and bool(key)
        and not is_placeholder(url)
        and not is_placeholder(key)
    )
