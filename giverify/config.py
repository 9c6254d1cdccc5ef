"""Application configuration and constants."""
from __future__ import annotations

import os
from dataclasses import dataclass


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name)
    return value if value is not None else default


def _get_flag(name: str, default: str) -> bool:
    return _get_env(name, default).lower() in {"1", "true", "yes"}


@dataclass(frozen=True)
class Settings:
    """Simple settings container with environment variable overrides."""

    portal_url: str = _get_env("PORTAL_URL", "https://cdiptqccgi.com/")
    secondary_portal_url: str = _get_env("SECONDARY_PORTAL_URL", "https://iictsrinagarcarpet-gi.org/")
    secondary_portal_enabled: bool = _get_flag("SECONDARY_PORTAL_ENABLED", "false")
    secondary_retries: int = int(_get_env("SECONDARY_RETRIES", "2"))
    secondary_backoff_seconds: float = float(_get_env("SECONDARY_BACKOFF_SECONDS", "2"))
    navigation_timeout_ms: int = int(_get_env("NAVIGATION_TIMEOUT_MS", "30000"))
    secondary_navigation_timeout_ms: int = int(_get_env("SECONDARY_NAVIGATION_TIMEOUT_MS", "60000"))
    selector_timeout_ms: int = int(_get_env("SELECTOR_TIMEOUT_MS", "10000"))
    result_timeout_ms: int = int(_get_env("RESULT_TIMEOUT_MS", "15000"))
    browser_headless: bool = _get_flag("BROWSER_HEADLESS", "true")
    user_agent: str = _get_env(
        "USER_AGENT",
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    )
    cache_backend: str = _get_env("CACHE_BACKEND", "memory")
    redis_host: str = _get_env("REDIS_HOST", "localhost")
    redis_port: int = int(_get_env("REDIS_PORT", "6379"))
    redis_key_prefix: str = _get_env("REDIS_KEY_PREFIX", "giverify:")
    rate_limit_max: int = int(_get_env("RATE_LIMIT_MAX", "50"))
    rate_limit_window_seconds: int = int(_get_env("RATE_LIMIT_WINDOW_SECONDS", str(24 * 60 * 60)))
    log_level: str = _get_env("LOG_LEVEL", "INFO")


settings = Settings()
