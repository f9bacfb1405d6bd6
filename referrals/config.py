"""
referrals/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


def load_env_files() -> None:
    """
    Load simple KEY=VALUE pairs from `.env` and `.env.local` (if present).
    Existing process environment variables are not overwritten.
    """

    project_root = Path(__file__).resolve().parents[1]
    for filename in (".env", ".env.local"):
        env_path = project_root / filename
        if not env_path.exists():
            continue

        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip().strip('"').strip("'")
            if key and key not in os.environ:
                os.environ[key] = value


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


@dataclass(frozen=True)
class ClinikoSettings:
    """
    Upstream practice-management API identity and credential.
    """

    api_key: str | None = None
    shard: str = "au1"
    base_url_override: str | None = None
    user_agent: str = "referral-insights"

    @property
    def base_url(self) -> str:
        if self.base_url_override:
            return self.base_url_override.rstrip("/")
        return f"https://api.{self.shard}.cliniko.com/v1"


@dataclass(frozen=True)
class ExternalHTTPSettings:
    """
    Retry and timeout behavior for upstream HTTP calls.
    """

    timeout_seconds: float = 15.0
    max_attempts: int = 3
    backoff_initial_seconds: float = 0.5
    backoff_multiplier: float = 2.0
    default_retry_after_seconds: float = 2.0


@dataclass(frozen=True)
class ReferralRunSettings:
    """
    Runtime settings for one referral aggregation run.
    """

    page_size: int = 100
    max_pages: int = 200
    request_delay_seconds: float = 0.05
    progress_every: int = 50
    top_n: int = 20
    cache_failed_lookups: bool = False
    partial_on_error: bool = False
    cancel_on_disconnect: bool = False
    event_queue_size: int = 100


@lru_cache(maxsize=1)
def get_cliniko_settings() -> ClinikoSettings:
    """
    Return Cliniko API settings from environment variables.
    """

    return ClinikoSettings(
        api_key=_get_optional_str_env("CLINIKO_API_KEY"),
        shard=_get_str_env("CLINIKO_SHARD", "au1"),
        base_url_override=_get_optional_str_env("CLINIKO_BASE_URL"),
        user_agent=_get_str_env("CLINIKO_USER_AGENT", "referral-insights"),
    )


@lru_cache(maxsize=1)
def get_external_http_settings() -> ExternalHTTPSettings:
    """
    Return upstream HTTP settings from environment variables.
    """

    return ExternalHTTPSettings(
        timeout_seconds=max(1.0, _get_float_env("CLINIKO_HTTP_TIMEOUT_SECONDS", 15.0)),
        max_attempts=max(1, _get_int_env("CLINIKO_HTTP_MAX_ATTEMPTS", 3)),
        backoff_initial_seconds=max(0.0, _get_float_env("CLINIKO_HTTP_BACKOFF_INITIAL_SECONDS", 0.5)),
        backoff_multiplier=max(1.0, _get_float_env("CLINIKO_HTTP_BACKOFF_MULTIPLIER", 2.0)),
        default_retry_after_seconds=max(
            0.0, _get_float_env("CLINIKO_HTTP_DEFAULT_RETRY_AFTER_SECONDS", 2.0)
        ),
    )


@lru_cache(maxsize=1)
def get_referral_run_settings() -> ReferralRunSettings:
    """
    Return referral aggregation run settings from environment variables.
    """

    return ReferralRunSettings(
        page_size=max(1, _get_int_env("REFERRALS_PAGE_SIZE", 100)),
        max_pages=max(1, _get_int_env("REFERRALS_MAX_PAGES", 200)),
        request_delay_seconds=max(0.0, _get_float_env("REFERRALS_REQUEST_DELAY_SECONDS", 0.05)),
        progress_every=max(1, _get_int_env("REFERRALS_PROGRESS_EVERY", 50)),
        top_n=max(1, _get_int_env("REFERRALS_TOP_N", 20)),
        cache_failed_lookups=_get_bool_env("REFERRALS_CACHE_FAILED_LOOKUPS", False),
        partial_on_error=_get_bool_env("REFERRALS_PARTIAL_ON_ERROR", False),
        cancel_on_disconnect=_get_bool_env("REFERRALS_CANCEL_ON_DISCONNECT", False),
        event_queue_size=max(1, _get_int_env("REFERRALS_EVENT_QUEUE_SIZE", 100)),
    )
