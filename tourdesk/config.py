"""
Centralized configuration with environment variable overrides.

Backend location, cache lifetimes and calendar defaults are configurable
here. Nothing is hardcoded in the store, aggregator or lifecycle logic.
"""

import logging
import os
from dataclasses import dataclass, field
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from tourdesk.logging_context import USER_LOG_FORMAT, install_user_filter

load_dotenv()

logger = logging.getLogger(__name__)

ALLOWED_SLOT_LENGTHS = (15, 30, 45, 60)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _safe_int_list(env_var: str, default: str) -> tuple[int, ...]:
    """Parse a comma-separated list of integers from an env var."""
    raw = os.getenv(env_var, default)
    try:
        return tuple(int(part) for part in raw.split(",") if part.strip())
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer list for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class BackendConfig:
    """Location and credentials of the remote booking service."""

    base_url: str = os.getenv("BOOKING_API_BASE", "http://localhost:8000")
    api_token: str = os.getenv("BOOKING_API_TOKEN", "")
    timeout_sec: float = _safe_float("BACKEND_TIMEOUT", "20.0")


@dataclass(frozen=True)
class CacheConfig:
    """Lifetimes for the per-user response cache."""

    ttl_seconds: float = _safe_float("CACHE_TTL_SECONDS", "300")


@dataclass(frozen=True)
class CalendarConfig:
    """Fallback working hours and the fixed visible clock range."""

    default_start_time: str = os.getenv("DEFAULT_START_TIME", "09:00")
    default_end_time: str = os.getenv("DEFAULT_END_TIME", "17:00")
    default_timezone: str = os.getenv("DEFAULT_TIMEZONE", "America/New_York")
    default_slot_length: int = _safe_int("DEFAULT_SLOT_LENGTH", "30")
    # UI convention: 0=Sunday..6=Saturday
    default_working_days: tuple[int, ...] = _safe_int_list("DEFAULT_WORKING_DAYS", "1,2,3,4,5")
    visible_start: str = os.getenv("CALENDAR_VISIBLE_START", "06:00")
    visible_end: str = os.getenv("CALENDAR_VISIBLE_END", "20:00")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    backend: BackendConfig = field(default_factory=BackendConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    calendar: CalendarConfig = field(default_factory=CalendarConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


def _validate_hhmm(name: str, value: str) -> None:
    parts = value.split(":")
    if len(parts) != 2 or not all(p.isdigit() and len(p) == 2 for p in parts):
        raise ValueError(f"{name} must be HH:MM, got {value!r}")
    hours, minutes = int(parts[0]), int(parts[1])
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ValueError(f"{name} must be HH:MM, got {value!r}")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if not config.backend.base_url.startswith(("http://", "https://")):
        raise ValueError(
            f"BOOKING_API_BASE must be an http(s) URL, got {config.backend.base_url!r}"
        )
    if config.backend.timeout_sec <= 0:
        raise ValueError(
            f"BACKEND_TIMEOUT must be > 0, got {config.backend.timeout_sec}"
        )
    if config.cache.ttl_seconds < 0:
        raise ValueError(
            f"CACHE_TTL_SECONDS must be >= 0, got {config.cache.ttl_seconds}"
        )

    cal = config.calendar
    for env_name, value in [
        ("DEFAULT_START_TIME", cal.default_start_time),
        ("DEFAULT_END_TIME", cal.default_end_time),
        ("CALENDAR_VISIBLE_START", cal.visible_start),
        ("CALENDAR_VISIBLE_END", cal.visible_end),
    ]:
        _validate_hhmm(env_name, value)

    if cal.default_start_time >= cal.default_end_time:
        raise ValueError(
            "DEFAULT_START_TIME must be before DEFAULT_END_TIME, "
            f"got {cal.default_start_time}-{cal.default_end_time}"
        )
    if cal.visible_start >= cal.visible_end:
        raise ValueError(
            "CALENDAR_VISIBLE_START must be before CALENDAR_VISIBLE_END, "
            f"got {cal.visible_start}-{cal.visible_end}"
        )
    if cal.default_slot_length not in ALLOWED_SLOT_LENGTHS:
        raise ValueError(
            f"DEFAULT_SLOT_LENGTH must be one of {ALLOWED_SLOT_LENGTHS}, "
            f"got {cal.default_slot_length}"
        )
    if any(not 0 <= day <= 6 for day in cal.default_working_days):
        raise ValueError(
            f"DEFAULT_WORKING_DAYS must be within 0..6, got {cal.default_working_days}"
        )
    try:
        ZoneInfo(cal.default_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(
            f"DEFAULT_TIMEZONE is not a known IANA zone: {cal.default_timezone!r}"
        ) from None


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=USER_LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    install_user_filter(logging.getLogger().handlers)
    logger.info("Configuration loaded for backend '%s'", config.backend.base_url)
    return config


# Singleton instance
settings = load_config()
