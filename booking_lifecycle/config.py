"""
Centralized configuration with environment variable overrides.

Response windows, rebooking caps and penalty thresholds are policy values
observed in production. They default to those values but every one of them
can be overridden from the environment or a .env file.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from booking_lifecycle.logging_context import LOG_FORMAT, install_request_filter

load_dotenv()

logger = logging.getLogger(__name__)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class LifecyclePolicy:
    """Booking request response window and rebooking limits."""

    response_window_hours: int = _safe_int("RESPONSE_WINDOW_HOURS", "48")
    max_rebooking_attempts: int = _safe_int("MAX_REBOOKING_ATTEMPTS", "3")
    max_suggested_dates: int = _safe_int("MAX_SUGGESTED_DATES", "3")


@dataclass(frozen=True)
class PenaltyPolicy:
    """Cleaner cancellation penalty and account freeze thresholds."""

    penalty_window_days: int = _safe_int("PENALTY_WINDOW_DAYS", "4")
    rolling_window_months: int = _safe_int("PENALTY_ROLLING_WINDOW_MONTHS", "3")
    freeze_threshold: int = _safe_int("FREEZE_THRESHOLD", "3")


@dataclass(frozen=True)
class PollingConfig:
    """Refresh cadence for countdown readers and the expiry sweep."""

    countdown_refresh_sec: int = _safe_int("COUNTDOWN_REFRESH_SECONDS", "60")
    sweep_interval_sec: int = _safe_int("EXPIRY_SWEEP_INTERVAL_SECONDS", "300")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    lifecycle: LifecyclePolicy = field(default_factory=LifecyclePolicy)
    penalty: PenaltyPolicy = field(default_factory=PenaltyPolicy)
    polling: PollingConfig = field(default_factory=PollingConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    service_name: str = os.getenv("SERVICE_NAME", "booking-lifecycle")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if config.lifecycle.response_window_hours < 1:
        raise ValueError(
            "RESPONSE_WINDOW_HOURS must be >= 1, "
            f"got {config.lifecycle.response_window_hours}"
        )
    if config.lifecycle.max_rebooking_attempts < 0:
        raise ValueError(
            "MAX_REBOOKING_ATTEMPTS must be >= 0, "
            f"got {config.lifecycle.max_rebooking_attempts}"
        )
    if config.lifecycle.max_suggested_dates < 0:
        raise ValueError(
            f"MAX_SUGGESTED_DATES must be >= 0, got {config.lifecycle.max_suggested_dates}"
        )
    if config.penalty.penalty_window_days < 0:
        raise ValueError(
            f"PENALTY_WINDOW_DAYS must be >= 0, got {config.penalty.penalty_window_days}"
        )
    if config.penalty.rolling_window_months < 1:
        raise ValueError(
            "PENALTY_ROLLING_WINDOW_MONTHS must be >= 1, "
            f"got {config.penalty.rolling_window_months}"
        )
    if config.penalty.freeze_threshold < 1:
        raise ValueError(
            f"FREEZE_THRESHOLD must be >= 1, got {config.penalty.freeze_threshold}"
        )

    for name, value in [
        ("COUNTDOWN_REFRESH_SECONDS", config.polling.countdown_refresh_sec),
        ("EXPIRY_SWEEP_INTERVAL_SECONDS", config.polling.sweep_interval_sec),
    ]:
        if value < 1:
            raise ValueError(f"{name} must be >= 1, got {value}")


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    install_request_filter(logging.getLogger().handlers)
    logger.info("Configuration loaded for '%s'", config.service_name)
    return config


# Singleton instance
settings = load_config()
