"""Tracker configuration loaded from environment variables.

All configuration values have sensible defaults (see
``op_tracker.core.constants``). Environment variables prefixed with
``OP_TRACKER_`` override them.

Fail-fast validation:
    ``from_env()`` raises ``ConfigValidationError`` if any numeric
    value is out of its valid range. This catches bad configuration at
    startup rather than in the middle of a poll loop.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from op_tracker.core.constants import (
    DEFAULT_CACHE_DIR,
    DEFAULT_CANCEL_CHECK_SECONDS,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEFAULT_MAX_POLL_INTERVAL_SECONDS,
    DEFAULT_MAX_TRANSPORT_RETRIES,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_POLL_TIMEOUT_SECONDS,
    DEFAULT_SLOW_DOWN_STEP_SECONDS,
)
from op_tracker.core.exceptions import TrackerError


class ConfigValidationError(TrackerError):
    """Raised when configuration values are out of valid range.

    Attributes:
        key: The configuration key that failed validation.
        value: The invalid value.
        message: Human-readable description of the valid range.
    """

    default_stage = "config"
    default_code = "CONFIG_VALIDATION_FAILED"

    def __init__(self, key: str, value: object, message: str) -> None:
        self.key = key
        self.value = value
        super().__init__(f"Invalid configuration {key}={value!r}: {message}")


@dataclass(frozen=True, slots=True)
class TrackerConfig:
    """Immutable tracker configuration.

    Loaded once at application startup and passed explicitly to every
    tracker and cache.

    Attributes:
        poll_interval_seconds: Base delay between polls.
        slow_down_step_seconds: Interval increase per slow-down signal.
        max_poll_interval_seconds: Cap on the effective poll interval.
        max_transport_retries: Consecutive transport failures tolerated.
        poll_timeout_seconds: Total polling budget; ``0`` disables it.
        cancel_check_seconds: Tick at which outstanding calls observe cancellation.
        cache_dir: Directory holding resolved artifacts.
        http_timeout_seconds: Per-request timeout for HTTP collaborators.
    """

    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    slow_down_step_seconds: float = DEFAULT_SLOW_DOWN_STEP_SECONDS
    max_poll_interval_seconds: float = DEFAULT_MAX_POLL_INTERVAL_SECONDS
    max_transport_retries: int = DEFAULT_MAX_TRANSPORT_RETRIES
    poll_timeout_seconds: float = DEFAULT_POLL_TIMEOUT_SECONDS
    cancel_check_seconds: float = DEFAULT_CANCEL_CHECK_SECONDS
    cache_dir: str = DEFAULT_CACHE_DIR
    http_timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        _validate(self)

    @property
    def cache_path(self) -> Path:
        """Return ``cache_dir`` with ``~`` expanded."""
        return Path(self.cache_dir).expanduser()

    @classmethod
    def from_env(cls) -> TrackerConfig:
        """Load and validate configuration from environment variables.

        Raises:
            ConfigValidationError: If a numeric value is out of range
                or a required string value is empty.
            ValueError: If a numeric environment variable cannot be
                parsed (e.g. ``OP_TRACKER_POLL_INTERVAL_SECONDS=abc``).
        """
        return cls(
            poll_interval_seconds=float(
                os.getenv("OP_TRACKER_POLL_INTERVAL_SECONDS", str(DEFAULT_POLL_INTERVAL_SECONDS))
            ),
            slow_down_step_seconds=float(
                os.getenv("OP_TRACKER_SLOW_DOWN_STEP_SECONDS", str(DEFAULT_SLOW_DOWN_STEP_SECONDS))
            ),
            max_poll_interval_seconds=float(
                os.getenv(
                    "OP_TRACKER_MAX_POLL_INTERVAL_SECONDS",
                    str(DEFAULT_MAX_POLL_INTERVAL_SECONDS),
                )
            ),
            max_transport_retries=int(
                os.getenv("OP_TRACKER_MAX_TRANSPORT_RETRIES", str(DEFAULT_MAX_TRANSPORT_RETRIES))
            ),
            poll_timeout_seconds=float(
                os.getenv("OP_TRACKER_POLL_TIMEOUT_SECONDS", str(DEFAULT_POLL_TIMEOUT_SECONDS))
            ),
            cancel_check_seconds=float(
                os.getenv("OP_TRACKER_CANCEL_CHECK_SECONDS", str(DEFAULT_CANCEL_CHECK_SECONDS))
            ),
            cache_dir=os.getenv("OP_TRACKER_CACHE_DIR", DEFAULT_CACHE_DIR),
            http_timeout_seconds=float(
                os.getenv("OP_TRACKER_HTTP_TIMEOUT_SECONDS", str(DEFAULT_HTTP_TIMEOUT_SECONDS))
            ),
        )


def _validate(config: TrackerConfig) -> None:
    """Validate configuration ranges.  Raises ``ConfigValidationError``."""
    if config.poll_interval_seconds <= 0:
        raise ConfigValidationError(
            "OP_TRACKER_POLL_INTERVAL_SECONDS",
            config.poll_interval_seconds,
            "must be > 0 (seconds)",
        )

    if config.slow_down_step_seconds < 0:
        raise ConfigValidationError(
            "OP_TRACKER_SLOW_DOWN_STEP_SECONDS",
            config.slow_down_step_seconds,
            "must be >= 0 (seconds)",
        )

    if config.max_poll_interval_seconds < config.poll_interval_seconds:
        raise ConfigValidationError(
            "OP_TRACKER_MAX_POLL_INTERVAL_SECONDS",
            config.max_poll_interval_seconds,
            f"must be >= poll interval ({config.poll_interval_seconds})",
        )

    if config.max_transport_retries < 0:
        raise ConfigValidationError(
            "OP_TRACKER_MAX_TRANSPORT_RETRIES",
            config.max_transport_retries,
            "must be >= 0",
        )

    if config.poll_timeout_seconds < 0:
        raise ConfigValidationError(
            "OP_TRACKER_POLL_TIMEOUT_SECONDS",
            config.poll_timeout_seconds,
            "must be >= 0 (seconds, 0 disables the budget)",
        )

    if config.cancel_check_seconds <= 0:
        raise ConfigValidationError(
            "OP_TRACKER_CANCEL_CHECK_SECONDS",
            config.cancel_check_seconds,
            "must be > 0 (seconds)",
        )

    if not config.cache_dir:
        raise ConfigValidationError(
            "OP_TRACKER_CACHE_DIR",
            config.cache_dir,
            "must not be empty",
        )

    if config.http_timeout_seconds <= 0:
        raise ConfigValidationError(
            "OP_TRACKER_HTTP_TIMEOUT_SECONDS",
            config.http_timeout_seconds,
            "must be > 0 (seconds)",
        )
