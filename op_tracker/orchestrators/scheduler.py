"""Poll scheduler — computes the delay before the next poll.

The scheduler holds the only cadence state of one operation:

- a *sticky* base interval, replaced whenever a hint carries
  ``suggested_interval_seconds`` and kept for every later call until the
  next such hint;
- a cumulative slow-down penalty, grown by ``slow_down_step_seconds`` on
  every ``slow_down`` signal and never reduced for the rest of the
  operation (RFC 8628 §3.5 semantics).

The effective interval is ``min(base + penalty, max_interval)``. Each
hint must be fed exactly once; feeding the same slow-down hint twice
counts as two signals.

A scheduler instance belongs to one operation and is never shared.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from op_tracker.core.constants import (
    DEFAULT_MAX_POLL_INTERVAL_SECONDS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_SLOW_DOWN_STEP_SECONDS,
)

if TYPE_CHECKING:
    from op_tracker.core.config import TrackerConfig
    from op_tracker.models.operation import PollHint

logger = logging.getLogger(__name__)


class PollScheduler:
    """Sticky-interval poll scheduler with cumulative slow-down.

    Args:
        base_interval_seconds: Delay used until the server suggests one.
        slow_down_step_seconds: Increase per slow-down signal.
        max_interval_seconds: Cap on the effective interval.
    """

    def __init__(
        self,
        base_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        slow_down_step_seconds: float = DEFAULT_SLOW_DOWN_STEP_SECONDS,
        max_interval_seconds: float = DEFAULT_MAX_POLL_INTERVAL_SECONDS,
    ) -> None:
        if base_interval_seconds < 0 or slow_down_step_seconds < 0:
            msg = "intervals must be >= 0"
            raise ValueError(msg)
        if max_interval_seconds < base_interval_seconds:
            msg = "max_interval_seconds must be >= base_interval_seconds"
            raise ValueError(msg)
        self._base = float(base_interval_seconds)
        self._step = float(slow_down_step_seconds)
        self._max = float(max_interval_seconds)
        self._penalty = 0.0
        self._slow_down_count = 0

    @classmethod
    def from_config(cls, config: TrackerConfig) -> PollScheduler:
        return cls(
            base_interval_seconds=config.poll_interval_seconds,
            slow_down_step_seconds=config.slow_down_step_seconds,
            max_interval_seconds=config.max_poll_interval_seconds,
        )

    @property
    def current_interval(self) -> float:
        """Effective interval that the next call will return absent a new hint."""
        return min(self._base + self._penalty, self._max)

    @property
    def slow_down_count(self) -> int:
        return self._slow_down_count

    def next(self, attempt: int, hint: PollHint | None = None) -> float:
        """Fold *hint* into the cadence state and return the next delay in seconds.

        Args:
            attempt: Number of polls issued so far (for logging).
            hint: Guidance from the latest response, or ``None``.
        """
        if hint is not None:
            if hint.suggested_interval_seconds is not None:
                self._base = min(float(hint.suggested_interval_seconds), self._max)
            if hint.slow_down:
                self._penalty = min(self._penalty + self._step, self._max)
                self._slow_down_count += 1

        delay = self.current_interval
        logger.debug(
            "Poll scheduled | attempt=%d | delay=%.2fs | base=%.2fs | penalty=%.2fs",
            attempt,
            delay,
            self._base,
            self._penalty,
        )
        return delay
