"""Client-side request pacing for the router, geocoder and layer fetchers.

Public Nominatim allows one request per second and self-hosted Valhalla
instances are usually sized for a handful of concurrent trucks, so the
limiter combines a soft concurrency cap with a minimum spacing between
request starts and a pause after HTTP 429.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from typing import Mapping

from ..config import (
    RATE_LIMIT_JITTER_RANGE,
    RATE_LIMIT_MAX_CONCURRENT,
    RATE_LIMIT_MIN_INTERVAL_SECONDS,
    RATE_LIMIT_THROTTLE_SECONDS,
)

__all__ = ["RateLimiter"]

LOGGER = logging.getLogger(__name__)


def _retry_after_seconds(headers: Mapping[str, object] | None) -> float | None:
    if not headers:
        return None
    raw = headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return max(0.0, float(str(raw).strip()))
    except ValueError:
        # HTTP-date form falls back to the configured pause.
        return None


class RateLimiter:
    """Thread-safe pacing shared by every blocking HTTP call of a client."""

    def __init__(
        self,
        max_concurrent: int = RATE_LIMIT_MAX_CONCURRENT,
        jitter_range: tuple[float, float] = RATE_LIMIT_JITTER_RANGE,
        throttle_seconds: float = RATE_LIMIT_THROTTLE_SECONDS,
        min_interval: float = RATE_LIMIT_MIN_INTERVAL_SECONDS,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self._cond = threading.Condition(threading.Lock())
        self._max_allowed = max_concurrent
        self._in_flight = 0
        self._paused_until = 0.0
        self._next_start = 0.0
        self._jitter_range = jitter_range
        self._throttle_seconds = throttle_seconds
        self._min_interval = max(0.0, min_interval)

    def resize(self, new_max: int) -> None:
        """Change the concurrency cap; blocked callers re-check immediately."""

        if new_max < 1:
            raise ValueError("new_max must be >= 1")
        with self._cond:
            old = self._max_allowed
            self._max_allowed = new_max
            self._cond.notify_all()
        LOGGER.info("RateLimiter resized from %s to %s", old, new_max)

    def before_request(self) -> None:
        """Block until a slot is free, then honour any pause and spacing."""

        with self._cond:
            while self._in_flight >= self._max_allowed:
                self._cond.wait()
            self._in_flight += 1
            now = time.time()
            start_at = max(now, self._paused_until, self._next_start)
            self._next_start = start_at + self._min_interval
        delay = start_at - now
        lo, hi = self._jitter_range
        if hi > 0:
            delay += random.uniform(lo, hi)  # nosec B311 - pacing only
        if delay > 0:
            time.sleep(delay)

    def after_response(
        self, headers: Mapping[str, object] | None, status_code: int | None
    ) -> None:
        """Release the slot; a 429 pauses every caller for Retry-After seconds."""

        with self._cond:
            if status_code == 429:
                pause = _retry_after_seconds(headers)
                if pause is None:
                    pause = self._throttle_seconds
                self._paused_until = max(self._paused_until, time.time() + pause)
                LOGGER.warning("HTTP 429 received; pausing requests for %.1fs", pause)
            self._in_flight = max(0, self._in_flight - 1)
            self._cond.notify()

    def snapshot(self) -> dict[str, float | int]:
        """Return current limiter stats (used by tests and diagnostics)."""

        with self._cond:
            return {
                "max_allowed": self._max_allowed,
                "in_flight": self._in_flight,
                "throttle_until": self._paused_until,
                "next_start": self._next_start,
            }
