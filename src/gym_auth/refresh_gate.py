"""Rate limiting for JWKS fetch attempts.

This module implements RefreshGate, a thread-safe rate limiter consulted
before every upstream JWKS fetch. It protects against:

1. Hammering an identity provider that is already failing
2. Every request in a traffic spike paying the full fetch timeout
3. Cascading failures from overzealous retry logic

The gate allows at most one fetch per configured interval, rejecting additional
attempts and tracking denial counts for alerting.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from .protocols import Clock

logger = logging.getLogger(__name__)

_DEFAULT_INTERVAL: Final[float] = 10
"""Default minimum interval between fetches in seconds."""

_DEFAULT_ALERT_THRESHOLD: Final[int] = 5
"""Default number of denials before alerting (per interval)."""


class RefreshGate:
    """Thread-safe rate limiter for JWKS fetch operations.

    Fetch attempts within ``min_interval`` of the last allowed one are denied
    and counted. Once the count reaches ``alert_threshold`` a warning is
    logged for every further denial.

    Thread Safety:
        All operations are protected by an internal lock.

    Attributes:
        _min_interval: Minimum seconds between allowed fetches.
        _alert_threshold: Number of denials before alerting.
        _clock: Monotonic time source.
        _lock: Thread synchronization lock.
        _next_allowed_at: Clock reading when the next fetch is allowed.
        _retry_attempts: Count of denied attempts since last allow.
    """

    def __init__(
        self,
        min_interval: float = _DEFAULT_INTERVAL,
        alert_threshold: int = _DEFAULT_ALERT_THRESHOLD,
        clock: Clock = time.monotonic,
    ) -> None:
        """Initialize the refresh gate.

        Args:
            min_interval: Minimum seconds between allowed fetches. Must not
                exceed the key set cache TTL, or routine refreshes would be
                throttled.
            alert_threshold: Number of denied attempts before alerting.
            clock: Time source. Must not step backwards, or fetches stay
                denied until it catches up.

        Raises:
            ValueError: If min_interval or alert_threshold are invalid.
        """
        if min_interval <= 0:
            raise ValueError(f"min_interval must be positive, got {min_interval}")
        if alert_threshold < 1:
            raise ValueError(f"alert_threshold must be at least 1, got {alert_threshold}")

        self._min_interval = min_interval
        self._alert_threshold = alert_threshold
        self._clock = clock

        self._lock = threading.Lock()
        self._next_allowed_at: float | None = None
        self._retry_attempts: int = 0

    @property
    def min_interval(self) -> float:
        return self._min_interval

    @property
    def denied(self) -> int:
        """Denied attempts since the last allowed one."""
        with self._lock:
            return self._retry_attempts

    def allow(self) -> bool:
        """Check if a fetch is allowed now.

        Returns:
            True if the fetch is allowed (and the interval is restarted).
            False if denied (too soon since the last allowed fetch).
        """
        now = self._clock()

        with self._lock:
            if self._next_allowed_at is not None and now < self._next_allowed_at:
                self._retry_attempts += 1

                if self._retry_attempts >= self._alert_threshold:
                    logger.warning(
                        "JWKS fetch throttled: %d denials in the current interval",
                        self._retry_attempts,
                    )

                return False

            self._next_allowed_at = now + self._min_interval
            self._retry_attempts = 0
            return True
