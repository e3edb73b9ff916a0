"""Time-bounded, single-slot cache for the provider's signing key set.

The cache is an explicit object injected into the verifier. It holds only the
most recent successful fetch, tagged with the time it was fetched, and treats
it as authoritative for ``ttl_seconds``. Refresh is lazy: the first request
after expiry triggers the fetch. There is no background task.

Concurrency model
-----------------
- The slot holds an immutable ``_CacheEntry`` that is replaced by a single
  attribute assignment, so readers always see a complete key set.
- Fetching happens under ``_fetch_lock``. Requests that miss concurrently
  queue on the lock, and once the first fetch finishes they find a fresh
  entry and return it. N concurrent misses cost one upstream request.
- A failed fetch leaves the slot untouched and is raised to the caller.
  Nothing is retried here.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

from .errors import NetworkFailure
from .protocols import KeySetProvider

if TYPE_CHECKING:
    from .keys import SigningKeySet
    from .protocols import Clock, KeySource
    from .refresh_gate import RefreshGate

logger = logging.getLogger(__name__)

_DEFAULT_TTL: Final[float] = 300
"""Key sets are trusted for five minutes after they are fetched."""


@dataclass(frozen=True, slots=True)
class _CacheEntry:
    """Memoized key set.

    Attributes:
        key_set: The parsed key set.
        fetched_at: Clock reading taken when the fetch completed.
    """

    key_set: SigningKeySet
    fetched_at: float


class KeySetCache(KeySetProvider):
    """Lock-guarded, single-flight cache in front of a KeySource.

    Example:
        ```python
        cache = KeySetCache(
            SupabaseJWKSSource("https://example.supabase.co"),
            gate=RefreshGate(min_interval=10),
        )
        key = cache.get().find(kid)
        ```

    Attributes:
        _source: Upstream key source.
        _ttl: Seconds a fetched key set stays authoritative.
        _gate: Optional limiter consulted before every upstream fetch.
        _clock: Monotonic time source.
        _entry: Current slot contents, or None before the first fetch.
    """

    def __init__(
        self,
        source: KeySource,
        ttl_seconds: float = _DEFAULT_TTL,
        gate: RefreshGate | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            source: Where key sets come from.
            ttl_seconds: How long a fetched set is served without refetching.
            gate: Limits how often the source may be contacted. Its interval
                must not exceed ``ttl_seconds``.
            clock: Time source for freshness checks.

        Raises:
            ValueError: If ttl_seconds is not positive or shorter than the
                gate's interval.
        """
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        if gate is not None and gate.min_interval > ttl_seconds:
            raise ValueError("RefreshGate interval must not exceed the cache TTL")

        self._source = source
        self._ttl = ttl_seconds
        self._gate = gate
        self._clock = clock

        self._fetch_lock = threading.Lock()
        self._entry: _CacheEntry | None = None

    @property
    def fetched_at(self) -> float | None:
        """Clock reading of the cached fetch, or None when empty."""
        entry = self._entry
        return entry.fetched_at if entry is not None else None

    def _fresh(self, entry: _CacheEntry | None) -> bool:
        return entry is not None and self._clock() - entry.fetched_at < self._ttl

    def get(self) -> SigningKeySet:
        """Return the current key set, fetching it when missing or expired.

        Raises:
            NetworkFailure: The fetch failed or was throttled by the gate.
            MalformedKeySet: The provider returned an unusable document.
        """
        entry = self._entry
        if self._fresh(entry):
            return entry.key_set  # type: ignore[union-attr]

        with self._fetch_lock:
            # Another thread may have refreshed while we waited.
            entry = self._entry
            if self._fresh(entry):
                return entry.key_set  # type: ignore[union-attr]

            if self._gate is not None and not self._gate.allow():
                raise NetworkFailure("JWKS fetch throttled after a recent attempt")

            key_set = self._source.fetch()
            self._entry = _CacheEntry(key_set=key_set, fetched_at=self._clock())
            logger.debug("Key set cache refreshed (%d key(s))", len(key_set))
            return key_set

    def invalidate(self) -> None:
        """Drop the cached key set; the next ``get`` fetches."""
        self._entry = None
