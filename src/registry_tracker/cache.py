"""Expiring in-process cache with single-flight recomputation.

Used for values that are expensive to compute and may be slightly stale,
such as the total number of tracked packages.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """A cached value and the moment it expires."""

    value: Any
    expires_at: datetime


class ExpiringCache:
    """Get-or-compute cache whose entries expire after a fixed TTL.

    Concurrent callers asking for the same missing or expired key share a
    single computation. If that computation fails, every waiting caller
    receives the error and nothing is cached.

    Attributes:
        ttl: How long a computed value stays fresh.
    """

    DEFAULT_TTL = timedelta(days=1)

    def __init__(
        self,
        ttl: timedelta = DEFAULT_TTL,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize the cache.

        Args:
            ttl: Lifetime of each computed value.
            clock: Time source, defaults to the current UTC time.
        """
        self.ttl = ttl
        self._clock = clock or (lambda: datetime.now(UTC))
        self._entries: dict[str, CacheEntry] = {}
        self._inflight: dict[str, asyncio.Task] = {}

    def get(self, key: str) -> Optional[Any]:
        """Return a fresh cached value, or None on a miss or expiry."""
        entry = self._entries.get(key)
        if entry is None or self._clock() >= entry.expires_at:
            return None
        return entry.value

    async def get_or_compute(self, key: str, compute: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached value for ``key``, computing it if needed.

        Args:
            key: Cache key.
            compute: Coroutine function producing the value.

        Returns:
            The cached or freshly computed value.
        """
        entry = self._entries.get(key)
        if entry is not None and self._clock() < entry.expires_at:
            return entry.value

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._compute(key, compute))
            self._inflight[key] = task
        # A cancelled caller must not cancel the computation others share
        return await asyncio.shield(task)

    async def _compute(self, key: str, compute: Callable[[], Awaitable[Any]]) -> Any:
        try:
            value = await compute()
            self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + self.ttl)
            logger.debug("Cached %s until %s", key, self._entries[key].expires_at)
            return value
        finally:
            self._inflight.pop(key, None)

    def clear(self, key: Optional[str] = None) -> None:
        """Clear cache entries.

        Args:
            key: If specified, clear only this key. If None, clear all.
        """
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def info(self) -> dict:
        """Get cache statistics.

        Returns:
            Dictionary with the entry count, in-flight computations and TTL.
        """
        return {
            "count": len(self._entries),
            "inflight": len(self._inflight),
            "ttl_seconds": int(self.ttl.total_seconds()),
        }
