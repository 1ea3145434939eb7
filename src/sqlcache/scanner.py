"""
Throttled background sweep of expired cache rows.

After every cache operation the facade calls ``scan_if_required()``. When more
than the configured interval has passed since the last sweep, the caller
claims the turn by writing the new sweep time and the sweep is started as a
background task that the caller never awaits.

Sweeps are advisory: every read already filters out expired rows, so a missed
or duplicated sweep only delays reclaiming storage. The claim is therefore a
compare-and-swap rather than a lock around the hot path: a caller that finds
the claim busy skips instead of waiting.
"""

from __future__ import annotations

import asyncio
import threading
from datetime import datetime, timedelta, timezone

from sqlcache.clock import Clock
from sqlcache.config import (
    DEFAULT_EXPIRED_ITEMS_DELETION_INTERVAL,
    MINIMUM_EXPIRED_ITEMS_DELETION_INTERVAL,
)
from sqlcache.exceptions import CacheConfigurationError, CacheStoreError
from sqlcache.logging import get_logger
from sqlcache.storage.operations import DatabaseOperations
from sqlcache.types import as_utc

logger = get_logger(__name__)

_NEVER = datetime(1970, 1, 1, tzinfo=timezone.utc)


class ExpirationScanner:
    """Rate limiter that dispatches expired-row sweeps for one cache instance."""

    def __init__(
        self,
        operations: DatabaseOperations,
        clock: Clock,
        interval: timedelta | None = None,
    ) -> None:
        """Initialize the scanner.

        Args:
            operations: Storage used to delete expired rows.
            clock: Source of the current time.
            interval: Minimum time between sweeps; defaults to 30 minutes.

        Raises:
            CacheConfigurationError: If ``interval`` is below the 5 minute minimum.
        """
        if interval is None:
            interval = DEFAULT_EXPIRED_ITEMS_DELETION_INTERVAL
        if interval < MINIMUM_EXPIRED_ITEMS_DELETION_INTERVAL:
            minutes = MINIMUM_EXPIRED_ITEMS_DELETION_INTERVAL.total_seconds() / 60
            raise CacheConfigurationError(
                f"Expired items deletion interval cannot be less than the minimum "
                f"value of {minutes:g} minutes.",
                context={"interval": str(interval)},
            )

        self.operations = operations
        self.clock = clock
        self.interval = interval
        self._last_scan = _NEVER
        self._claim = threading.Lock()
        self._tasks: set[asyncio.Task[int]] = set()

    @property
    def last_scan(self) -> datetime:
        """When the most recent sweep was claimed."""
        return self._last_scan

    def _is_due(self, now: datetime) -> bool:
        return now - self._last_scan > self.interval

    def _try_claim(self, now: datetime) -> bool:
        if not self._is_due(now):
            return False
        # Non-blocking: whoever holds the claim is already taking this turn
        if not self._claim.acquire(blocking=False):
            return False
        try:
            if not self._is_due(now):
                return False
            self._last_scan = now
            return True
        finally:
            self._claim.release()

    def scan_if_required(self) -> asyncio.Task[int] | None:
        """Start a sweep in the background if the interval has elapsed.

        Must be called from a running event loop.

        Returns:
            The sweep task if one was started, else None.
        """
        now = as_utc(self.clock.utc_now())
        if not self._try_claim(now):
            return None

        task = asyncio.get_running_loop().create_task(self._scan())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug("Expired item scan started", claimed_at=now.isoformat())
        return task

    async def _scan(self) -> int:
        try:
            return await self.operations.delete_expired_cache_items()
        except CacheStoreError:
            logger.warning("Expired item scan failed", exc_info=True)
            return 0

    async def wait_idle(self) -> None:
        """Wait for sweeps started on the current event loop to finish."""
        loop = asyncio.get_running_loop()
        pending = [task for task in self._tasks if task.get_loop() is loop]
        if pending:
            await asyncio.gather(*pending)

    def __repr__(self) -> str:
        return (
            f"ExpirationScanner(interval={self.interval}, "
            f"last_scan={self._last_scan.isoformat()}, running={len(self._tasks)})"
        )
