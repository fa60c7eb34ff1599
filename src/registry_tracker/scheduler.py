"""Periodic selection of stale packages for refresh."""

import logging
from datetime import UTC, datetime, timedelta
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from registry_tracker.jobs import JobKind, JobQueue
from registry_tracker.store import PackageStore

logger = logging.getLogger(__name__)


class StaleScheduler:
    """Feeds the job queue with packages whose last sync is too old.

    Attributes:
        store: Store the stale packages are selected from.
        queue: Queue refresh jobs are submitted to.
        stale_after: Age after which a package needs a refresh.
        batch_size: Maximum number of packages queued per tick.
        interval: Time between ticks.
    """

    def __init__(
        self,
        store: PackageStore,
        queue: JobQueue,
        stale_after: timedelta = timedelta(hours=24),
        batch_size: int = 100,
        interval: timedelta = timedelta(minutes=10),
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.queue = queue
        self.stale_after = stale_after
        self.batch_size = batch_size
        self.interval = interval
        self._clock = clock or (lambda: datetime.now(UTC))
        self.scheduler: Optional[AsyncIOScheduler] = None

    async def start(self) -> None:
        """Start the scheduler on the running event loop."""
        if self.scheduler is not None:
            logger.warning("Scheduler already started")
            return

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self.tick,
            IntervalTrigger(seconds=int(self.interval.total_seconds())),
            id="enqueue_stale",
            name="Enqueue stale packages",
            next_run_time=self._clock(),
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info("Scheduler started, checking every %s", self.interval)

    async def stop(self) -> None:
        """Stop the scheduler."""
        if self.scheduler is not None:
            self.scheduler.shutdown()
            self.scheduler = None
            logger.info("Scheduler stopped")

    async def tick(self) -> int:
        """Queue refreshes for one batch of stale packages.

        Returns:
            Number of packages queued.
        """
        cutoff = self._clock() - self.stale_after
        try:
            packages = await self.store.stale_packages(cutoff, limit=self.batch_size)
        except Exception as e:
            logger.error("Selecting stale packages failed: %s", e, exc_info=True)
            return 0

        for package in packages:
            self.queue.enqueue(JobKind.REFRESH_METADATA, package.id)
        if packages:
            logger.info("Queued %d stale packages", len(packages))
        return len(packages)
