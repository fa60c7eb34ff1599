"""Refresh cycle orchestration.

One refresh cycle checks a package's status, refreshes it from its
registry unless it is gone, stamps the sync time and recomputes its fan-in
counts. Registry failures are suppressed; the sync time always advances so
that the scheduler does not pick a failing package again on every tick.
"""

import asyncio
import logging
from datetime import UTC, datetime
from typing import Callable, Optional

from registry_tracker.adapters import AdapterRegistry
from registry_tracker.aggregator import DependencyGraphAggregator
from registry_tracker.jobs import JobKind, JobQueue
from registry_tracker.linking import parse_repository_url
from registry_tracker.models import Package, PackageStatus, SyncOutcome, SyncResult
from registry_tracker.status import StatusResolver
from registry_tracker.store import PackageStore

logger = logging.getLogger(__name__)

# Upper bound on one adapter refresh, across all of its requests
DEFAULT_UPDATE_TIMEOUT = 120


class SyncOrchestrator:
    """Runs refresh cycles and queues them for background execution.

    Attributes:
        store: Store holding the packages.
        adapters: Adapters serving the configured ecosystems.
        status_resolver: Existence probe run at the start of every cycle.
        aggregator: Fan-in recomputation run at the end of every cycle.
        queue: Queue background refreshes are submitted to.
        update_timeout: Seconds one adapter refresh may take.
    """

    def __init__(
        self,
        store: PackageStore,
        adapters: AdapterRegistry,
        status_resolver: StatusResolver,
        aggregator: DependencyGraphAggregator,
        queue: Optional[JobQueue] = None,
        update_timeout: float = DEFAULT_UPDATE_TIMEOUT,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.adapters = adapters
        self.status_resolver = status_resolver
        self.aggregator = aggregator
        self.queue = queue
        self.update_timeout = update_timeout
        self._clock = clock or (lambda: datetime.now(UTC))

    async def sync(self, package_id: int) -> SyncResult:
        """Run one refresh cycle for a package.

        Steps run in order: status check, registry refresh (skipped for
        Removed packages), sync time stamp, fan-in recomputation.

        Args:
            package_id: Package to refresh.

        Returns:
            Which path the cycle took.

        Raises:
            PackageNotFoundError: If the package does not exist.
        """
        package = await self.store.get_package(package_id)
        await self.status_resolver.check_status(package, reset_if_healthy=False)

        if package.status is PackageStatus.REMOVED:
            synced_at = await self._stamp(package)
            logger.info("Skipping registry refresh of removed package %s", package.name)
            return SyncResult(package.id, SyncOutcome.REMOVED, synced_at)

        error = await self._update(package)
        synced_at = await self._stamp(package)
        await self.aggregator.recompute(package.id)

        if error is not None:
            return SyncResult(
                package.id, SyncOutcome.SYNCED_WITH_ADAPTER_FAILURE, synced_at, error=error
            )
        return SyncResult(package.id, SyncOutcome.SYNCED, synced_at)

    async def _update(self, package: Package) -> Optional[str]:
        """Refresh a package through its adapter.

        Returns:
            None on success, otherwise a description of the failure.
        """
        try:
            adapter = self.adapters.get(package.ecosystem)
            updated = await asyncio.wait_for(
                adapter.update(package.name), timeout=self.update_timeout
            )
        except Exception as e:
            # Registry failures must not stop the sync time from advancing
            logger.warning(
                "Registry refresh of %s/%s failed: %r", package.ecosystem, package.name, e
            )
            return repr(e)

        if not updated:
            logger.warning(
                "Registry refresh of %s/%s returned no data", package.ecosystem, package.name
            )
            return "adapter returned no data"
        return None

    async def _stamp(self, package: Package) -> datetime:
        now = self._clock()
        await self.store.touch_last_synced(package.id, now)
        package.last_synced_at = now
        return now

    def async_requeue(self, package_id: int) -> None:
        """Queue a refresh of the package without waiting for it.

        Raises:
            RuntimeError: If no queue was configured.
        """
        if self.queue is None:
            raise RuntimeError("No job queue configured")
        self.queue.enqueue(JobKind.REFRESH_METADATA, package_id)

    async def force_resync(self, package_id: int) -> None:
        """Queue a refresh and a repository link resolution.

        The sync time is stamped right away so the scheduler does not
        select the package again before the queued refresh has run.
        """
        package = await self.store.get_package(package_id)
        self.async_requeue(package.id)
        if parse_repository_url(package.repository_url) is not None:
            self.queue.enqueue(JobKind.RESOLVE_REPOSITORY, package.id)
        await self._stamp(package)

    def recently_synced(self, package: Package) -> bool:
        return package.recently_synced(self._clock())
