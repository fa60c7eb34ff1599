"""Package lifecycle status resolution.

Only the Active <-> Removed transition is automatic. Deprecated,
Unmaintained, Help Wanted and Hidden are set administratively and are left
alone unless an explicit reset is requested.
"""

import asyncio
import logging
from typing import Optional

import aiohttp

from registry_tracker.adapters import AdapterRegistry
from registry_tracker.adapters.http import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT, SessionOwner
from registry_tracker.models import Package, PackageStatus
from registry_tracker.store import PackageStore

logger = logging.getLogger(__name__)


class StatusResolver(SessionOwner):
    """Probes a package's registry URL and updates its lifecycle status.

    The probe is a HEAD request without following redirects. A network
    error, a timeout, or an adapter failure is inconclusive and leaves the
    status untouched.

    Attributes:
        store: Store the status is written to.
        adapters: Adapters providing the probe URL and its interpretation.
        timeout: Total timeout of the probe, in seconds.
    """

    def __init__(
        self,
        store: PackageStore,
        adapters: AdapterRegistry,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.store = store
        self.adapters = adapters
        self.timeout = timeout
        self.user_agent = user_agent

    async def probe(self, url: str) -> Optional[int]:
        """Issue the existence probe.

        Returns:
            The response status code, or None if the probe was inconclusive.
        """
        session = await self._get_session()
        try:
            async with session.head(url, allow_redirects=False) as response:
                return response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Existence probe of %s failed: %s", url, e)
            return None

    async def check_status(
        self, package: Package, reset_if_healthy: bool = False
    ) -> Optional[PackageStatus]:
        """Update a package's status from its registry existence probe.

        Args:
            package: Package to check. Its ``status`` is updated in place.
            reset_if_healthy: Clear the status back to Active when the
                package is found to still exist.

        Returns:
            The package's status after the check (None meaning Active).
        """
        try:
            adapter = self.adapters.get(package.ecosystem)
            url = adapter.check_status_url(package)
        except Exception:
            logger.warning(
                "Could not resolve status URL for %s/%s",
                package.ecosystem,
                package.name,
                exc_info=True,
            )
            return package.status

        if not url:
            return package.status

        status_code = await self.probe(url)
        if status_code is None:
            return package.status

        if adapter.is_removed_response(status_code):
            new_status = PackageStatus.REMOVED
        elif reset_if_healthy:
            new_status = None
        else:
            return package.status

        if new_status != package.status:
            logger.info(
                "Status of %s/%s: %s -> %s",
                package.ecosystem,
                package.name,
                package.status.value if package.status else "Active",
                new_status.value if new_status else "Active",
            )
            await self.store.set_status(package.id, new_status)
            package.status = new_status
        return package.status
