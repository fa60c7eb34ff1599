import logging
from abc import abstractmethod
from typing import Any, Optional

import aiohttp

from registry_tracker.adapters.base import PlatformAdapter, RegistryPackage
from registry_tracker.models import DependencyEdge
from registry_tracker.store import PackageStore

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10
DEFAULT_USER_AGENT = "registry-tracker/0.1.0"


class SessionOwner:
    """Owns one lazily created aiohttp.ClientSession.

    Shared by the registry adapters, the existence prober and the repository
    resolvers so every client pools connections and caches DNS the same way.

    Attributes:
        timeout: Total timeout for each request, in seconds.
        user_agent: User-Agent header sent with every request.
    """

    timeout: float = DEFAULT_TIMEOUT
    user_agent: str = DEFAULT_USER_AGENT
    _session: Optional[aiohttp.ClientSession] = None

    def _session_headers(self) -> dict[str, str]:
        return {"User-Agent": self.user_agent}

    def _create_session(self) -> aiohttp.ClientSession:
        # Cache DNS to reduce latency for repeated host lookups
        connector = aiohttp.TCPConnector(ttl_dns_cache=300)
        return aiohttp.ClientSession(
            connector=connector,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            headers=self._session_headers(),
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session.

        Returns:
            The shared aiohttp ClientSession.
        """
        if self._session is None or self._session.closed:
            self._session = self._create_session()
        return self._session

    async def close(self) -> None:
        """Close the aiohttp session, if one was opened."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


class HttpAdapter(SessionOwner, PlatformAdapter):
    """Base class for adapters that fetch registry metadata over HTTP.

    Fetched metadata is persisted through the store. Subclasses implement
    :meth:`fetch`.
    """

    def __init__(
        self,
        store: PackageStore,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        """Initialize the HttpAdapter.

        Args:
            store: Store that refreshed packages are written to.
            timeout: Total timeout for each registry request, in seconds.
            user_agent: User-Agent header sent to the registry.
        """
        self.store = store
        self.timeout = timeout
        self.user_agent = user_agent

    async def __aenter__(self) -> "HttpAdapter":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    async def _get_json(self, url: str) -> Optional[Any]:
        """Fetch a JSON document.

        Args:
            url: Document URL.

        Returns:
            Decoded JSON, or None if the registry answered 404.

        Raises:
            aiohttp.ClientError: On network errors and other error statuses.
        """
        logger.debug("Fetching %s", url)
        session = await self._get_session()
        async with session.get(url) as response:
            if response.status == 404:
                return None
            response.raise_for_status()
            return await response.json(content_type=None)

    @abstractmethod
    async def fetch(self, name: str) -> Optional[RegistryPackage]:
        """Fetch and map a package's registry metadata.

        Returns:
            The mapped metadata, or None if the registry does not know it.
        """
        ...

    async def update(self, name: str) -> bool:
        """Fetch a package from the registry and persist it.

        Versions and dependency edges are written before the package row
        so that the latest release details are derived from them.

        Args:
            name: Package name within this ecosystem.

        Returns:
            True if the package was refreshed, False if it is unknown.
        """
        data = await self.fetch(name)
        if data is None:
            logger.warning("Package %s not found on %s", name, self.formatted_name)
            return False

        package = await self.store.get_or_create_package(self.ecosystem, data.name)
        package.description = data.description
        package.homepage = data.homepage
        package.repository_url = data.repository_url
        package.raw_license = data.raw_license
        package.keywords = data.keywords

        for release in data.versions:
            version = await self.store.upsert_version(
                package.id, release.number, release.published_at
            )
            if self.has_dependencies:
                await self.store.replace_dependencies(
                    version.id,
                    [
                        DependencyEdge(
                            version_id=version.id,
                            package_name=dep.package_name,
                            ecosystem=self.ecosystem,
                            requirements=dep.requirements,
                            kind=dep.kind,
                        )
                        for dep in release.dependencies
                    ],
                )

        await self.store.save_package(package)
        logger.info(
            "Updated %s/%s with %d version(s)", self.ecosystem, package.name, len(data.versions)
        )
        return True
