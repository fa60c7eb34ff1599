"""Platform adapters for package ecosystems.

Adapters are looked up through a static registry keyed by ecosystem
identifier. The set of ecosystems a process serves is validated once, at
start-up, by :class:`AdapterRegistry`.
"""

import logging
from typing import Iterable, Iterator

from registry_tracker.adapters.base import (
    PlatformAdapter,
    RegistryDependency,
    RegistryOwner,
    RegistryPackage,
    RegistryVersion,
)
from registry_tracker.adapters.http import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT, HttpAdapter
from registry_tracker.adapters.npm import NPMAdapter
from registry_tracker.adapters.packagist import PackagistAdapter
from registry_tracker.adapters.pypi import PyPIAdapter
from registry_tracker.exceptions import UnknownEcosystemError
from registry_tracker.store import PackageStore

__all__ = [
    "ADAPTERS",
    "AdapterRegistry",
    "HttpAdapter",
    "NPMAdapter",
    "PackagistAdapter",
    "PlatformAdapter",
    "PyPIAdapter",
    "RegistryDependency",
    "RegistryOwner",
    "RegistryPackage",
    "RegistryVersion",
    "adapter_class",
]

logger = logging.getLogger(__name__)

# Registry of available adapters keyed by ecosystem identifier
ADAPTERS: dict[str, type[HttpAdapter]] = {
    PyPIAdapter.ecosystem: PyPIAdapter,
    NPMAdapter.ecosystem: NPMAdapter,
    PackagistAdapter.ecosystem: PackagistAdapter,
}


def adapter_class(ecosystem: str) -> type[HttpAdapter]:
    """Get the adapter class for an ecosystem.

    Matching is case-insensitive so "pypi" and "PyPI" are the same
    ecosystem.

    Args:
        ecosystem: Ecosystem identifier.

    Returns:
        The adapter class registered for the ecosystem.

    Raises:
        UnknownEcosystemError: If no adapter is registered for it.
    """
    for key, cls in ADAPTERS.items():
        if key.lower() == ecosystem.lower():
            return cls
    raise UnknownEcosystemError(ecosystem, sorted(ADAPTERS))


class AdapterRegistry:
    """The adapters one process serves, instantiated at start-up.

    Construction fails fast on an unknown ecosystem, so a misconfigured
    worker never starts.
    """

    def __init__(self, adapters: Iterable[PlatformAdapter]) -> None:
        self._adapters = {adapter.ecosystem: adapter for adapter in adapters}

    @classmethod
    def build(
        cls,
        ecosystems: Iterable[str],
        store: PackageStore,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> "AdapterRegistry":
        """Instantiate adapters for the given ecosystems.

        Args:
            ecosystems: Ecosystem identifiers to serve.
            store: Store the adapters write to.
            timeout: Request timeout handed to each adapter.
            user_agent: User-Agent header handed to each adapter.

        Raises:
            UnknownEcosystemError: If any ecosystem has no adapter.
        """
        classes = [adapter_class(ecosystem) for ecosystem in ecosystems]
        adapters = [
            adapter_cls(store, timeout=timeout, user_agent=user_agent) for adapter_cls in classes
        ]
        logger.info("Serving ecosystems: %s", ", ".join(a.ecosystem for a in adapters))
        return cls(adapters)

    def get(self, ecosystem: str) -> PlatformAdapter:
        """Return the adapter serving an ecosystem.

        Raises:
            UnknownEcosystemError: If this process does not serve it.
        """
        adapter = self._adapters.get(ecosystem)
        if adapter is None:
            for key, candidate in self._adapters.items():
                if key.lower() == ecosystem.lower():
                    return candidate
            raise UnknownEcosystemError(ecosystem, sorted(self._adapters))
        return adapter

    @property
    def ecosystems(self) -> list[str]:
        return sorted(self._adapters)

    def __iter__(self) -> Iterator[PlatformAdapter]:
        return iter(self._adapters.values())

    async def close(self) -> None:
        for adapter in self._adapters.values():
            await adapter.close()

    async def __aenter__(self) -> "AdapterRegistry":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
