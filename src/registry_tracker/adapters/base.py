"""Base interface for platform adapters.

An adapter knows how to talk to one package ecosystem's registry: how to
refresh a package's metadata and versions, where a package lives, and how
the registry signals that a package is gone.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Optional

from registry_tracker.models import Package


@dataclass
class RegistryDependency:
    """A requirement as declared in registry metadata."""

    package_name: str
    requirements: str = "*"
    kind: str = "runtime"


@dataclass
class RegistryVersion:
    """A release as listed by the registry."""

    number: str
    published_at: Optional[datetime] = None
    dependencies: list[RegistryDependency] = field(default_factory=list)


@dataclass
class RegistryPackage:
    """Package metadata as fetched from a registry, before persistence.

    Attributes:
        name: Package name as the registry spells it.
        description: Optional summary.
        homepage: Optional homepage URL.
        repository_url: Optional source repository URL.
        raw_license: Free-text license declaration.
        keywords: Registry keywords.
        versions: Releases with their declared dependencies.
    """

    name: str
    description: Optional[str] = None
    homepage: Optional[str] = None
    repository_url: Optional[str] = None
    raw_license: Optional[str] = None
    keywords: list[str] = field(default_factory=list)
    versions: list[RegistryVersion] = field(default_factory=list)


@dataclass
class RegistryOwner:
    """An owner account as listed by the registry."""

    uuid: str
    email: Optional[str] = None
    login: Optional[str] = None
    name: Optional[str] = None
    url: Optional[str] = None


class PlatformAdapter(ABC):
    """Abstract base class for ecosystem adapters.

    Subclasses set ``ecosystem`` to the identifier packages are stored
    under and implement the registry specific operations.

    Attributes:
        ecosystem: Ecosystem identifier (e.g., "PyPI").
        removed_status_codes: HTTP status codes of the existence probe that
            mean the package is gone from the registry.
    """

    ecosystem: ClassVar[str]
    removed_status_codes: ClassVar[frozenset[int]] = frozenset({400, 404})

    @abstractmethod
    async def update(self, name: str) -> bool:
        """Refresh a package's metadata, versions and dependencies.

        Args:
            name: Package name within this ecosystem.

        Returns:
            True if the package was refreshed, False if the registry had
            nothing usable for it.
        """
        ...

    @abstractmethod
    def check_status_url(self, package: Package) -> Optional[str]:
        """Return the URL probed to decide whether a package still exists.

        Returns:
            URL to probe, or None if this ecosystem has no such check.
        """
        ...

    @abstractmethod
    def package_link(self, package: Package, version: Optional[str] = None) -> str:
        """Return the registry page of a package (or one of its versions)."""
        ...

    def download_url(self, name: str, version: Optional[str] = None) -> Optional[str]:
        """Return the archive URL of a release, if the registry has one."""
        return None

    def documentation_url(self, name: str, version: Optional[str] = None) -> Optional[str]:
        return None

    def install_instructions(self, package: Package, version: Optional[str] = None) -> Optional[str]:
        return None

    def package_manager_url(self, package: Package, version: Optional[str] = None) -> str:
        return self.package_link(package, version)

    def latest_download_url(self, package: Package) -> Optional[str]:
        """Return the archive URL of the latest release, if any."""
        if not package.latest_release_number:
            return None
        return self.download_url(package.name, package.latest_release_number)

    def api_dict(self, package: Package) -> dict[str, Any]:
        """Return the fields exposed downstream, with the computed download URL."""
        return package.to_api_dict(download_url=self.latest_download_url(package))

    async def download_registry_users(self, name: str) -> list[RegistryOwner]:
        """Return the registry accounts owning a package.

        The default is an empty list for registries without owner data.
        """
        return []

    @property
    def formatted_name(self) -> str:
        """Return the display name of the ecosystem."""
        return self.ecosystem

    @property
    def has_versions(self) -> bool:
        return True

    @property
    def has_dependencies(self) -> bool:
        return False

    def is_removed_response(self, status_code: int) -> bool:
        """Interpret an existence probe's status code."""
        return status_code in self.removed_status_codes

    async def close(self) -> None:
        """Release any resources held by the adapter."""
        return None
