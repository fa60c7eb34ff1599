"""Core data models for registry_tracker.

This module defines the records the tracker keeps about packages, their
versions, the dependency graph between them, and the outcome types the
lifecycle engine reports back to its callers.
"""

import enum
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Optional

from packaging.version import InvalidVersion
from packaging.version import Version as ReleaseNumber

RECENT_SYNC_WINDOW = timedelta(hours=24)


class PackageStatus(str, enum.Enum):
    """Lifecycle status of a package.

    ``None`` on a package means Active. Only Removed is set automatically;
    the remaining values are administrative inputs.
    """

    DEPRECATED = "Deprecated"
    UNMAINTAINED = "Unmaintained"
    HELP_WANTED = "Help Wanted"
    REMOVED = "Removed"
    HIDDEN = "Hidden"


UNMAINTAINED_STATUSES = frozenset(
    {
        PackageStatus.DEPRECATED,
        PackageStatus.REMOVED,
        PackageStatus.UNMAINTAINED,
        PackageStatus.HIDDEN,
    }
)


class SyncOutcome(str, enum.Enum):
    """Which path a single refresh cycle took."""

    SYNCED = "synced"
    SYNCED_WITH_ADAPTER_FAILURE = "synced_with_adapter_failure"
    REMOVED = "removed"


@dataclass
class RepositoryRecord:
    """A source-hosting repository linked to a package.

    Attributes:
        host_type: Hosting service name (e.g., "GitHub").
        full_name: "owner/name" path on the host.
        description: Optional repository description.
        homepage: Optional homepage URL.
        license: Detected license identifier, None when not open source.
        language: Primary language reported by the host.
        stargazers_count: Star count reported by the host.
        id: Store primary key, None until persisted.
    """

    host_type: str
    full_name: str
    description: Optional[str] = None
    homepage: Optional[str] = None
    license: Optional[str] = None
    language: Optional[str] = None
    stargazers_count: int = 0
    id: Optional[int] = None

    @property
    def is_open_source(self) -> bool:
        return bool(self.license)


@dataclass
class Version:
    """A published release of a package.

    Attributes:
        package_id: Owning package id.
        number: Release number as published by the registry.
        published_at: Optional publish timestamp.
        id: Store primary key, None until persisted.
    """

    package_id: int
    number: str
    published_at: Optional[datetime] = None
    id: Optional[int] = None

    @property
    def release(self) -> Optional[ReleaseNumber]:
        """Parse the release number, or None if it is not PEP 440 shaped."""
        try:
            return ReleaseNumber(self.number)
        except InvalidVersion:
            return None

    @property
    def is_prerelease(self) -> bool:
        release = self.release
        return release is not None and (release.is_prerelease or release.is_devrelease)

    def sort_key(self) -> tuple:
        """Key ordering versions from oldest to newest.

        Parseable numbers sort above unparseable ones; ties and unparseable
        numbers fall back to the publish time.
        """
        published = self.published_at or datetime.min.replace(tzinfo=UTC)
        release = self.release
        if release is None:
            return (0, ReleaseNumber("0"), published)
        return (1, release, published)


@dataclass(frozen=True)
class DependencyEdge:
    """A requirement declared by one version on another package.

    Frozen for hashability. Duplicate edges are tolerated by the store and
    collapsed at aggregation time.

    Attributes:
        version_id: Id of the depending version.
        package_name: Name of the required package.
        ecosystem: Ecosystem of the required package.
        requirements: Requirement range as declared (e.g., ">=2.0").
        kind: Dependency kind (e.g., "runtime", "development").
    """

    version_id: int
    package_name: str
    ecosystem: str
    requirements: str = "*"
    kind: str = "runtime"


@dataclass
class RegistryUser:
    """An account that owns packages on a registry."""

    ecosystem: str
    uuid: str
    email: Optional[str] = None
    login: Optional[str] = None
    name: Optional[str] = None
    url: Optional[str] = None
    id: Optional[int] = None


@dataclass
class Package:
    """A package tracked within one ecosystem.

    Identity is the case-sensitive (ecosystem, name) pair. The count fields
    are caches derived from the dependency graph and may lag behind it.

    Attributes:
        ecosystem: Ecosystem identifier (e.g., "PyPI", "NPM").
        name: Package name as published.
        description: Optional description from the registry.
        homepage: Optional homepage URL.
        repository_url: Optional source repository URL.
        raw_license: Free-text license declaration from the registry.
        normalized_licenses: Canonical license identifiers derived from
            ``raw_license`` (or the linked repository).
        status: Lifecycle status, None meaning Active.
        dependents_count: Distinct packages depending on this one.
        dependent_repos_count: Distinct open-source repositories depending
            on this one through their packages.
        versions_count: Number of known versions.
        last_synced_at: Last time a refresh cycle finished.
        rank: Score maintained by the ranking subsystem, read-only here.
        repository_id: Linked repository id, if any.
        language: Primary language copied from the linked repository.
        keywords: Keywords reported by the registry.
        latest_release_number: Highest known release number.
        latest_release_published_at: Publish time of the latest release.
        latest_stable_release_number: Highest non pre-release number.
        latest_stable_release_published_at: Publish time of that release.
        id: Store primary key, None until persisted.
    """

    ecosystem: str
    name: str
    description: Optional[str] = None
    homepage: Optional[str] = None
    repository_url: Optional[str] = None
    raw_license: Optional[str] = None
    normalized_licenses: list[str] = field(default_factory=list)
    status: Optional[PackageStatus] = None
    dependents_count: int = 0
    dependent_repos_count: int = 0
    versions_count: int = 0
    last_synced_at: Optional[datetime] = None
    rank: Optional[int] = None
    repository_id: Optional[int] = None
    language: Optional[str] = None
    keywords: list[str] = field(default_factory=list)
    latest_release_number: Optional[str] = None
    latest_release_published_at: Optional[datetime] = None
    latest_stable_release_number: Optional[str] = None
    latest_stable_release_published_at: Optional[datetime] = None
    id: Optional[int] = None

    def __str__(self) -> str:
        return self.name

    @property
    def is_maintained(self) -> bool:
        return self.status not in UNMAINTAINED_STATUSES

    @property
    def is_removed(self) -> bool:
        return self.status in (PackageStatus.REMOVED, PackageStatus.HIDDEN)

    def recently_synced(self, now: Optional[datetime] = None) -> bool:
        """Return True if the package finished a refresh within 24 hours.

        Args:
            now: Reference time, defaults to the current UTC time.

        Returns:
            False when the package has never been synced.
        """
        if self.last_synced_at is None:
            return False
        now = now or datetime.now(UTC)
        return now - self.last_synced_at < RECENT_SYNC_WINDOW

    def to_api_dict(self, download_url: Optional[str] = None) -> dict[str, Any]:
        """Return the derived fields exposed to downstream consumers."""
        return {
            "name": self.name,
            "platform": self.ecosystem,
            "description": self.description,
            "language": self.language,
            "homepage": self.homepage,
            "repository_url": self.repository_url,
            "normalized_licenses": list(self.normalized_licenses),
            "rank": self.rank,
            "status": self.status.value if self.status else None,
            "latest_release_number": self.latest_release_number,
            "latest_release_published_at": _isoformat(self.latest_release_published_at),
            "latest_stable_release_number": self.latest_stable_release_number,
            "latest_stable_release_published_at": _isoformat(
                self.latest_stable_release_published_at
            ),
            "dependents_count": self.dependents_count,
            "dependent_repos_count": self.dependent_repos_count,
            "latest_download_url": download_url,
        }


def recently_synced(package: Package, now: Optional[datetime] = None) -> bool:
    """Module-level form of :meth:`Package.recently_synced`."""
    return package.recently_synced(now)


@dataclass(frozen=True)
class DependentCounts:
    """Fan-in counts produced by the dependency graph aggregator."""

    dependents_count: int
    dependent_repos_count: int


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one refresh cycle for a package.

    Attributes:
        package_id: The package that was refreshed.
        outcome: Which path the cycle took.
        synced_at: Timestamp stamped on the package.
        error: Description of the suppressed adapter failure, if any.
    """

    package_id: int
    outcome: SyncOutcome
    synced_at: datetime
    error: Optional[str] = None

    @property
    def adapter_failed(self) -> bool:
        return self.outcome is SyncOutcome.SYNCED_WITH_ADAPTER_FAILURE


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
