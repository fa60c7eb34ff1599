"""Exceptions raised by registry_tracker.

Transient network and adapter failures are never raised to callers of the
sync path; the classes here cover the failures that are surfaced.
"""


class RegistryTrackerError(Exception):
    """Base class for all registry_tracker errors."""


class ConfigError(RegistryTrackerError):
    """Configuration file is unreadable or invalid."""


class UnknownEcosystemError(RegistryTrackerError, ValueError):
    """No adapter is registered for the requested ecosystem."""

    def __init__(self, ecosystem: str, known: list[str]) -> None:
        self.ecosystem = ecosystem
        self.known = known
        super().__init__(
            f"No adapter registered for ecosystem '{ecosystem}'. "
            f"Known ecosystems: {', '.join(known)}"
        )


class PackageNotFoundError(RegistryTrackerError, LookupError):
    """Lookup of a specific package found nothing."""


class VersionNotFoundError(RegistryTrackerError, LookupError):
    """Lookup of a specific version of a package found nothing."""

    def __init__(self, package_name: str, number: str) -> None:
        self.package_name = package_name
        self.number = number
        super().__init__(f"Version '{number}' of '{package_name}' not found")
