"""Derived package details refreshed before every save.

Combines the package's own registry fields with its versions and linked
repository: normalized licenses (with repository fallback), latest and
latest stable release info, and language.
"""

from typing import Optional

from registry_tracker.licenses import format_license, normalize_licenses
from registry_tracker.models import Package, RepositoryRecord, Version

# Ecosystems whose repository description is preferred over the registry's
REPOSITORY_FIRST_ECOSYSTEMS = frozenset({"Go"})


def effective_licenses(
    package: Package, repository: Optional[RepositoryRecord]
) -> list[str]:
    """Normalize the package license, falling back to the repository's.

    Args:
        package: Package whose ``raw_license`` is normalized.
        repository: Linked repository, if any.

    Returns:
        Canonical identifiers; empty only when neither source has a license.
    """
    normalized = normalize_licenses(package.raw_license)
    if normalized:
        return normalized
    fallback = format_license(repository.license if repository else None)
    return [fallback] if fallback else []


def latest_version(versions: list[Version], stable: bool = False) -> Optional[Version]:
    """Return the highest version by release number.

    Args:
        versions: Versions of one package, in any order.
        stable: Ignore pre-releases and dev releases.

    Returns:
        The latest version, or None if there are none.
    """
    candidates = [v for v in versions if not (stable and v.is_prerelease)]
    if not candidates:
        return None
    return max(candidates, key=lambda v: v.sort_key())


def description_for(package: Package, repository: Optional[RepositoryRecord]) -> Optional[str]:
    repo_description = repository.description if repository else None
    if package.ecosystem in REPOSITORY_FIRST_ECOSYSTEMS:
        return repo_description or package.description
    return package.description or repo_description


def homepage_for(package: Package, repository: Optional[RepositoryRecord]) -> Optional[str]:
    return package.homepage or (repository.homepage if repository else None)


def update_details(
    package: Package,
    versions: list[Version],
    repository: Optional[RepositoryRecord] = None,
) -> Package:
    """Refresh the derived fields of a package in place.

    Args:
        package: Package about to be saved.
        versions: All known versions of the package.
        repository: Linked repository, if any.

    Returns:
        The same package, for chaining.
    """
    package.normalized_licenses = effective_licenses(package, repository)

    latest = latest_version(versions)
    package.latest_release_number = latest.number if latest else None
    package.latest_release_published_at = latest.published_at if latest else None

    stable = latest_version(versions, stable=True)
    package.latest_stable_release_number = stable.number if stable else None
    package.latest_stable_release_published_at = stable.published_at if stable else None

    package.versions_count = len(versions)
    if repository is not None:
        package.language = repository.language
    return package
