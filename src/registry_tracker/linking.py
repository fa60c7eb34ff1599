"""Linking packages to their source repositories.

Parses a package's ``repository_url``, resolves it with the resolver for its
host, stores the repository record and links it to the package.
"""

import logging
import re
from typing import Iterable, Optional

from registry_tracker.models import RepositoryRecord
from registry_tracker.resolvers.base import BaseRepositoryResolver
from registry_tracker.store import PackageStore

logger = logging.getLogger(__name__)

KNOWN_HOSTS = {
    "github.com": "GitHub",
    "gitlab.com": "GitLab",
    "bitbucket.org": "Bitbucket",
}

# Matches https://, git+https://, git://, ssh (git@host:owner/repo) and www. forms
REPOSITORY_URL_PATTERN = re.compile(
    r"(?:^|[/@.])(github\.com|gitlab\.com|bitbucket\.org)[/:]([\w.-]+)/([\w.-]+)",
    re.IGNORECASE,
)


def parse_repository_url(url: Optional[str]) -> Optional[tuple[str, str]]:
    """Parse a repository URL on a known host.

    Args:
        url: Repository URL in any of the common git URL forms.

    Returns:
        Tuple of (host type, "owner/name"), or None for unknown hosts.
    """
    if not url:
        return None
    match = REPOSITORY_URL_PATTERN.search(url.strip())
    if match is None:
        return None

    host, owner, repo = match.groups()
    if repo.endswith(".git"):
        repo = repo[:-4]
    if not owner or not repo:
        return None
    return KNOWN_HOSTS[host.lower()], f"{owner}/{repo}"


def known_repository_host(url: Optional[str]) -> Optional[str]:
    """Return the host type ("GitHub", "GitLab", "Bitbucket") of a repository URL."""
    parsed = parse_repository_url(url)
    return parsed[0] if parsed else None


def known_repository_host_name(url: Optional[str]) -> Optional[str]:
    """Return the "owner/name" path of a repository URL on a known host."""
    parsed = parse_repository_url(url)
    return parsed[1] if parsed else None


class RepositoryLinker:
    """Resolves and links the repository of a package.

    Safe to run repeatedly for the same package: the repository record is
    upserted and the link is only written when it changes.

    Attributes:
        store: Store holding packages and repositories.
        resolvers: Resolvers keyed by host type.
    """

    def __init__(self, store: PackageStore, resolvers: Iterable[BaseRepositoryResolver]) -> None:
        self.store = store
        self.resolvers = {resolver.host_type: resolver for resolver in resolvers}

    async def link(self, package_id: int) -> Optional[RepositoryRecord]:
        """Resolve and link the repository of a package.

        Args:
            package_id: Package to link.

        Returns:
            The linked repository record, or None if nothing was linked.
        """
        package = await self.store.get_package(package_id)
        parsed = parse_repository_url(package.repository_url)
        if parsed is None:
            logger.debug("No known repository host for %s", package.name)
            return None

        host_type, full_name = parsed
        resolver = self.resolvers.get(host_type)
        if resolver is None:
            logger.debug("No resolver for %s repositories", host_type)
            return None

        record = await resolver.resolve(full_name)
        if record is None:
            logger.info("Repository %s/%s of %s not found", host_type, full_name, package.name)
            return None

        repository = await self.store.upsert_repository(record)
        package.repository_id = repository.id
        # Saving re-derives license, language and description fallbacks
        await self.store.save_package(package)
        logger.info("Linked %s to %s/%s", package.name, host_type, repository.full_name)
        return repository

    async def close(self) -> None:
        for resolver in self.resolvers.values():
            await resolver.close()
