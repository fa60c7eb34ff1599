"""Base interface for repository resolvers.

Resolvers fetch the record of a source-hosting repository (description,
homepage, detected license, language) that a package links to. The record
supplies fallback values for fields the registry left blank.
"""

from abc import ABC, abstractmethod
from typing import Optional

from registry_tracker.models import RepositoryRecord


class BaseRepositoryResolver(ABC):
    """Abstract base class for repository resolvers.

    One resolver serves one hosting service.
    """

    @property
    @abstractmethod
    def host_type(self) -> str:
        """Return the hosting service name.

        Returns:
            Name like "GitHub", "GitLab", etc.
        """
        ...

    @abstractmethod
    async def resolve(self, full_name: str) -> Optional[RepositoryRecord]:
        """Resolve a repository by its "owner/name" path.

        Args:
            full_name: Repository path on the host.

        Returns:
            RepositoryRecord, or None if the repository cannot be found.
        """
        ...

    async def close(self) -> None:
        """Release any resources held by the resolver."""
        return None
