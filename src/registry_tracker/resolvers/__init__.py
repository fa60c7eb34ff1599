"""Repository resolvers for fetching source-hosting records.

This module provides resolvers that look up the repository a package links
to, used as a fallback source of description, homepage and license.
"""

from registry_tracker.resolvers.base import BaseRepositoryResolver
from registry_tracker.resolvers.github import GitHubResolver

__all__ = [
    "BaseRepositoryResolver",
    "GitHubResolver",
]
