"""Registry Tracker - Package registry metadata aggregation.

This package keeps package records from language registries up to date:
normalized licenses, dependent counts from the dependency graph, and
lifecycle status from registry existence probes.
"""

__version__ = "0.1.0"
__author__ = "forkrul"

from registry_tracker.models import (
    DependencyEdge,
    DependentCounts,
    Package,
    PackageStatus,
    RepositoryRecord,
    SyncOutcome,
    SyncResult,
    Version,
)

__all__ = [
    "__version__",
    "DependencyEdge",
    "DependentCounts",
    "Package",
    "PackageStatus",
    "RepositoryRecord",
    "SyncOutcome",
    "SyncResult",
    "Version",
]
