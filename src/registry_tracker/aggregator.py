"""Dependency fan-in aggregation.

Turns the stored dependency graph into the cached ``dependents_count`` and
``dependent_repos_count`` columns of a package.
"""

import logging

from registry_tracker.models import DependentCounts
from registry_tracker.store import PackageStore

logger = logging.getLogger(__name__)

# Above this many dependent repositories the exact join is too slow to run
# per package, so the precomputed fan-in table is read instead.
EXACT_REPOSITORY_COUNT_THRESHOLD = 1000


class DependencyGraphAggregator:
    """Recomputes fan-in counts for packages.

    Store failures are not caught here: a recompute that silently failed
    would leave a wrong count cached with nothing to show for it.

    Attributes:
        store: Store holding the dependency graph.
        threshold: Stored repository count from which the fast path is used.
    """

    def __init__(
        self, store: PackageStore, threshold: int = EXACT_REPOSITORY_COUNT_THRESHOLD
    ) -> None:
        self.store = store
        self.threshold = threshold

    async def recompute(self, package_id: int) -> DependentCounts:
        """Recompute and persist the fan-in counts of one package.

        Only columns whose value changed are written; when nothing changed
        no write happens at all.

        Args:
            package_id: Package to recompute.

        Returns:
            The freshly computed counts.
        """
        package = await self.store.get_package(package_id)

        dependents_count = await self.store.count_dependent_packages(package)
        if package.dependent_repos_count < self.threshold:
            dependent_repos_count = await self.store.count_dependent_repositories(package)
        else:
            dependent_repos_count = await self.store.count_dependent_repositories_fast(package_id)

        updates = {}
        if package.dependents_count != dependents_count:
            updates["dependents_count"] = dependents_count
        if package.dependent_repos_count != dependent_repos_count:
            updates["dependent_repos_count"] = dependent_repos_count

        if updates:
            logger.debug("Updating fan-in counts for %s: %s", package.name, updates)
            await self.store.update_columns(package_id, **updates)

        return DependentCounts(
            dependents_count=dependents_count,
            dependent_repos_count=dependent_repos_count,
        )
