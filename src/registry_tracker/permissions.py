"""Reconciliation of registry owners with local permission records."""

import logging
from dataclasses import dataclass, field

from registry_tracker.adapters import AdapterRegistry
from registry_tracker.models import RegistryUser
from registry_tracker.store import PackageStore

logger = logging.getLogger(__name__)


@dataclass
class PermissionChanges:
    """Owners granted and revoked by one reconciliation."""

    added: list[RegistryUser] = field(default_factory=list)
    removed: list[RegistryUser] = field(default_factory=list)


class RegistryPermissionReconciler:
    """Mirrors a package's registry owners into permission records.

    Owners the registry lists that have no permission yet are added;
    permissions of owners the registry no longer lists are removed.
    """

    def __init__(self, store: PackageStore, adapters: AdapterRegistry) -> None:
        self.store = store
        self.adapters = adapters

    async def reconcile(self, package_id: int) -> PermissionChanges:
        """Reconcile the owners of one package.

        An empty owner list from the registry is treated as "no data" and
        leaves existing permissions untouched.

        Args:
            package_id: Package to reconcile.

        Returns:
            The owners that were added and removed.
        """
        package = await self.store.get_package(package_id)
        adapter = self.adapters.get(package.ecosystem)
        owners = await adapter.download_registry_users(package.name)
        changes = PermissionChanges()
        if not owners:
            return changes

        current = {}
        for owner in owners:
            user = await self.store.upsert_registry_user(
                RegistryUser(
                    ecosystem=package.ecosystem,
                    uuid=owner.uuid,
                    email=owner.email,
                    login=owner.login,
                    name=owner.name,
                    url=owner.url,
                )
            )
            current[user.id] = user

        existing = {user.id: user for user in await self.store.registry_owners(package_id)}

        for user_id in current.keys() - existing.keys():
            await self.store.add_permission(package_id, user_id)
            changes.added.append(current[user_id])
        for user_id in existing.keys() - current.keys():
            await self.store.remove_permission(package_id, user_id)
            changes.removed.append(existing[user_id])

        if changes.added or changes.removed:
            logger.info(
                "Owners of %s: +%d -%d", package.name, len(changes.added), len(changes.removed)
            )
        return changes
