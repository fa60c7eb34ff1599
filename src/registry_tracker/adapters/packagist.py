"""Packagist adapter for PHP packages.

Packagist answers a request for a deleted package's page with a redirect
rather than a 404, so a 302 from the existence probe means "removed".
"""

import logging
from datetime import datetime
from typing import Any, Optional

from registry_tracker.adapters.base import (
    RegistryDependency,
    RegistryOwner,
    RegistryPackage,
    RegistryVersion,
)
from registry_tracker.adapters.http import HttpAdapter
from registry_tracker.models import Package

logger = logging.getLogger(__name__)


class PackagistAdapter(HttpAdapter):
    """Adapter for packagist.org."""

    ecosystem = "Packagist"
    removed_status_codes = frozenset({302})
    base_url = "https://packagist.org"

    @property
    def has_dependencies(self) -> bool:
        return True

    async def fetch(self, name: str) -> Optional[RegistryPackage]:
        data = await self._get_json(f"{self.base_url}/packages/{name}.json")
        if not data or "package" not in data:
            return None
        return self._parse_package(data["package"], name)

    def _parse_package(self, package: dict[str, Any], name: str) -> RegistryPackage:
        manifests = package.get("versions") or {}
        versions = []
        for number, manifest in manifests.items():
            dependencies = [
                RegistryDependency(package_name=dep, requirements=req, kind=kind)
                for field_name, kind in (("require", "runtime"), ("require-dev", "development"))
                for dep, req in (manifest.get(field_name) or {}).items()
                # "php" and "ext-*" are platform requirements, not packages
                if "/" in dep
            ]
            published = manifest.get("time")
            versions.append(
                RegistryVersion(
                    number=number,
                    published_at=datetime.fromisoformat(published) if published else None,
                    dependencies=dependencies,
                )
            )

        latest = self._latest_manifest(manifests)
        return RegistryPackage(
            name=package.get("name") or name,
            description=package.get("description"),
            homepage=latest.get("homepage"),
            repository_url=package.get("repository"),
            raw_license=",".join(latest.get("license") or []) or None,
            keywords=list(latest.get("keywords") or []),
            versions=versions,
        )

    @staticmethod
    def _latest_manifest(manifests: dict[str, dict[str, Any]]) -> dict[str, Any]:
        """Return the most recently published non-branch manifest."""
        tagged = [m for number, m in manifests.items() if not number.startswith("dev-")]
        candidates = tagged or list(manifests.values())
        if not candidates:
            return {}
        return max(candidates, key=lambda m: m.get("time") or "")

    async def download_registry_users(self, name: str) -> list[RegistryOwner]:
        data = await self._get_json(f"{self.base_url}/packages/{name}.json")
        if not data or "package" not in data:
            return []
        return [
            RegistryOwner(
                uuid=maintainer["name"],
                login=maintainer["name"],
                url=f"{self.base_url}/users/{maintainer['name']}/",
            )
            for maintainer in data["package"].get("maintainers") or []
            if maintainer.get("name")
        ]

    def check_status_url(self, package: Package) -> Optional[str]:
        return f"{self.base_url}/packages/{package.name}"

    def package_link(self, package: Package, version: Optional[str] = None) -> str:
        anchor = f"#{version}" if version else ""
        return f"{self.base_url}/packages/{package.name}{anchor}"

    def install_instructions(self, package: Package, version: Optional[str] = None) -> Optional[str]:
        pin = f":{version}" if version else ""
        return f"composer require {package.name}{pin}"
