"""npm adapter backed by the public registry documents."""

import logging
from datetime import datetime
from typing import Any, Optional
from urllib.parse import quote

from registry_tracker.adapters.base import (
    RegistryDependency,
    RegistryOwner,
    RegistryPackage,
    RegistryVersion,
)
from registry_tracker.adapters.http import HttpAdapter
from registry_tracker.models import Package

logger = logging.getLogger(__name__)

DEPENDENCY_KINDS = {
    "dependencies": "runtime",
    "devDependencies": "development",
    "optionalDependencies": "optional",
}


class NPMAdapter(HttpAdapter):
    """Adapter for the npm registry."""

    ecosystem = "NPM"
    registry_url = "https://registry.npmjs.org"
    site_url = "https://www.npmjs.com"

    @property
    def formatted_name(self) -> str:
        return "npm"

    @property
    def has_dependencies(self) -> bool:
        return True

    def _document_url(self, name: str) -> str:
        # Scoped names keep their "@" but the slash must be escaped
        return f"{self.registry_url}/{quote(name, safe='@')}"

    async def fetch(self, name: str) -> Optional[RegistryPackage]:
        data = await self._get_json(self._document_url(name))
        if data is None:
            return None
        return self._parse_document(data, name)

    def _parse_document(self, data: dict[str, Any], name: str) -> RegistryPackage:
        times = data.get("time") or {}
        versions = []
        for number, manifest in (data.get("versions") or {}).items():
            dependencies = [
                RegistryDependency(package_name=dep, requirements=str(req or "*"), kind=kind)
                for field_name, kind in DEPENDENCY_KINDS.items()
                for dep, req in (manifest.get(field_name) or {}).items()
            ]
            published = times.get(number)
            versions.append(
                RegistryVersion(
                    number=number,
                    published_at=datetime.fromisoformat(published.replace("Z", "+00:00"))
                    if published
                    else None,
                    dependencies=dependencies,
                )
            )

        return RegistryPackage(
            name=data.get("name") or name,
            description=data.get("description"),
            homepage=data.get("homepage"),
            repository_url=self._repository_url(data.get("repository")),
            raw_license=self._license(data.get("license")),
            keywords=[k for k in data.get("keywords") or [] if isinstance(k, str)],
            versions=versions,
        )

    @staticmethod
    def _repository_url(repository: Any) -> Optional[str]:
        if isinstance(repository, dict):
            return repository.get("url")
        if isinstance(repository, str):
            return repository
        return None

    @staticmethod
    def _license(license_field: Any) -> Optional[str]:
        # Old packages publish {"type": "MIT", "url": ...}
        if isinstance(license_field, dict):
            return license_field.get("type")
        if isinstance(license_field, str):
            return license_field
        return None

    async def download_registry_users(self, name: str) -> list[RegistryOwner]:
        data = await self._get_json(self._document_url(name))
        if not data:
            return []
        return [
            RegistryOwner(
                uuid=maintainer["name"],
                email=maintainer.get("email"),
                login=maintainer["name"],
                name=maintainer.get("name"),
                url=f"{self.site_url}/~{maintainer['name']}",
            )
            for maintainer in data.get("maintainers") or []
            if maintainer.get("name")
        ]

    def check_status_url(self, package: Package) -> Optional[str]:
        return self._document_url(package.name)

    def package_link(self, package: Package, version: Optional[str] = None) -> str:
        suffix = f"/v/{version}" if version else ""
        return f"{self.site_url}/package/{package.name}{suffix}"

    def download_url(self, name: str, version: Optional[str] = None) -> Optional[str]:
        if not version:
            return None
        basename = name.split("/")[-1]
        return f"{self.registry_url}/{name}/-/{basename}-{version}.tgz"

    def install_instructions(self, package: Package, version: Optional[str] = None) -> Optional[str]:
        pin = f"@{version}" if version else ""
        return f"npm install {package.name}{pin}"
