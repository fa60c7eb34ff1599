"""PyPI adapter backed by the PyPI JSON API.

Reads the package document at ``https://pypi.org/pypi/<name>/json``. The
license is taken from the ``license`` field, falling back to the license
classifiers when that field is empty or ``UNKNOWN``.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from packaging.requirements import InvalidRequirement, Requirement

from registry_tracker.adapters.base import (
    RegistryDependency,
    RegistryPackage,
    RegistryVersion,
)
from registry_tracker.adapters.http import HttpAdapter
from registry_tracker.models import Package

logger = logging.getLogger(__name__)

# project_urls keys that usually point at the source repository, in order
REPOSITORY_KEYS = [
    "Source",
    "Repository",
    "Source Code",
    "source",
    "repository",
    "Code",
    "GitHub",
    "GitLab",
]

REPOSITORY_HOSTS = ["github.com", "gitlab.com", "bitbucket.org"]


class PyPIAdapter(HttpAdapter):
    """Adapter for the Python Package Index.

    Only the latest release's ``requires_dist`` is published by the JSON
    API, so dependency edges are recorded for that release alone.
    """

    ecosystem = "PyPI"
    base_url = "https://pypi.org"

    @property
    def has_dependencies(self) -> bool:
        return True

    async def fetch(self, name: str) -> Optional[RegistryPackage]:
        data = await self._get_json(f"{self.base_url}/pypi/{name}/json")
        if data is None:
            return None
        return self._parse_response(data, name)

    def _parse_response(self, data: dict[str, Any], name: str) -> RegistryPackage:
        """Map a PyPI JSON document onto registry metadata.

        Args:
            data: PyPI JSON API response.
            name: Requested package name.

        Returns:
            Mapped metadata.
        """
        info = data.get("info") or {}
        project_urls = info.get("project_urls") or {}

        versions = []
        latest = info.get("version")
        for number, files in (data.get("releases") or {}).items():
            dependencies = (
                self._parse_requirements(info.get("requires_dist") or [])
                if number == latest
                else []
            )
            versions.append(
                RegistryVersion(
                    number=number,
                    published_at=self._published_at(files),
                    dependencies=dependencies,
                )
            )

        return RegistryPackage(
            name=info.get("name") or name,
            description=info.get("summary"),
            homepage=info.get("home_page") or project_urls.get("Homepage"),
            repository_url=self._extract_repository_url(project_urls),
            raw_license=self._extract_license(info),
            keywords=self._parse_keywords(info.get("keywords")),
            versions=versions,
        )

    def _extract_repository_url(self, project_urls: dict[str, str]) -> Optional[str]:
        """Extract a source-hosting URL from project_urls.

        Args:
            project_urls: Dictionary of project URLs from PyPI metadata.

        Returns:
            Repository URL if found, None otherwise.
        """
        for key in REPOSITORY_KEYS:
            url = project_urls.get(key)
            if url and any(host in url.lower() for host in REPOSITORY_HOSTS):
                return url
        return None

    def _extract_license(self, info: dict[str, Any]) -> Optional[str]:
        """Return the raw license text, falling back to classifiers.

        Args:
            info: The "info" section of the PyPI JSON response.

        Returns:
            Raw license text, or None if none is declared.
        """
        license_field = (info.get("license_expression") or info.get("license") or "").strip()
        if license_field and license_field.upper() != "UNKNOWN":
            return license_field

        # "License :: OSI Approved :: MIT License" -> "MIT License"
        names = [
            classifier.split(" :: ")[-1].strip()
            for classifier in info.get("classifiers") or []
            if classifier.startswith("License :: ") and classifier.count(" :: ") >= 2
        ]
        return ", ".join(names) if names else None

    def _parse_requirements(self, requires_dist: list[str]) -> list[RegistryDependency]:
        dependencies = []
        for line in requires_dist:
            try:
                requirement = Requirement(line)
            except InvalidRequirement:
                logger.debug("Skipping unparseable requirement: %s", line)
                continue
            marker = str(requirement.marker) if requirement.marker else ""
            dependencies.append(
                RegistryDependency(
                    package_name=requirement.name,
                    requirements=str(requirement.specifier) or "*",
                    kind="optional" if "extra" in marker else "runtime",
                )
            )
        return dependencies

    @staticmethod
    def _parse_keywords(keywords: Optional[str]) -> list[str]:
        if not keywords:
            return []
        separator = "," if "," in keywords else None
        return [k.strip() for k in keywords.split(separator) if k.strip()]

    @staticmethod
    def _published_at(files: list[dict[str, Any]]) -> Optional[datetime]:
        times = [f["upload_time_iso_8601"] for f in files if f.get("upload_time_iso_8601")]
        if not times:
            return None
        return min(datetime.fromisoformat(t.replace("Z", "+00:00")) for t in times)

    def check_status_url(self, package: Package) -> Optional[str]:
        return f"{self.base_url}/pypi/{package.name}/json"

    def package_link(self, package: Package, version: Optional[str] = None) -> str:
        suffix = f"{version}/" if version else ""
        return f"{self.base_url}/project/{package.name}/{suffix}"

    def download_url(self, name: str, version: Optional[str] = None) -> Optional[str]:
        if not version:
            return None
        return f"{self.base_url}/packages/source/{name[0]}/{name}/{name}-{version}.tar.gz"

    def documentation_url(self, name: str, version: Optional[str] = None) -> Optional[str]:
        return f"https://{name}.readthedocs.io/en/{version or 'latest'}/"

    def install_instructions(self, package: Package, version: Optional[str] = None) -> Optional[str]:
        pin = f"=={version}" if version else ""
        return f"pip install {package.name}{pin}"
