"""Pytest configuration and fixtures."""

from datetime import UTC, datetime
from typing import Any, AsyncGenerator, Awaitable, Callable

import pytest

from registry_tracker.models import DependencyEdge, Package, RepositoryRecord
from registry_tracker.store import PackageStore

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
async def store(tmp_path) -> AsyncGenerator[PackageStore, None]:
    """Return a connected store backed by a temporary database."""
    async with PackageStore(tmp_path / "registry.db") as package_store:
        yield package_store


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Return a clock frozen at FIXED_NOW."""
    return lambda: FIXED_NOW


@pytest.fixture
def add_package(store: PackageStore) -> Callable[..., Awaitable[Package]]:
    """Return a helper that saves a package."""

    async def _add(name: str, ecosystem: str = "NPM", **fields: Any) -> Package:
        return await store.save_package(Package(ecosystem=ecosystem, name=name, **fields))

    return _add


@pytest.fixture
def add_dependent(store: PackageStore) -> Callable[..., Awaitable[Package]]:
    """Return a helper that makes ``dependent`` depend on ``target`` from the given versions.

    When ``repository`` is set, the dependent package is linked to it.
    """

    async def _add(
        dependent: Package,
        target: Package,
        versions: tuple[str, ...] = ("1.0.0",),
        repository: RepositoryRecord | None = None,
    ) -> Package:
        for number in versions:
            version = await store.upsert_version(dependent.id, number)
            await store.replace_dependencies(
                version.id,
                [
                    DependencyEdge(
                        version_id=version.id,
                        package_name=target.name,
                        ecosystem=target.ecosystem,
                    )
                ],
            )
        if repository is not None:
            saved = await store.upsert_repository(repository)
            await store.link_repository(dependent.id, saved.id)
        return await store.get_package(dependent.id)

    return _add


@pytest.fixture
def sample_pypi_response() -> dict[str, Any]:
    """Return a trimmed PyPI JSON API document for requests."""
    return {
        "info": {
            "name": "requests",
            "version": "2.31.0",
            "summary": "Python HTTP for Humans.",
            "home_page": "https://requests.readthedocs.io",
            "license": "Apache 2.0",
            "keywords": "http, client",
            "classifiers": [
                "License :: OSI Approved :: Apache Software License",
                "Programming Language :: Python :: 3",
            ],
            "project_urls": {
                "Documentation": "https://requests.readthedocs.io",
                "Source": "https://github.com/psf/requests",
            },
            "requires_dist": [
                "charset-normalizer<4,>=2",
                "idna<4,>=2.5",
                'PySocks!=1.5.7,>=1.5.6; extra == "socks"',
            ],
        },
        "releases": {
            "2.30.0": [{"upload_time_iso_8601": "2023-05-03T15:00:00.000000Z"}],
            "2.31.0": [
                {"upload_time_iso_8601": "2023-05-22T15:12:44.175000Z"},
                {"upload_time_iso_8601": "2023-05-22T15:12:42.313000Z"},
            ],
            "3.0.0b1": [],
        },
    }


@pytest.fixture
def sample_npm_document() -> dict[str, Any]:
    """Return a trimmed npm registry document for left-pad."""
    return {
        "name": "left-pad",
        "description": "String left pad",
        "homepage": "https://github.com/stevemao/left-pad#readme",
        "repository": {"type": "git", "url": "git+https://github.com/stevemao/left-pad.git"},
        "license": "WTFPL",
        "keywords": ["leftpad", "left", "pad"],
        "maintainers": [
            {"name": "stevemao", "email": "steve@example.com"},
            {"name": "azer", "email": "azer@example.com"},
        ],
        "time": {
            "1.2.0": "2017-12-01T00:00:00.000Z",
            "1.3.0": "2018-04-09T00:00:00.000Z",
        },
        "versions": {
            "1.2.0": {"devDependencies": {"tape": "*"}},
            "1.3.0": {
                "dependencies": {"lodash": "^4.0.0"},
                "devDependencies": {"tape": "^4.0.0"},
                "optionalDependencies": {"fsevents": "~1.0"},
            },
        },
    }


@pytest.fixture
def sample_packagist_document() -> dict[str, Any]:
    """Return a trimmed Packagist package document for monolog."""
    return {
        "package": {
            "name": "monolog/monolog",
            "description": "Sends your logs to files, sockets, inboxes, databases and various web services",
            "repository": "https://github.com/Seldaek/monolog",
            "maintainers": [{"name": "Seldaek"}],
            "versions": {
                "dev-main": {
                    "time": "2024-03-01T00:00:00+00:00",
                    "license": ["MIT"],
                    "require": {"php": ">=8.1"},
                },
                "3.5.0": {
                    "time": "2023-10-27T15:32:31+00:00",
                    "homepage": "https://github.com/Seldaek/monolog",
                    "license": ["MIT"],
                    "keywords": ["log", "logging"],
                    "require": {"php": ">=8.1", "psr/log": "^2.0 || ^3.0"},
                    "require-dev": {"phpunit/phpunit": "^10.1", "ext-json": "*"},
                },
            },
        }
    }


@pytest.fixture
def sample_github_repository_response() -> dict[str, Any]:
    """Return a trimmed GitHub repository API response."""
    return {
        "full_name": "psf/requests",
        "description": "A simple, yet elegant, HTTP library.",
        "homepage": "https://requests.readthedocs.io/en/latest/",
        "language": "Python",
        "stargazers_count": 51000,
        "license": {
            "key": "apache-2.0",
            "name": "Apache License 2.0",
            "spdx_id": "Apache-2.0",
        },
    }
