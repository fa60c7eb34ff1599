"""Tests for the PyPI adapter."""

from datetime import UTC, datetime
from typing import Any, AsyncGenerator

import aiohttp
import pytest
from aioresponses import aioresponses

from registry_tracker.adapters.pypi import PyPIAdapter
from registry_tracker.models import Package
from registry_tracker.store import PackageStore

REQUESTS_URL = "https://pypi.org/pypi/requests/json"


@pytest.fixture
async def adapter(store: PackageStore) -> AsyncGenerator[PyPIAdapter, None]:
    pypi = PyPIAdapter(store)
    yield pypi
    await pypi.close()


class TestParseResponse:
    """Test suite for mapping PyPI documents."""

    @pytest.mark.asyncio
    async def test_maps_metadata(self, adapter: PyPIAdapter, sample_pypi_response: dict[str, Any]) -> None:
        data = adapter._parse_response(sample_pypi_response, "requests")

        assert data.name == "requests"
        assert data.description == "Python HTTP for Humans."
        assert data.repository_url == "https://github.com/psf/requests"
        assert data.raw_license == "Apache 2.0"
        assert data.keywords == ["http", "client"]
        assert sorted(v.number for v in data.versions) == ["2.30.0", "2.31.0", "3.0.0b1"]

    @pytest.mark.asyncio
    async def test_dependencies_only_for_latest_release(
        self, adapter: PyPIAdapter, sample_pypi_response: dict[str, Any]
    ) -> None:
        data = adapter._parse_response(sample_pypi_response, "requests")
        versions = {v.number: v for v in data.versions}

        assert versions["2.30.0"].dependencies == []
        latest = versions["2.31.0"].dependencies
        assert [(d.package_name, d.kind) for d in latest] == [
            ("charset-normalizer", "runtime"),
            ("idna", "runtime"),
            ("PySocks", "optional"),
        ]

    @pytest.mark.asyncio
    async def test_earliest_upload_is_publish_time(
        self, adapter: PyPIAdapter, sample_pypi_response: dict[str, Any]
    ) -> None:
        data = adapter._parse_response(sample_pypi_response, "requests")
        versions = {v.number: v for v in data.versions}

        assert versions["2.31.0"].published_at == datetime(2023, 5, 22, 15, 12, 42, 313000, tzinfo=UTC)
        assert versions["3.0.0b1"].published_at is None

    @pytest.mark.asyncio
    async def test_license_falls_back_to_classifiers(self, adapter: PyPIAdapter) -> None:
        info = {
            "license": "UNKNOWN",
            "classifiers": [
                "License :: OSI Approved :: MIT License",
                "License :: OSI Approved :: BSD License",
            ],
        }
        assert adapter._extract_license(info) == "MIT License, BSD License"

    @pytest.mark.asyncio
    async def test_license_expression_preferred(self, adapter: PyPIAdapter) -> None:
        info = {"license_expression": "MIT OR Apache-2.0", "license": "see file"}
        assert adapter._extract_license(info) == "MIT OR Apache-2.0"

    @pytest.mark.asyncio
    async def test_no_license(self, adapter: PyPIAdapter) -> None:
        assert adapter._extract_license({}) is None

    @pytest.mark.asyncio
    async def test_repository_url_requires_known_host(self, adapter: PyPIAdapter) -> None:
        assert adapter._extract_repository_url({"Source": "https://example.com/src"}) is None


class TestUpdate:
    """Test suite for PyPIAdapter.update."""

    @pytest.mark.asyncio
    async def test_update_persists_package(
        self, store: PackageStore, adapter: PyPIAdapter, sample_pypi_response: dict[str, Any]
    ) -> None:
        with aioresponses() as m:
            m.get(REQUESTS_URL, payload=sample_pypi_response)
            assert await adapter.update("requests") is True

        package = await store.find_package("PyPI", "requests")
        assert package.normalized_licenses == ["Apache-2.0"]
        assert package.versions_count == 3
        assert package.latest_release_number == "3.0.0b1"
        assert package.latest_stable_release_number == "2.31.0"

        latest = await store.find_version(package, "2.31.0")
        edges = await store.dependencies_for(latest.id)
        assert {e.package_name for e in edges} == {"charset-normalizer", "idna", "PySocks"}
        assert all(e.ecosystem == "PyPI" for e in edges)

    @pytest.mark.asyncio
    async def test_update_unknown_package(self, store: PackageStore, adapter: PyPIAdapter) -> None:
        with aioresponses() as m:
            m.get("https://pypi.org/pypi/nope/json", status=404)
            assert await adapter.update("nope") is False

        assert await store.count_packages() == 0

    @pytest.mark.asyncio
    async def test_update_server_error_raises(self, adapter: PyPIAdapter) -> None:
        with aioresponses() as m:
            m.get(REQUESTS_URL, status=503)
            with pytest.raises(aiohttp.ClientResponseError):
                await adapter.update("requests")


class TestLinks:
    """Test suite for URL helpers."""

    @pytest.mark.asyncio
    async def test_urls(self, adapter: PyPIAdapter) -> None:
        package = Package(ecosystem="PyPI", name="requests")

        assert adapter.check_status_url(package) == REQUESTS_URL
        assert adapter.package_link(package) == "https://pypi.org/project/requests/"
        assert adapter.package_link(package, "2.31.0") == "https://pypi.org/project/requests/2.31.0/"
        assert adapter.download_url("requests", "2.31.0") == (
            "https://pypi.org/packages/source/r/requests/requests-2.31.0.tar.gz"
        )
        assert adapter.download_url("requests") is None
        assert adapter.documentation_url("requests") == "https://requests.readthedocs.io/en/latest/"
        assert adapter.install_instructions(package, "2.31.0") == "pip install requests==2.31.0"

    @pytest.mark.asyncio
    async def test_capabilities(self, adapter: PyPIAdapter) -> None:
        assert adapter.formatted_name == "PyPI"
        assert adapter.has_versions is True
        assert adapter.has_dependencies is True
        assert adapter.is_removed_response(404)
        assert not adapter.is_removed_response(302)
