"""Tests for the package status resolver."""

from typing import AsyncGenerator

import aiohttp
import pytest
from aioresponses import aioresponses

from registry_tracker.adapters import AdapterRegistry
from registry_tracker.models import PackageStatus
from registry_tracker.status import StatusResolver
from registry_tracker.store import PackageStore

NPM_URL = "https://registry.npmjs.org/left-pad"
PACKAGIST_URL = "https://packagist.org/packages/monolog/monolog"


@pytest.fixture
async def adapters(store: PackageStore) -> AsyncGenerator[AdapterRegistry, None]:
    registry = AdapterRegistry.build(["NPM", "Packagist"], store)
    yield registry
    await registry.close()


@pytest.fixture
async def resolver(store: PackageStore, adapters: AdapterRegistry) -> AsyncGenerator[StatusResolver, None]:
    status_resolver = StatusResolver(store, adapters)
    yield status_resolver
    await status_resolver.close()


class TestCheckStatus:
    """Test suite for StatusResolver.check_status."""

    @pytest.mark.asyncio
    async def test_not_found_marks_removed(
        self, store: PackageStore, resolver: StatusResolver, add_package
    ) -> None:
        package = await add_package("left-pad")

        with aioresponses() as m:
            m.head(NPM_URL, status=404)
            status = await resolver.check_status(package)

        assert status is PackageStatus.REMOVED
        assert package.status is PackageStatus.REMOVED
        assert (await store.get_package(package.id)).status is PackageStatus.REMOVED

    @pytest.mark.asyncio
    async def test_bad_request_marks_removed(self, resolver: StatusResolver, add_package) -> None:
        package = await add_package("left-pad")

        with aioresponses() as m:
            m.head(NPM_URL, status=400)
            assert await resolver.check_status(package) is PackageStatus.REMOVED

    @pytest.mark.asyncio
    async def test_healthy_package_keeps_status(
        self, resolver: StatusResolver, add_package
    ) -> None:
        package = await add_package("left-pad", status=PackageStatus.DEPRECATED)

        with aioresponses() as m:
            m.head(NPM_URL, status=200)
            assert await resolver.check_status(package) is PackageStatus.DEPRECATED

    @pytest.mark.asyncio
    async def test_reset_clears_removed_status(
        self, store: PackageStore, resolver: StatusResolver, add_package
    ) -> None:
        package = await add_package("left-pad", status=PackageStatus.REMOVED)

        with aioresponses() as m:
            m.head(NPM_URL, status=200)
            status = await resolver.check_status(package, reset_if_healthy=True)

        assert status is None
        assert (await store.get_package(package.id)).status is None

    @pytest.mark.asyncio
    async def test_redirect_is_not_removal_for_npm(self, resolver: StatusResolver, add_package) -> None:
        package = await add_package("left-pad")

        with aioresponses() as m:
            m.head(NPM_URL, status=302)
            assert await resolver.check_status(package) is None

    @pytest.mark.asyncio
    async def test_packagist_redirect_marks_removed(
        self, resolver: StatusResolver, add_package
    ) -> None:
        package = await add_package("monolog/monolog", ecosystem="Packagist")

        with aioresponses() as m:
            m.head(PACKAGIST_URL, status=302)
            assert await resolver.check_status(package) is PackageStatus.REMOVED

    @pytest.mark.asyncio
    async def test_packagist_not_found_is_not_removal(
        self, resolver: StatusResolver, add_package
    ) -> None:
        package = await add_package("monolog/monolog", ecosystem="Packagist")

        with aioresponses() as m:
            m.head(PACKAGIST_URL, status=404)
            assert await resolver.check_status(package) is None

    @pytest.mark.asyncio
    async def test_network_error_leaves_status_unchanged(
        self, store: PackageStore, resolver: StatusResolver, add_package, mocker
    ) -> None:
        package = await add_package("left-pad", status=PackageStatus.REMOVED)
        spy = mocker.spy(store, "set_status")

        with aioresponses() as m:
            m.head(NPM_URL, exception=aiohttp.ClientConnectionError("refused"))
            status = await resolver.check_status(package, reset_if_healthy=True)

        assert status is PackageStatus.REMOVED
        spy.assert_not_called()

    @pytest.mark.asyncio
    async def test_timeout_leaves_status_unchanged(self, resolver: StatusResolver, add_package) -> None:
        package = await add_package("left-pad")

        with aioresponses() as m:
            m.head(NPM_URL, exception=TimeoutError())
            assert await resolver.check_status(package) is None

    @pytest.mark.asyncio
    async def test_unknown_ecosystem_is_inconclusive(
        self, resolver: StatusResolver, add_package
    ) -> None:
        package = await add_package("requests", ecosystem="PyPI")
        assert await resolver.check_status(package) is None

    @pytest.mark.asyncio
    async def test_no_status_url_is_noop(
        self, resolver: StatusResolver, adapters: AdapterRegistry, add_package, mocker
    ) -> None:
        package = await add_package("left-pad")
        mocker.patch.object(adapters.get("NPM"), "check_status_url", return_value=None)
        probe = mocker.spy(resolver, "probe")

        assert await resolver.check_status(package) is None
        probe.assert_not_called()

    @pytest.mark.asyncio
    async def test_probe_does_not_follow_redirects(self, resolver: StatusResolver) -> None:
        with aioresponses() as m:
            m.head(NPM_URL, status=302, headers={"Location": "https://example.com/"})
            assert await resolver.probe(NPM_URL) == 302
