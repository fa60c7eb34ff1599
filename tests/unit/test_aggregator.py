"""Tests for dependency fan-in aggregation."""

import sqlite3

import pytest

from registry_tracker.aggregator import DependencyGraphAggregator
from registry_tracker.models import DependentCounts, RepositoryRecord
from registry_tracker.store import PackageStore


@pytest.fixture
def aggregator(store: PackageStore) -> DependencyGraphAggregator:
    return DependencyGraphAggregator(store)


class TestRecompute:
    """Test suite for DependencyGraphAggregator.recompute."""

    @pytest.mark.asyncio
    async def test_no_edges_yields_zero_without_write(
        self, store: PackageStore, aggregator: DependencyGraphAggregator, add_package, mocker
    ) -> None:
        package = await add_package("lonely")
        spy = mocker.spy(store, "update_columns")

        counts = await aggregator.recompute(package.id)

        assert counts == DependentCounts(dependents_count=0, dependent_repos_count=0)
        spy.assert_not_called()

    @pytest.mark.asyncio
    async def test_multiple_versions_count_once(
        self, store: PackageStore, aggregator: DependencyGraphAggregator, add_package, add_dependent
    ) -> None:
        target = await add_package("x")
        await add_dependent(await add_package("app"), target, versions=("1.0.0", "1.1.0", "2.0.0"))

        counts = await aggregator.recompute(target.id)

        assert counts.dependents_count == 1
        assert (await store.get_package(target.id)).dependents_count == 1

    @pytest.mark.asyncio
    async def test_counts_distinct_repositories(
        self, store: PackageStore, aggregator: DependencyGraphAggregator, add_package, add_dependent
    ) -> None:
        target = await add_package("x")
        shared = RepositoryRecord(host_type="GitHub", full_name="org/mono", license="MIT")
        await add_dependent(await add_package("a"), target, repository=shared)
        await add_dependent(await add_package("b"), target, repository=shared)

        counts = await aggregator.recompute(target.id)

        assert counts == DependentCounts(dependents_count=2, dependent_repos_count=1)

    @pytest.mark.asyncio
    async def test_only_changed_columns_are_written(
        self, store: PackageStore, aggregator: DependencyGraphAggregator, add_package, add_dependent, mocker
    ) -> None:
        target = await add_package("x")
        await add_dependent(await add_package("a"), target)
        spy = mocker.spy(store, "update_columns")

        await aggregator.recompute(target.id)
        await aggregator.recompute(target.id)

        spy.assert_called_once_with(target.id, dependents_count=1)

    @pytest.mark.asyncio
    async def test_fast_path_above_threshold(
        self, store: PackageStore, add_package, add_dependent, mocker
    ) -> None:
        aggregator = DependencyGraphAggregator(store, threshold=5)
        target = await add_package("popular", dependent_repos_count=5)
        exact = mocker.spy(store, "count_dependent_repositories")
        fast = mocker.patch.object(store, "count_dependent_repositories_fast", return_value=42)

        counts = await aggregator.recompute(target.id)

        assert counts.dependent_repos_count == 42
        fast.assert_awaited_once_with(target.id)
        exact.assert_not_called()
        assert (await store.get_package(target.id)).dependent_repos_count == 42

    @pytest.mark.asyncio
    async def test_exact_path_below_threshold(
        self, store: PackageStore, add_package, mocker
    ) -> None:
        aggregator = DependencyGraphAggregator(store, threshold=5)
        target = await add_package("small", dependent_repos_count=4)
        fast = mocker.spy(store, "count_dependent_repositories_fast")

        counts = await aggregator.recompute(target.id)

        assert counts.dependent_repos_count == 0
        fast.assert_not_called()

    @pytest.mark.asyncio
    async def test_store_errors_propagate(
        self, store: PackageStore, aggregator: DependencyGraphAggregator, add_package, mocker
    ) -> None:
        package = await add_package("x")
        mocker.patch.object(
            store,
            "count_dependent_packages",
            side_effect=sqlite3.OperationalError("database is locked"),
        )

        with pytest.raises(sqlite3.OperationalError):
            await aggregator.recompute(package.id)
