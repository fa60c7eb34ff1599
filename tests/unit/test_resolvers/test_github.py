"""Tests for the GitHub repository resolver."""

from typing import Any, AsyncGenerator
from unittest.mock import AsyncMock

import aiohttp
import pytest
from aioresponses import aioresponses

from registry_tracker.resolvers.github import GitHubResolver

REPO_URL = "https://api.github.com/repos/psf/requests"


@pytest.fixture
async def github_resolver() -> AsyncGenerator[GitHubResolver, None]:
    """Return a GitHubResolver instance without token."""
    resolver = GitHubResolver()
    yield resolver
    await resolver.close()


@pytest.fixture
async def github_resolver_with_token() -> AsyncGenerator[GitHubResolver, None]:
    """Return a GitHubResolver instance with token."""
    resolver = GitHubResolver(github_token="ghp_test123token")
    yield resolver
    await resolver.close()


class TestGitHubResolver:
    """Test suite for GitHubResolver."""

    @pytest.mark.asyncio
    async def test_host_type(self, github_resolver: GitHubResolver) -> None:
        assert github_resolver.host_type == "GitHub"

    @pytest.mark.asyncio
    async def test_resolve_successful(
        self,
        github_resolver: GitHubResolver,
        sample_github_repository_response: dict[str, Any],
    ) -> None:
        """Test successful repository resolution from the GitHub API."""
        with aioresponses() as m:
            m.get(REPO_URL, payload=sample_github_repository_response, status=200)

            result = await github_resolver.resolve("psf/requests")

        assert result is not None
        assert result.host_type == "GitHub"
        assert result.full_name == "psf/requests"
        assert result.license == "Apache-2.0"
        assert result.language == "Python"
        assert result.stargazers_count == 51000
        assert result.is_open_source

    @pytest.mark.asyncio
    async def test_noassertion_license_becomes_other(
        self,
        github_resolver: GitHubResolver,
        sample_github_repository_response: dict[str, Any],
    ) -> None:
        sample_github_repository_response["license"]["spdx_id"] = "NOASSERTION"

        with aioresponses() as m:
            m.get(REPO_URL, payload=sample_github_repository_response)
            result = await github_resolver.resolve("psf/requests")

        assert result.license == "Other"

    @pytest.mark.asyncio
    async def test_repository_without_license(
        self,
        github_resolver: GitHubResolver,
        sample_github_repository_response: dict[str, Any],
    ) -> None:
        sample_github_repository_response["license"] = None

        with aioresponses() as m:
            m.get(REPO_URL, payload=sample_github_repository_response)
            result = await github_resolver.resolve("psf/requests")

        assert result.license is None
        assert not result.is_open_source

    @pytest.mark.asyncio
    async def test_resolve_not_found(self, github_resolver: GitHubResolver) -> None:
        with aioresponses() as m:
            m.get(REPO_URL, status=404)
            assert await github_resolver.resolve("psf/requests") is None

    @pytest.mark.asyncio
    async def test_network_error(self, github_resolver: GitHubResolver) -> None:
        with aioresponses() as m:
            m.get(REPO_URL, exception=aiohttp.ClientError("Network error"))
            assert await github_resolver.resolve("psf/requests") is None

    @pytest.mark.asyncio
    async def test_token_is_sent(
        self,
        github_resolver_with_token: GitHubResolver,
        sample_github_repository_response: dict[str, Any],
    ) -> None:
        with aioresponses() as m:
            m.get(REPO_URL, payload=sample_github_repository_response)
            result = await github_resolver_with_token.resolve("psf/requests")

        session = await github_resolver_with_token._get_session()
        assert result is not None
        assert session.headers["Authorization"] == "Bearer ghp_test123token"
        assert session.headers["Accept"] == "application/vnd.github+json"

    @pytest.mark.asyncio
    async def test_rate_limit_retry(
        self,
        github_resolver: GitHubResolver,
        sample_github_repository_response: dict[str, Any],
        mocker,
    ) -> None:
        """Test that a 403 is retried after the Retry-After delay."""
        sleep = mocker.patch("registry_tracker.resolvers.github.asyncio.sleep", new=AsyncMock())

        with aioresponses() as m:
            m.get(REPO_URL, status=403, headers={"Retry-After": "2"})
            m.get(REPO_URL, payload=sample_github_repository_response)

            result = await github_resolver.resolve("psf/requests")

        assert result is not None
        sleep.assert_awaited_once_with(2)

    @pytest.mark.asyncio
    async def test_rate_limit_exhausted(self, github_resolver: GitHubResolver, mocker) -> None:
        sleep = mocker.patch("registry_tracker.resolvers.github.asyncio.sleep", new=AsyncMock())

        with aioresponses() as m:
            m.get(REPO_URL, status=403, repeat=True)
            assert await github_resolver.resolve("psf/requests") is None

        assert [call.args[0] for call in sleep.await_args_list] == [1, 2, 4]
