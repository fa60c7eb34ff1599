"""GitHub repository resolver.

Looks up repositories on GitHub's REST API. Rate-limited responses (403) are
retried after the Retry-After delay, or with exponential backoff when GitHub
sends none.
"""

import asyncio
import logging
from typing import Any, Optional

import aiohttp

from registry_tracker.adapters.http import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT, SessionOwner
from registry_tracker.models import RepositoryRecord
from registry_tracker.resolvers.base import BaseRepositoryResolver

logger = logging.getLogger(__name__)

NOASSERTION = "NOASSERTION"
MAX_RETRIES = 3


class GitHubResolver(SessionOwner, BaseRepositoryResolver):
    """Resolves "owner/name" paths to GitHub repository records.

    Attributes:
        github_token: Optional personal access token. Raises the API rate
            limit from 60 to 5000 requests/hour.
        timeout: Total timeout of each request, in seconds.
    """

    api_url = "https://api.github.com"

    def __init__(
        self,
        github_token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.github_token = github_token
        self.timeout = timeout
        self.user_agent = user_agent

    @property
    def host_type(self) -> str:
        return "GitHub"

    def _session_headers(self) -> dict[str, str]:
        headers = super()._session_headers()
        headers["Accept"] = "application/vnd.github+json"
        if self.github_token:
            headers["Authorization"] = f"Bearer {self.github_token}"
        return headers

    @staticmethod
    def _retry_delay(response: aiohttp.ClientResponse, attempt: int) -> int:
        retry_after = response.headers.get("Retry-After")
        if retry_after and retry_after.isdigit():
            return int(retry_after)
        return 2**attempt

    async def _get_repository(self, full_name: str) -> Optional[dict[str, Any]]:
        """Fetch the raw repository document.

        Returns:
            The decoded document, or None when GitHub does not return one
            (missing repository, exhausted rate limit or network failure).
        """
        url = f"{self.api_url}/repos/{full_name}"
        session = await self._get_session()

        for attempt in range(MAX_RETRIES + 1):
            try:
                async with session.get(url) as response:
                    if response.status == 200:
                        return await response.json()
                    if response.status != 403:
                        logger.debug("GitHub returned %d for %s", response.status, full_name)
                        return None
                    if attempt == MAX_RETRIES:
                        break
                    delay = self._retry_delay(response, attempt)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.warning("Network error fetching GitHub repository %s: %s", full_name, e)
                return None

            logger.debug("Rate limited on %s, retrying in %ds", full_name, delay)
            await asyncio.sleep(delay)

        logger.warning("GitHub rate limit exhausted for %s", full_name)
        return None

    async def resolve(self, full_name: str) -> Optional[RepositoryRecord]:
        """Resolve a GitHub repository.

        Licenses GitHub could not classify (NOASSERTION) are reported as
        "Other".

        Args:
            full_name: "owner/name" path on GitHub.

        Returns:
            RepositoryRecord, or None if the repository could not be fetched.
        """
        data = await self._get_repository(full_name)
        if data is None:
            return None

        license_id = (data.get("license") or {}).get("spdx_id")
        if license_id == NOASSERTION:
            license_id = "Other"

        return RepositoryRecord(
            host_type=self.host_type,
            full_name=data.get("full_name") or full_name,
            description=data.get("description"),
            homepage=data.get("homepage") or None,
            license=license_id,
            language=data.get("language"),
            stargazers_count=data.get("stargazers_count") or 0,
        )

    async def __aenter__(self) -> "GitHubResolver":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
