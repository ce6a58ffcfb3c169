"""
GitHub REST API client for Org Insights.

Every request goes through ``_get`` so that status codes are mapped to typed
errors in one place and network failures surface as TransientUpstreamError.
"""

import logging
from typing import Any

import httpx

from org_insights.errors import (
    GitHubApiError,
    GitHubInsightsError,
    NotFoundError,
    TransientUpstreamError,
    raise_for_github_status,
)
from org_insights.models import Contributor, GitHubUser, HealthStatus, Repository
from org_insights.pagination import (
    MAX_PER_PAGE,
    fetch_all_pages,
    fetch_all_pages_best_effort,
    parse_last_page,
)

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"
GITHUB_WEB = "https://github.com"


class GitHubClient:
    """Organization-scoped access to the GitHub REST API."""

    def __init__(
        self,
        organization: str,
        http_client: httpx.AsyncClient,
        token_configured: bool = False,
    ):
        """
        Initialize the client.

        Args:
            organization: Organization login all requests are scoped to.
            http_client: Async client carrying auth headers and timeouts.
            token_configured: Whether the client sends a token (changes the
                guidance attached to rate-limit errors).
        """
        self.organization = organization
        self.http_client = http_client
        self.token_configured = token_configured
        if not token_configured:
            logger.warning(
                "No GitHub token configured. API rate limits will be lower "
                "(60/hour vs 5000/hour)"
            )

    def get_profile_url(self, login: str) -> str:
        return f"{GITHUB_WEB}/{login}"

    async def _get(
        self, url: str, params: dict[str, Any] | None = None
    ) -> httpx.Response:
        try:
            response = await self.http_client.get(url, params=params)
        except httpx.TransportError as e:
            raise TransientUpstreamError(
                f"Network error while calling GitHub: {e}"
            ) from e
        raise_for_github_status(response, self.organization, self.token_configured)
        return response

    async def _get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        response = await self._get(url, params)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise GitHubApiError(
                f"Invalid JSON from {url}", status_code=response.status_code
            ) from e

    async def _get_list(self, url: str, params: dict[str, Any] | None = None) -> list:
        payload = await self._get_json(url, params)
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise GitHubApiError(f"Expected a JSON array from {url}")
        return payload

    # --- Repositories ---

    async def fetch_repositories_page(
        self, page: int, per_page: int
    ) -> list[Repository]:
        payload = await self._get_list(
            f"{GITHUB_API}/orgs/{self.organization}/repos",
            {"page": page, "per_page": per_page, "sort": "updated"},
        )
        return [Repository.from_api(item) for item in payload if isinstance(item, dict)]

    async def fetch_all_repositories(
        self, max_repositories: int | None = None
    ) -> list[Repository]:
        """
        Fetch organization repositories, most recently updated first.

        Args:
            max_repositories: Cap on returned repositories (None/0 = unlimited).
        """
        if max_repositories:
            logger.info("Repository limit set to %d", max_repositories)
        else:
            logger.info("Fetching all repositories (no limit)")

        repos = await fetch_all_pages(
            self.fetch_repositories_page, MAX_PER_PAGE, max_repositories
        )
        logger.info("Fetched %d repositories", len(repos))
        return repos

    async def fetch_repository_count(self) -> int:
        """
        Count organization repositories with as few requests as possible.

        With ``per_page=1`` the ``rel="last"`` page number of the Link header
        equals the repository count. Without a Link header, one full page is
        fetched and counted.
        """
        response = await self._get(
            f"{GITHUB_API}/orgs/{self.organization}/repos", {"per_page": 1}
        )
        last_page = parse_last_page(response.headers.get("Link"))
        if last_page is not None:
            logger.debug("Found %d pages of repositories", last_page)
            return last_page

        logger.debug("No pagination detected, counting a single full page")
        return len(await self.fetch_repositories_page(1, MAX_PER_PAGE))

    # --- Members, contributors, users ---

    async def fetch_members_page(self, page: int, per_page: int) -> list[str]:
        payload = await self._get_list(
            f"{GITHUB_API}/orgs/{self.organization}/members",
            {"page": page, "per_page": per_page},
        )
        return [
            item["login"]
            for item in payload
            if isinstance(item, dict) and item.get("login")
        ]

    async def fetch_organization_members(self) -> list[str]:
        """Organization member logins. Best effort: stops at the first failed page."""
        members = await fetch_all_pages_best_effort(
            self.fetch_members_page, MAX_PER_PAGE, label="organization members"
        )
        logger.info("Found %d organization members", len(members))
        return members

    async def fetch_repository_contributors(self, repo_name: str) -> list[Contributor]:
        """Top contributors (first page of up to 100) of one repository."""
        payload = await self._get_list(
            f"{GITHUB_API}/repos/{self.organization}/{repo_name}/contributors",
            {"per_page": MAX_PER_PAGE},
        )
        contributors = [
            Contributor.from_api(item) for item in payload if isinstance(item, dict)
        ]
        return [c for c in contributors if c.login]

    async def fetch_user(self, login: str) -> GitHubUser:
        payload = await self._get_json(f"{GITHUB_API}/users/{login}")
        if not isinstance(payload, dict):
            raise GitHubApiError(f"Unexpected user payload for {login}")
        return GitHubUser.from_api(payload)

    # --- Search ---

    async def search_count(self, query: str) -> int:
        """Return ``total_count`` of an issue search, fetching a single result."""
        payload = await self._get_json(
            f"{GITHUB_API}/search/issues", {"q": query, "per_page": 1}
        )
        if not isinstance(payload, dict):
            return 0
        total = payload.get("total_count", 0)
        return total if isinstance(total, int) else 0

    async def fetch_pull_request_counts(self) -> tuple[int, int]:
        """
        Open and closed pull request counts across the organization.

        Best effort: a failed search is logged and counted as 0.
        """
        counts = []
        for state in ("open", "closed"):
            try:
                count = await self.search_count(
                    f"type:pr state:{state} org:{self.organization}"
                )
                logger.debug("Found %d %s pull requests", count, state)
            except GitHubInsightsError as e:
                logger.warning(
                    "Failed to fetch %s pull request count, using 0: %s",
                    state,
                    e.message.splitlines()[0],
                )
                count = 0
            counts.append(count)
        return counts[0], counts[1]

    # --- Non-API pages ---

    async def fetch_dependents_page(self, repo_name: str) -> str:
        """HTML of the repository's dependents page on github.com."""
        response = await self._get(
            f"{GITHUB_WEB}/{self.organization}/{repo_name}/network/dependents"
        )
        return response.text

    # --- Connectivity ---

    async def check_health(self) -> HealthStatus:
        """Probe the organization endpoint to verify API access."""
        try:
            await self._get(f"{GITHUB_API}/orgs/{self.organization}")
        except NotFoundError:
            return HealthStatus(
                "Unhealthy", f"Organization '{self.organization}' not found"
            )
        except TransientUpstreamError as e:
            return HealthStatus("Unhealthy", f"Unable to connect to GitHub API: {e}")
        except GitHubInsightsError as e:
            return HealthStatus(
                "Degraded", f"GitHub API returned status code {e.status_code}"
            )
        return HealthStatus("Healthy", "GitHub API is accessible")
