"""
Downstream dependents estimation.

Callers only see ``estimate_dependents(repo_name) -> int``. The default
implementation scrapes GitHub's "network/dependents" HTML page, which is not a
contractual API; a Libraries.io-backed implementation is available as a
structured alternative. Both fail soft: any problem yields 0 dependents.
"""

import logging
import os
import re
from abc import ABC, abstractmethod

import httpx

from org_insights.errors import GitHubInsightsError, ScrapeFailure
from org_insights.github import GitHubClient

logger = logging.getLogger(__name__)

LIBRARIESIO_API_BASE = "https://libraries.io/api"

_DEPENDENTS_PATTERN = re.compile(r"(\d+(?:,\d+)*)\s+Repositor(?:y|ies)", re.IGNORECASE)

# Ordered: the first matching marker wins
_ECOSYSTEM_MARKERS = (
    ("npm", ("npm", "node", "js", "typescript")),
    ("maven", ("maven", "java")),
    ("nuget", ("nuget", "dotnet", "csharp")),
    ("pypi", ("python", "py")),
    ("go", ("go", "golang")),
    ("cargo", ("rust", "cargo")),
)


def determine_ecosystem(repo_name: str) -> str | None:
    """
    Best-effort guess of a repository's package ecosystem from its name.

    Example:
        >>> determine_ecosystem("awesome-node-client")
        'npm'
    """
    name = repo_name.lower()
    for ecosystem, markers in _ECOSYSTEM_MARKERS:
        if any(marker in name for marker in markers):
            return ecosystem
    return None


def parse_dependents_count(html: str) -> int:
    """
    Extract the "<N> Repositories" count from a dependents page.

    Raises:
        ScrapeFailure: If the pattern is absent or unparsable.
    """
    match = _DEPENDENTS_PATTERN.search(html)
    if not match:
        raise ScrapeFailure("Dependents count not found in page")
    try:
        return int(match.group(1).replace(",", ""))
    except ValueError as e:
        raise ScrapeFailure(f"Unparsable dependents count: {match.group(1)}") from e


class DependentsEstimator(ABC):
    """Interface for dependents sources."""

    @abstractmethod
    async def estimate_dependents(self, repo_name: str) -> int:
        """Estimated number of repositories depending on ``repo_name``."""


class ScrapingDependentsEstimator(DependentsEstimator):
    """Reads the dependents count from the repository's HTML dependents page."""

    def __init__(self, client: GitHubClient):
        self.client = client

    async def estimate_dependents(self, repo_name: str) -> int:
        try:
            html = await self.client.fetch_dependents_page(repo_name)
            return parse_dependents_count(html)
        except ScrapeFailure as e:
            logger.debug("No dependents count for %s: %s", repo_name, e)
            return 0
        except (GitHubInsightsError, httpx.HTTPError) as e:
            logger.warning(
                "Failed to fetch dependent count for repository %s: %s",
                repo_name,
                str(e).splitlines()[0] if str(e) else type(e).__name__,
            )
            return 0


class LibrariesIoDependentsEstimator(DependentsEstimator):
    """
    Queries Libraries.io for ``dependent_repos_count``.

    The package name is assumed to equal the repository name and the platform
    is guessed from the name. Requires LIBRARIESIO_API_KEY; without it every
    estimate is 0.

    Requests go through a separate client, so the GitHub token is never sent
    to Libraries.io.
    """

    def __init__(
        self,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key or os.getenv("LIBRARIESIO_API_KEY")
        self.transport = transport

    async def estimate_dependents(self, repo_name: str) -> int:
        platform = determine_ecosystem(repo_name)
        if not self.api_key or not platform:
            return 0

        url = f"{LIBRARIESIO_API_BASE}/{platform}/{repo_name}"
        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.get(
                    url, params={"api_key": self.api_key}, timeout=10
                )
            if response.status_code == 404:
                logger.debug("Package %s not found on Libraries.io", repo_name)
                return 0
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Libraries.io request failed for %s: %s", repo_name, e)
            return 0

        if not isinstance(payload, dict):
            return 0
        count = payload.get("dependent_repos_count", 0)
        return count if isinstance(count, int) else 0


def create_dependents_estimator(
    source: str, client: GitHubClient
) -> DependentsEstimator:
    """
    Build the configured dependents estimator.

    Raises:
        ValueError: If the source is unknown.
    """
    if source == "scrape":
        return ScrapingDependentsEstimator(client)
    if source == "librariesio":
        return LibrariesIoDependentsEstimator()
    raise ValueError(
        f"Unsupported dependents source: {source}. "
        "Supported sources: librariesio, scrape"
    )
