"""
Upstream records and orchestrator results.

Upstream payloads are parsed into explicit records per endpoint: unknown
fields are ignored and missing optional fields fall back to defaults.
"""

from datetime import datetime, timezone
from typing import Any, NamedTuple


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a GitHub ISO-8601 timestamp into an aware UTC datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _int(payload: dict[str, Any], key: str) -> int:
    value = payload.get(key)
    return value if isinstance(value, int) else 0


# --- Upstream records ---


class Repository(NamedTuple):
    """Snapshot of a repository from the organization repos listing."""

    name: str
    html_url: str = ""
    description: str | None = None
    stars: int = 0
    forks: int = 0
    watchers: int = 0
    open_issues: int = 0
    language: str | None = None
    updated_at: datetime | None = None
    archived: bool = False

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "Repository":
        return cls(
            name=payload.get("name") or "",
            html_url=payload.get("html_url") or "",
            description=payload.get("description"),
            stars=_int(payload, "stargazers_count"),
            forks=_int(payload, "forks_count"),
            watchers=_int(payload, "watchers_count"),
            open_issues=_int(payload, "open_issues_count"),
            language=payload.get("language") or None,
            updated_at=parse_timestamp(payload.get("updated_at")),
            archived=bool(payload.get("archived", False)),
        )


class Contributor(NamedTuple):
    """A contributor entry from a repository's contributors listing."""

    login: str
    contributions: int = 0

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "Contributor":
        return cls(
            login=payload.get("login") or "",
            contributions=_int(payload, "contributions"),
        )


class GitHubUser(NamedTuple):
    """A user profile."""

    login: str
    html_url: str = ""
    avatar_url: str | None = None
    followers: int = 0

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "GitHubUser":
        return cls(
            login=payload.get("login") or "",
            html_url=payload.get("html_url") or "",
            avatar_url=payload.get("avatar_url"),
            followers=_int(payload, "followers"),
        )


class HealthStatus(NamedTuple):
    """Result of the upstream connectivity check."""

    status: str  # "Healthy", "Degraded", "Unhealthy"
    description: str


# --- Orchestrator results ---


class RepositoryCount(NamedTuple):
    organization: str
    total_repositories: int
    timestamp: datetime


class RepositoryDetails(NamedTuple):
    organization: str
    total_repositories: int
    total_stars: int
    total_forks: int
    total_watchers: int
    total_open_issues: int
    total_open_pull_requests: int
    total_closed_pull_requests: int
    total_internal_contributors: int
    total_external_contributors: int
    timestamp: datetime


class ContributorStats(NamedTuple):
    organization: str
    total_internal_contributors: int
    total_external_contributors: int
    repositories_analyzed: int
    repositories_failed: int
    timestamp: datetime


class ContributorDetail(NamedTuple):
    username: str
    profile_url: str
    avatar_url: str | None
    total_contributions: int
    repositories_contributed_to: int
    followers: int
    is_internal: bool


class TopContributors(NamedTuple):
    organization: str
    contributors: tuple[ContributorDetail, ...]
    timestamp: datetime


class FollowerReach(NamedTuple):
    organization: str
    total_followers: int
    contributors_analyzed: int
    contributors_failed: int
    timestamp: datetime


class RepositoryDependencyInfo(NamedTuple):
    name: str
    dependent_count: int
    package_name: str | None = None
    ecosystem: str | None = None


class DependentRepositories(NamedTuple):
    organization: str
    total_dependents: int
    repositories_analyzed: int
    package_repositories: int
    top_repositories: tuple[RepositoryDependencyInfo, ...]
    timestamp: datetime


class RepositoryInsight(NamedTuple):
    name: str
    url: str
    description: str | None
    language: str | None
    stars: int
    forks: int
    open_issues: int
    updated_at: datetime | None
    activity_score: int


class LanguageStats(NamedTuple):
    language: str
    repository_count: int
    percentage: float


class ActivityBreakdown(NamedTuple):
    total_engagement: int
    active_repositories: int
    archived_repositories: int
    average_stars_per_repo: float
    average_forks_per_repo: float


class RepositoryHealthDetail(NamedTuple):
    name: str
    url: str
    days_since_update: int | None  # None when the repository was never updated
    open_issues: int
    reason: str


class RepositoryHealth(NamedTuple):
    healthy_count: int
    needs_attention_count: int
    at_risk_count: int
    archived_count: int
    stale_percentage: float
    repositories_needing_attention: tuple[RepositoryHealthDetail, ...]
    at_risk_repositories: tuple[RepositoryHealthDetail, ...]


class DetailedInsights(NamedTuple):
    organization: str
    top_repositories: tuple[RepositoryInsight, ...]
    language_distribution: tuple[LanguageStats, ...]
    activity: ActivityBreakdown
    health: RepositoryHealth
    timestamp: datetime


def to_serializable(value: Any) -> Any:
    """Recursively convert results into JSON-compatible structures."""
    if isinstance(value, tuple) and hasattr(value, "_asdict"):
        return {key: to_serializable(item) for key, item in value._asdict().items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_serializable(item) for item in value]
    if isinstance(value, dict):
        return {key: to_serializable(item) for key, item in value.items()}
    if isinstance(value, datetime):
        return value.isoformat()
    return value
