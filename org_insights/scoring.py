"""
Activity scoring and health classification over repository snapshots.

All functions are pure: the current time is passed in explicitly.
"""

import math
from collections import Counter
from datetime import datetime, timedelta, timezone
from enum import Enum

from org_insights.config import PerformanceSettings
from org_insights.models import (
    ActivityBreakdown,
    LanguageStats,
    Repository,
    RepositoryHealth,
    RepositoryHealthDetail,
    RepositoryInsight,
)

NEVER_UPDATED = datetime.min.replace(tzinfo=timezone.utc)

# Repositories whose names suggest they are not packages
NON_PACKAGE_NAME_MARKERS = ("website", "docs", "example", "demo", "tutorial")

HEALTH_DETAIL_LIMIT = 5


class HealthBucket(str, Enum):
    """Maintenance state of a non-archived repository."""

    HEALTHY = "Healthy"
    NEEDS_ATTENTION = "NeedsAttention"
    AT_RISK = "AtRisk"


def days_since_update(repo: Repository, now: datetime) -> float:
    """Whole days since the last update; ``math.inf`` if never updated."""
    if repo.updated_at is None:
        return math.inf
    return float((now - repo.updated_at).days)


def is_recently_updated(repo: Repository, now: datetime, window_days: int) -> bool:
    return repo.updated_at is not None and repo.updated_at > now - timedelta(
        days=window_days
    )


def issue_ratio(repo: Repository) -> float:
    """
    Open issues per star.

    A starless repository counts as 1.0 when it has more than 10 open issues,
    otherwise 0.0.
    """
    if repo.stars > 0:
        return repo.open_issues / repo.stars
    return 1.0 if repo.open_issues > 10 else 0.0


def activity_score(
    repo: Repository, settings: PerformanceSettings, now: datetime
) -> int:
    """
    Synthetic ranking score combining popularity and recency.

    ``stars*Ws + forks*Wf + issues*Wi``, plus the recent-update bonus when the
    repository was updated inside the recent window. Archived repositories get
    the bonus-inclusive score integer-divided by 10.
    """
    score = (
        repo.stars * settings.activity_score_stars_weight
        + repo.forks * settings.activity_score_forks_weight
        + repo.open_issues * settings.activity_score_issues_weight
    )

    if is_recently_updated(repo, now, settings.recent_window_days):
        score += settings.activity_score_recent_update_bonus

    if repo.archived:
        score //= 10

    return score


def classify_health(
    repo: Repository, settings: PerformanceSettings, now: datetime
) -> HealthBucket:
    """Bucket a non-archived repository by staleness and issue load."""
    days = days_since_update(repo, now)

    if days >= settings.health_check_stale_days:
        return HealthBucket.AT_RISK
    if (
        days >= settings.health_check_attention_days
        or issue_ratio(repo) > 0.5
        or repo.open_issues > 50
    ):
        return HealthBucket.NEEDS_ATTENTION
    return HealthBucket.HEALTHY


def stale_percentage(at_risk_count: int, non_archived_count: int) -> float:
    """Share of non-archived repositories that are at risk, one decimal."""
    if non_archived_count <= 0:
        return 0.0
    return round(at_risk_count / non_archived_count * 100, 1)


def health_reason(repo: Repository, now: datetime) -> str:
    """Human-readable explanation of a repository's health concern."""
    days = days_since_update(repo, now)
    reasons = []

    if days >= 365:
        reasons.append(
            "No updates in years"
            if math.isinf(days)
            else f"No updates in {int(days) // 365}+ years"
        )
    elif days >= 180:
        reasons.append(f"No updates in {int(days)} days")
    elif days >= 30:
        reasons.append(f"Not updated in {int(days)} days")

    if repo.open_issues > 50:
        reasons.append(f"{repo.open_issues} open issues")
    elif repo.open_issues > 20:
        reasons.append(f"{repo.open_issues} issues need triage")

    ratio = repo.open_issues / repo.stars if repo.stars > 0 else 0.0
    if ratio > 0.5 and repo.open_issues > 10:
        reasons.append("High issue-to-star ratio")

    return ", ".join(reasons) if reasons else "Needs review"


def _health_detail(repo: Repository, now: datetime) -> RepositoryHealthDetail:
    days = days_since_update(repo, now)
    return RepositoryHealthDetail(
        name=repo.name,
        url=repo.html_url,
        days_since_update=None if math.isinf(days) else int(days),
        open_issues=repo.open_issues,
        reason=health_reason(repo, now),
    )


def calculate_repository_health(
    repos: list[Repository], settings: PerformanceSettings, now: datetime
) -> RepositoryHealth:
    """
    Classify every repository and summarize the organization's health.

    Archived repositories are only tallied; they take no part in the buckets
    or in the stale percentage.
    """
    buckets: dict[HealthBucket, list[Repository]] = {
        bucket: [] for bucket in HealthBucket
    }
    archived = [repo for repo in repos if repo.archived]
    active = [repo for repo in repos if not repo.archived]

    for repo in active:
        buckets[classify_health(repo, settings, now)].append(repo)

    needs_attention = buckets[HealthBucket.NEEDS_ATTENTION]
    at_risk = buckets[HealthBucket.AT_RISK]

    top_needs_attention = sorted(
        needs_attention, key=lambda r: r.open_issues, reverse=True
    )[:HEALTH_DETAIL_LIMIT]
    # Oldest update first; never-updated repositories sort before everything else
    top_at_risk = sorted(at_risk, key=lambda r: r.updated_at or NEVER_UPDATED)[
        :HEALTH_DETAIL_LIMIT
    ]

    return RepositoryHealth(
        healthy_count=len(buckets[HealthBucket.HEALTHY]),
        needs_attention_count=len(needs_attention),
        at_risk_count=len(at_risk),
        archived_count=len(archived),
        stale_percentage=stale_percentage(len(at_risk), len(active)),
        repositories_needing_attention=tuple(
            _health_detail(r, now) for r in top_needs_attention
        ),
        at_risk_repositories=tuple(_health_detail(r, now) for r in top_at_risk),
    )


def rank_by_activity(
    repos: list[Repository], settings: PerformanceSettings, now: datetime
) -> tuple[RepositoryInsight, ...]:
    """Top repositories by activity score."""
    insights = [
        RepositoryInsight(
            name=r.name,
            url=r.html_url,
            description=r.description,
            language=r.language,
            stars=r.stars,
            forks=r.forks,
            open_issues=r.open_issues,
            updated_at=r.updated_at,
            activity_score=activity_score(r, settings, now),
        )
        for r in repos
    ]
    insights.sort(key=lambda insight: insight.activity_score, reverse=True)
    return tuple(insights[: settings.top_repositories])


def language_distribution(repos: list[Repository]) -> tuple[LanguageStats, ...]:
    """Repository count per primary language, as a share of all repositories."""
    counts = Counter(r.language for r in repos if r.language)
    return tuple(
        LanguageStats(
            language=language,
            repository_count=count,
            percentage=round(count / len(repos) * 100, 2),
        )
        for language, count in counts.most_common()
    )


def activity_breakdown(
    repos: list[Repository], settings: PerformanceSettings, now: datetime
) -> ActivityBreakdown:
    total_stars = sum(r.stars for r in repos)
    total_forks = sum(r.forks for r in repos)
    count = len(repos)
    return ActivityBreakdown(
        total_engagement=total_stars + total_forks,
        active_repositories=sum(
            1 for r in repos if is_recently_updated(r, now, settings.recent_window_days)
        ),
        archived_repositories=sum(1 for r in repos if r.archived),
        average_stars_per_repo=round(total_stars / count, 2) if count else 0.0,
        average_forks_per_repo=round(total_forks / count, 2) if count else 0.0,
    )


# --- Sampling orders for expensive per-repository analyses ---


def sample_for_contributors(repos: list[Repository], limit: int) -> list[Repository]:
    """Repositories most likely to have many contributors."""
    ranked = sorted(
        repos, key=lambda r: r.stars + r.forks + r.open_issues, reverse=True
    )
    return ranked[:limit]


def sample_for_top_contributors(
    repos: list[Repository], limit: int
) -> list[Repository]:
    ranked = sorted(repos, key=lambda r: r.stars + r.forks, reverse=True)
    return ranked[:limit]


def is_package_candidate(repo: Repository) -> bool:
    name = repo.name.lower()
    return not any(marker in name for marker in NON_PACKAGE_NAME_MARKERS)


def sample_for_dependents(repos: list[Repository], limit: int) -> list[Repository]:
    """Popular repositories that look like packages rather than docs or demos."""
    candidates = [r for r in repos if is_package_candidate(r)]
    candidates.sort(key=lambda r: r.stars, reverse=True)
    return candidates[:limit]
