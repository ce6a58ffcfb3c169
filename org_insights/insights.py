"""
Orchestrators: one cached computation per reported organization metric.

Each public coroutine checks the cache, and on a miss runs the fetch, fan-out,
classification and scoring steps it needs, stores the complete result and
returns it. Errors abort the run before anything is cached.
"""

import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, TypeVar

from org_insights import cache as cache_keys
from org_insights.cache import MemoryCache, cache_aside, make_cache_key
from org_insights.classifier import (
    MembershipSet,
    aggregate_contributions,
    classify,
    dedupe_identities,
    rank_top_contributors,
)
from org_insights.collector import collect
from org_insights.config import GitHubSettings, PerformanceSettings
from org_insights.dependents import DependentsEstimator, determine_ecosystem
from org_insights.errors import GitHubInsightsError
from org_insights.github import GitHubClient
from org_insights.models import (
    ContributorDetail,
    ContributorStats,
    DependentRepositories,
    DetailedInsights,
    FollowerReach,
    Repository,
    RepositoryCount,
    RepositoryDependencyInfo,
    RepositoryDetails,
    TopContributors,
)
from org_insights.scoring import (
    activity_breakdown,
    calculate_repository_health,
    language_distribution,
    rank_by_activity,
    sample_for_contributors,
    sample_for_dependents,
    sample_for_top_contributors,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

TOP_DEPENDENT_REPOSITORIES = 10


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrgInsights:
    """
    Organization metrics service.

    All collaborators are injected: the GitHub client, the shared cache, the
    dependents estimator and the clock.
    """

    def __init__(
        self,
        client: GitHubClient,
        cache: MemoryCache,
        dependents: DependentsEstimator,
        github_settings: GitHubSettings,
        performance_settings: PerformanceSettings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.client = client
        self.cache = cache
        self.dependents = dependents
        self.github_settings = github_settings
        self.performance = performance_settings or PerformanceSettings()
        self._clock = clock

    @property
    def organization(self) -> str:
        return self.github_settings.organization

    async def _cached(
        self, metric: str, description: str, compute: Callable[[], Awaitable[T]]
    ) -> T:
        key = make_cache_key(metric, self.organization)

        async def compute_logged() -> T:
            logger.info(
                "Fetching %s from GitHub API for organization %s",
                description,
                self.organization,
            )
            try:
                return await compute()
            except GitHubInsightsError as e:
                logger.error(
                    "Error fetching %s for organization %s: %s",
                    description,
                    self.organization,
                    e.message.splitlines()[0],
                )
                raise

        return await cache_aside(
            self.cache, key, compute_logged, self.github_settings.cache_ttl_seconds
        )

    # --- Shared building blocks ---

    async def _fetch_repositories(self) -> list[Repository]:
        return await self.client.fetch_all_repositories(
            self.github_settings.max_repositories
        )

    async def _fetch_membership(self) -> MembershipSet:
        return MembershipSet(await self.client.fetch_organization_members())

    async def _collect_contributors(self, repos: list[Repository]):
        return await collect(
            [repo.name for repo in repos],
            self.client.fetch_repository_contributors,
            self.performance.max_concurrent_requests,
            label="repository",
        )

    # --- Orchestrators ---

    async def repository_count(self) -> RepositoryCount:
        """Total number of repositories in the organization."""

        async def compute() -> RepositoryCount:
            total = await self.client.fetch_repository_count()
            logger.info(
                "Found %d repositories for organization %s", total, self.organization
            )
            return RepositoryCount(self.organization, total, self._clock())

        return await self._cached(
            cache_keys.REPOSITORY_COUNT, "repository count", compute
        )

    async def repository_details(self) -> RepositoryDetails:
        """Repository totals, pull request counts and contributor classification."""

        async def compute() -> RepositoryDetails:
            repos = await self._fetch_repositories()
            open_prs, closed_prs = await self.client.fetch_pull_request_counts()
            stats = await self._compute_contributor_stats(repos)
            return self._build_details(
                repos,
                open_prs,
                closed_prs,
                stats.total_internal_contributors,
                stats.total_external_contributors,
            )

        return await self._cached(
            cache_keys.REPOSITORY_DETAILS, "repository details", compute
        )

    async def basic_repository_details(self) -> RepositoryDetails:
        """Repository totals and pull request counts without contributor analysis."""

        async def compute() -> RepositoryDetails:
            repos = await self._fetch_repositories()
            open_prs, closed_prs = await self.client.fetch_pull_request_counts()
            return self._build_details(repos, open_prs, closed_prs, 0, 0)

        return await self._cached(
            cache_keys.BASIC_REPOSITORY_DETAILS, "basic repository details", compute
        )

    def _build_details(
        self,
        repos: list[Repository],
        open_prs: int,
        closed_prs: int,
        internal_contributors: int,
        external_contributors: int,
    ) -> RepositoryDetails:
        return RepositoryDetails(
            organization=self.organization,
            total_repositories=len(repos),
            total_stars=sum(r.stars for r in repos),
            total_forks=sum(r.forks for r in repos),
            total_watchers=sum(r.watchers for r in repos),
            total_open_issues=sum(r.open_issues for r in repos),
            total_open_pull_requests=open_prs,
            total_closed_pull_requests=closed_prs,
            total_internal_contributors=internal_contributors,
            total_external_contributors=external_contributors,
            timestamp=self._clock(),
        )

    async def contributor_stats(self) -> ContributorStats:
        """Distinct contributors of the sampled repositories, internal vs external."""

        async def compute() -> ContributorStats:
            repos = await self._fetch_repositories()
            return await self._compute_contributor_stats(repos)

        return await self._cached(
            cache_keys.CONTRIBUTOR_STATS, "contributor statistics", compute
        )

    async def _compute_contributor_stats(
        self, repos: list[Repository]
    ) -> ContributorStats:
        membership = await self._fetch_membership()

        sample = sample_for_contributors(
            repos, self.github_settings.max_repositories_for_contributor_analysis
        )
        logger.info(
            "Fetching contributors from top %d of %d repositories",
            len(sample),
            len(repos),
        )

        collected = await self._collect_contributors(sample)
        identities = dedupe_identities(
            contributor.login
            for contributors in collected.values
            for contributor in contributors
        )
        classification = classify(identities, membership)

        logger.info(
            "Found %d unique contributors: %d internal, %d external",
            len(identities),
            classification.internal_count,
            classification.external_count,
        )
        return ContributorStats(
            organization=self.organization,
            total_internal_contributors=classification.internal_count,
            total_external_contributors=classification.external_count,
            repositories_analyzed=len(collected.results),
            repositories_failed=len(collected.failures),
            timestamp=self._clock(),
        )

    async def top_contributors(self) -> TopContributors:
        """Most active contributors across the sampled repositories."""

        async def compute() -> TopContributors:
            membership = await self._fetch_membership()
            repos = await self._fetch_repositories()

            sample = sample_for_top_contributors(
                repos, self.github_settings.max_repositories_for_contributor_analysis
            )
            logger.info(
                "Analyzing top %d repositories for contributors (out of %d repos)",
                len(sample),
                len(repos),
            )

            collected = await self._collect_contributors(sample)
            top = rank_top_contributors(
                aggregate_contributions(collected.results),
                self.performance.top_contributors,
            )

            users = await collect(
                [tally.login for tally in top],
                self.client.fetch_user,
                self.performance.user_detail_concurrency,
                label="user",
            )
            profiles = dict(users.results)

            contributors = []
            for tally in top:
                user = profiles.get(tally.login)
                contributors.append(
                    ContributorDetail(
                        username=tally.login,
                        profile_url=(
                            user.html_url
                            if user and user.html_url
                            else self.client.get_profile_url(tally.login)
                        ),
                        avatar_url=user.avatar_url if user else None,
                        total_contributions=tally.contributions,
                        repositories_contributed_to=tally.repositories_contributed_to,
                        followers=user.followers if user else 0,
                        is_internal=tally.login in membership,
                    )
                )

            logger.info("Fetched top %d contributors", len(contributors))
            return TopContributors(
                self.organization, tuple(contributors), self._clock()
            )

        return await self._cached(
            cache_keys.TOP_CONTRIBUTORS, "top contributors", compute
        )

    async def follower_reach(self) -> FollowerReach:
        """Sum of followers of every distinct contributor in the sample."""

        async def compute() -> FollowerReach:
            repos = await self._fetch_repositories()
            sample = sample_for_contributors(
                repos, self.github_settings.max_repositories_for_contributor_analysis
            )
            logger.info(
                "Analyzing top %d repositories (from %d total) for follower reach",
                len(sample),
                len(repos),
            )

            collected = await self._collect_contributors(sample)
            identities = dedupe_identities(
                contributor.login
                for contributors in collected.values
                for contributor in contributors
            )
            logger.info(
                "Found %d unique contributors to analyze for follower reach",
                len(identities),
            )

            users = await collect(
                identities,
                self.client.fetch_user,
                self.performance.max_concurrent_requests,
                label="user",
            )
            reach = FollowerReach(
                organization=self.organization,
                total_followers=sum(user.followers for user in users.values),
                contributors_analyzed=len(users.results),
                contributors_failed=len(users.failures),
                timestamp=self._clock(),
            )
            logger.info(
                "Follower reach: %d followers from %d contributors (%d failed)",
                reach.total_followers,
                reach.contributors_analyzed,
                reach.contributors_failed,
            )
            return reach

        return await self._cached(
            cache_keys.FOLLOWER_REACH, "follower reach", compute
        )

    async def dependent_repositories(self) -> DependentRepositories:
        """Estimated downstream dependents of the organization's packages."""

        async def compute() -> DependentRepositories:
            repos = await self._fetch_repositories()
            candidates = sample_for_dependents(
                repos, self.github_settings.max_repositories_for_contributor_analysis
            )
            logger.info(
                "Analyzing %d repositories (from %d total) for dependency information",
                len(candidates),
                len(repos),
            )

            collected = await collect(
                [repo.name for repo in candidates],
                self.dependents.estimate_dependents,
                self.performance.max_concurrent_requests,
                label="repository",
            )
            packages = [
                RepositoryDependencyInfo(
                    name=name,
                    dependent_count=count,
                    package_name=name,
                    ecosystem=determine_ecosystem(name),
                )
                for name, count in collected.results
                if count > 0
            ]
            packages.sort(key=lambda info: info.dependent_count, reverse=True)

            result = DependentRepositories(
                organization=self.organization,
                total_dependents=sum(info.dependent_count for info in packages),
                repositories_analyzed=len(candidates),
                package_repositories=len(packages),
                top_repositories=tuple(packages[:TOP_DEPENDENT_REPOSITORIES]),
                timestamp=self._clock(),
            )
            logger.info(
                "Found %d dependents across %d packages",
                result.total_dependents,
                result.package_repositories,
            )
            return result

        return await self._cached(
            cache_keys.DEPENDENT_REPOSITORIES, "dependent repositories", compute
        )

    async def detailed_insights(self) -> DetailedInsights:
        """Activity ranking, language mix, activity breakdown and health."""

        async def compute() -> DetailedInsights:
            repos = await self._fetch_repositories()
            now = self._clock()
            insights = DetailedInsights(
                organization=self.organization,
                top_repositories=rank_by_activity(repos, self.performance, now),
                language_distribution=language_distribution(repos),
                activity=activity_breakdown(repos, self.performance, now),
                health=calculate_repository_health(repos, self.performance, now),
                timestamp=now,
            )
            logger.info(
                "Detailed insights: %d top repos, %d languages",
                len(insights.top_repositories),
                len(insights.language_distribution),
            )
            return insights

        return await self._cached(
            cache_keys.DETAILED_INSIGHTS, "detailed insights", compute
        )
