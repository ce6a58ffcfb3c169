"""
Command-line interface for Org Insights.
"""

import asyncio
import json
import logging
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, TypeVar

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from org_insights.cache import MemoryCache
from org_insights.config import (
    GitHubSettings,
    load_github_settings,
    load_performance_settings,
)
from org_insights.dependents import create_dependents_estimator
from org_insights.errors import GitHubInsightsError, RateLimitError
from org_insights.github import GitHubClient
from org_insights.http_client import create_http_client
from org_insights.insights import OrgInsights
from org_insights.models import (
    ContributorStats,
    DependentRepositories,
    DetailedInsights,
    FollowerReach,
    HealthStatus,
    RepositoryCount,
    RepositoryDetails,
    RepositoryHealthDetail,
    TopContributors,
    to_serializable,
)

T = TypeVar("T")

# --- Typer App ---
app = typer.Typer(help="Organization-wide GitHub metrics.")
console = Console()
err_console = Console(stderr=True)

# Results are shared by every command run in this process
_cache = MemoryCache()

# --- Shared Options ---
ORG_OPTION = typer.Option(
    None,
    "--org",
    "-o",
    help="GitHub organization (default: GITHUB_ORGANIZATION or config file).",
)
TOKEN_OPTION = typer.Option(
    None,
    "--token",
    help="GitHub personal access token (default: GITHUB_TOKEN).",
)
JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Print the result as JSON instead of tables.",
)
CACHE_TTL_OPTION = typer.Option(
    None,
    "--cache-ttl",
    help="Cache duration in minutes (default: 5).",
)
MAX_REPOS_OPTION = typer.Option(
    None,
    "--max-repos",
    help="Maximum repositories to fetch, 0 for unlimited (default: 100).",
)
VERBOSE_OPTION = typer.Option(
    False,
    "--verbose",
    "-v",
    help="Show debug logging.",
)


# --- Helper Functions ---


def setup_logging(verbose: bool) -> None:
    """Route library logging through rich on stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def resolve_settings(
    org: str | None,
    token: str | None,
    cache_ttl: int | None,
    max_repos: int | None,
) -> GitHubSettings:
    try:
        return load_github_settings(
            organization=org,
            token=token,
            cache_duration_minutes=cache_ttl,
            max_repositories=max_repos,
        )
    except ValueError as e:
        console.print(f"[yellow]⚠️  {escape(str(e))}[/yellow]")
        raise typer.Exit(code=1) from None


async def _with_service(
    settings: GitHubSettings, action: Callable[[OrgInsights], Awaitable[T]]
) -> T:
    http_client = create_http_client(settings)
    try:
        client = GitHubClient(
            settings.organization, http_client, token_configured=bool(settings.token)
        )
        service = OrgInsights(
            client=client,
            cache=_cache,
            dependents=create_dependents_estimator(settings.dependents_source, client),
            github_settings=settings,
            performance_settings=load_performance_settings(),
        )
        return await action(service)
    finally:
        await http_client.aclose()


def run_action(
    settings: GitHubSettings, action: Callable[[OrgInsights], Awaitable[T]]
) -> T:
    """
    Run an orchestrator coroutine, mapping typed errors to exit code 1.

    Args:
        settings: Resolved GitHub settings.
        action: Coroutine function receiving the configured service.

    Returns:
        Whatever ``action`` returns.
    """
    try:
        return asyncio.run(_with_service(settings, action))
    except RateLimitError as e:
        console.print(f"[red]⏳ {escape(e.message)}[/red]")
        raise typer.Exit(code=1) from None
    except GitHubInsightsError as e:
        console.print(f"[red]❌ {escape(e.message)}[/red]")
        raise typer.Exit(code=1) from None
    except ValueError as e:
        console.print(f"[yellow]⚠️  {escape(str(e))}[/yellow]")
        raise typer.Exit(code=1) from None


def print_json(value: Any) -> None:
    typer.echo(json.dumps(to_serializable(value), indent=2))


def emit(result: Any, as_json: bool, display: Callable[[Any], None]) -> None:
    if as_json:
        print_json(result)
    else:
        display(result)


def _key_value_table(title: str, rows: list[tuple[str, Any]]) -> Table:
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", justify="right")
    for label, value in rows:
        table.add_row(label, f"{value:,}" if isinstance(value, int) else str(value))
    return table


def _timestamp(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S UTC")


# --- Display Functions ---


def display_repository_count(result: RepositoryCount) -> None:
    console.print(
        _key_value_table(
            f"Repositories of {result.organization}",
            [
                ("Total repositories", result.total_repositories),
                ("Generated", _timestamp(result.timestamp)),
            ],
        )
    )


def display_repository_details(result: RepositoryDetails, basic: bool = False) -> None:
    rows = [
        ("Repositories", result.total_repositories),
        ("Stars", result.total_stars),
        ("Forks", result.total_forks),
        ("Watchers", result.total_watchers),
        ("Open issues", result.total_open_issues),
        ("Open pull requests", result.total_open_pull_requests),
        ("Closed pull requests", result.total_closed_pull_requests),
    ]
    if not basic:
        rows += [
            ("Internal contributors", result.total_internal_contributors),
            ("External contributors", result.total_external_contributors),
        ]
    rows.append(("Generated", _timestamp(result.timestamp)))
    console.print(_key_value_table(f"Repository details: {result.organization}", rows))


def display_contributor_stats(result: ContributorStats) -> None:
    console.print(
        _key_value_table(
            f"Contributors of {result.organization}",
            [
                ("Internal contributors", result.total_internal_contributors),
                ("External contributors", result.total_external_contributors),
                ("Repositories analyzed", result.repositories_analyzed),
                ("Repositories failed", result.repositories_failed),
                ("Generated", _timestamp(result.timestamp)),
            ],
        )
    )


def display_top_contributors(result: TopContributors) -> None:
    table = Table(title=f"Top contributors of {result.organization}")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Username", style="cyan", no_wrap=True)
    table.add_column("Contributions", justify="right", style="magenta")
    table.add_column("Repositories", justify="right")
    table.add_column("Followers", justify="right")
    table.add_column("Type", justify="left")

    for rank, contributor in enumerate(result.contributors, start=1):
        kind = (
            "[green]Internal[/green]"
            if contributor.is_internal
            else "[yellow]External[/yellow]"
        )
        table.add_row(
            str(rank),
            f"[link={contributor.profile_url}]{contributor.username}[/link]",
            f"{contributor.total_contributions:,}",
            str(contributor.repositories_contributed_to),
            f"{contributor.followers:,}",
            kind,
        )

    console.print(table)
    if not result.contributors:
        console.print("No contributors found.")


def display_follower_reach(result: FollowerReach) -> None:
    console.print(
        _key_value_table(
            f"Follower reach of {result.organization}",
            [
                ("Total followers", result.total_followers),
                ("Contributors analyzed", result.contributors_analyzed),
                ("Contributors failed", result.contributors_failed),
                ("Generated", _timestamp(result.timestamp)),
            ],
        )
    )


def display_dependent_repositories(result: DependentRepositories) -> None:
    console.print(
        _key_value_table(
            f"Dependents of {result.organization}",
            [
                ("Total dependents", result.total_dependents),
                ("Repositories analyzed", result.repositories_analyzed),
                ("Package repositories", result.package_repositories),
                ("Generated", _timestamp(result.timestamp)),
            ],
        )
    )
    if not result.top_repositories:
        return

    table = Table(title="Most depended-on repositories")
    table.add_column("Repository", style="cyan", no_wrap=True)
    table.add_column("Dependents", justify="right", style="magenta")
    table.add_column("Ecosystem", justify="left")
    for info in result.top_repositories:
        table.add_row(info.name, f"{info.dependent_count:,}", info.ecosystem or "-")
    console.print(table)


def _health_table(
    title: str, details: tuple[RepositoryHealthDetail, ...]
) -> Table:
    table = Table(title=title)
    table.add_column("Repository", style="cyan", no_wrap=True)
    table.add_column("Days since update", justify="right")
    table.add_column("Open issues", justify="right")
    table.add_column("Reason", justify="left")
    for detail in details:
        table.add_row(
            f"[link={detail.url}]{detail.name}[/link]",
            "never"
            if detail.days_since_update is None
            else str(detail.days_since_update),
            str(detail.open_issues),
            detail.reason,
        )
    return table


def display_detailed_insights(result: DetailedInsights) -> None:
    """Display the activity ranking, language mix and health summary."""
    top = Table(title=f"Most active repositories of {result.organization}")
    top.add_column("Repository", style="cyan", no_wrap=True)
    top.add_column("Score", justify="right", style="magenta")
    top.add_column("Stars", justify="right")
    top.add_column("Forks", justify="right")
    top.add_column("Issues", justify="right")
    top.add_column("Language", justify="left")
    for repo in result.top_repositories:
        top.add_row(
            f"[link={repo.url}]{repo.name}[/link]",
            f"{repo.activity_score:,}",
            f"{repo.stars:,}",
            f"{repo.forks:,}",
            f"{repo.open_issues:,}",
            repo.language or "-",
        )
    console.print(top)

    if result.language_distribution:
        languages = Table(title="Languages")
        languages.add_column("Language", style="cyan")
        languages.add_column("Repositories", justify="right")
        languages.add_column("Share", justify="right", style="magenta")
        for stats in result.language_distribution:
            languages.add_row(
                stats.language, str(stats.repository_count), f"{stats.percentage}%"
            )
        console.print(languages)

    activity = result.activity
    window = load_performance_settings().recent_window_days
    console.print(
        _key_value_table(
            "Activity",
            [
                ("Total engagement", activity.total_engagement),
                (f"Active repositories ({window} days)", activity.active_repositories),
                ("Archived repositories", activity.archived_repositories),
                ("Average stars per repository", activity.average_stars_per_repo),
                ("Average forks per repository", activity.average_forks_per_repo),
            ],
        )
    )

    health = result.health
    stale_color = "green"
    if health.stale_percentage >= 50:
        stale_color = "red"
    elif health.stale_percentage >= 20:
        stale_color = "yellow"
    console.print(
        f"\n[bold]Repository health[/bold]: "
        f"[green]{health.healthy_count} healthy[/green] • "
        f"[yellow]{health.needs_attention_count} need attention[/yellow] • "
        f"[red]{health.at_risk_count} at risk[/red] • "
        f"[dim]{health.archived_count} archived[/dim] "
        f"([{stale_color}]{health.stale_percentage}% stale[/{stale_color}])"
    )
    if health.repositories_needing_attention:
        console.print(
            _health_table("Needs attention", health.repositories_needing_attention)
        )
    if health.at_risk_repositories:
        console.print(_health_table("At risk", health.at_risk_repositories))


def display_health_status(status: HealthStatus) -> None:
    color = {"Healthy": "green", "Degraded": "yellow"}.get(status.status, "red")
    console.print(f"[{color}]{status.status}[/{color}]: {status.description}")


# --- Commands ---


@app.command()
def count(
    org: str | None = ORG_OPTION,
    token: str | None = TOKEN_OPTION,
    as_json: bool = JSON_OPTION,
    cache_ttl: int | None = CACHE_TTL_OPTION,
    max_repos: int | None = MAX_REPOS_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Count the organization's repositories."""
    setup_logging(verbose)
    settings = resolve_settings(org, token, cache_ttl, max_repos)
    result = run_action(settings, lambda service: service.repository_count())
    emit(result, as_json, display_repository_count)


@app.command()
def details(
    org: str | None = ORG_OPTION,
    token: str | None = TOKEN_OPTION,
    as_json: bool = JSON_OPTION,
    cache_ttl: int | None = CACHE_TTL_OPTION,
    max_repos: int | None = MAX_REPOS_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Repository totals, pull requests and contributor classification."""
    setup_logging(verbose)
    settings = resolve_settings(org, token, cache_ttl, max_repos)
    result = run_action(settings, lambda service: service.repository_details())
    emit(result, as_json, display_repository_details)


@app.command()
def basic(
    org: str | None = ORG_OPTION,
    token: str | None = TOKEN_OPTION,
    as_json: bool = JSON_OPTION,
    cache_ttl: int | None = CACHE_TTL_OPTION,
    max_repos: int | None = MAX_REPOS_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Repository totals and pull requests, skipping contributor analysis."""
    setup_logging(verbose)
    settings = resolve_settings(org, token, cache_ttl, max_repos)
    result = run_action(settings, lambda service: service.basic_repository_details())
    emit(result, as_json, lambda r: display_repository_details(r, basic=True))


@app.command()
def contributors(
    org: str | None = ORG_OPTION,
    token: str | None = TOKEN_OPTION,
    as_json: bool = JSON_OPTION,
    cache_ttl: int | None = CACHE_TTL_OPTION,
    max_repos: int | None = MAX_REPOS_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Internal vs external contributors across the most active repositories."""
    setup_logging(verbose)
    settings = resolve_settings(org, token, cache_ttl, max_repos)
    result = run_action(settings, lambda service: service.contributor_stats())
    emit(result, as_json, display_contributor_stats)


@app.command("top-contributors")
def top_contributors(
    org: str | None = ORG_OPTION,
    token: str | None = TOKEN_OPTION,
    as_json: bool = JSON_OPTION,
    cache_ttl: int | None = CACHE_TTL_OPTION,
    max_repos: int | None = MAX_REPOS_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Most active contributors with profile details."""
    setup_logging(verbose)
    settings = resolve_settings(org, token, cache_ttl, max_repos)
    result = run_action(settings, lambda service: service.top_contributors())
    emit(result, as_json, display_top_contributors)


@app.command("follower-reach")
def follower_reach(
    org: str | None = ORG_OPTION,
    token: str | None = TOKEN_OPTION,
    as_json: bool = JSON_OPTION,
    cache_ttl: int | None = CACHE_TTL_OPTION,
    max_repos: int | None = MAX_REPOS_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Total followers of everyone contributing to the organization."""
    setup_logging(verbose)
    settings = resolve_settings(org, token, cache_ttl, max_repos)
    result = run_action(settings, lambda service: service.follower_reach())
    emit(result, as_json, display_follower_reach)


@app.command()
def dependents(
    org: str | None = ORG_OPTION,
    token: str | None = TOKEN_OPTION,
    as_json: bool = JSON_OPTION,
    cache_ttl: int | None = CACHE_TTL_OPTION,
    max_repos: int | None = MAX_REPOS_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Estimated downstream dependents of the organization's packages."""
    setup_logging(verbose)
    settings = resolve_settings(org, token, cache_ttl, max_repos)
    result = run_action(settings, lambda service: service.dependent_repositories())
    emit(result, as_json, display_dependent_repositories)


@app.command()
def insights(
    org: str | None = ORG_OPTION,
    token: str | None = TOKEN_OPTION,
    as_json: bool = JSON_OPTION,
    cache_ttl: int | None = CACHE_TTL_OPTION,
    max_repos: int | None = MAX_REPOS_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Activity ranking, language distribution and repository health."""
    setup_logging(verbose)
    settings = resolve_settings(org, token, cache_ttl, max_repos)
    result = run_action(settings, lambda service: service.detailed_insights())
    emit(result, as_json, display_detailed_insights)


@app.command()
def health(
    org: str | None = ORG_OPTION,
    token: str | None = TOKEN_OPTION,
    as_json: bool = JSON_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Check that the GitHub API and the organization are reachable."""
    setup_logging(verbose)
    settings = resolve_settings(org, token, None, None)
    status = run_action(settings, lambda service: service.client.check_health())
    emit(status, as_json, display_health_status)
    if status.status == "Unhealthy":
        raise typer.Exit(code=1)


ALL_METRICS: list[tuple[str, Callable[[OrgInsights], Awaitable[Any]]]] = [
    ("repository_count", OrgInsights.repository_count),
    ("repository_details", OrgInsights.repository_details),
    ("basic_repository_details", OrgInsights.basic_repository_details),
    ("contributor_stats", OrgInsights.contributor_stats),
    ("top_contributors", OrgInsights.top_contributors),
    ("follower_reach", OrgInsights.follower_reach),
    ("dependent_repositories", OrgInsights.dependent_repositories),
    ("detailed_insights", OrgInsights.detailed_insights),
]


async def _run_all(service: OrgInsights) -> tuple[dict[str, Any], list[float]]:
    results: dict[str, Any] = {}
    durations = []
    # The second pass is served from the cache filled by the first
    for _ in range(2):
        started = time.perf_counter()
        for name, metric in ALL_METRICS:
            results[name] = await metric(service)
        durations.append(time.perf_counter() - started)
    return results, durations


@app.command("all")
def all_metrics(
    org: str | None = ORG_OPTION,
    token: str | None = TOKEN_OPTION,
    as_json: bool = JSON_OPTION,
    cache_ttl: int | None = CACHE_TTL_OPTION,
    max_repos: int | None = MAX_REPOS_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Compute every metric twice, showing the effect of the cache."""
    setup_logging(verbose)
    settings = resolve_settings(org, token, cache_ttl, max_repos)
    results, durations = run_action(settings, _run_all)

    if as_json:
        print_json(results)
        return

    display_repository_count(results["repository_count"])
    display_repository_details(results["repository_details"])
    display_contributor_stats(results["contributor_stats"])
    display_top_contributors(results["top_contributors"])
    display_follower_reach(results["follower_reach"])
    display_dependent_repositories(results["dependent_repositories"])
    display_detailed_insights(results["detailed_insights"])

    stats = _cache.stats()
    console.print("\n[bold cyan]Cache[/bold cyan]")
    console.print(f"  First pass: {durations[0]:.2f}s")
    console.print(f"  Second pass (cached): {durations[1]:.2f}s")
    console.print(f"  Valid entries: [green]{stats['valid_entries']}[/green]")


if __name__ == "__main__":
    app()
