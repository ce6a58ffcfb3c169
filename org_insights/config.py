"""
Configuration management for Org Insights.

Settings are resolved from (highest priority first):
1. Explicit arguments (CLI flags)
2. Environment variables (a local .env file is loaded too)
3. .org-insights.toml (local config)
4. pyproject.toml (project-level config)
5. Built-in defaults
"""

import os
import tomllib
from pathlib import Path
from typing import Any, NamedTuple

from dotenv import load_dotenv

load_dotenv()

# Config files are looked up relative to the directory the tool is run from
PROJECT_ROOT = Path.cwd()

CONFIG_FILE_NAME = ".org-insights.toml"
TOOL_SECTION = "org-insights"
ENV_PREFIX = "ORG_INSIGHTS_"

# Default cache duration: 5 minutes
DEFAULT_CACHE_DURATION_MINUTES = 5
DEFAULT_MAX_REPOSITORIES = 100
DEFAULT_MAX_REPOSITORIES_FOR_CONTRIBUTOR_ANALYSIS = 20
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30
DEFAULT_CONNECT_RETRIES = 3


class GitHubSettings(NamedTuple):
    """Upstream access and sampling settings."""

    organization: str
    token: str | None = None
    cache_duration_minutes: int = DEFAULT_CACHE_DURATION_MINUTES
    # 0 means unlimited
    max_repositories: int = DEFAULT_MAX_REPOSITORIES
    max_repositories_for_contributor_analysis: int = (
        DEFAULT_MAX_REPOSITORIES_FOR_CONTRIBUTOR_ANALYSIS
    )
    request_timeout_seconds: int = DEFAULT_REQUEST_TIMEOUT_SECONDS
    connect_retries: int = DEFAULT_CONNECT_RETRIES
    dependents_source: str = "scrape"  # "scrape" or "librariesio"

    @property
    def cache_ttl_seconds(self) -> int:
        return self.cache_duration_minutes * 60


class PerformanceSettings(NamedTuple):
    """Concurrency limits and scoring thresholds."""

    max_concurrent_requests: int = 10
    user_detail_concurrency: int = 5
    health_check_stale_days: int = 180
    health_check_attention_days: int = 30
    activity_score_stars_weight: int = 10
    activity_score_forks_weight: int = 5
    activity_score_issues_weight: int = 2
    activity_score_recent_update_bonus: int = 1000
    recent_window_days: int = 30
    top_repositories: int = 10
    top_contributors: int = 10


def load_config_file(config_path: Path) -> dict:
    """Load a TOML configuration file."""
    if not config_path.exists():
        return {}
    try:
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except Exception as e:
        raise ValueError(f"Failed to load config from {config_path}: {e}") from e


def get_tool_config() -> dict[str, Any]:
    """
    Load the [tool.org-insights] table.

    Priority:
    1. .org-insights.toml (local config, highest priority)
    2. pyproject.toml (project-level config, fallback)

    Returns:
        The tool table, or an empty dict when neither file defines one.
    """
    local_config_path = PROJECT_ROOT / CONFIG_FILE_NAME
    if local_config_path.exists():
        config = load_config_file(local_config_path)
        section = config.get("tool", {}).get(TOOL_SECTION)
        if section:
            return section

    pyproject_path = PROJECT_ROOT / "pyproject.toml"
    if pyproject_path.exists():
        config = load_config_file(pyproject_path)
        section = config.get("tool", {}).get(TOOL_SECTION)
        if section:
            return section

    return {}


def _env_int(name: str) -> int | None:
    value = os.getenv(f"{ENV_PREFIX}{name.upper()}")
    if value:
        try:
            return int(value)
        except ValueError:
            pass
    return None


def _resolve_int(name: str, section: dict[str, Any], default: int) -> int:
    env_value = _env_int(name)
    if env_value is not None:
        return env_value
    if name in section:
        return int(section[name])
    return default


def load_github_settings(
    organization: str | None = None,
    token: str | None = None,
    cache_duration_minutes: int | None = None,
    max_repositories: int | None = None,
) -> GitHubSettings:
    """
    Build GitHub settings from arguments, environment and config files.

    Args:
        organization: Organization login. Falls back to GITHUB_ORGANIZATION.
        token: Personal access token. Falls back to GITHUB_TOKEN.
        cache_duration_minutes: Default cache TTL override.
        max_repositories: Repository cap override (0 = unlimited).

    Returns:
        Resolved GitHubSettings.

    Raises:
        ValueError: If no organization is configured anywhere.
    """
    section = get_tool_config()

    organization = (
        organization
        or os.getenv("GITHUB_ORGANIZATION")
        or section.get("organization", "")
    )
    if not organization:
        raise ValueError(
            "GitHub organization is required.\n"
            "\n"
            "Set it with one of:\n"
            "   --org your-org\n"
            "   export GITHUB_ORGANIZATION='your-org'\n"
            f"   organization = \"your-org\" under [tool.{TOOL_SECTION}]"
            f" in {CONFIG_FILE_NAME}\n"
        )

    token = token or os.getenv("GITHUB_TOKEN") or section.get("token") or None

    defaults = GitHubSettings(organization=organization)
    return GitHubSettings(
        organization=organization,
        token=token,
        cache_duration_minutes=(
            cache_duration_minutes
            if cache_duration_minutes is not None
            else _resolve_int(
                "cache_duration_minutes", section, defaults.cache_duration_minutes
            )
        ),
        max_repositories=(
            max_repositories
            if max_repositories is not None
            else _resolve_int("max_repositories", section, defaults.max_repositories)
        ),
        max_repositories_for_contributor_analysis=_resolve_int(
            "max_repositories_for_contributor_analysis",
            section,
            defaults.max_repositories_for_contributor_analysis,
        ),
        request_timeout_seconds=_resolve_int(
            "request_timeout_seconds", section, defaults.request_timeout_seconds
        ),
        connect_retries=_resolve_int(
            "connect_retries", section, defaults.connect_retries
        ),
        dependents_source=os.getenv(f"{ENV_PREFIX}DEPENDENTS_SOURCE")
        or section.get("dependents_source", defaults.dependents_source),
    )


def load_performance_settings() -> PerformanceSettings:
    """
    Build performance settings from the environment and the
    [tool.org-insights.performance] table.

    Every field can be overridden with ORG_INSIGHTS_<FIELD_NAME>.
    """
    section = get_tool_config().get("performance", {})
    defaults = PerformanceSettings()
    return PerformanceSettings(
        **{
            field: _resolve_int(field, section, getattr(defaults, field))
            for field in PerformanceSettings._fields
        }
    )
