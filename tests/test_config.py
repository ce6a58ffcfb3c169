"""
Tests for the configuration module.
"""

import tempfile
from pathlib import Path

import pytest

from org_insights.config import (
    DEFAULT_CACHE_DURATION_MINUTES,
    GitHubSettings,
    PerformanceSettings,
    get_tool_config,
    load_github_settings,
    load_performance_settings,
)

ENV_VARS = [
    "GITHUB_ORGANIZATION",
    "GITHUB_TOKEN",
    "ORG_INSIGHTS_CACHE_DURATION_MINUTES",
    "ORG_INSIGHTS_MAX_REPOSITORIES",
    "ORG_INSIGHTS_MAX_CONCURRENT_REQUESTS",
    "ORG_INSIGHTS_DEPENDENTS_SOURCE",
]


@pytest.fixture
def temp_project_root(monkeypatch):
    """Create a temporary project root with a clean environment."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)

    with tempfile.TemporaryDirectory() as tmpdir:
        tmpdir_path = Path(tmpdir)

        import org_insights.config

        monkeypatch.setattr(org_insights.config, "PROJECT_ROOT", tmpdir_path)
        yield tmpdir_path


def test_tool_config_from_local_file(temp_project_root):
    """Test loading settings from .org-insights.toml."""
    (temp_project_root / ".org-insights.toml").write_text(
        """
[tool.org-insights]
organization = "local-org"
"""
    )

    assert get_tool_config() == {"organization": "local-org"}


def test_tool_config_from_pyproject(temp_project_root):
    """Test loading settings from pyproject.toml."""
    (temp_project_root / "pyproject.toml").write_text(
        """
[project]
name = "something"

[tool.org-insights]
organization = "pyproject-org"
"""
    )

    assert get_tool_config()["organization"] == "pyproject-org"


def test_local_config_takes_priority(temp_project_root):
    """Test that .org-insights.toml takes priority over pyproject.toml."""
    (temp_project_root / "pyproject.toml").write_text(
        """
[tool.org-insights]
organization = "pyproject-org"
"""
    )
    (temp_project_root / ".org-insights.toml").write_text(
        """
[tool.org-insights]
organization = "local-org"
"""
    )

    assert get_tool_config()["organization"] == "local-org"


def test_missing_files(temp_project_root):
    """Test that missing files give an empty table."""
    assert get_tool_config() == {}


def test_invalid_toml_raises(temp_project_root):
    (temp_project_root / ".org-insights.toml").write_text("[tool.org-insights\n")

    with pytest.raises(ValueError, match="Failed to load config"):
        get_tool_config()


class TestGitHubSettings:
    """Resolution order of GitHub settings."""

    def test_organization_required(self, temp_project_root):
        with pytest.raises(ValueError, match="organization is required"):
            load_github_settings()

    def test_defaults(self, temp_project_root):
        settings = load_github_settings(organization="acme")

        assert settings == GitHubSettings(organization="acme")
        assert settings.cache_duration_minutes == DEFAULT_CACHE_DURATION_MINUTES
        assert settings.cache_ttl_seconds == 300
        assert settings.max_repositories == 100
        assert settings.max_repositories_for_contributor_analysis == 20
        assert settings.token is None

    def test_environment(self, temp_project_root, monkeypatch):
        monkeypatch.setenv("GITHUB_ORGANIZATION", "env-org")
        monkeypatch.setenv("GITHUB_TOKEN", "env-token")
        monkeypatch.setenv("ORG_INSIGHTS_MAX_REPOSITORIES", "25")

        settings = load_github_settings()

        assert settings.organization == "env-org"
        assert settings.token == "env-token"
        assert settings.max_repositories == 25

    def test_arguments_beat_environment(self, temp_project_root, monkeypatch):
        monkeypatch.setenv("GITHUB_ORGANIZATION", "env-org")
        monkeypatch.setenv("ORG_INSIGHTS_CACHE_DURATION_MINUTES", "30")

        settings = load_github_settings(
            organization="cli-org", cache_duration_minutes=1, max_repositories=0
        )

        assert settings.organization == "cli-org"
        assert settings.cache_duration_minutes == 1
        assert settings.max_repositories == 0

    def test_environment_beats_config_file(self, temp_project_root, monkeypatch):
        (temp_project_root / ".org-insights.toml").write_text(
            """
[tool.org-insights]
organization = "file-org"
cache_duration_minutes = 15
max_repositories = 40
dependents_source = "librariesio"
"""
        )
        monkeypatch.setenv("ORG_INSIGHTS_CACHE_DURATION_MINUTES", "2")

        settings = load_github_settings()

        assert settings.organization == "file-org"
        assert settings.cache_duration_minutes == 2
        assert settings.max_repositories == 40
        assert settings.dependents_source == "librariesio"

    def test_invalid_environment_value_is_ignored(
        self, temp_project_root, monkeypatch
    ):
        monkeypatch.setenv("ORG_INSIGHTS_MAX_REPOSITORIES", "lots")

        settings = load_github_settings(organization="acme")

        assert settings.max_repositories == 100


class TestPerformanceSettings:
    def test_defaults(self, temp_project_root):
        assert load_performance_settings() == PerformanceSettings()

    def test_config_table_and_environment(self, temp_project_root, monkeypatch):
        (temp_project_root / ".org-insights.toml").write_text(
            """
[tool.org-insights.performance]
max_concurrent_requests = 4
health_check_stale_days = 365
"""
        )
        monkeypatch.setenv("ORG_INSIGHTS_MAX_CONCURRENT_REQUESTS", "8")

        settings = load_performance_settings()

        assert settings.max_concurrent_requests == 8
        assert settings.health_check_stale_days == 365
        assert settings.user_detail_concurrency == 5
