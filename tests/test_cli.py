"""
Tests for the command-line interface.

The HTTP client factory is patched so that every command runs the full stack
against the fake GitHub API.
"""

import json
from unittest.mock import patch

import httpx
import pytest
from fakes import FakeGitHub, make_org, repo_payload
from typer.testing import CliRunner

import org_insights.cli
from org_insights.cli import app
from org_insights.http_client import create_http_client

runner = CliRunner()


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Isolate commands from the caller's environment and earlier runs."""
    for name in (
        "GITHUB_ORGANIZATION",
        "GITHUB_TOKEN",
        "ORG_INSIGHTS_DEPENDENTS_SOURCE",
        "ORG_INSIGHTS_MAX_REPOSITORIES",
        "ORG_INSIGHTS_CACHE_DURATION_MINUTES",
        "ORG_INSIGHTS_RECENT_WINDOW_DAYS",
    ):
        monkeypatch.delenv(name, raising=False)
    org_insights.cli._cache.clear()
    yield
    org_insights.cli._cache.clear()


def serve(fake: FakeGitHub):
    """Patch the CLI to talk to ``fake``."""
    return patch(
        "org_insights.cli.create_http_client",
        side_effect=lambda settings: create_http_client(
            settings, transport=fake.transport()
        ),
    )


class TestCommands:
    """Each command renders its orchestrator result."""

    def test_count(self):
        with serve(make_org()):
            result = runner.invoke(app, ["count", "--org", "acme"])

        assert result.exit_code == 0
        assert "Total repositories" in result.output
        assert "5" in result.output

    def test_details_json(self):
        with serve(make_org()):
            result = runner.invoke(app, ["details", "--org", "acme", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["organization"] == "acme"
        assert data["total_stars"] == 790
        assert data["total_internal_contributors"] == 2
        assert data["timestamp"].endswith("+00:00")

    def test_basic_hides_contributors(self):
        with serve(make_org()):
            result = runner.invoke(app, ["basic", "--org", "acme"])

        assert result.exit_code == 0
        assert "Closed pull requests" in result.output
        assert "Internal contributors" not in result.output

    def test_top_contributors(self):
        with serve(make_org()):
            result = runner.invoke(app, ["top-contributors", "--org", "acme"])

        assert result.exit_code == 0
        assert "alice" in result.output
        assert "Internal" in result.output

    def test_follower_reach_json(self):
        with serve(make_org()):
            result = runner.invoke(app, ["follower-reach", "--org", "acme", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout)["total_followers"] == 128

    def test_dependents(self):
        with serve(make_org()):
            result = runner.invoke(app, ["dependents", "--org", "acme"])

        assert result.exit_code == 0
        assert "core-lib" in result.output
        assert "1,512" in result.output

    def test_insights(self):
        with serve(make_org()):
            result = runner.invoke(app, ["insights", "--org", "acme"])

        assert result.exit_code == 0
        assert "core-lib" in result.output
        assert "Python" in result.output
        assert "At risk" in result.output

    def test_insights_activity_window_follows_settings(self, monkeypatch):
        monkeypatch.setenv("ORG_INSIGHTS_RECENT_WINDOW_DAYS", "60")

        with serve(make_org()):
            result = runner.invoke(app, ["insights", "--org", "acme"])

        assert result.exit_code == 0
        assert "Active repositories (60 days)" in result.output

    def test_max_repos_option(self):
        fake = FakeGitHub(repos=[repo_payload(f"r{i}", stars=2) for i in range(30)])

        with serve(fake):
            result = runner.invoke(
                app, ["basic", "--org", "acme", "--max-repos", "10", "--json"]
            )

        assert result.exit_code == 0
        assert json.loads(result.stdout)["total_stars"] == 20

    def test_organization_from_environment(self, monkeypatch):
        monkeypatch.setenv("GITHUB_ORGANIZATION", "acme")

        with serve(make_org()):
            result = runner.invoke(app, ["count", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout)["total_repositories"] == 5


class TestAllCommand:
    def test_second_pass_is_served_from_cache(self):
        fake = make_org()

        with serve(fake):
            result = runner.invoke(app, ["all", "--org", "acme", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert set(data) == {
            "repository_count",
            "repository_details",
            "basic_repository_details",
            "contributor_stats",
            "top_contributors",
            "follower_reach",
            "dependent_repositories",
            "detailed_insights",
        }
        # Two searches each for details and basic details, none on the second pass
        assert len(fake.paths("/search/issues")) == 4

    def test_table_output_reports_cache(self):
        with serve(make_org()):
            result = runner.invoke(app, ["all", "--org", "acme"])

        assert result.exit_code == 0
        assert "Second pass (cached)" in result.output
        assert "Valid entries: 8" in result.output


class TestErrors:
    """Typed errors become guidance and exit code 1."""

    def test_missing_organization(self):
        result = runner.invoke(app, ["count"])

        assert result.exit_code == 1
        assert "organization is required" in result.output

    def test_unknown_organization(self):
        fake = make_org()
        fake.failures["/orgs/acme/repos"] = 404

        with serve(fake):
            result = runner.invoke(app, ["count", "--org", "acme"])

        assert result.exit_code == 1
        assert "Not found" in result.output

    def test_rate_limit(self):
        def handler(request):
            return httpx.Response(
                403,
                headers={"X-RateLimit-Remaining": "0"},
                json={"message": "API rate limit exceeded"},
            )

        with patch(
            "org_insights.cli.create_http_client",
            side_effect=lambda settings: create_http_client(
                settings, transport=httpx.MockTransport(handler)
            ),
        ):
            result = runner.invoke(app, ["insights", "--org", "acme"])

        assert result.exit_code == 1
        assert "rate limit exceeded" in result.output
        assert "GITHUB_TOKEN" in result.output


class TestHealthCommand:
    def test_healthy(self):
        with serve(make_org()):
            result = runner.invoke(app, ["health", "--org", "acme"])

        assert result.exit_code == 0
        assert "Healthy" in result.output

    def test_unhealthy_exits_with_error(self):
        fake = make_org()
        fake.failures["/orgs/acme"] = 404

        with serve(fake):
            result = runner.invoke(app, ["health", "--org", "acme", "--json"])

        assert result.exit_code == 1
        assert json.loads(result.stdout)["status"] == "Unhealthy"
