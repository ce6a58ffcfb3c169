"""
Shared fixtures for building clients and services over the fake GitHub API.
"""

import pytest
from fakes import NOW, FakeGitHub

from org_insights.cache import MemoryCache
from org_insights.config import GitHubSettings, PerformanceSettings
from org_insights.dependents import ScrapingDependentsEstimator
from org_insights.github import GitHubClient
from org_insights.http_client import create_http_client
from org_insights.insights import OrgInsights


@pytest.fixture
def github_settings():
    return GitHubSettings(organization="acme", token="test-token")


@pytest.fixture
def make_client(github_settings):
    """Build a GitHubClient talking to a FakeGitHub."""

    def factory(fake: FakeGitHub, token_configured: bool = True) -> GitHubClient:
        http_client = create_http_client(github_settings, transport=fake.transport())
        return GitHubClient(
            fake.organization, http_client, token_configured=token_configured
        )

    return factory


@pytest.fixture
def make_service(github_settings, make_client):
    """Build an OrgInsights service over a FakeGitHub with a fixed clock."""

    def factory(
        fake: FakeGitHub,
        cache: MemoryCache | None = None,
        performance: PerformanceSettings | None = None,
        **overrides,
    ) -> OrgInsights:
        client = make_client(fake)
        return OrgInsights(
            client=client,
            cache=cache or MemoryCache(clock=lambda: NOW),
            dependents=ScrapingDependentsEstimator(client),
            github_settings=github_settings._replace(**overrides),
            performance_settings=performance or PerformanceSettings(),
            clock=lambda: NOW,
        )

    return factory
