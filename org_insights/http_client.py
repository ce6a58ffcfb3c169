"""Shared HTTP client handling."""

import httpx

from org_insights import __version__
from org_insights.config import GitHubSettings

USER_AGENT = f"org-insights/{__version__}"


def build_headers(token: str | None) -> dict[str, str]:
    """Default request headers for the GitHub REST API."""
    headers = {
        "Accept": "application/vnd.github+json",
        "User-Agent": USER_AGENT,
        "X-GitHub-Api-Version": "2022-11-28",
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def create_http_client(
    settings: GitHubSettings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """
    Create an async HTTP client with connection pooling.

    Connection-level retries are delegated to the httpx transport; no
    status-code based retry happens here.

    Args:
        settings: GitHub settings (token, timeout, retries).
        transport: Optional transport override (used by tests).
    """
    if transport is None:
        transport = httpx.AsyncHTTPTransport(retries=settings.connect_retries)
    return httpx.AsyncClient(
        headers=build_headers(settings.token),
        timeout=settings.request_timeout_seconds,
        follow_redirects=True,
        limits=httpx.Limits(
            max_connections=20,
            max_keepalive_connections=10,
            keepalive_expiry=30.0,
        ),
        transport=transport,
    )

