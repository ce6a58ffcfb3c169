"""
Typed errors raised by the GitHub client and the orchestrators.

Fan-out item failures are not raised; they are recorded as PartialFailure
values by the collector and excluded from aggregates.
"""

from datetime import datetime, timezone
from typing import Any, NamedTuple

import httpx

TOKEN_URL = "https://github.com/settings/tokens/new"


class GitHubInsightsError(Exception):
    """Base class for all errors surfaced to callers."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class GitHubApiError(GitHubInsightsError):
    """Non-success response that does not fit a more specific category."""


class TransientUpstreamError(GitHubInsightsError):
    """5xx, 429 or network failure. Retryable by an outer resilience layer."""


class AuthError(GitHubInsightsError):
    """401, or 403 that is not caused by rate limiting."""


class NotFoundError(GitHubInsightsError):
    """404: organization or resource does not exist (or is not visible)."""


class RateLimitError(GitHubInsightsError):
    """403/429 caused by an exhausted rate limit."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        remaining: int | None = None,
        reset_at: datetime | None = None,
    ):
        super().__init__(message, status_code)
        self.remaining = remaining
        self.reset_at = reset_at


class ScrapeFailure(Exception):
    """The dependents page did not contain a recognizable count."""


class PartialFailure(NamedTuple):
    """An isolated failure of one item in a fan-out."""

    item: Any
    error: str


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _parse_reset(value: str | None) -> datetime | None:
    timestamp = _parse_int(value)
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def _is_rate_limited(response: httpx.Response) -> bool:
    if response.headers.get("X-RateLimit-Remaining") == "0":
        return True
    if "Retry-After" in response.headers:
        return True
    return "rate limit" in response.text.lower()


def build_rate_limit_message(
    remaining: int | None,
    reset_at: datetime | None,
    token_configured: bool,
    now: datetime | None = None,
) -> str:
    """Explain an exhausted rate limit and what the caller can do about it."""
    message = "GitHub API rate limit exceeded.\n\n"

    if remaining is not None:
        message += f"Requests remaining: {remaining}\n"

    if reset_at is not None:
        now = now or datetime.now(timezone.utc)
        minutes = int((reset_at - now).total_seconds() // 60)
        if minutes > 0:
            message += f"Rate limit resets in: {minutes} minutes\n"
        message += f"Reset time: {reset_at.isoformat()}\n"

    if not token_configured:
        message += (
            "\n"
            "Without a token you are limited to 60 requests/hour; "
            "a token raises this to 5,000.\n"
            f"1. Create a token at {TOKEN_URL} with 'read:org' and 'repo' scopes\n"
            "2. export GITHUB_TOKEN='your_token_here' (or add it to .env)\n"
        )
    else:
        message += (
            "\n"
            "Even with a token, rate limits can be reached. To reduce API calls:\n"
            "- Increase cache_duration_minutes\n"
            "- Wait for the rate limit to reset\n"
            "- Check for other tools sharing the same token\n"
        )
    return message


def raise_for_github_status(
    response: httpx.Response,
    organization: str,
    token_configured: bool,
) -> None:
    """
    Map a GitHub response status to a typed error.

    Args:
        response: The upstream response.
        organization: Organization name, used in not-found guidance.
        token_configured: Whether requests carry a token (changes guidance).

    Raises:
        NotFoundError: 404.
        AuthError: 401, or 403 without rate limit signals.
        RateLimitError: 403/429 with an exhausted rate limit.
        TransientUpstreamError: 429 without rate limit headers, and 5xx.
        GitHubApiError: Any other non-success status.
    """
    if response.is_success:
        return

    status = response.status_code

    if status == 404:
        raise NotFoundError(
            f"Not found: {response.request.url}\n\n"
            "Please check:\n"
            f"- Organization name spelling ('{organization}')\n"
            f"- The organization exists at https://github.com/{organization}\n"
            "- If private, your token has the 'read:org' scope",
            status_code=status,
        )

    if status == 401:
        raise AuthError(
            "GitHub authentication failed: invalid or expired token.\n\n"
            f"1. Verify the token has not expired at {TOKEN_URL.rsplit('/', 1)[0]}\n"
            "2. Generate a new token with 'read:org' and 'repo' scopes if needed\n"
            "3. Update GITHUB_TOKEN",
            status_code=status,
        )

    if status in (403, 429) and _is_rate_limited(response):
        remaining = _parse_int(response.headers.get("X-RateLimit-Remaining"))
        reset_at = _parse_reset(response.headers.get("X-RateLimit-Reset"))
        raise RateLimitError(
            build_rate_limit_message(remaining, reset_at, token_configured),
            status_code=status,
            remaining=remaining,
            reset_at=reset_at,
        )

    if status == 403:
        raise AuthError(
            f"Access forbidden: {response.request.url}\n\n"
            "The token lacks permission for this resource. "
            "Ensure it has 'read:org' and 'repo' scopes.",
            status_code=status,
        )

    if status == 429 or status >= 500:
        raise TransientUpstreamError(
            f"GitHub API temporarily unavailable (HTTP {status})",
            status_code=status,
        )

    raise GitHubApiError(
        f"GitHub API error (HTTP {status}): {response.text[:200]}",
        status_code=status,
    )
