"""
Page-walking helpers for list endpoints.

A page fetcher is any coroutine function taking ``(page, per_page)`` and
returning the parsed items of that page. Pages are 1-based.
"""

import logging
import re
from typing import Awaitable, Callable, TypeVar

from org_insights.errors import GitHubInsightsError

logger = logging.getLogger(__name__)

T = TypeVar("T")

PageFetcher = Callable[[int, int], Awaitable[list[T]]]

# Maximum page size allowed by the GitHub API
MAX_PER_PAGE = 100

_LAST_PAGE_PATTERN = re.compile(r'[?&]page=(\d+)[^>]*>;\s*rel="last"')


async def fetch_all_pages(
    fetch_page: PageFetcher,
    per_page: int = MAX_PER_PAGE,
    max_items: int | None = None,
) -> list[T]:
    """
    Fetch successive pages until a short page or the item cap is reached.

    Any error raised by ``fetch_page`` propagates; no partial list is returned.

    Args:
        fetch_page: Coroutine function returning the items of one page.
        per_page: Page size requested from the endpoint.
        max_items: Optional cap on returned items. ``None`` or ``0`` = unlimited.

    Returns:
        The concatenation of all pages, truncated to ``max_items``.
    """
    if per_page <= 0:
        raise ValueError("per_page must be positive")

    cap = max_items if max_items and max_items > 0 else None
    items: list[T] = []
    page = 1

    while True:
        batch = await fetch_page(page, per_page)

        if cap is not None:
            remaining = cap - len(items)
            items.extend(batch[:remaining])
        else:
            items.extend(batch)

        logger.debug(
            "Fetched page %d with %d items (total: %d)", page, len(batch), len(items)
        )

        if len(batch) < per_page:
            break
        if cap is not None and len(items) >= cap:
            logger.info("Reached item limit of %d", cap)
            break
        page += 1

    return items


async def fetch_all_pages_best_effort(
    fetch_page: PageFetcher,
    per_page: int = MAX_PER_PAGE,
    label: str = "items",
) -> list[T]:
    """
    Like fetch_all_pages, but a failed page stops pagination gracefully.

    Upstream errors are logged and whatever was collected before the failure
    is returned. Cancellation still propagates.
    """
    items: list[T] = []
    page = 1

    while True:
        try:
            batch = await fetch_page(page, per_page)
        except GitHubInsightsError as e:
            logger.warning(
                "Failed to fetch %s page %d, keeping %d collected: %s",
                label,
                page,
                len(items),
                e.message.splitlines()[0],
            )
            break

        items.extend(batch)
        if len(batch) < per_page:
            break
        page += 1

    return items


def parse_last_page(link_header: str | None) -> int | None:
    """
    Extract the ``rel="last"`` page number from a Link header.

    Example:
        >>> parse_last_page('<https://api.github.com/x?page=2>; rel="next", '
        ...                 '<https://api.github.com/x?page=7>; rel="last"')
        7
    """
    if not link_header:
        return None
    for part in link_header.split(","):
        match = _LAST_PAGE_PATTERN.search(part)
        if match:
            return int(match.group(1))
    return None
