"""
Cache management for Org Insights.

Orchestrator results are memoized in a process-wide, in-memory store with an
absolute expiry per entry (cache-aside). A read after expiry behaves exactly
like a miss.

Limitation: concurrent misses on the same key are not coalesced. Two
overlapping runs that both miss will both recompute and both store; the last
write wins. Given human-driven request rates this redundant work is accepted.
A per-key in-flight de-duplication layer can be added on top of
``cache_aside`` if stronger guarantees are ever needed.
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, NamedTuple, TypeVar

from org_insights.config import DEFAULT_CACHE_DURATION_MINUTES

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Metric cache keys; combined with the organization by make_cache_key()
REPOSITORY_COUNT = "GitHubRepoCount"
REPOSITORY_DETAILS = "GitHubRepoDetails"
BASIC_REPOSITORY_DETAILS = "GitHubBasicRepoDetails"
CONTRIBUTOR_STATS = "GitHubContributorStats"
FOLLOWER_REACH = "GitHubFollowerReach"
DEPENDENT_REPOSITORIES = "GitHubDependentRepos"
DETAILED_INSIGHTS = "GitHubDetailedInsights"
TOP_CONTRIBUTORS = "GitHubTopContributors"


def make_cache_key(metric: str, organization: str) -> str:
    """Build the cache key for a metric of one organization."""
    return f"{metric}:{organization.lower()}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheEntry(NamedTuple):
    value: Any
    stored_at: datetime
    expires_at: datetime


class MemoryCache:
    """
    Thread-safe in-memory key/value store with per-entry TTL.

    Args:
        default_ttl: TTL in seconds used when ``set`` gets none.
        clock: Returns the current aware datetime (injectable for tests).
    """

    def __init__(
        self,
        default_ttl: int = DEFAULT_CACHE_DURATION_MINUTES * 60,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> tuple[Any, bool]:
        """
        Look up a key.

        Returns:
            ``(value, True)`` on a hit, ``(None, False)`` on a miss or when the
            entry has expired (expired entries are dropped).
        """
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None, False
            if now >= entry.expires_at:
                del self._entries[key]
                return None, False
            return entry.value, True

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store a value with ``ttl`` seconds (default TTL when None)."""
        ttl_seconds = self.default_ttl if ttl is None else ttl
        now = self._clock()
        entry = CacheEntry(value, now, now + timedelta(seconds=ttl_seconds))
        with self._lock:
            self._entries[key] = entry

    def delete(self, key: str) -> bool:
        """Remove a key. Returns True if it was present."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        """Remove all entries. Returns the number of entries cleared."""
        with self._lock:
            cleared = len(self._entries)
            self._entries.clear()
        return cleared

    def stats(self) -> dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary with total, valid and expired entry counts and the keys
            that are still valid.
        """
        now = self._clock()
        with self._lock:
            entries = dict(self._entries)
        valid_keys = sorted(k for k, e in entries.items() if now < e.expires_at)
        return {
            "total_entries": len(entries),
            "valid_entries": len(valid_keys),
            "expired_entries": len(entries) - len(valid_keys),
            "keys": valid_keys,
        }


async def cache_aside(
    cache: MemoryCache,
    key: str,
    compute: Callable[[], Awaitable[T]],
    ttl: int | None = None,
) -> T:
    """
    Return the cached value for ``key``, computing and storing it on a miss.

    Nothing is stored if ``compute`` raises (including on cancellation).
    """
    value, found = cache.get(key)
    if found:
        logger.info("Returning cached %s", key)
        return value

    value = await compute()
    cache.set(key, value, ttl)
    return value
