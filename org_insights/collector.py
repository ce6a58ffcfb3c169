"""
Bounded concurrent fan-out with per-item fault isolation.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Generic, Iterable, NamedTuple, TypeVar

from org_insights.errors import PartialFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class CollectionResult(NamedTuple, Generic[T, R]):
    """Outcome of a fan-out: successful (item, value) pairs and failures."""

    results: list[tuple[T, R]]
    failures: list[PartialFailure]

    @property
    def values(self) -> list[R]:
        return [value for _, value in self.results]


async def collect(
    items: Iterable[T],
    operation: Callable[[T], Awaitable[R]],
    limit: int,
    label: str = "item",
) -> CollectionResult[T, R]:
    """
    Run ``operation`` for every item with at most ``limit`` in flight.

    A failing item is logged, recorded as a PartialFailure and skipped; it
    never cancels its siblings. Every item finishes before this returns.
    Each task writes only its own outcome slot, and outcomes are merged after
    the join, in input order.

    Cancellation of the caller cancels all in-flight items and propagates.

    Args:
        items: Work list.
        operation: Coroutine function applied to each item.
        limit: Maximum number of concurrent operations.
        label: Item description used in log messages.

    Returns:
        CollectionResult with successes and isolated failures.
    """
    if limit <= 0:
        raise ValueError("Concurrency limit must be positive")

    work = list(items)
    if not work:
        return CollectionResult([], [])

    semaphore = asyncio.Semaphore(limit)

    async def run(item: T) -> tuple[bool, object]:
        async with semaphore:
            try:
                return True, await operation(item)
            except Exception as e:
                logger.debug("Failed to process %s %r: %s", label, item, e)
                return False, PartialFailure(
                    item=item, error=str(e) or type(e).__name__
                )

    outcomes = await asyncio.gather(*(run(item) for item in work))

    results: list[tuple[T, R]] = []
    failures: list[PartialFailure] = []
    for item, (ok, outcome) in zip(work, outcomes):
        if ok:
            results.append((item, outcome))
        else:
            failures.append(outcome)

    if failures:
        logger.info(
            "Processed %d %s(s): %d succeeded, %d failed",
            len(work),
            label,
            len(results),
            len(failures),
        )
    return CollectionResult(results, failures)
