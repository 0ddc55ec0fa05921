"""
MediaTags - Bounded Recomputation

Closures, counts and thumbs are pure functions of the stored graph, so a
failed recomputation is simply run again from scratch.
"""
import asyncio
from typing import Awaitable, Callable, Dict, Iterable, TypeVar
from bson import ObjectId
from loguru import logger

from mediatags.library.tags.exceptions import RecomputeError

R = TypeVar("R")


async def recompute_with_retry(step: str, tag_id: ObjectId,
                               fn: Callable[[ObjectId], Awaitable[R]],
                               attempts: int = 3) -> R:
    """
    Run `fn(tag_id)` until it succeeds or `attempts` is exhausted.

    Raises:
        RecomputeError: wrapping the last failure
    """
    last_error: Exception = None
    for attempt in range(1, max(attempts, 1) + 1):
        try:
            return await fn(tag_id)
        except Exception as e:
            last_error = e
            logger.warning(f"{step} failed for tag {tag_id} (attempt {attempt}/{attempts}): {e}")
    raise RecomputeError(step, tag_id, last_error)


async def recompute_many(step: str, tag_ids: Iterable[ObjectId],
                         fn: Callable[[ObjectId], Awaitable[R]],
                         attempts: int = 3, concurrency: int = 16) -> Dict[ObjectId, R]:
    """
    Recompute every id concurrently, at most `concurrency` at a time.

    Returns:
        Results keyed by tag id, in input order
    """
    ids = list(dict.fromkeys(tag_ids))
    if not ids:
        return {}

    semaphore = asyncio.Semaphore(max(concurrency, 1))

    async def run(tag_id: ObjectId) -> R:
        async with semaphore:
            return await recompute_with_retry(step, tag_id, fn, attempts)

    results = await asyncio.gather(*(run(tag_id) for tag_id in ids))
    return dict(zip(ids, results))
