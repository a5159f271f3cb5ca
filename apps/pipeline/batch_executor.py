"""
Cached batch execution.

Runs many independent sessions that share one system prompt. The first task
runs alone so the provider can populate its prompt cache; the rest then run
through a bounded worker pool, all with the same cache key.

Usage:
    results = await execute_cached_batch(
        [lambda key, group=group: run_session(group, key) for group in groups],
        semaphore=8,
    )
    for result in results:
        if result.ok:
            use(result.value)
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, List, Optional, TypeVar

from libs.core.config import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

BatchTask = Callable[[str], Awaitable[T]]


@dataclass
class BatchResult(Generic[T]):
    """Outcome of one task: exactly one of ``value`` / ``error`` is meaningful."""
    index: int
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def execute_cached_batch(
    tasks: List[BatchTask[T]],
    semaphore: Optional[int] = None,
    cache_key: Optional[str] = None,
) -> List[BatchResult[T]]:
    """
    Run tasks with a shared prompt cache key.

    Args:
        tasks: Coroutine factories; each receives the cache key
        semaphore: Worker pool width (defaults to settings)
        cache_key: Shared prompt cache key (random if omitted)

    Returns:
        One BatchResult per task, in input order. A failing task does not
        cancel its siblings.
    """
    if not tasks:
        return []

    width = semaphore if semaphore is not None else get_settings().batch.semaphore
    key = cache_key or str(uuid.uuid4())
    results: List[Optional[BatchResult[T]]] = [None] * len(tasks)

    async def run(index: int) -> BatchResult[T]:
        try:
            return BatchResult(index=index, value=await tasks[index](key))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[Batch {key[:8]}] task {index} failed: {e}")
            return BatchResult(index=index, error=e)

    # warm the prompt cache
    results[0] = await run(0)

    if len(tasks) > 1:
        limiter = asyncio.Semaphore(width)

        async def limited(index: int) -> BatchResult[T]:
            async with limiter:
                return await run(index)

        for result in await asyncio.gather(*(limited(i) for i in range(1, len(tasks)))):
            results[result.index] = result

    failed = sum(1 for r in results if r is not None and not r.ok)
    logger.info(f"[Batch {key[:8]}] {len(tasks)} task(s), {failed} failed, width={width}")
    return [r for r in results if r is not None]
