"""
Unit tests for cached batch execution.

Tests apps/pipeline/batch_executor.py
"""

import asyncio

import pytest

from apps.pipeline.batch_executor import execute_cached_batch


class TestExecuteCachedBatch:
    """Ordering, cache key sharing and failure isolation."""

    @pytest.mark.asyncio
    async def test_empty(self):
        assert await execute_cached_batch([]) == []

    @pytest.mark.asyncio
    async def test_results_in_input_order(self):
        async def task(index, key):
            # later tasks finish first
            await asyncio.sleep(0.01 * (5 - index))
            return index

        results = await execute_cached_batch(
            [lambda key, i=i: task(i, key) for i in range(5)],
            semaphore=5,
        )

        assert [r.value for r in results] == [0, 1, 2, 3, 4]
        assert [r.index for r in results] == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_shared_cache_key(self):
        keys = []

        async def task(key):
            keys.append(key)

        await execute_cached_batch([task, task, task], cache_key="warm")

        assert keys == ["warm", "warm", "warm"]

    @pytest.mark.asyncio
    async def test_generated_cache_key_is_shared(self):
        keys = set()

        async def task(key):
            keys.add(key)

        await execute_cached_batch([task, task, task])

        assert len(keys) == 1

    @pytest.mark.asyncio
    async def test_first_task_runs_alone(self):
        log = []

        async def task(index, key):
            log.append(("start", index))
            await asyncio.sleep(0.01)
            log.append(("end", index))

        await execute_cached_batch(
            [lambda key, i=i: task(i, key) for i in range(3)],
            semaphore=3,
        )

        assert log[:2] == [("start", 0), ("end", 0)]

    @pytest.mark.asyncio
    async def test_worker_pool_width(self):
        running = 0
        peak = 0

        async def task(key):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        await execute_cached_batch([task] * 9, semaphore=2)

        assert peak == 2

    @pytest.mark.asyncio
    async def test_failure_isolated(self):
        async def ok(key):
            return "ok"

        async def broken(key):
            raise ValueError("boom")

        results = await execute_cached_batch([ok, broken, ok])

        assert [r.ok for r in results] == [True, False, True]
        assert isinstance(results[1].error, ValueError)
        assert results[2].value == "ok"

    @pytest.mark.asyncio
    async def test_first_task_failure_does_not_stop_batch(self):
        async def ok(key):
            return 1

        async def broken(key):
            raise RuntimeError("cold cache")

        results = await execute_cached_batch([broken, ok])

        assert not results[0].ok
        assert results[1].value == 1
