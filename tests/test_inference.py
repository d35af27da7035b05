"""Tests for the inference thread pool."""

from __future__ import annotations

import asyncio
import threading

import pytest

from imagetagger.config import Settings
from imagetagger.ml.inference import InferencePool


def _blocking(release: threading.Event) -> str:
    release.wait(timeout=5)
    return "done"


class TestInferencePool:
    async def test_runs_callable_in_worker(self) -> None:
        pool = InferencePool(Settings(max_concurrent=1))
        try:
            name = await pool.run(lambda: threading.current_thread().name)
            assert name.startswith("tagger")
            assert pool.active_count == 0
            assert pool.queue_depth == 0
        finally:
            pool.shutdown()

    async def test_times_out_when_busy(self) -> None:
        pool = InferencePool(Settings(max_concurrent=1), acquire_timeout=0.05)
        release = threading.Event()
        try:
            first = asyncio.create_task(pool.run(_blocking, release))
            await asyncio.sleep(0.01)
            assert pool.active_count == 1

            with pytest.raises(TimeoutError):
                await pool.run(_blocking, release)
            assert pool.queue_depth == 0

            release.set()
            assert await first == "done"
        finally:
            release.set()
            pool.shutdown()
