"""Tests for the chunked, throttled map."""

import asyncio

import pytest

from descgen.batching import chunked, chunked_throttled_map


class RecordingSleep:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def test_chunked_sizes():
    assert [list(c) for c in chunked(list(range(7)), 3)] == [[0, 1, 2], [3, 4, 5], [6]]
    assert chunked([], 5) == []


def test_chunked_rejects_zero():
    with pytest.raises(ValueError):
        chunked([1, 2], 0)


@pytest.mark.asyncio
async def test_results_keep_input_order_despite_latency():
    async def slow_first(i: int) -> int:
        # Earlier items finish last within each chunk
        await asyncio.sleep(0.01 * (5 - i % 5))
        return i * 10

    results = await chunked_throttled_map(list(range(12)), slow_first, chunk_size=5, delay_seconds=0)
    assert results == [i * 10 for i in range(12)]


@pytest.mark.asyncio
async def test_barrier_between_chunks():
    events: list[str] = []

    async def work(i: int) -> int:
        events.append(f"start {i}")
        await asyncio.sleep(0.02 if i % 2 == 0 else 0.001)
        events.append(f"end {i}")
        return i

    await chunked_throttled_map(list(range(6)), work, chunk_size=3, delay_seconds=0)
    # Every call of chunk 1 ends before any call of chunk 2 starts
    first_start_chunk2 = events.index("start 3")
    for i in range(3):
        assert events.index(f"end {i}") < first_start_chunk2


@pytest.mark.asyncio
async def test_delay_only_between_chunks():
    sleep = RecordingSleep()

    async def ident(i):
        return i

    await chunked_throttled_map(list(range(12)), ident, chunk_size=5, delay_seconds=2.0, sleep=sleep)
    assert sleep.calls == [2.0, 2.0]


@pytest.mark.asyncio
async def test_single_chunk_never_sleeps():
    sleep = RecordingSleep()

    async def ident(i):
        return i

    await chunked_throttled_map([1, 2, 3], ident, chunk_size=5, delay_seconds=2.0, sleep=sleep)
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_stop_check_ends_at_chunk_boundary():
    processed: list[int] = []
    chunks_done: list[int] = []

    async def work(i):
        processed.append(i)
        return i

    async def on_chunk(index, results):
        chunks_done.append(index)

    results = await chunked_throttled_map(
        list(range(20)),
        work,
        chunk_size=5,
        delay_seconds=0,
        should_stop=lambda: len(chunks_done) >= 2,
        on_chunk=on_chunk,
    )
    assert results == list(range(10))
    assert sorted(processed) == list(range(10))
    assert chunks_done == [0, 1]


@pytest.mark.asyncio
async def test_async_stop_check_before_first_chunk():
    async def stop():
        return True

    async def work(i):
        raise AssertionError("should not run")

    assert await chunked_throttled_map([1, 2], work, should_stop=stop) == []


@pytest.mark.asyncio
async def test_exception_raised_after_siblings_finish():
    finished: list[int] = []

    async def work(i):
        if i == 0:
            raise RuntimeError("boom")
        await asyncio.sleep(0.01)
        finished.append(i)
        return i

    with pytest.raises(RuntimeError, match="boom"):
        await chunked_throttled_map([0, 1, 2, 3], work, chunk_size=3, delay_seconds=0)
    assert sorted(finished) == [1, 2]
