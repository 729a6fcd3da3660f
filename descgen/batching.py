"""Chunked, throttled concurrent map with a hard barrier between chunks.

Items are split into fixed-size chunks. All calls in a chunk run concurrently
and the whole chunk is awaited before anything else happens; results are
appended in input order. Between chunks the loop sleeps for a fixed delay. A
stop check runs at every chunk boundary and is the only way to end early;
calls already in flight are never cancelled.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

StopCheck = Callable[[], "bool | Awaitable[bool]"]
ChunkCallback = Callable[[int, list[R]], Awaitable[None]]


async def _call_stop(should_stop: StopCheck | None) -> bool:
    if should_stop is None:
        return False
    result = should_stop()
    if inspect.isawaitable(result):
        result = await result
    return bool(result)


def chunked(items: Sequence[T], size: int) -> list[Sequence[T]]:
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    return [items[i:i + size] for i in range(0, len(items), size)]


async def chunked_throttled_map(
    items: Sequence[T],
    fn: Callable[[T], Awaitable[R]],
    *,
    chunk_size: int = 5,
    delay_seconds: float = 2.0,
    should_stop: StopCheck | None = None,
    on_chunk: ChunkCallback | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> list[R]:
    """Apply *fn* to every item, one chunk at a time.

    ``fn`` is expected to handle its own per-item failures. If it raises
    anyway, siblings in the chunk still run to completion and the first
    exception is re-raised after the barrier.

    ``on_chunk(index, results)`` is awaited after each chunk barrier.
    ``should_stop()`` is checked before each chunk after the first and again
    after the inter-chunk delay; returning True ends the map with the results
    gathered so far.
    """
    results: list[R] = []
    chunks = chunked(items, chunk_size)

    for index, chunk in enumerate(chunks):
        if index:
            if await _call_stop(should_stop):
                logger.info("Stopping before chunk %d/%d", index + 1, len(chunks))
                break
            if delay_seconds > 0:
                await sleep(delay_seconds)
        if await _call_stop(should_stop):
            logger.info("Stopping before chunk %d/%d", index + 1, len(chunks))
            break

        settled = await asyncio.gather(*(fn(item) for item in chunk), return_exceptions=True)
        for outcome in settled:
            if isinstance(outcome, BaseException):
                raise outcome

        chunk_results: list[R] = list(settled)  # type: ignore[arg-type]
        results.extend(chunk_results)
        if on_chunk is not None:
            await on_chunk(index, chunk_results)

    return results
