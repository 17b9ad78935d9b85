"""Bounded concurrent batches and the retry wrapper used for every transfer."""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Awaitable, Callable, List, Optional, Sequence

from migration_types import TransferItem, TransferResult

UnitOfWork = Callable[[TransferItem], Awaitable[object]]
ChunkCallback = Callable[[List[TransferResult]], Awaitable[None]]


def _describe(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


async def _settle(unit_of_work: UnitOfWork, item: TransferItem) -> TransferResult:
    try:
        outcome = await unit_of_work(item)
    except Exception as exc:  # pylint: disable=broad-except
        # Failure stays with this item; siblings and later chunks still run.
        logging.exception("Unexpected failure processing %s/%s", item.bucket, item.path)
        item.last_error = _describe(exc)
        return TransferResult(item=item, success=False, error=item.last_error)
    if isinstance(outcome, TransferResult):
        return outcome
    return TransferResult(item=item, success=True)


async def _drain_chunk(chunk: Sequence[TransferItem], unit_of_work: UnitOfWork) -> List[TransferResult]:
    """Queue the chunk and drain it with one worker per member; returns in chunk order."""
    queue: asyncio.Queue = asyncio.Queue()
    for position, item in enumerate(chunk):
        queue.put_nowait((position, item))
    slots: List[Optional[TransferResult]] = [None] * len(chunk)

    async def worker():
        while True:
            try:
                position, item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            slots[position] = await _settle(unit_of_work, item)
            queue.task_done()

    await asyncio.gather(*(worker() for _ in chunk))
    return [result for result in slots if result is not None]


async def run_bounded_batches(
    items: Sequence[TransferItem],
    concurrency: int,
    unit_of_work: UnitOfWork,
    *,
    pause: float = 0.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_chunk_settled: Optional[ChunkCallback] = None,
    label: str = "batch",
) -> List[TransferResult]:
    """Run *unit_of_work* over *items* in consecutive chunks of *concurrency*.

    Chunk i starts only after chunk i-1 has fully settled, so at most
    *concurrency* calls are ever in flight. Results keep the input order.
    *on_chunk_settled* is awaited with each chunk's results before the next chunk starts.
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be at least 1, got {concurrency}")
    results: List[TransferResult] = []
    total_chunks = math.ceil(len(items) / concurrency)
    for chunk_number, start in enumerate(range(0, len(items), concurrency), 1):
        chunk = items[start : start + concurrency]
        print(f"🔄 Processing {label} {chunk_number}/{total_chunks} ({len(chunk)} files)")
        chunk_results = await _drain_chunk(chunk, unit_of_work)
        results.extend(chunk_results)
        if on_chunk_settled is not None:
            await on_chunk_settled(chunk_results)
        if start + concurrency < len(items) and pause > 0:
            await sleep(pause)
    return results


def with_retry(
    unit_of_work: UnitOfWork,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: str = "transfer",
) -> Callable[[TransferItem], Awaitable[TransferResult]]:
    """Wrap *unit_of_work* so it is tried up to *max_attempts* times.

    Waits ``attempt * base_delay`` seconds after each failed attempt except the
    last. The final failure is returned as a TransferResult, not raised.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

    async def wrapped(item: TransferItem) -> TransferResult:
        last_error = ""
        for attempt in range(1, max_attempts + 1):
            try:
                await unit_of_work(item)
            except Exception as exc:  # pylint: disable=broad-except
                last_error = _describe(exc)
                if attempt == max_attempts:
                    break
                logging.warning("⚠️  Retry %d/%d for %s %s: %s", attempt, max_attempts, label, item.path, last_error)
                await sleep(attempt * base_delay)
            else:
                item.last_error = ""
                return TransferResult(item=item, success=True)
        item.last_error = last_error
        return TransferResult(item=item, success=False, error=last_error)

    return wrapped
