"""Bounded-concurrency fan-out over a list of work items."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def bounded_map(
    items: Sequence[T],
    concurrency: int,
    fn: Callable[[T, int], Awaitable[R]],
) -> list[R]:
    """Run ``fn(item, index)`` for every item with at most *concurrency* in flight.

    Results are returned in the order of *items*, whatever order the work
    finishes in. Work units are expected to contain their own failures; an
    uncaught exception propagates once the other workers have drained.
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be >= 1, got {concurrency}")
    if not items:
        return []

    results: list[R | None] = [None] * len(items)
    next_index = 0

    async def worker() -> None:
        nonlocal next_index
        while next_index < len(items):
            i = next_index
            next_index += 1
            results[i] = await fn(items[i], i)

    workers = [worker() for _ in range(min(concurrency, len(items)))]
    outcomes = await asyncio.gather(*workers, return_exceptions=True)
    for outcome in outcomes:
        if isinstance(outcome, BaseException):
            raise outcome
    return results  # type: ignore[return-value]
