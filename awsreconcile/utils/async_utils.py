"""
Asynchronous utility helpers for awsreconcile.

Provides bounded concurrent execution of independent coroutines.
"""

import asyncio
from typing import Any, Awaitable, List, TypeVar

T = TypeVar("T")


async def gather_with_limit(
    coros: List[Awaitable[T]], limit: int = 5, return_exceptions: bool = False
) -> List[Any]:
    """
    Run multiple coroutines with a concurrency limit using a semaphore.

    Prevents resource exhaustion by limiting parallel execution.

    Args:
        coros: List of coroutines to execute
        limit: Maximum concurrent coroutines (default: 5)
        return_exceptions: Return exceptions in place of results instead of
            propagating the first one

    Returns:
        List of results in same order as input coroutines

    Raises:
        Propagates the first exception unless return_exceptions is set

    Example:
        tasks = [reconciler.reconcile(data) for data in resources]
        results = await gather_with_limit(tasks, limit=10)
    """
    semaphore = asyncio.Semaphore(limit)

    async def bounded_coro(coro: Awaitable[T]) -> T:
        async with semaphore:
            return await coro

    return await asyncio.gather(
        *[bounded_coro(coro) for coro in coros],
        return_exceptions=return_exceptions
    )
