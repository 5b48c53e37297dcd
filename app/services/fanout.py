"""Join-all helpers for concurrent, failure-isolated fetches.

Both helpers wait for every awaitable to settle; a failure is logged and
replaced by a default instead of cancelling or failing its siblings.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")


async def settle(aw: Awaitable[T], default: T, *, label: str) -> T:
    """Await *aw*, returning *default* if it raises."""
    try:
        return await aw
    except Exception as exc:
        logger.warning("fetch_failed", fetch=label, error=repr(exc))
        return default


async def gather_settled(*aws: Awaitable[T], label: str) -> list[T]:
    """Run *aws* concurrently and return the results of those that succeeded.

    Order of the surviving results follows the order of *aws*.
    """
    results = await asyncio.gather(*aws, return_exceptions=True)
    settled: list[T] = []
    for result in results:
        if isinstance(result, Exception):
            logger.warning("fetch_failed", fetch=label, error=repr(result))
            continue
        if isinstance(result, BaseException):
            raise result
        settled.append(result)
    return settled
