"""Retry utilities."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from src.utils.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    backoff_factor: float = 2.0,
    initial_delay: float = 1.0,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    operation: str = "operation",
) -> T:
    """
    Execute async function with exponential backoff retry.

    The wait before retry ``n`` (from 0) is ``initial_delay * backoff_factor**n``.
    """
    for attempt in range(max_attempts):
        try:
            return await fn()
        except retry_on as e:
            if attempt < max_attempts - 1:
                wait_time = initial_delay * backoff_factor**attempt
                logger.warning(
                    "Retrying after failure",
                    operation=operation,
                    attempt=attempt + 1,
                    max_attempts=max_attempts,
                    wait_seconds=wait_time,
                    error=str(e),
                )
                await asyncio.sleep(wait_time)
            else:
                raise
    raise RuntimeError(f"{operation} was not attempted")
