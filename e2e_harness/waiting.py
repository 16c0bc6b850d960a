"""Condition polling with a bounded timeout."""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import TypeVar

from e2e_harness.errors import WaitTimeoutError

T = TypeVar("T")


async def wait_until(
    predicate: Callable[[], T | Awaitable[T]],
    *,
    timeout: float,
    poll_interval: float = 0.1,
    message: str = "condition",
) -> T:
    """Poll a predicate until it returns a truthy value.

    Args:
        predicate: Sync or async callable checked on every poll
        timeout: Maximum wait time in seconds
        poll_interval: Seconds between polls
        message: Description of the condition used in the timeout error

    Returns:
        The first truthy value returned by the predicate

    Raises:
        WaitTimeoutError: If the predicate stays falsy past the timeout

    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout

    while True:
        value = predicate()
        if inspect.isawaitable(value):
            value = await value
        if value:
            return value

        if loop.time() >= deadline:
            raise WaitTimeoutError(f"{message} not met within {timeout} seconds")

        await asyncio.sleep(poll_interval)
