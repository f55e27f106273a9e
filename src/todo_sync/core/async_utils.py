"""Bridge blocking Dropbox HTTP calls into the asyncio event loop."""

import asyncio
import logging
from typing import Any, Callable, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a worker thread without blocking the event loop.

    Every ``requests`` call made by the gateway and the credential
    manager goes through here, so a slow network suspends the caller
    instead of freezing timers and the connectivity monitor.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        metadata = await run_sync(client.get_metadata, token, "/todo.txt")
    """
    return await asyncio.to_thread(func, *args, **kwargs)
