"""Async utilities for bridging blocking HTTP calls into the sync shell."""

import asyncio
from typing import Any, Callable, TypeVar

T = TypeVar("T")


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        client = GistClient(config)
        document = await run_sync(client.read, gist_id)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
