"""Deadline helpers shared by acquisition, renewal and disposal."""

import asyncio
import concurrent.futures
import threading
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any, TypeVar

T = TypeVar("T")


async def timeout_after(aw: Awaitable[T], timeout: float) -> T:
    """
    Await ``aw`` for at most ``timeout`` seconds.

    Raises:
        asyncio.TimeoutError: If ``aw`` did not complete in time. The
            underlying awaitable is cancelled.
    """
    return await asyncio.wait_for(aw, timeout)


async def wait_until_set(event: asyncio.Event, timeout: float) -> bool:
    """Wait up to ``timeout`` seconds for ``event``. Returns True if it was set."""
    if event.is_set():
        return True
    try:
        await timeout_after(event.wait(), timeout)
    except asyncio.TimeoutError:
        return False
    return True


def run_detached(
    func: Callable[[], Coroutine[Any, Any, T]],
    *,
    timeout: float | None = None,
) -> T:
    """
    Run a coroutine function to completion on a private event loop.

    The coroutine runs in a daemon worker thread with its own loop, so the
    caller may be plain synchronous code or code already running inside an
    event loop; neither needs to yield for the coroutine to make progress.

    Args:
        func: Zero-argument coroutine function to run
        timeout: Maximum time to block the calling thread (None = no bound)

    Returns:
        The coroutine's result

    Raises:
        concurrent.futures.TimeoutError: If the coroutine is still running
            after ``timeout`` seconds. The worker thread is abandoned.
        Exception: Whatever the coroutine raised.
    """
    future: concurrent.futures.Future[T] = concurrent.futures.Future()

    def _target() -> None:
        try:
            future.set_result(asyncio.run(func()))
        except BaseException as exc:
            future.set_exception(exc)

    thread = threading.Thread(
        target=_target,
        daemon=True,
        name=f"leasedfilelock-{getattr(func, '__name__', 'detached')}",
    )
    thread.start()
    return future.result(timeout)
