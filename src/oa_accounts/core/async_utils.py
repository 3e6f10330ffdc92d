"""Async utilities for oa-accounts."""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from functools import partial
from typing import Any, TypeVar


T = TypeVar("T")
K = TypeVar("K")


async def run_in_executor(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a synchronous function in the default executor.

    Args:
        func: The synchronous function to run
        *args: Positional arguments to pass to the function
        **kwargs: Keyword arguments to pass to the function

    Returns:
        The result of the function call
    """
    loop = asyncio.get_running_loop()
    if kwargs:
        func = partial(func, **kwargs)
    return await loop.run_in_executor(None, func, *args)


async def gather_bounded(
    keys: Sequence[K],
    worker: Callable[[K], Awaitable[T]],
    *,
    limit: int,
    cancel_event: asyncio.Event | None = None,
    on_cancelled: Callable[[K], BaseException],
) -> list[tuple[K, T | None, BaseException | None]]:
    """Run ``worker`` for every key with at most ``limit`` running at once.

    Failures are isolated: each key yields ``(key, result, error)`` and a
    failing worker never cancels its siblings. When ``cancel_event`` is set,
    keys still waiting for a slot are abandoned and in-flight workers are
    cancelled; both report ``on_cancelled(key)`` as their error.

    Args:
        keys: Work items, reported back in the same order
        worker: Coroutine function processing one key
        limit: Maximum number of concurrently running workers
        cancel_event: Optional signal that abandons remaining work
        on_cancelled: Builds the error reported for abandoned keys

    Returns:
        One ``(key, result, error)`` triple per key
    """
    if limit < 1:
        raise ValueError("limit must be at least 1")

    semaphore = asyncio.Semaphore(limit)
    cancel_event = cancel_event or asyncio.Event()

    async def _first(
        task: asyncio.Future[Any], cancel_wait: asyncio.Future[Any]
    ) -> bool:
        # True when ``task`` finished before the cancel signal.
        try:
            done, _ = await asyncio.wait(
                {task, cancel_wait}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        return task in done

    async def _run(key: K) -> tuple[K, T | None, BaseException | None]:
        if cancel_event.is_set():
            return key, None, on_cancelled(key)

        cancel_wait = asyncio.ensure_future(cancel_event.wait())
        acquire = asyncio.ensure_future(semaphore.acquire())
        try:
            if not await _first(acquire, cancel_wait):
                acquire.cancel()
                if acquire.done() and not acquire.cancelled():
                    semaphore.release()
                return key, None, on_cancelled(key)

            try:
                work = asyncio.ensure_future(worker(key))
                if not await _first(work, cancel_wait):
                    work.cancel()
                    await asyncio.gather(work, return_exceptions=True)
                    return key, None, on_cancelled(key)
                error = work.exception()
                if error is not None:
                    return key, None, error
                return key, work.result(), None
            finally:
                semaphore.release()
        finally:
            cancel_wait.cancel()

    return list(await asyncio.gather(*(_run(key) for key in keys)))
