"""Cooperative cancellation token threaded through a single send."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from .errors import Cancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Cancellation signal for one in-flight request.

    The transport, the stream decoder and the session all check the same
    token at their suspension points. Cancelling runs the registered
    callbacks once (the transport registers one that aborts the HTTP
    response) and wakes every pending ``guard()`` call.

    Example:
        token = CancellationToken()
        line = await token.guard(response.content.readline())
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._event: asyncio.Event | None = None
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        """Return True once cancel() has been called."""
        return self._cancelled

    def cancel(self) -> None:
        """Request cancellation. Idempotent."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._event is not None:
            self._event.set()

        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("cancel_callback_failed")

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Register a callback to run on cancellation.

        If the token is already cancelled the callback runs immediately.
        """
        if self._cancelled:
            callback()
            return
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[], None]) -> None:
        """Unregister a callback. Missing callbacks are ignored."""
        try:
            self._callbacks.remove(callback)
        except ValueError:
            pass

    def raise_if_cancelled(self) -> None:
        """Raise Cancelled if cancellation was requested."""
        if self._cancelled:
            raise Cancelled()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await a suspension point, aborting it on cancellation.

        The awaitable runs as a task raced against the cancel signal. If
        cancellation wins, the task is cancelled (not drained) and
        Cancelled is raised.

        Raises:
            Cancelled: If cancellation was requested before or during the wait.
        """
        if self._cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise Cancelled()

        if self._event is None:
            self._event = asyncio.Event()

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task.done():
            return task.result()

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.debug("guarded_task_failed_after_cancel", exc_info=True)
        raise Cancelled()
