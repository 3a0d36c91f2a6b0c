"""Event emitter for dispatching row updates to consumers.

Each consumer gets its own queue and worker task, so consumers run
concurrently and independently while each one still sees events in the
order they were emitted (fragments must never be applied out of order).
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .events import Event
    from .protocol import Consumer

logger = logging.getLogger(__name__)


class EventEmitter:
    """Dispatches events to multiple consumers.

    emit() enqueues and returns immediately; it never waits for consumers.
    A failing consumer is logged and keeps receiving later events.

    Example:
        emitter = EventEmitter()
        emitter.subscribe(terminal_consumer)

        await emitter.emit(RowAdded(row=row))
        await emitter.drain()  # wait until every consumer caught up
    """

    def __init__(self) -> None:
        """Initialize the event emitter with an empty subscriber list."""
        self._consumers: list[Consumer] = []
        self._queues: dict[int, asyncio.Queue[Event]] = {}
        self._workers: dict[int, asyncio.Task[None]] = {}

    def subscribe(self, consumer: Consumer) -> None:
        """Subscribe a consumer to receive events.

        Args:
            consumer: A consumer implementing the Consumer protocol.
        """
        self._consumers.append(consumer)
        self._queues[id(consumer)] = asyncio.Queue()
        logger.debug(
            "consumer_subscribed",
            extra={
                "consumer_type": type(consumer).__name__,
                "total_subscribers": len(self._consumers),
            },
        )

    def unsubscribe(self, consumer: Consumer) -> None:
        """Unsubscribe a consumer from receiving events.

        Pending events for the consumer are dropped.

        Raises:
            ValueError: If the consumer is not subscribed.
        """
        self._consumers.remove(consumer)
        self._queues.pop(id(consumer), None)
        worker = self._workers.pop(id(consumer), None)
        if worker is not None:
            worker.cancel()
        logger.debug(
            "consumer_unsubscribed",
            extra={
                "consumer_type": type(consumer).__name__,
                "total_subscribers": len(self._consumers),
            },
        )

    @property
    def subscriber_count(self) -> int:
        """Return the number of subscribed consumers."""
        return len(self._consumers)

    async def emit(self, event: Event) -> None:
        """Queue an event for every subscribed consumer.

        Args:
            event: The event to dispatch.
        """
        logger.debug(
            "event_dispatch_started",
            extra={
                "event_type": type(event).__name__,
                "consumer_count": len(self._consumers),
            },
        )
        for consumer in self._consumers:
            self._queues[id(consumer)].put_nowait(event)
            self._ensure_worker(consumer)

    def _ensure_worker(self, consumer: Consumer) -> None:
        key = id(consumer)
        worker = self._workers.get(key)
        if worker is None or worker.done():
            self._workers[key] = asyncio.create_task(
                self._run_consumer(consumer, self._queues[key]),
                name=f"dispatch_to_{type(consumer).__name__}",
            )

    async def _run_consumer(self, consumer: Consumer, queue: asyncio.Queue[Event]) -> None:
        """Feed queued events to one consumer, in order."""
        consumer_type = type(consumer).__name__
        while True:
            event = await queue.get()
            event_type = type(event).__name__
            try:
                await consumer.on_event(event)
                logger.debug(
                    "event_dispatch_completed",
                    extra={"event_type": event_type, "consumer_type": consumer_type},
                )
            except Exception:
                logger.exception(
                    "event_dispatch_failed",
                    extra={"event_type": event_type, "consumer_type": consumer_type},
                )
            finally:
                queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued event has been processed."""
        for queue in list(self._queues.values()):
            await queue.join()

    async def close(self) -> None:
        """Stop all consumer workers."""
        workers = list(self._workers.values())
        self._workers.clear()
        for worker in workers:
            worker.cancel()
        for worker in workers:
            try:
                await worker
            except asyncio.CancelledError:
                pass
