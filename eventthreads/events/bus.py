"""In-process async event bus.

Thread mutations publish typed events after they commit; observers
(audit logging, push adapters) subscribe without the core knowing
about them. Clients that poll never depend on the bus.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Callable, Coroutine, Dict, List, Optional, Type

import structlog

logger = structlog.get_logger()


@dataclass
class Event:
    """Base event class. All events carry an ID, timestamp, and source."""

    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    source: str = "unknown"

    @property
    def event_type(self) -> str:
        return type(self).__name__


EventHandler = Callable[[Event], Coroutine[Any, Any, None]]


class EventBus:
    """Async event bus with typed subscriptions.

    Published events are queued and dispatched by a background task;
    handlers for one event run concurrently and a failing handler never
    affects the others or the publisher.
    """

    def __init__(self) -> None:
        self._handlers: Dict[Type[Event], List[EventHandler]] = {}
        self._global_handlers: List[EventHandler] = []
        self._running = False
        self._queue: Optional[asyncio.Queue[Event]] = None
        self._processor_task: Optional[asyncio.Task[None]] = None

    @property
    def is_running(self) -> bool:
        return self._running

    def subscribe(self, event_type: Type[Event], handler: EventHandler) -> None:
        """Register a handler for a specific event type (and its subclasses)."""
        self._handlers.setdefault(event_type, []).append(handler)
        logger.debug(
            "Handler subscribed",
            event_type=event_type.__name__,
            handler=handler.__qualname__,
        )

    def subscribe_all(self, handler: EventHandler) -> None:
        """Register a handler that receives all events."""
        self._global_handlers.append(handler)

    def unsubscribe(self, handler: EventHandler) -> None:
        """Remove a handler from every subscription it holds."""
        for handlers in self._handlers.values():
            while handler in handlers:
                handlers.remove(handler)
        while handler in self._global_handlers:
            self._global_handlers.remove(handler)

    async def publish(self, event: Event) -> None:
        """Publish an event to be processed by matching handlers.

        Events published while the bus is stopped are dropped.
        """
        if not self._running or self._queue is None:
            logger.debug(
                "Event bus not running, event dropped", event_type=event.event_type
            )
            return
        logger.debug(
            "Event published",
            event_type=event.event_type,
            event_id=event.id,
            source=event.source,
        )
        await self._queue.put(event)

    async def start(self) -> None:
        """Start processing events from the queue."""
        if self._running:
            return
        queue: asyncio.Queue[Event] = asyncio.Queue()
        self._queue = queue
        self._running = True
        self._processor_task = asyncio.create_task(self._process_events(queue))
        logger.info("Event bus started")

    async def stop(self) -> None:
        """Dispatch what is already queued, then stop."""
        if not self._running:
            return
        self._running = False
        if self._queue is not None:
            # The processor is idle on an empty queue once this returns
            await self._queue.join()
        if self._processor_task:
            self._processor_task.cancel()
            try:
                await self._processor_task
            except asyncio.CancelledError:
                pass
            self._processor_task = None
        logger.info("Event bus stopped")

    async def _process_events(self, queue: asyncio.Queue[Event]) -> None:
        """Main event processing loop."""
        while True:
            event = await queue.get()
            try:
                await self._dispatch(event)
            finally:
                queue.task_done()

    async def _dispatch(self, event: Event) -> None:
        """Dispatch event to all matching handlers concurrently."""
        handlers: List[EventHandler] = []

        for event_type, type_handlers in self._handlers.items():
            if isinstance(event, event_type):
                handlers.extend(type_handlers)

        handlers.extend(self._global_handlers)

        if not handlers:
            logger.debug("No handlers for event", event_type=event.event_type)
            return

        results = await asyncio.gather(
            *(handler(event) for handler in handlers),
            return_exceptions=True,
        )

        for handler, result in zip(handlers, results):
            if isinstance(result, Exception):
                logger.error(
                    "Event handler failed",
                    event_type=event.event_type,
                    event_id=event.id,
                    handler=handler.__qualname__,
                    error=str(result),
                )
