"""In-process event bus for workflow, extraction and gateway events.

Producers call emit() and return immediately; one background worker
delivers events in emission order to every matching subscription. A
failing subscriber is logged and never affects the producer or the other
subscribers.

    from src.events import emit, subscribe

    subscribe(on_version, {EventType.VERSION_CREATED, EventType.VERSION_SAVE_FAILED})
    await emit(SystemEvent(event_type=EventType.VERSION_CREATED, analysis_id=record_id))

The queue is created lazily on first emit, so modules can emit outside the
FastAPI lifespan (scripts, tests). start_event_system()/stop_event_system()
bracket the application lifetime and flush pending events on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Collection, Coroutine
from dataclasses import dataclass
from typing import Any

from src.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[SystemEvent], Coroutine[Any, Any, None]]


@dataclass(frozen=True)
class Subscription:
    handler: EventHandler
    event_types: frozenset[EventType] | None = None  # None = every event

    def matches(self, event: SystemEvent) -> bool:
        return self.event_types is None or event.event_type in self.event_types


_subscriptions: list[Subscription] = []
_queue: asyncio.Queue[SystemEvent] | None = None
_worker_task: asyncio.Task[None] | None = None


def subscribe(handler: EventHandler, event_types: Collection[EventType] | None = None) -> None:
    """Register an async handler, for every event or only the given types."""
    types = frozenset(event_types) if event_types is not None else None
    _subscriptions.append(Subscription(handler, types))
    logger.info(
        "Subscribed %s to %s",
        getattr(handler, "__name__", repr(handler)),
        "all events" if types is None else sorted(t.value for t in types),
    )


def unsubscribe(handler: EventHandler) -> None:
    """Drop every subscription of a handler."""
    _subscriptions[:] = [s for s in _subscriptions if s.handler is not handler]


async def emit(event: SystemEvent) -> None:
    """Queue an event for delivery."""
    global _queue
    if _queue is None:
        _queue = asyncio.Queue()
    _ensure_worker()
    await _queue.put(event)
    logger.debug("Event queued: %s (session=%s)", event.event_type.value, event.session_id)


# ── Worker ───────────────────────────────────────────────────────────


def _ensure_worker() -> None:
    global _worker_task
    if _worker_task is None or _worker_task.done():
        _worker_task = asyncio.create_task(_run_worker())


async def _run_worker() -> None:
    queue = _queue
    if queue is None:
        return
    while True:
        event = await queue.get()
        try:
            await deliver(event)
        finally:
            queue.task_done()


async def deliver(event: SystemEvent) -> int:
    """Run every matching handler for one event; returns how many failed."""
    handlers = [s.handler for s in _subscriptions if s.matches(event)]
    if not handlers:
        return 0
    results = await asyncio.gather(*(h(event) for h in handlers), return_exceptions=True)
    failed = 0
    for handler, result in zip(handlers, results, strict=True):
        if isinstance(result, Exception):
            failed += 1
            logger.error(
                "Subscriber %s failed on %s: %s",
                getattr(handler, "__name__", repr(handler)),
                event.event_type.value,
                result,
            )
    return failed


# ── Lifecycle ────────────────────────────────────────────────────────


async def start_event_system() -> None:
    """Create a fresh queue and worker. Called from the FastAPI lifespan."""
    global _queue
    _queue = asyncio.Queue()
    _ensure_worker()
    logger.info("Event system started with %d subscriptions", len(_subscriptions))


async def stop_event_system() -> None:
    """Deliver what is still queued, then stop the worker."""
    global _worker_task, _queue

    if _queue is not None:
        await _queue.join()

    if _worker_task is not None and not _worker_task.done():
        _worker_task.cancel()
        try:
            await _worker_task
        except asyncio.CancelledError:
            pass

    _worker_task = None
    _queue = None
    logger.info("Event system stopped")
