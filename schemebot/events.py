"""In-process event bus for SystemEvents.

Rule reads, eligibility evaluations, review activity and session lifecycle
changes are all announced here. The audit trail is the main subscriber:
each emitted event reaches it exactly once, from a background worker, so a
slow database write never holds a session or review lock.

    from schemebot.events import emit, subscribe

    subscribe(audit_handler)                              # every event
    subscribe(alert_handler, [EventType.REVIEW_CASE_QUEUED])  # filtered

    await emit(SystemEvent(event_type=EventType.SESSION_STARTED, session_id=sid))
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from schemebot.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[SystemEvent], Coroutine[Any, Any, None]]


def _name(handler: EventHandler) -> str:
    return getattr(handler, "__name__", repr(handler))


class _Subscriptions:
    """Handlers for all events plus handlers filtered by event type."""

    def __init__(self) -> None:
        self._all: list[EventHandler] = []
        self._by_type: dict[EventType, list[EventHandler]] = {}

    def add(self, handler: EventHandler, event_types: list[EventType] | None) -> None:
        if event_types is None:
            self._all.append(handler)
            return
        for event_type in event_types:
            self._by_type.setdefault(event_type, []).append(handler)

    def remove(self, handler: EventHandler) -> None:
        if handler in self._all:
            self._all.remove(handler)
        for handlers in self._by_type.values():
            if handler in handlers:
                handlers.remove(handler)

    def handlers_for(self, event_type: EventType) -> list[EventHandler]:
        return [*self._all, *self._by_type.get(event_type, ())]

    def count(self) -> int:
        return len(self._all) + sum(len(h) for h in self._by_type.values())


_subscriptions = _Subscriptions()
_queue: asyncio.Queue[SystemEvent] | None = None
_worker_task: asyncio.Task[None] | None = None


# ── Public API ───────────────────────────────────────────────────────


def subscribe(handler: EventHandler, event_types: list[EventType] | None = None) -> None:
    """Register `handler` for every event, or only for `event_types`."""
    _subscriptions.add(handler, event_types)
    scope = "all events" if event_types is None else ", ".join(t.value for t in event_types)
    logger.info("Subscribed %s to %s", _name(handler), scope)


def unsubscribe(handler: EventHandler) -> None:
    _subscriptions.remove(handler)


async def emit(event: SystemEvent) -> None:
    """Queue an event for delivery; never waits on subscribers."""
    queue = _ensure_worker()
    await queue.put(event)
    logger.debug(
        "Event %s queued (session=%s scheme=%s)",
        event.event_type.value,
        event.session_id,
        event.scheme_id,
    )


async def deliver(event: SystemEvent) -> int:
    """Hand one event to its subscribers concurrently. Returns how many failed.

    A failing handler is logged and does not stop the others.
    """
    handlers = _subscriptions.handlers_for(event.event_type)
    if not handlers:
        return 0
    outcomes = await asyncio.gather(*(handler(event) for handler in handlers), return_exceptions=True)
    failed = 0
    for handler, outcome in zip(handlers, outcomes):
        if isinstance(outcome, Exception):
            failed += 1
            logger.error(
                "Subscriber %s failed on %s (session=%s): %s",
                _name(handler),
                event.event_type.value,
                event.session_id,
                outcome,
            )
    return failed


# ── Background worker ────────────────────────────────────────────────


def _ensure_worker() -> asyncio.Queue[SystemEvent]:
    """Queue bound to the running loop, with its worker started."""
    global _worker_task, _queue
    loop = asyncio.get_running_loop()
    if _worker_task is not None and _worker_task.get_loop() is not loop:
        # left over from a loop that has since closed
        _worker_task = None
        _queue = None
    if _queue is None:
        _queue = asyncio.Queue()
    if _worker_task is None or _worker_task.done():
        _worker_task = asyncio.create_task(_drain(_queue))
        logger.info("Event worker started")
    return _queue


async def _drain(queue: asyncio.Queue[SystemEvent]) -> None:
    while True:
        event = await queue.get()
        try:
            await deliver(event)
        finally:
            queue.task_done()


# ── Lifecycle ────────────────────────────────────────────────────────


async def start_event_system() -> None:
    """Start the worker. Called from the FastAPI lifespan."""
    _ensure_worker()
    logger.info("Event system started with %d subscriptions", _subscriptions.count())


async def stop_event_system() -> None:
    """Deliver what is still queued, then stop the worker."""
    global _worker_task, _queue

    if _worker_task is not None and not _worker_task.done():
        if _queue is not None:
            await _queue.join()
        _worker_task.cancel()
        try:
            await _worker_task
        except asyncio.CancelledError:
            pass

    _worker_task = None
    _queue = None
    logger.info("Event system stopped")
