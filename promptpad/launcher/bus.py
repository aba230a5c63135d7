"""Async event bus for launcher notifications."""

import asyncio
import inspect
import weakref
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from loguru import logger


@dataclass
class Event:
    """
    Bus event.

    Types follow ``category.action``: launcher.pasted, launcher.dismissed,
    prompt.created, prompt.imported, index.rebuilt.
    """
    type: str
    data: Dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    source: Optional[str] = None


def _weak(handler: Callable) -> weakref.ref:
    # Bound methods need WeakMethod or the reference dies immediately.
    if inspect.ismethod(handler):
        return weakref.WeakMethod(handler)
    return weakref.ref(handler)


class EventBus:
    """
    In-process pub/sub. Handlers are held weakly and run on the processor
    task, so emitting never blocks on subscribers.
    """

    def __init__(self, maxsize: int = 1000):
        self._subscribers: Dict[str, List[weakref.ref]] = defaultdict(list)
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._running = False
        self._processor_task: Optional[asyncio.Task] = None
        self._stats: Dict[str, int] = defaultdict(int)

    def subscribe(self, pattern: str, handler: Callable[[Event], Any]) -> None:
        """Subscribe to ``pattern``; ``*`` and ``category.*`` wildcards work."""
        self._subscribers[pattern].append(_weak(handler))
        logger.debug(f"Subscribed handler to {pattern}")

    def unsubscribe(self, pattern: str, handler: Callable[[Event], Any]) -> None:
        self._subscribers[pattern] = [
            ref for ref in self._subscribers[pattern]
            if ref() is not None and ref() != handler
        ]

    async def emit(self, event: Event) -> bool:
        """Queue an event; returns False when the queue is full and it was dropped."""
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(f"Event queue full, dropping {event.type}")
            self._stats["dropped"] += 1
            return False
        self._stats["emitted"] += 1
        return True

    async def start(self) -> None:
        if self._running:
            logger.warning("Event bus already running")
            return
        self._running = True
        self._processor_task = asyncio.create_task(self._process_events())
        logger.info("Event bus started")

    async def stop(self) -> None:
        self._running = False
        if self._processor_task:
            await self._processor_task
            self._processor_task = None
        logger.info("Event bus stopped")

    async def drain(self) -> None:
        """Deliver everything queued so far on the calling task."""
        while not self._queue.empty():
            await self._deliver(self._queue.get_nowait())

    async def _process_events(self) -> None:
        while self._running:
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=0.5)
            except asyncio.TimeoutError:
                continue
            await self._deliver(event)

    def _handlers_for(self, event_type: str) -> List[Callable]:
        handlers = []
        for pattern, refs in self._subscribers.items():
            if not self._matches_pattern(event_type, pattern):
                continue
            alive = [ref for ref in refs if ref() is not None]
            self._subscribers[pattern] = alive
            handlers.extend(ref() for ref in alive)
        return handlers

    async def _deliver(self, event: Event) -> None:
        for handler in self._handlers_for(event.type):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Handler error for {event.type}: {e}")
                self._stats["handler_errors"] += 1
        self._stats["processed"] += 1

    def _matches_pattern(self, event_type: str, pattern: str) -> bool:
        if pattern == "*":
            return True
        if pattern.endswith(".*"):
            return event_type.startswith(pattern[:-2] + ".")
        return event_type == pattern

    def get_stats(self) -> Dict[str, int]:
        return dict(self._stats)


_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Process-wide bus instance."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus
