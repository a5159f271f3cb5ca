"""
Preliminary event emission.

One event is dispatched per accepted disclosure round so that progress
displays and transcripts can show what the agent loaded and when.

Usage:
    dispatcher = EventDispatcher()
    dispatcher.subscribe(lambda event: print(event.requested))
    dispatcher.dispatch(event)

Listeners may be plain callables or coroutine functions. Dispatch never
blocks the session and never lets a listener failure escape.
"""

import asyncio
import inspect
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Hashable, List, Union

from pydantic import BaseModel, Field

from libs.core.models import Endpoint
from libs.preliminary.kinds import PreliminaryKind

logger = logging.getLogger(__name__)

EventListener = Callable[["PreliminaryEvent"], Union[None, Awaitable[None]]]


class PreliminaryEvent(BaseModel):
    """One accepted disclosure."""

    type: str = "preliminary"
    source: str
    source_id: str
    function: PreliminaryKind
    existing: List[Union[Endpoint, str]]
    requested: List[Union[Endpoint, str]]
    trial: int
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def create(
        cls,
        source: str,
        source_id: str,
        kind: PreliminaryKind,
        existing: List[Hashable],
        requested: List[Hashable],
        trial: int,
    ) -> "PreliminaryEvent":
        return cls(
            source=source,
            source_id=source_id,
            function=kind,
            existing=list(existing),
            requested=list(requested),
            trial=trial,
        )


class EventDispatcher:
    """Fire-and-forget fan-out to event listeners."""

    def __init__(self):
        self._listeners: List[EventListener] = []
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def dispatch(self, event: PreliminaryEvent) -> None:
        for listener in list(self._listeners):
            try:
                result: Any = listener(event)
            except Exception as e:
                logger.warning(f"Event listener {listener!r} failed: {e}")
                continue
            if inspect.isawaitable(result):
                self._schedule(result)

    def _schedule(self, awaitable: Awaitable[None]) -> None:
        try:
            task = asyncio.ensure_future(awaitable)
        except RuntimeError as e:
            # no running loop: the coroutine cannot be scheduled
            logger.warning(f"Dropped async event listener result: {e}")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        self._pending.add(task)
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"Async event listener failed: {error}")

    async def drain(self) -> None:
        """Wait for scheduled async listeners (tests and shutdown)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
