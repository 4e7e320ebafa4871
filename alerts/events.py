"""Events consumed by the service driver and the queue that carries them.

Producer threads (timer polling, background fetches, the console) only ever
``post`` events; a single consumer thread drains the queue and hands each
event to the driver, so driver state has exactly one writer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from queue import Empty, Queue
from threading import Event
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class EntryPoint(Enum):
    INSTALL = "install"
    STARTUP = "startup"
    AUTH_RESPONSE = "auth_response"
    ACKNOWLEDGED = "acknowledged"


@dataclass(frozen=True)
class EntryRequested:
    entry: EntryPoint


@dataclass(frozen=True)
class SessionChecked:
    generation: int
    has_session: bool
    for_fire: bool = False


@dataclass(frozen=True)
class ProfileFetched:
    generation: int
    profile: Any


@dataclass(frozen=True)
class FetchFailed:
    generation: int
    error: Exception


@dataclass(frozen=True)
class AlarmFire:
    name: str
    scheduled_time: datetime


@dataclass(frozen=True)
class NotificationClicked:
    notification_id: Optional[str] = None


@dataclass(frozen=True)
class ResponseObserved:
    url: str
    status_code: int


class EventLoop:
    def __init__(self) -> None:
        self._queue: "Queue[Any]" = Queue()

    def post(self, event: Any) -> None:
        self._queue.put(event)

    def pending(self) -> int:
        return self._queue.qsize()

    def run(self, handler: Callable[[Any], None], stop_event: Event, poll_interval: float = 0.2) -> None:
        while not stop_event.is_set():
            try:
                event = self._queue.get(timeout=poll_interval)
            except Empty:
                continue
            self._dispatch(handler, event)

    def drain(self, handler: Callable[[Any], None], limit: Optional[int] = None) -> int:
        """Handle queued events, including ones posted while draining, without blocking."""
        handled = 0
        while limit is None or handled < limit:
            try:
                event = self._queue.get_nowait()
            except Empty:
                break
            self._dispatch(handler, event)
            handled += 1
        return handled

    def _dispatch(self, handler: Callable[[Any], None], event: Any) -> None:
        try:
            handler(event)
        except Exception:
            logger.error("Event handler failed for %s", event, exc_info=True)
