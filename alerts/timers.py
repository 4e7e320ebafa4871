from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from threading import Event, Lock, Thread
from typing import Callable, List, Optional

from time_utils import ensure_tz, local_timezone, now_in_tz

from .events import AlarmFire
from .storage import AlarmRecord, load_alarms, save_alarms

logger = logging.getLogger(__name__)

AlarmListener = Callable[[AlarmFire], None]


class TimerFacility:
    """One-shot named alarms persisted to a JSON table and fired from a polling thread.

    Alarms outlive the process: whatever is left in the table when the process
    stops is loaded again by the next one and fires once due.
    """

    def __init__(
        self,
        storage_path: Path,
        check_interval: float = 1.0,
        timezone=None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.storage_path = storage_path
        self.check_interval = max(0.2, check_interval)
        self.tzinfo = timezone or local_timezone()
        self._clock = clock or (lambda: now_in_tz(self.tzinfo))

        self._alarms: List[AlarmRecord] = load_alarms(self.storage_path)
        self._listeners: List[AlarmListener] = []
        self._lock = Lock()
        self._stop_event = Event()
        self._thread: Optional[Thread] = None

    def start(self) -> None:
        logger.info("Loaded %s pending alarms from %s", len(self._alarms), self.storage_path)
        self._stop_event.clear()
        self._thread = Thread(target=self._loop, name="alarm-timer", daemon=True)
        self._thread.start()

    def shutdown(self) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=2)
        self._thread = None

    def add_listener(self, listener: AlarmListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_listener(self, listener: AlarmListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def create(self, name: str, when: datetime, sequence_id: int = 0) -> AlarmRecord:
        record = AlarmRecord(name=name, sequence_id=sequence_id, scheduled_at=ensure_tz(when, self.tzinfo))
        with self._lock:
            alarms = [a for a in self._alarms if a.name != name]
            alarms.append(record)
            alarms.sort(key=lambda a: a.scheduled_at)
            # The in-memory table only changes once the file write succeeded.
            save_alarms(self.storage_path, alarms)
            self._alarms = alarms
        logger.info("Alarm %s created for %s", name, record.scheduled_at.isoformat())
        return record

    def clear_all(self) -> bool:
        """Drop every pending alarm. Returns False when the alarm table could not be written.

        On failure nothing is dropped, in memory or on disk.
        """
        try:
            with self._lock:
                save_alarms(self.storage_path, [])
                dropped = len(self._alarms)
                self._alarms = []
        except OSError as exc:
            logger.error("Failed to clear pending alarms: %s", exc)
            return False
        if dropped:
            logger.info("Cleared %s pending alarms", dropped)
        return True

    def pending(self) -> List[AlarmRecord]:
        with self._lock:
            return list(self._alarms)

    def poll(self) -> List[AlarmRecord]:
        """Fire every alarm that is due now; returns the fired records."""
        fired = self._pop_due_alarms()
        for record in fired:
            self._deliver(record)
        return fired

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.poll()
            except OSError as exc:
                logger.error("Alarm table update failed: %s", exc)
            self._stop_event.wait(self.check_interval)

    def _pop_due_alarms(self) -> List[AlarmRecord]:
        now = self._clock()
        with self._lock:
            due = [a for a in self._alarms if a.scheduled_at <= now]
            if not due:
                return []
            remaining = [a for a in self._alarms if a.scheduled_at > now]
            save_alarms(self.storage_path, remaining)
            self._alarms = remaining
        return due

    def _deliver(self, record: AlarmRecord) -> None:
        logger.info("Alarm %s fired (scheduled %s)", record.name, record.scheduled_at.isoformat())
        fire = AlarmFire(name=record.name, scheduled_time=record.scheduled_at)
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(fire)
            except Exception:  # pragma: no cover - callback safety
                logger.error("Alarm listener failed", exc_info=True)
