from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Callable

from .errors import DuplicateFireError, StaleAlarmError
from .events import AlarmFire
from .state import DriverState
from .storage import AlarmRecord
from .timers import TimerFacility

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    IDLE = "idle"
    ARMED = "armed"
    FIRED = "fired"


class AlarmScheduler:
    """Keeps exactly one alert alarm outstanding and filters its fire events."""

    def __init__(self, timers: TimerFacility, state: DriverState, base_name: str = "alfred_alert_"):
        self.timers = timers
        self.state = state
        self.base_name = base_name
        self.status = SchedulerState.IDLE

    def clear_all(self) -> bool:
        """Best-effort clear of every pending alarm. Returns whether the clear succeeded."""
        cleared = self.timers.clear_all()
        if not cleared:
            logger.warning("Stale alarms may still be pending")
        return cleared

    def arm(self, instant: datetime) -> AlarmRecord:
        # Alarms left by an earlier process generation are cleared too.
        self.clear_all()
        self.state.alarm_iteration += 1
        name = f"{self.base_name}{self.state.alarm_iteration}"
        record = self.timers.create(name, instant, sequence_id=self.state.alarm_iteration)
        self.status = SchedulerState.ARMED
        logger.info("Next alert armed as %s at %s", name, record.scheduled_at.isoformat())
        return record

    def accept(self, fire: AlarmFire) -> None:
        """Validate a fire event, raising when it must be discarded.

        The watermark only moves for fires that are not duplicates, and it
        moves before the name check so a stale alarm still consumes its instant.
        """
        if self.state.last_fired_at is not None and fire.scheduled_time == self.state.last_fired_at:
            self.status = SchedulerState.IDLE
            raise DuplicateFireError(f"Alarm {fire.name} already fired for {fire.scheduled_time.isoformat()}")
        self.state.last_fired_at = fire.scheduled_time
        self.status = SchedulerState.FIRED
        if not fire.name.startswith(self.base_name):
            raise StaleAlarmError(f"Alarm {fire.name} does not belong to {self.base_name}")

    def handle_fire(self, fire: AlarmFire, continuation: Callable[[AlarmFire], None]) -> bool:
        try:
            self.accept(fire)
        except DuplicateFireError as exc:
            logger.info("Discarding duplicate fire: %s", exc)
            return False
        except StaleAlarmError as exc:
            logger.info("Discarding stale alarm: %s", exc)
            return False
        continuation(fire)
        return True
