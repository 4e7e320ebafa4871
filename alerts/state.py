from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional


class DriverPhase(Enum):
    STOPPED = "stopped"
    CHECKING_SESSION = "checking_session"
    PROMPTING_LOGIN = "prompting_login"
    FETCHING_PROFILE = "fetching_profile"
    SCHEDULING = "scheduling"
    WAITING_FOR_ALARM = "waiting_for_alarm"
    NOTIFYING = "notifying"


class DriverState:
    """Process-wide state of the push service, created once and owned by the driver."""

    def __init__(self) -> None:
        self.phase = DriverPhase.STOPPED
        # Bumped on every entry point; replies issued under an older value are dropped.
        self.generation = 0
        # Bumped on every arm; makes alarm names unique for the process lifetime.
        self.alarm_iteration = 0
        self.last_fired_at: Optional[datetime] = None
        self.login_prompt_shown = False
        self.profile: Optional[Any] = None
