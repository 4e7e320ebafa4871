"""Service driver: the state machine behind the alert push cycle.

    entry point -> CHECKING_SESSION -> PROMPTING_LOGIN -> STOPPED
                                    -> FETCHING_PROFILE -> SCHEDULING -> WAITING_FOR_ALARM
    alarm fire  -> CHECKING_SESSION -> NOTIFYING -> (click) -> entry point ACKNOWLEDGED

Every transition runs on the event-loop thread. Session checks and profile
fetches run through ``run_in_background`` and report back as events tagged
with the generation they were started under; replies from an older
generation are dropped.
"""

from __future__ import annotations

import logging
from datetime import datetime
from threading import Thread
from typing import Any, Callable, Optional

from time_utils import local_timezone, now_in_tz

from .errors import AlfredError, ConfigurationError
from .events import (
    AlarmFire,
    EntryPoint,
    EntryRequested,
    EventLoop,
    FetchFailed,
    NotificationClicked,
    ProfileFetched,
    ResponseObserved,
    SessionChecked,
)
from .next_alert import next_alert_time
from .notifications import NotificationOrchestrator
from .scheduler import AlarmScheduler
from .state import DriverPhase, DriverState

logger = logging.getLogger(__name__)


def run_in_thread(task: Callable[[], None]) -> None:
    Thread(target=task, name="alfred-fetch", daemon=True).start()


class ServiceDriver:
    def __init__(
        self,
        loop: EventLoop,
        session_oracle,
        profile_client,
        scheduler: AlarmScheduler,
        notifications: NotificationOrchestrator,
        state: DriverState,
        response_filter=None,
        clock: Optional[Callable[[], datetime]] = None,
        run_in_background: Callable[[Callable[[], None]], None] = run_in_thread,
    ):
        self.loop = loop
        self.session_oracle = session_oracle
        self.profile_client = profile_client
        self.scheduler = scheduler
        self.notifications = notifications
        self.state = state
        self.response_filter = response_filter
        self._tzinfo = local_timezone() if clock is None else None
        self._clock = clock or (lambda: now_in_tz(self._tzinfo))
        self._run_in_background = run_in_background

    # ---- producer side (any thread) ----

    def request_entry(self, entry: EntryPoint) -> None:
        self.loop.post(EntryRequested(entry))

    def on_alarm(self, fire: AlarmFire) -> None:
        self.loop.post(fire)

    # ---- consumer side (event-loop thread) ----

    def handle(self, event: Any) -> None:
        if isinstance(event, EntryRequested):
            self.start(event.entry)
        elif isinstance(event, SessionChecked):
            self._on_session_checked(event)
        elif isinstance(event, ProfileFetched):
            self._on_profile_fetched(event)
        elif isinstance(event, FetchFailed):
            self._on_fetch_failed(event)
        elif isinstance(event, AlarmFire):
            self.scheduler.handle_fire(event, self._on_alarm_accepted)
        elif isinstance(event, NotificationClicked):
            self.notifications.handle_click(event.notification_id)
        elif isinstance(event, ResponseObserved):
            self._on_response_observed(event)
        else:
            logger.warning("Unknown event ignored: %r", event)

    def start(self, entry: EntryPoint) -> None:
        logger.info("Entry point %s (phase=%s)", entry.value, self.state.phase.value)
        if entry is EntryPoint.STARTUP:
            self.scheduler.clear_all()
        self.state.generation += 1
        self._set_phase(DriverPhase.CHECKING_SESSION)
        self._check_session(for_fire=False)

    def status(self) -> dict:
        pending = self.scheduler.timers.pending()
        return {
            "phase": self.state.phase.value,
            "generation": self.state.generation,
            "alarm_iteration": self.state.alarm_iteration,
            "last_fired_at": self.state.last_fired_at.isoformat() if self.state.last_fired_at else None,
            "login_prompt_shown": self.state.login_prompt_shown,
            "pending_alarms": [a.to_dict() for a in pending],
        }

    def _set_phase(self, phase: DriverPhase) -> None:
        if self.state.phase != phase:
            logger.info("State -> %s", phase.value)
        self.state.phase = phase

    def _is_stale(self, generation: int) -> bool:
        if generation != self.state.generation:
            logger.info("Dropping reply from cycle %s (current %s)", generation, self.state.generation)
            return True
        return False

    def _check_session(self, for_fire: bool) -> None:
        generation = self.state.generation

        def task() -> None:
            try:
                has_session = self.session_oracle.has_active_session()
            except AlfredError as exc:
                self.loop.post(FetchFailed(generation, exc))
                return
            except Exception as exc:
                logger.error("Session check crashed", exc_info=True)
                self.loop.post(FetchFailed(generation, exc))
                return
            self.loop.post(SessionChecked(generation, has_session, for_fire))

        self._run_in_background(task)

    def _fetch_profile(self) -> None:
        generation = self.state.generation

        def task() -> None:
            try:
                profile = self.profile_client.fetch_profile()
            except AlfredError as exc:
                self.loop.post(FetchFailed(generation, exc))
                return
            except Exception as exc:
                logger.error("Profile fetch crashed", exc_info=True)
                self.loop.post(FetchFailed(generation, exc))
                return
            self.loop.post(ProfileFetched(generation, profile))

        self._run_in_background(task)

    def _on_session_checked(self, event: SessionChecked) -> None:
        if self._is_stale(event.generation):
            return
        if event.for_fire:
            if not event.has_session:
                # No retry: the next cycle must come from an outside entry point.
                logger.info("Session gone when alarm fired, abandoning cycle")
                self._set_phase(DriverPhase.STOPPED)
                return
            self._set_phase(DriverPhase.NOTIFYING)
            first_name = self.state.profile.first_name if self.state.profile else ""
            self.notifications.prompt_alert(first_name, on_restart=self._restart_after_ack)
            return

        if not event.has_session:
            self._set_phase(DriverPhase.PROMPTING_LOGIN)
            self.notifications.prompt_login()
            self._set_phase(DriverPhase.STOPPED)
            return
        self._set_phase(DriverPhase.FETCHING_PROFILE)
        self._fetch_profile()

    def _on_profile_fetched(self, event: ProfileFetched) -> None:
        if self._is_stale(event.generation):
            return
        profile = event.profile
        self.state.profile = profile
        self._set_phase(DriverPhase.SCHEDULING)
        try:
            instant = next_alert_time(self._clock(), profile.alert_hours)
        except ConfigurationError as exc:
            logger.error("Cannot schedule alerts for %s: %s", profile.email, exc)
            self._set_phase(DriverPhase.STOPPED)
            return
        try:
            self.scheduler.arm(instant)
        except OSError as exc:
            logger.error("Failed to arm alert alarm: %s", exc)
            self._set_phase(DriverPhase.STOPPED)
            return
        self._set_phase(DriverPhase.WAITING_FOR_ALARM)

    def _on_fetch_failed(self, event: FetchFailed) -> None:
        if self._is_stale(event.generation):
            return
        if isinstance(event.error, ConfigurationError):
            logger.error("Invalid alert configuration: %s", event.error)
        else:
            logger.warning("Fetch failed, waiting for next entry point: %s", event.error)
        self._set_phase(DriverPhase.STOPPED)

    def _on_alarm_accepted(self, fire: AlarmFire) -> None:
        logger.info("Alarm %s accepted, re-checking session", fire.name)
        self._set_phase(DriverPhase.CHECKING_SESSION)
        self._check_session(for_fire=True)

    def _on_response_observed(self, event: ResponseObserved) -> None:
        if self.response_filter is None or not self.response_filter.matches(event.url, event.status_code):
            logger.debug("Response %s (%s) is not an auth response", event.url, event.status_code)
            return
        self.start(EntryPoint.AUTH_RESPONSE)

    def _restart_after_ack(self) -> None:
        self.start(EntryPoint.ACKNOWLEDGED)
