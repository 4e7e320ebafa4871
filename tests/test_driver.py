from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from zoneinfo import ZoneInfo

from account_client import UserProfile
from alerts.driver import ServiceDriver
from alerts.errors import TransientFetchError
from alerts.events import AlarmFire, EntryPoint, EventLoop, NotificationClicked, ResponseObserved
from alerts.notifications import ConsoleNotifier, NotificationKind, NotificationOrchestrator
from alerts.scheduler import AlarmScheduler
from alerts.state import DriverPhase, DriverState
from alerts.storage import save_alarms
from alerts.timers import TimerFacility
from triggers import AuthResponseFilter

SIGNIN_URL = "http://localhost:4200/common/accounts/signin"


def _at(hour: int, day: int = 1) -> datetime:
    return datetime(2025, 1, day, hour, 0, tzinfo=timezone.utc)


class FakeSessionOracle:
    def __init__(self, result=True):
        self.result = result
        self.calls = 0

    def has_active_session(self):
        self.calls += 1
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class FakeProfileClient:
    def __init__(self, hours=(9, 18)):
        self.result = UserProfile("bruce@wayne.com", "Bruce", "Wayne", frozenset(hours))
        self.calls = 0

    def fetch_profile(self):
        self.calls += 1
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class RecordingNavigator:
    def __init__(self):
        self.opened = []

    def open_surface(self, url):
        self.opened.append(url)
        return True


def _build(tmp_path, has_session=True, hours=(9, 18), runner=None):
    clock = {"now": datetime(2025, 1, 1, 10, 30, tzinfo=timezone.utc)}
    loop = EventLoop()
    state = DriverState()
    timers = TimerFacility(tmp_path / "alarms.json", timezone=timezone.utc, clock=lambda: clock["now"])
    scheduler = AlarmScheduler(timers, state, base_name="alfred_alert_")
    shown = []
    navigator = RecordingNavigator()
    notifications = NotificationOrchestrator(
        ConsoleNotifier(echo=shown.append),
        navigator,
        state,
        login_url="http://localhost:4200",
        alerts_url="http://localhost:4200/alerts",
    )
    oracle = FakeSessionOracle(has_session)
    profiles = FakeProfileClient(hours)
    driver = ServiceDriver(
        loop=loop,
        session_oracle=oracle,
        profile_client=profiles,
        scheduler=scheduler,
        notifications=notifications,
        state=state,
        response_filter=AuthResponseFilter([SIGNIN_URL]),
        clock=lambda: clock["now"],
        run_in_background=runner or (lambda task: task()),
    )
    timers.add_listener(driver.on_alarm)
    return SimpleNamespace(
        clock=clock,
        loop=loop,
        state=state,
        timers=timers,
        shown=shown,
        navigator=navigator,
        notifications=notifications,
        oracle=oracle,
        profiles=profiles,
        driver=driver,
    )


def _run(env, event=None):
    if event is not None:
        env.loop.post(event)
    env.loop.drain(env.driver.handle)


def _enter(env, entry=EntryPoint.INSTALL):
    env.driver.request_entry(entry)
    _run(env)


def test_session_path_arms_next_alert(tmp_path):
    env = _build(tmp_path)
    _enter(env)

    pending = env.timers.pending()
    assert len(pending) == 1
    assert pending[0].scheduled_at == _at(18)
    assert pending[0].name == "alfred_alert_1"
    assert env.state.phase is DriverPhase.WAITING_FOR_ALARM
    assert env.state.profile.first_name == "Bruce"
    assert env.shown == []


def test_reentrant_entries_keep_one_alarm(tmp_path):
    env = _build(tmp_path)
    _enter(env, EntryPoint.INSTALL)
    _enter(env, EntryPoint.AUTH_RESPONSE)
    _enter(env, EntryPoint.STARTUP)

    assert len(env.timers.pending()) == 1
    assert env.state.alarm_iteration == 3


def test_no_session_prompts_login_once(tmp_path):
    env = _build(tmp_path, has_session=False)
    _enter(env)
    _enter(env, EntryPoint.AUTH_RESPONSE)
    _enter(env, EntryPoint.STARTUP)

    assert len(env.shown) == 1
    assert "Login to Alfred" in env.shown[0]
    assert env.timers.pending() == []
    assert env.profiles.calls == 0
    assert env.state.phase is DriverPhase.STOPPED

    _run(env, NotificationClicked())
    assert env.navigator.opened == ["http://localhost:4200"]


def test_empty_alert_hours_arms_nothing(tmp_path):
    env = _build(tmp_path, hours=())
    _enter(env)

    assert env.timers.pending() == []
    assert env.state.alarm_iteration == 0
    assert env.state.phase is DriverPhase.STOPPED


def test_fetch_failure_stalls_without_retry(tmp_path):
    env = _build(tmp_path)
    env.profiles.result = TransientFetchError("connection refused")
    _enter(env)

    assert env.timers.pending() == []
    assert env.profiles.calls == 1
    assert env.state.phase is DriverPhase.STOPPED


def test_session_check_failure_stalls(tmp_path):
    env = _build(tmp_path, has_session=TransientFetchError("cookie store unreadable"))
    _enter(env)

    assert env.shown == []
    assert env.state.phase is DriverPhase.STOPPED


def test_fire_notifies_and_ack_rearms(tmp_path):
    env = _build(tmp_path)
    _enter(env)

    env.clock["now"] = _at(18)
    env.timers.poll()
    _run(env)

    assert env.state.phase is DriverPhase.NOTIFYING
    assert env.state.last_fired_at == _at(18)
    assert len(env.shown) == 1
    assert "Hi Bruce!" in env.shown[0]
    assert env.notifications.active.kind is NotificationKind.ALERT
    assert env.timers.pending() == []

    _run(env, NotificationClicked(env.notifications.active.notification_id))

    assert env.navigator.opened == ["http://localhost:4200/alerts"]
    pending = env.timers.pending()
    assert len(pending) == 1
    assert pending[0].scheduled_at == _at(9, day=2)
    assert pending[0].name == "alfred_alert_2"
    assert env.state.phase is DriverPhase.WAITING_FOR_ALARM


def test_without_ack_cycle_does_not_restart(tmp_path):
    env = _build(tmp_path)
    _enter(env)
    env.clock["now"] = _at(18)
    env.timers.poll()
    _run(env)

    assert env.timers.pending() == []
    assert env.state.alarm_iteration == 1


def test_duplicate_fire_notifies_once(tmp_path):
    env = _build(tmp_path)
    _enter(env)
    fire = AlarmFire("alfred_alert_1", _at(18))

    _run(env, fire)
    _run(env, fire)

    assert len(env.shown) == 1
    assert env.state.last_fired_at == _at(18)
    assert env.oracle.calls == 2


def test_foreign_alarm_is_ignored(tmp_path):
    env = _build(tmp_path)
    _enter(env)
    _run(env, AlarmFire("legacy_reminder", _at(18)))

    assert env.shown == []
    assert env.state.phase is DriverPhase.WAITING_FOR_ALARM


def test_session_gone_at_fire_abandons_cycle(tmp_path):
    env = _build(tmp_path)
    _enter(env)
    env.oracle.result = False

    env.clock["now"] = _at(18)
    env.timers.poll()
    _run(env)

    assert env.shown == []
    assert env.timers.pending() == []
    assert env.state.phase is DriverPhase.STOPPED
    assert env.profiles.calls == 1


def test_startup_clears_leftover_alarms(tmp_path):
    env = _build(tmp_path, has_session=False)
    env.timers.create("alfred_alert_7", _at(9, day=2))
    _enter(env, EntryPoint.STARTUP)

    assert env.timers.pending() == []


def test_stale_replies_from_superseded_cycle_are_dropped(tmp_path):
    tasks = []
    env = _build(tmp_path, runner=tasks.append)

    env.driver.start(EntryPoint.INSTALL)
    env.driver.start(EntryPoint.AUTH_RESPONSE)
    assert len(tasks) == 2

    tasks[0]()
    tasks[1]()
    _run(env)
    assert len(tasks) == 3

    tasks[2]()
    _run(env)

    assert env.profiles.calls == 1
    assert env.state.alarm_iteration == 1
    assert len(env.timers.pending()) == 1


def test_matching_auth_response_starts_cycle(tmp_path):
    env = _build(tmp_path)
    _run(env, ResponseObserved(SIGNIN_URL, 200))

    assert env.oracle.calls == 1
    assert len(env.timers.pending()) == 1


def test_other_responses_are_ignored(tmp_path):
    env = _build(tmp_path)
    _run(env, ResponseObserved(SIGNIN_URL, 403))
    _run(env, ResponseObserved("http://localhost:4200/home", 200))

    assert env.oracle.calls == 0
    assert env.state.phase is DriverPhase.STOPPED


def test_status_reports_pending_alarm(tmp_path):
    env = _build(tmp_path)
    _enter(env)
    status = env.driver.status()

    assert status["phase"] == "waiting_for_alarm"
    assert status["pending_alarms"][0]["name"] == "alfred_alert_1"
    assert status["login_prompt_shown"] is False


def test_failed_arm_leaves_no_live_alarm(tmp_path, monkeypatch):
    env = _build(tmp_path)
    failures = {"left": 2}

    def flaky_save(path, alarms):
        if failures["left"]:
            failures["left"] -= 1
            raise OSError("disk full")
        save_alarms(path, alarms)

    monkeypatch.setattr("alerts.timers.save_alarms", flaky_save)
    _enter(env)

    assert env.state.phase is DriverPhase.STOPPED
    assert env.timers.pending() == []

    env.clock["now"] = _at(18)
    env.timers.poll()
    _run(env)
    assert env.shown == []


def test_next_alert_keeps_wall_clock_hour_across_dst_change(tmp_path):
    new_york = ZoneInfo("America/New_York")
    env = _build(tmp_path, hours=(9,))
    env.clock["now"] = datetime(2026, 10, 31, 19, 0, tzinfo=new_york)
    _enter(env)

    scheduled = env.timers.pending()[0].scheduled_at.astimezone(new_york)
    assert (scheduled.date().isoformat(), scheduled.hour) == ("2026-11-01", 9)
    assert scheduled.utcoffset() == timedelta(hours=-5)
