import json
import logging
import signal
import sys
import time
from threading import Event, Thread
from typing import Optional, TextIO

from account_client import CookieSessionOracle, ProfileClient
from alerts.driver import ServiceDriver
from alerts.events import EntryPoint, EventLoop, NotificationClicked, ResponseObserved
from alerts.notifications import BrowserNavigator, ConsoleNotifier, NotificationOrchestrator
from alerts.scheduler import AlarmScheduler
from alerts.state import DriverState
from alerts.timers import TimerFacility
from config import Config, load_config, setup_logging
from time_utils import format_tz_offset, now_in_tz, resolve_timezone
from triggers import AuthResponseFilter

logger = logging.getLogger("alfred")

CONSOLE_HELP = "commands: click [id] | response <url> [status] | status | quit"


def graceful_exit(signum, frame) -> None:  # pragma: no cover - signal handler
    logger.info("Shutting down (signal %s)", signum)
    raise KeyboardInterrupt()


def parse_console_command(line: str):
    """Turn one console line into an event, ``"status"``, ``"quit"`` or None."""
    parts = line.strip().split()
    if not parts:
        return None
    command, args = parts[0].lower(), parts[1:]
    if command == "click":
        return NotificationClicked(args[0] if args else None)
    if command == "response" and args:
        status = 200
        if len(args) > 1:
            try:
                status = int(args[1])
            except ValueError:
                return None
        return ResponseObserved(args[0], status)
    if command in {"status", "quit"}:
        return command
    return None


class AgentRuntime:
    def __init__(self, config: Config, stdin: Optional[TextIO] = None):
        self.config = config
        self.stdin = stdin if stdin is not None else sys.stdin
        self.tzinfo = resolve_timezone(config.timezone)
        self.stop_event = Event()
        self.loop = EventLoop()
        self.state = DriverState()
        self.console_thread: Optional[Thread] = None
        self.loop_thread: Optional[Thread] = None

        self.timers = TimerFacility(
            storage_path=config.alarms_path,
            check_interval=max(0.2, config.alarm_check_interval_ms / 1000.0),
            timezone=self.tzinfo,
        )
        self.scheduler = AlarmScheduler(self.timers, self.state, base_name=config.alarm_base_name)
        self.notifier = ConsoleNotifier()
        self.notifications = NotificationOrchestrator(
            facility=self.notifier,
            navigator=BrowserNavigator(enabled=config.open_browser),
            state=self.state,
            login_url=config.login_url,
            alerts_url=config.alerts_url,
        )
        self.driver = ServiceDriver(
            loop=self.loop,
            session_oracle=CookieSessionOracle(config.cookie_jar_path, config.session_cookie_name),
            profile_client=ProfileClient(config.profile_url, config.cookie_jar_path, config.request_timeout),
            scheduler=self.scheduler,
            notifications=self.notifications,
            state=self.state,
            response_filter=AuthResponseFilter(config.auth_url_patterns),
            clock=lambda: now_in_tz(self.tzinfo),
        )

    def detect_entry(self) -> EntryPoint:
        marker = self.config.install_marker_path
        if marker.exists():
            return EntryPoint.STARTUP
        marker.parent.mkdir(parents=True, exist_ok=True)
        marker.write_text(now_in_tz(self.tzinfo).isoformat(), encoding="utf-8")
        return EntryPoint.INSTALL

    def start(self) -> None:
        entry = self.detect_entry()
        if entry is EntryPoint.STARTUP:
            # Leftovers must be gone before the timer thread can pop and fire them.
            self.scheduler.clear_all()
        self.timers.add_listener(self.driver.on_alarm)
        self.driver.request_entry(entry)
        self.loop_thread = Thread(
            target=self.loop.run, args=(self.driver.handle, self.stop_event), name="event-loop", daemon=True
        )
        self.loop_thread.start()
        self.timers.start()
        if self.config.enable_console:
            self.console_thread = Thread(target=self._console_loop, name="console", daemon=True)
            self.console_thread.start()

    def shutdown(self) -> None:
        self.stop_event.set()
        self.timers.shutdown()
        self.timers.remove_listener(self.driver.on_alarm)
        if self.loop_thread:
            self.loop_thread.join(timeout=2)

    def _console_loop(self) -> None:
        print(CONSOLE_HELP)
        for line in self.stdin:
            if self.stop_event.is_set():
                return
            command = parse_console_command(line)
            if command is None:
                if line.strip():
                    print(CONSOLE_HELP)
                continue
            if command == "quit":
                self.stop_event.set()
                return
            if command == "status":
                print(json.dumps(self.driver.status(), indent=2))
                continue
            self.loop.post(command)


def main() -> None:
    config = load_config()
    setup_logging(config.log_level)
    signal.signal(signal.SIGINT, graceful_exit)
    logger.info("Starting Alfred push service")
    runtime = AgentRuntime(config)
    logger.info(
        "Timezone %s (UTC%s), profile endpoint %s",
        getattr(runtime.tzinfo, "key", runtime.tzinfo),
        format_tz_offset(runtime.tzinfo),
        config.profile_url,
    )
    runtime.start()
    try:
        while not runtime.stop_event.is_set():
            time.sleep(0.5)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        runtime.shutdown()


if __name__ == "__main__":
    main()
