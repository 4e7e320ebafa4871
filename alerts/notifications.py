from __future__ import annotations

import logging
import uuid
import webbrowser
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Callable, Dict, Optional

from .state import DriverState

logger = logging.getLogger(__name__)


class ConsoleNotifier:
    """Notification facility that prints notifications and waits for a console click."""

    def __init__(self, echo: Callable[[str], None] = print):
        self._echo = echo
        self._lock = Lock()
        self._visible: Dict[str, dict] = {}

    def display(self, notification_id: str, options: dict) -> str:
        assigned_id = f"{notification_id}_{uuid.uuid4().hex[:8]}"
        with self._lock:
            self._visible[assigned_id] = dict(options)
        logger.info("Notification %s shown: %s", assigned_id, options.get("title"))
        self._echo(f"[{options.get('title', '')}] {options.get('message', '')}  (type 'click' to open)")
        return assigned_id

    def dismiss(self, assigned_id: str) -> None:
        with self._lock:
            self._visible.pop(assigned_id, None)
        logger.debug("Notification %s dismissed", assigned_id)

    def visible(self) -> Dict[str, dict]:
        with self._lock:
            return dict(self._visible)


class BrowserNavigator:
    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    def open_surface(self, url: str) -> bool:
        if not self.enabled:
            logger.info("Browser disabled, not opening %s", url)
            return False
        opened = webbrowser.open_new_tab(url)
        if not opened:
            logger.warning("No browser available to open %s", url)
        return opened


class NotificationKind(Enum):
    LOGIN = "login"
    ALERT = "alert"


@dataclass
class ActiveNotification:
    notification_id: str
    kind: NotificationKind
    on_acknowledged: Callable[[], None]


LOGIN_TITLE = "Alfred"
LOGIN_MESSAGE = "Login to Alfred"
ALERT_TITLE = "Alfred"


class NotificationOrchestrator:
    """Shows the login and alert prompts and routes clicks to the latest one.

    Only the most recently displayed notification accepts a click; showing a
    new one dismisses the previous one, and a click is consumed once.
    """

    def __init__(self, facility, navigator, state: DriverState, login_url: str, alerts_url: str):
        self.facility = facility
        self.navigator = navigator
        self.state = state
        self.login_url = login_url
        self.alerts_url = alerts_url
        self._active: Optional[ActiveNotification] = None

    @property
    def active(self) -> Optional[ActiveNotification]:
        return self._active

    def prompt_login(self) -> bool:
        """Show the login prompt unless it was already shown in this process."""
        if self.state.login_prompt_shown:
            logger.info("Login prompt already shown, not nagging again")
            return False

        def on_displayed(_assigned_id: str) -> None:
            self.state.login_prompt_shown = True

        self._show(
            NotificationKind.LOGIN,
            LOGIN_TITLE,
            LOGIN_MESSAGE,
            on_acknowledged=lambda: self.navigator.open_surface(self.login_url),
            on_displayed=on_displayed,
        )
        return True

    def prompt_alert(self, first_name: str, on_restart: Callable[[], None]) -> str:
        def on_acknowledged() -> None:
            self.navigator.open_surface(self.alerts_url)
            on_restart()

        greeting = f"Hi {first_name}!" if first_name else "Hi!"
        return self._show(
            NotificationKind.ALERT,
            ALERT_TITLE,
            f"{greeting} You have new alerts.",
            on_acknowledged=on_acknowledged,
        )

    def handle_click(self, notification_id: Optional[str] = None) -> bool:
        """Acknowledge the active notification. ``None`` means whichever is active."""
        active = self._active
        if active is None:
            logger.info("Click ignored, no active notification")
            return False
        if notification_id is not None and notification_id != active.notification_id:
            logger.info("Click on %s ignored, active notification is %s", notification_id, active.notification_id)
            return False
        self._active = None
        self.facility.dismiss(active.notification_id)
        logger.info("Notification %s acknowledged (%s)", active.notification_id, active.kind.value)
        active.on_acknowledged()
        return True

    def _show(
        self,
        kind: NotificationKind,
        title: str,
        message: str,
        on_acknowledged: Callable[[], None],
        on_displayed: Optional[Callable[[str], None]] = None,
    ) -> str:
        if self._active is not None:
            self.facility.dismiss(self._active.notification_id)
            self._active = None
        assigned_id = self.facility.display(f"alfred_{kind.value}_prompt", {"title": title, "message": message})
        self._active = ActiveNotification(assigned_id, kind, on_acknowledged)
        if on_displayed:
            on_displayed(assigned_id)
        return assigned_id
