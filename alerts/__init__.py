"""Alert scheduling and notification subsystem for the Alfred push service."""

from .driver import ServiceDriver
from .errors import ConfigurationError, DuplicateFireError, StaleAlarmError, TransientFetchError
from .events import EntryPoint, EventLoop
from .next_alert import next_alert_time
from .scheduler import AlarmScheduler
from .state import DriverPhase, DriverState
from .timers import TimerFacility
