from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, List

from .errors import ConfigurationError


def normalize_alert_hours(alert_hours: Iterable[int]) -> List[int]:
    """Return the distinct alert hours in ascending order.

    Raises ConfigurationError when the set is empty or holds anything other
    than an hour of day in [0, 23].
    """
    hours = set()
    for hour in alert_hours:
        if isinstance(hour, bool) or not isinstance(hour, int) or not 0 <= hour <= 23:
            raise ConfigurationError(f"Alert hour out of range: {hour!r}")
        hours.add(hour)
    if not hours:
        raise ConfigurationError("No alert hours configured")
    return sorted(hours)


def next_alert_time(now: datetime, alert_hours: Iterable[int]) -> datetime:
    """Return the next top-of-hour instant whose hour is one of ``alert_hours``.

    The current hour is never selected: an alert hour equal to ``now.hour`` is
    considered already passed, so the result is always strictly after ``now``.
    When no later hour is left today the earliest hour of tomorrow is used.
    """
    hours = normalize_alert_hours(alert_hours)
    for hour in hours:
        if hour > now.hour:
            return now.replace(hour=hour, minute=0, second=0, microsecond=0)
    tomorrow = now + timedelta(days=1)
    return tomorrow.replace(hour=hours[0], minute=0, second=0, microsecond=0)
