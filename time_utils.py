from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from tzlocal import get_localzone_name

logger = logging.getLogger(__name__)


def local_timezone() -> tzinfo:
    """Return the machine's IANA zone so wall-clock math follows DST changes.

    A fixed UTC offset is only used when no zone name can be determined.
    """
    try:
        name = get_localzone_name()
        if name:
            return ZoneInfo(name)
    except (LookupError, ValueError) as exc:
        logger.warning("Failed to detect local timezone name (%s)", exc)
    fixed = datetime.now().astimezone().tzinfo
    logger.warning("Falling back to fixed UTC offset %s", fixed)
    return fixed  # type: ignore[return-value]


def resolve_timezone(name: Optional[str]) -> tzinfo:
    if not name:
        return local_timezone()
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        logger.warning("Failed to load timezone %s via zoneinfo (%s)", name, exc)
    local_tz = local_timezone()
    logger.warning("Using system local timezone instead: %s", getattr(local_tz, "key", local_tz))
    return local_tz


def now_in_tz(tz) -> datetime:
    if tz:
        return datetime.now(tz)
    return datetime.now().astimezone()


def ensure_tz(dt: datetime, tz) -> datetime:
    if dt.tzinfo:
        return dt.astimezone(tz)
    return dt.replace(tzinfo=tz)


def format_tz_offset(tz) -> str:
    sample = now_in_tz(tz)
    offset = tz.utcoffset(sample) if hasattr(tz, "utcoffset") else None
    if offset is None:
        return ""
    total_minutes = int(offset.total_seconds() // 60)
    sign = "+" if total_minutes >= 0 else "-"
    hours, minutes = divmod(abs(total_minutes), 60)
    return f"{sign}{hours:02d}:{minutes:02d}"
