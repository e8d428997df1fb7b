from datetime import datetime, timedelta, timezone as dt_timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import re

from xpired.core.exceptions import ValidationError


# "+05:30", "-0500", "UTC+02:00", "GMT-3"
_FIXED_OFFSET_RE = re.compile(r"^(?:UTC|GMT)?\s*([+-])(\d{1,2})(?::?(\d{2}))?$", re.IGNORECASE)


def utcnow() -> datetime:
    return datetime.now(dt_timezone.utc)


def to_utc_aware(dt: datetime | None) -> datetime | None:
    """
    Normalize any datetime to UTC-aware (tzinfo=UTC).
    - Aware datetimes are converted to UTC
    - Naive datetimes are assumed UTC and tz attached
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=dt_timezone.utc)
    return dt.astimezone(dt_timezone.utc)


def _parse_fixed_offset(name: str) -> Optional[tzinfo]:
    match = _FIXED_OFFSET_RE.match(name)
    if not match:
        return None
    sign, hours, minutes = match.group(1), int(match.group(2)), int(match.group(3) or 0)
    if hours > 14 or minutes >= 60:
        return None
    offset = timedelta(hours=hours, minutes=minutes)
    if sign == "-":
        offset = -offset
    return dt_timezone(offset, name=name.upper())


def resolve_timezone(name: str | None) -> tzinfo:
    """
    Resolve a document timezone to a tzinfo.

    IANA names ("America/New_York") go through the tz database; fixed offsets
    ("+05:30", "UTC-05:00") become real offsets. Anything else raises
    ValidationError instead of silently falling back to UTC.
    """
    if name is None or not str(name).strip():
        raise ValidationError("timezone is required")
    name = str(name).strip()
    if name.upper() in ("UTC", "Z", "GMT"):
        return dt_timezone.utc
    fixed = _parse_fixed_offset(name)
    if fixed is not None:
        return fixed
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
        raise ValidationError(f"unknown timezone: {name!r}") from exc

