"""
Fire-instant computation for lead-time reminders.

An expiration date is a calendar date. Each reminder fires at local midnight
in the document's timezone, ``days_before`` calendar days earlier. Subtraction
happens on the calendar date before localizing, so a DST change between the
fire day and the expiration day shifts the UTC instant by the right amount.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone as dt_timezone
from typing import Iterable, List, Optional, Union

from xpired.core.exceptions import ValidationError
from xpired.utils.timezone import resolve_timezone


def parse_expiration_date(value: Union[date, datetime, str]) -> date:
    """Accept a date, a datetime (date part) or an ISO ``YYYY-MM-DD`` string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            if "T" in text or " " in text:
                return datetime.fromisoformat(text).date()
            return date.fromisoformat(text)
        except ValueError as exc:
            raise ValidationError(f"malformed expiration date: {value!r}") from exc
    raise ValidationError(f"malformed expiration date: {value!r}")


def compute_fire_instant(expiration_date: Union[date, datetime, str], timezone: str, days_before: int) -> datetime:
    """Return the UTC instant of local midnight on ``expiration_date - days_before`` in ``timezone``."""
    if days_before is None or int(days_before) < 0:
        raise ValidationError(f"days_before must be a non-negative integer, got {days_before!r}")
    tz = resolve_timezone(timezone)
    fire_day = parse_expiration_date(expiration_date) - timedelta(days=int(days_before))
    local_midnight = datetime.combine(fire_day, time.min, tzinfo=tz)
    return local_midnight.astimezone(dt_timezone.utc)


@dataclass(frozen=True)
class ScheduleEntry:
    interval_id: int
    code: str
    days_before: int
    fire_at: datetime
    elapsed: bool


def plan_reminders(
    expiration_date: Union[date, datetime, str],
    timezone: str,
    intervals: Iterable,
    now: datetime,
) -> List[ScheduleEntry]:
    """
    Compute one entry per interval. Entries whose instant is at or before
    ``now`` are marked elapsed and must not be enqueued.

    Raises ValidationError before producing anything if the timezone or date
    is invalid.
    """
    resolve_timezone(timezone)
    expiration = parse_expiration_date(expiration_date)
    entries = []
    for interval in intervals:
        fire_at = compute_fire_instant(expiration, timezone, interval.days_before)
        entries.append(
            ScheduleEntry(
                interval_id=interval.id,
                code=interval.code,
                days_before=interval.days_before,
                fire_at=fire_at,
                elapsed=fire_at <= now,
            )
        )
    return sorted(entries, key=lambda e: e.fire_at)


def next_fire_instant(entries: Iterable[ScheduleEntry]) -> Optional[datetime]:
    upcoming = [e.fire_at for e in entries if not e.elapsed]
    return min(upcoming) if upcoming else None
