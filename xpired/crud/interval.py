from typing import Iterable, List

from sqlalchemy.orm import Session

from xpired.models.reminder_interval import ReminderInterval


# Seeded catalog: (label, days_before, code)
DEFAULT_INTERVALS = [
    ("6 months before", 180, "180d"),
    ("3 months before", 90, "90d"),
    ("2 months before", 60, "60d"),
    ("1 month before", 30, "30d"),
    ("3 weeks before", 21, "21d"),
    ("2 weeks before", 14, "14d"),
    ("1 week before", 7, "7d"),
    ("3 days before", 3, "3d"),
    ("1 day before", 1, "1d"),
    ("On the day", 0, "0d"),
]


def list_intervals(db: Session) -> List[ReminderInterval]:
    return db.query(ReminderInterval).order_by(ReminderInterval.days_before.desc()).all()


def get_intervals_by_codes(db: Session, codes: Iterable[str]) -> List[ReminderInterval]:
    codes = list(codes)
    if not codes:
        return []
    return (
        db.query(ReminderInterval)
        .filter(ReminderInterval.code.in_(codes))
        .order_by(ReminderInterval.days_before.desc())
        .all()
    )


def seed_default_intervals(db: Session) -> int:
    """Insert any missing catalog entries. Returns number inserted."""
    existing = {code for (code,) in db.query(ReminderInterval.code).all()}
    added = 0
    for label, days_before, code in DEFAULT_INTERVALS:
        if code in existing:
            continue
        db.add(ReminderInterval(label=label, days_before=days_before, code=code))
        added += 1
    db.flush()
    return added
