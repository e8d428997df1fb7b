"""
Pytest configuration and shared fixtures.

Every test gets a fresh in-memory SQLite database with the ORM schema and the
seeded interval catalog, a controllable clock and recording transports.
"""
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List

import pytest
from sqlalchemy.pool import StaticPool

from xpired.crud.interval import seed_default_intervals
from xpired.crud.user import create_user
from xpired.db.base import Base
from xpired.db.session import make_engine, make_session_factory
import xpired.models  # noqa: F401
from xpired.reminders.config import ReminderSettings
from xpired.reminders.runtime import build_runtime
from xpired.reminders.transports import EmailTransport, SmsTransport
from xpired.schemas.document import DocumentCreate


class Clock:
    """Manually advanced UTC clock"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> datetime:
        self.now = now
        return self.now


class RecordingEmailTransport(EmailTransport):
    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.error: Exception | None = None

    def send_email(self, to, subject, html, text):
        if self.error is not None:
            raise self.error
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})
        return {"provider": "test", "to": to}


class RecordingSmsTransport(SmsTransport):
    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.error: Exception | None = None

    def send_sms(self, to, message):
        if self.error is not None:
            raise self.error
        self.sent.append({"to": to, "message": message})
        return {"provider": "test", "to": to}


@pytest.fixture
def clock():
    """Starts well before the sample document's reminders"""
    return Clock(datetime(2025, 2, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def engine():
    engine = make_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    session_factory = make_session_factory(engine)
    with session_factory() as db:
        seed_default_intervals(db)
        db.commit()
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def reminder_cfg():
    return ReminderSettings(
        LEASE_SECONDS=60,
        MAX_ATTEMPTS=3,
        RETRY_BACKOFF_BASE_SECONDS=10,
        RETRY_BACKOFF_MAX_SECONDS=100,
        SCHEDULER_BATCH_SIZE=50,
        SMTP_TIMEOUT_SECONDS=10,
        SMS_TIMEOUT_SECONDS=10,
        FRONTEND_URL="https://app.xpired.test",
    )


@pytest.fixture
def email_transport():
    return RecordingEmailTransport()


@pytest.fixture
def sms_transport():
    return RecordingSmsTransport()


@pytest.fixture
def runtime(engine, reminder_cfg, email_transport, sms_transport, clock):
    runtime = build_runtime(
        reminder_cfg=reminder_cfg,
        engine=engine,
        email_transport=email_transport,
        sms_transport=sms_transport,
        clock=clock,
    )
    yield runtime
    runtime.close()


@pytest.fixture
def session_factory(runtime):
    return runtime.session_factory


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def service(runtime, db):
    return runtime.service(db)


@pytest.fixture
def user(db):
    user = create_user(db, email="ada@example.com", name="Ada", phone_number="+15550100")
    db.commit()
    return user


@pytest.fixture
def user_without_phone(db):
    user = create_user(db, email="grace@example.com", name="Grace")
    db.commit()
    return user


@pytest.fixture
def other_user(db):
    user = create_user(db, email="mallory@example.com", name="Mallory")
    db.commit()
    return user


# Expires the day after US daylight saving starts (2025-03-09)
PASSPORT_EXPIRY = date(2025, 3, 10)
PASSPORT_TZ = "America/New_York"
WEEK_BEFORE_UTC = datetime(2025, 3, 3, 5, 0, tzinfo=timezone.utc)
DAY_OF_UTC = datetime(2025, 3, 10, 4, 0, tzinfo=timezone.utc)


@pytest.fixture
def passport(service, user):
    """Document with week-before and on-the-day reminders, scheduled at the fixture clock"""
    result = service.create_document(
        user.id,
        DocumentCreate(
            name="Passport",
            expiration_date=PASSPORT_EXPIRY,
            timezone=PASSPORT_TZ,
            reminders=["7d", "0d"],
        ),
    )
    return result.document
