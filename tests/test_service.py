"""
Tests for document lifecycle operations and their reminder side effects.
"""
from datetime import date, datetime, timezone
import uuid

import pytest

from xpired.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from xpired.crud import binding as binding_crud
from xpired.crud.interval import get_intervals_by_codes
from xpired.models.document import Document
from xpired.models.scheduled_task import ScheduledTask
from xpired.reminders.selection import apply_selection
from xpired.schemas.document import DocumentCreate, DocumentUpdate
from tests.conftest import DAY_OF_UTC, PASSPORT_EXPIRY, PASSPORT_TZ, WEEK_BEFORE_UTC


def _interval_id(db, code):
    return get_intervals_by_codes(db, [code])[0].id


def _pending(session_factory, document_id):
    with session_factory() as s:
        rows = (
            s.query(ScheduledTask)
            .filter(ScheduledTask.document_id == document_id, ScheduledTask.state == "pending")
            .all()
        )
        return sorted(rows, key=lambda r: r.fire_at)


def _bindings(session_factory, document_id):
    with session_factory() as s:
        return {b.interval.code: b for b in binding_crud.list_bindings(s, document_id=document_id)}


def _mark_sent(session_factory, db, document_id, code, sent_at=WEEK_BEFORE_UTC):
    """Record a delivery out of band, as the executor would"""
    with session_factory() as s:
        binding = binding_crud.get_binding(s, document_id=document_id, interval_id=_interval_id(s, code))
        binding_crud.mark_sent(s, binding, sent_at)
        s.commit()
    db.expire_all()


class TestCreateDocument:
    def test_creates_bindings_and_tasks(self, passport, session_factory):
        bindings = _bindings(session_factory, passport.id)
        assert set(bindings) == {"7d", "0d"}
        assert all(b.enabled and b.sent_at is None for b in bindings.values())
        assert [t.fire_at for t in _pending(session_factory, passport.id)] == [WEEK_BEFORE_UTC, DAY_OF_UTC]

    def test_unknown_codes_dropped(self, service, user, session_factory):
        result = service.create_document(
            user.id,
            DocumentCreate(name="Visa", expiration_date=PASSPORT_EXPIRY, timezone=PASSPORT_TZ, reminders=["7d", "5y"]),
        )
        assert set(_bindings(session_factory, result.document.id)) == {"7d"}

    def test_default_timezone(self, service, user):
        result = service.create_document(user.id, DocumentCreate(name="Card", expiration_date=date(2025, 9, 1)))
        assert result.document.timezone == "UTC"

    def test_invalid_timezone_rejected_before_persisting(self, service, user, session_factory):
        with pytest.raises(ValidationError):
            service.create_document(
                user.id,
                DocumentCreate(name="Visa", expiration_date=PASSPORT_EXPIRY, timezone="Not/AZone", reminders=["7d"]),
            )
        with session_factory() as s:
            assert s.query(Document).count() == 0
            assert s.query(ScheduledTask).count() == 0

    def test_unknown_user(self, service):
        with pytest.raises(NotFoundError):
            service.create_document(uuid.uuid4(), DocumentCreate(name="Visa", expiration_date=PASSPORT_EXPIRY))

    def test_elapsed_reminders_get_binding_but_no_task(self, service, user, clock, session_factory):
        clock.set(datetime(2025, 3, 5, tzinfo=timezone.utc))
        result = service.create_document(
            user.id,
            DocumentCreate(name="Passport", expiration_date=PASSPORT_EXPIRY, timezone=PASSPORT_TZ, reminders=["7d", "0d"]),
        )

        assert {d.code: d.elapsed for d in result.decisions} == {"7d": True, "0d": False}
        assert set(_bindings(session_factory, result.document.id)) == {"7d", "0d"}
        assert [t.fire_at for t in _pending(session_factory, result.document.id)] == [DAY_OF_UTC]


class TestSelection:
    def test_edit_disables_removed_codes(self, passport, db, runtime, session_factory):
        document = db.get(Document, passport.id)

        result = apply_selection(db, document, ["0d", "1d"], scheduler=runtime.scheduler, edit=True)
        db.commit()

        assert [i.code for i in result.enabled] == ["1d", "0d"]
        assert result.disabled_codes == ["7d"]
        bindings = _bindings(session_factory, passport.id)
        assert not bindings["7d"].enabled
        assert bindings["1d"].enabled and bindings["0d"].enabled
        assert _interval_id(db, "7d") not in {t.interval_id for t in _pending(session_factory, passport.id)}

    def test_duplicate_and_blank_codes_collapsed(self, passport, db, runtime):
        document = db.get(Document, passport.id)
        result = apply_selection(db, document, ["1d", "1d", " ", "nope"], scheduler=runtime.scheduler)
        db.commit()

        assert [i.code for i in result.enabled] == ["1d"]
        assert result.unknown_codes == ["nope"]

    def test_create_mode_keeps_existing(self, passport, db, runtime, session_factory):
        document = db.get(Document, passport.id)
        apply_selection(db, document, ["1d"], scheduler=runtime.scheduler)
        db.commit()

        bindings = _bindings(session_factory, passport.id)
        assert all(b.enabled for b in bindings.values())


class TestUpdateDocument:
    def test_new_expiration_resets_cycle(self, passport, service, user, session_factory, db):
        _mark_sent(session_factory, db, passport.id, "7d")

        result = service.update_document(passport.id, user.id, DocumentUpdate(expiration_date=date(2026, 3, 10)))

        bindings = _bindings(session_factory, passport.id)
        assert all(b.sent_at is None for b in bindings.values())
        pending = _pending(session_factory, passport.id)
        assert [t.payload["expiration_date"] for t in pending] == ["2026-03-10", "2026-03-10"]
        assert {d.code for d in result.decisions} == {"7d", "0d"}

    def test_timezone_change_reschedules(self, passport, service, user, session_factory):
        service.update_document(passport.id, user.id, DocumentUpdate(timezone="Asia/Tokyo"))

        fire_ats = [t.fire_at for t in _pending(session_factory, passport.id)]
        assert fire_ats == [
            datetime(2025, 3, 2, 15, 0, tzinfo=timezone.utc),
            datetime(2025, 3, 9, 15, 0, tzinfo=timezone.utc),
        ]

    def test_rename_leaves_schedule_alone(self, passport, service, user, session_factory):
        before = [t.id for t in _pending(session_factory, passport.id)]

        result = service.update_document(passport.id, user.id, DocumentUpdate(name="Old passport"))

        assert result.document.name == "Old passport"
        assert result.decisions == []
        assert [t.id for t in _pending(session_factory, passport.id)] == before

    def test_reminders_edit(self, passport, service, user, session_factory, db):
        service.update_document(passport.id, user.id, DocumentUpdate(reminders=["30d"]))

        bindings = _bindings(session_factory, passport.id)
        assert {c for c, b in bindings.items() if b.enabled} == {"30d"}
        assert [t.interval_id for t in _pending(session_factory, passport.id)] == [_interval_id(db, "30d")]

    def test_invalid_timezone_leaves_document_unchanged(self, passport, service, user, session_factory):
        with pytest.raises(ValidationError):
            service.update_document(passport.id, user.id, DocumentUpdate(timezone="Bogus/Zone"))
        with session_factory() as s:
            assert s.get(Document, passport.id).timezone == PASSPORT_TZ

    def test_other_users_document(self, passport, service, other_user):
        with pytest.raises(ForbiddenError):
            service.update_document(passport.id, other_user.id, DocumentUpdate(name="mine now"))


class TestDeleteDocument:
    def test_cancels_tasks_and_bindings(self, passport, service, user, session_factory):
        service.delete_document(passport.id, user.id)

        assert _pending(session_factory, passport.id) == []
        assert _bindings(session_factory, passport.id) == {}

    def test_missing(self, service, user):
        with pytest.raises(NotFoundError):
            service.delete_document(uuid.uuid4(), user.id)


class TestToggleReminder:
    def test_disable_cancels(self, passport, service, user, session_factory, db):
        binding = service.toggle_reminder(passport.id, user.id, "7d", False)

        assert not binding.enabled
        assert _interval_id(db, "7d") not in {t.interval_id for t in _pending(session_factory, passport.id)}

    def test_reenable_clears_sent_at_and_schedules(self, passport, service, user, session_factory, db):
        _mark_sent(session_factory, db, passport.id, "7d")
        service.toggle_reminder(passport.id, user.id, "7d", False)

        binding = service.toggle_reminder(passport.id, user.id, "7d", True)

        assert binding.enabled and binding.sent_at is None
        assert _interval_id(db, "7d") in {t.interval_id for t in _pending(session_factory, passport.id)}

    def test_enable_new_code_creates_binding(self, passport, service, user, session_factory):
        service.toggle_reminder(passport.id, user.id, "90d", True)
        assert _bindings(session_factory, passport.id)["90d"].enabled

    def test_unknown_code(self, passport, service, user):
        with pytest.raises(NotFoundError):
            service.toggle_reminder(passport.id, user.id, "2w", True)

    def test_disable_unbound_code(self, passport, service, user):
        with pytest.raises(NotFoundError):
            service.toggle_reminder(passport.id, user.id, "90d", False)


def test_get_document_reminders_sorted(passport, service, user):
    reminders = service.get_document_reminders(passport.id, user.id)
    assert [b.interval.code for b in reminders] == ["7d", "0d"]


def test_list_intervals(service):
    assert [i.code for i in service.list_intervals()] == [
        "180d", "90d", "60d", "30d", "21d", "14d", "7d", "3d", "1d", "0d",
    ]
