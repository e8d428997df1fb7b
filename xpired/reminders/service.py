"""
Document lifecycle with reminder side effects.

Document rows, binding changes and queue changes for one request share the
request's session and commit together, so a failed request leaves neither
orphaned tasks nor bindings without tasks.
"""
from dataclasses import dataclass
from typing import List, Optional
import logging
import uuid

from sqlalchemy.orm import Session

from xpired.core.exceptions import ForbiddenError, NotFoundError
from xpired.crud import binding as binding_crud
from xpired.crud import document as document_crud
from xpired.crud import interval as interval_crud
from xpired.crud.user import get_user
from xpired.models.document import Document, DocumentReminder
from xpired.models.reminder_interval import ReminderInterval
from xpired.schemas.document import DocumentCreate, DocumentUpdate
from xpired.utils.timezone import resolve_timezone
from .schedule import parse_expiration_date
from .scheduler import ReminderScheduler, ScheduleDecision
from .selection import apply_selection

logger = logging.getLogger(__name__)

# Columns that cannot be cleared by sending null
_REQUIRED_FIELDS = ("name", "expiration_date", "timezone")


@dataclass
class DocumentResult:
    document: Document
    decisions: List[ScheduleDecision]


class DocumentReminderService:
    def __init__(self, db: Session, scheduler: ReminderScheduler, *, default_timezone: str = "UTC"):
        self.db = db
        self.scheduler = scheduler
        self.default_timezone = default_timezone

    def list_intervals(self) -> List[ReminderInterval]:
        return interval_crud.list_intervals(self.db)

    def list_documents(self, user_id: uuid.UUID) -> List[Document]:
        return document_crud.list_documents_by_user(self.db, user_id=user_id)

    def get_document(self, document_id: uuid.UUID, user_id: uuid.UUID) -> Document:
        return self._get_owned(document_id, user_id)

    def get_document_reminders(self, document_id: uuid.UUID, user_id: uuid.UUID) -> List[DocumentReminder]:
        self._get_owned(document_id, user_id)
        bindings = binding_crud.list_bindings(self.db, document_id=document_id)
        return sorted(bindings, key=lambda b: -b.interval.days_before)

    def create_document(self, user_id: uuid.UUID, data: DocumentCreate) -> DocumentResult:
        timezone = (data.timezone or self.default_timezone).strip()
        resolve_timezone(timezone)
        expiration_date = parse_expiration_date(data.expiration_date)
        if get_user(self.db, user_id) is None:
            raise NotFoundError(f"user {user_id} not found")

        try:
            document = document_crud.create_document(
                self.db,
                user_id=user_id,
                fields={
                    "name": data.name,
                    "description": data.description,
                    "identifier": data.identifier,
                    "expiration_date": expiration_date,
                    "timezone": timezone,
                    "attachment_url": data.attachment_url,
                    "extra_metadata": data.metadata,
                },
            )
            selection = apply_selection(self.db, document, data.reminders, scheduler=self.scheduler)
            decisions = self.scheduler.schedule_document(document, selection.enabled, session=self.db)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(document)
        logger.info(
            f"[Reminders] Created doc={document.id} expiring {document.expiration_date} ({document.timezone}) "
            f"with {len(selection.enabled)} reminder(s)"
        )
        return DocumentResult(document=document, decisions=decisions)

    def update_document(self, document_id: uuid.UUID, user_id: uuid.UUID, data: DocumentUpdate) -> DocumentResult:
        document = self._get_owned(document_id, user_id)
        changes = data.model_dump(exclude_unset=True, exclude={"reminders"})
        fields = {}
        for key, value in changes.items():
            if key in _REQUIRED_FIELDS and value is None:
                continue
            fields["extra_metadata" if key == "metadata" else key] = value
        if "timezone" in fields:
            fields["timezone"] = fields["timezone"].strip()
            resolve_timezone(fields["timezone"])
        if "expiration_date" in fields:
            fields["expiration_date"] = parse_expiration_date(fields["expiration_date"])

        cycle_changed = (
            fields.get("expiration_date", document.expiration_date) != document.expiration_date
            or fields.get("timezone", document.timezone) != document.timezone
        )
        decisions: List[ScheduleDecision] = []
        try:
            document_crud.update_document(self.db, document, fields)
            if cycle_changed:
                cleared = binding_crud.clear_sent_at_for_document(self.db, document_id=document.id)
                logger.info(f"[Reminders] New expiration cycle for doc={document.id}; reset {cleared} binding(s)")
            if data.reminders is not None:
                apply_selection(self.db, document, data.reminders, scheduler=self.scheduler, edit=True)
            if cycle_changed or data.reminders is not None:
                decisions = self._reschedule(document)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(document)
        return DocumentResult(document=document, decisions=decisions)

    def delete_document(self, document_id: uuid.UUID, user_id: uuid.UUID) -> None:
        document = self._get_owned(document_id, user_id)
        try:
            cancelled = self.scheduler.cancel_document(document.id, session=self.db)
            document_crud.delete_document(self.db, document)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"[Reminders] Deleted doc={document_id}; cancelled {cancelled} pending task(s)")

    def toggle_reminder(self, document_id: uuid.UUID, user_id: uuid.UUID, code: str, enabled: bool) -> DocumentReminder:
        document = self._get_owned(document_id, user_id)
        intervals = interval_crud.get_intervals_by_codes(self.db, [code])
        if not intervals:
            raise NotFoundError(f"reminder interval {code!r} not found")
        interval = intervals[0]

        try:
            if enabled:
                binding = binding_crud.enable_binding(self.db, document_id=document.id, interval_id=interval.id)
                if binding.sent_at is None:
                    self.scheduler.schedule_document(document, [interval], session=self.db)
            else:
                binding = binding_crud.disable_binding(self.db, document_id=document.id, interval_id=interval.id)
                if binding is None:
                    raise NotFoundError(f"document {document_id} has no {code!r} reminder")
                self.scheduler.cancel_binding(document.id, interval.id, session=self.db)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(binding)
        logger.info(f"[Reminders] Toggled {code} on doc={document_id} enabled={enabled}")
        return binding

    def _reschedule(self, document: Document) -> List[ScheduleDecision]:
        # Bindings already delivered in this cycle are not scheduled again
        intervals = [
            b.interval
            for b in binding_crud.list_bindings(self.db, document_id=document.id, enabled=True)
            if b.sent_at is None
        ]
        return self.scheduler.schedule_document(document, intervals, session=self.db)

    def _get_owned(self, document_id: uuid.UUID, user_id: Optional[uuid.UUID]) -> Document:
        document = document_crud.get_document(self.db, document_id)
        if document is None:
            raise NotFoundError(f"document {document_id} not found")
        if user_id is not None and document.user_id != user_id:
            raise ForbiddenError(f"document {document_id} belongs to another user")
        return document
