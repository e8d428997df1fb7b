from datetime import datetime
from typing import List, Optional
import uuid

from sqlalchemy import update
from sqlalchemy.orm import Session

from xpired.models.document import DocumentReminder
from xpired.utils.timezone import utcnow


def get_binding(db: Session, *, document_id: uuid.UUID, interval_id: int) -> Optional[DocumentReminder]:
    return (
        db.query(DocumentReminder)
        .filter(DocumentReminder.document_id == document_id, DocumentReminder.interval_id == interval_id)
        .first()
    )


def list_bindings(db: Session, *, document_id: uuid.UUID, enabled: Optional[bool] = None) -> List[DocumentReminder]:
    query = db.query(DocumentReminder).filter(DocumentReminder.document_id == document_id)
    if enabled is not None:
        query = query.filter(DocumentReminder.enabled == enabled)
    return query.all()


def enable_binding(db: Session, *, document_id: uuid.UUID, interval_id: int) -> DocumentReminder:
    """Create or re-enable a binding. (Re-)enabling clears sent_at."""
    binding = get_binding(db, document_id=document_id, interval_id=interval_id)
    if binding is None:
        binding = DocumentReminder(document_id=document_id, interval_id=interval_id, enabled=True, sent_at=None)
        db.add(binding)
    elif not binding.enabled:
        binding.enabled = True
        binding.sent_at = None
    db.flush()
    return binding


def disable_binding(db: Session, *, document_id: uuid.UUID, interval_id: int) -> Optional[DocumentReminder]:
    binding = get_binding(db, document_id=document_id, interval_id=interval_id)
    if binding is None:
        return None
    binding.enabled = False
    db.flush()
    return binding


def clear_sent_at_for_document(db: Session, *, document_id: uuid.UUID) -> int:
    """Reset every binding of a document for a new expiration cycle."""
    result = db.execute(
        update(DocumentReminder)
        .where(DocumentReminder.document_id == document_id)
        .values(sent_at=None, updated_at=utcnow())
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount or 0


def mark_sent(db: Session, binding: DocumentReminder, sent_at: datetime) -> None:
    binding.sent_at = sent_at
    db.add(binding)
    db.flush()
