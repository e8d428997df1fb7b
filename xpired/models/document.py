import uuid

from sqlalchemy import Boolean, Column, Date, ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from xpired.db.base import Base
from xpired.db.types import JSONType, UTCDateTime
from xpired.utils.timezone import utcnow


class Document(Base):
    __tablename__ = "documents"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    identifier = Column(String, nullable=True)
    # Calendar date; read as local midnight in `timezone` when scheduling
    expiration_date = Column(Date, nullable=False)
    timezone = Column(String, nullable=False, default="UTC")
    attachment_url = Column(String, nullable=True)
    extra_metadata = Column("metadata", JSONType, nullable=True)

    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    owner = relationship("User", back_populates="documents")
    reminders = relationship(
        "DocumentReminder",
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class DocumentReminder(Base):
    """Binding between a document and one catalog interval."""
    __tablename__ = "document_reminders"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    document_id = Column(Uuid, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    interval_id = Column(Integer, ForeignKey("reminder_intervals.id", ondelete="CASCADE"), nullable=False)
    enabled = Column(Boolean, nullable=False, default=True)
    # Last successful delivery for the current expiration cycle
    sent_at = Column(UTCDateTime, nullable=True)

    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    document = relationship("Document", back_populates="reminders")
    interval = relationship("ReminderInterval", lazy="joined")

    __table_args__ = (
        UniqueConstraint("document_id", "interval_id", name="uq_document_reminders_binding"),
        Index("ix_document_reminders_document_id", "document_id"),
        Index("ix_document_reminders_interval_id", "interval_id"),
    )
