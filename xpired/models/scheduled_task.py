import uuid

from sqlalchemy import Column, Index, Integer, String, Text, Uuid, text

from xpired.db.base import Base
from xpired.db.types import JSONType, UTCDateTime
from xpired.utils.timezone import utcnow


class ScheduledTask(Base):
    """Durable delayed-dispatch record owned by the dispatch queue."""
    __tablename__ = "scheduled_tasks"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    kind = Column(String, nullable=False, default="send_reminder")
    document_id = Column(Uuid, nullable=False)
    user_id = Column(Uuid, nullable=False)
    interval_id = Column(Integer, nullable=False)
    payload = Column(JSONType, nullable=False, default=dict)
    fire_at = Column(UTCDateTime, nullable=False)

    state = Column(String, nullable=False, default="pending")
    attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=5)
    lease_token = Column(Uuid, nullable=True)
    lease_expires_at = Column(UTCDateTime, nullable=True)
    last_error = Column(Text, nullable=True)
    delivered_at = Column(UTCDateTime, nullable=True)

    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_scheduled_tasks_state_fire_at", "state", "fire_at"),
        Index("ix_scheduled_tasks_state_lease", "state", "lease_expires_at"),
        Index("ix_scheduled_tasks_binding", "document_id", "interval_id"),
        # At most one pending task per binding
        Index(
            "uq_scheduled_tasks_pending_binding",
            "document_id",
            "interval_id",
            unique=True,
            postgresql_where=text("state = 'pending'"),
            sqlite_where=text("state = 'pending'"),
        ),
    )
