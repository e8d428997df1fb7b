import uuid

from sqlalchemy import Column, Index, Integer, String, Uuid

from xpired.db.base import Base
from xpired.db.types import JSONType, UTCDateTime
from xpired.utils.timezone import utcnow


class NotificationLog(Base):
    """Append-only delivery record. Never read back for decision-making.

    No foreign keys: entries outlive the documents and users they mention.
    """
    __tablename__ = "notification_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=True)
    document_id = Column(Uuid, nullable=True)
    interval_id = Column(Integer, nullable=True)
    task_id = Column(Uuid, nullable=True)
    channel = Column(String, nullable=False)  # 'email' | 'sms' | 'queue'
    status = Column(String, nullable=False)  # 'sent' | 'failed' | 'duplicate' | 'failed_terminal'
    response = Column(JSONType, nullable=False, default=dict)
    delivery_attempt = Column(Integer, nullable=False, default=1)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_notification_logs_user_id", "user_id"),
        Index("ix_notification_logs_document_id", "document_id"),
        Index("ix_notification_logs_interval_id", "interval_id"),
        Index("ix_notification_logs_status", "status"),
    )
