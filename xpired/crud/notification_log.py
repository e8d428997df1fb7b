from typing import Any, Dict, Optional
import uuid

from sqlalchemy.orm import Session

from xpired.models.notification_log import NotificationLog


def append_log(
    db: Session,
    *,
    channel: str,
    status: str,
    user_id: Optional[uuid.UUID] = None,
    document_id: Optional[uuid.UUID] = None,
    interval_id: Optional[int] = None,
    task_id: Optional[uuid.UUID] = None,
    response: Optional[Dict[str, Any]] = None,
    delivery_attempt: int = 1,
) -> NotificationLog:
    entry = NotificationLog(
        user_id=user_id,
        document_id=document_id,
        interval_id=interval_id,
        task_id=task_id,
        channel=channel,
        status=status,
        response=response or {},
        delivery_attempt=delivery_attempt,
    )
    db.add(entry)
    db.flush()
    return entry
