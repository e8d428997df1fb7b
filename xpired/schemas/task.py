from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel


class ScheduledTaskRead(BaseModel):
    """Operator view of a durable queue record"""
    id: str
    kind: str
    document_id: str
    interval_id: int
    fire_at: datetime
    state: str
    attempts: int
    max_attempts: int
    last_error: Optional[str] = None
    payload: Dict[str, Any]
    updated_at: datetime

    @classmethod
    def from_row(cls, row) -> "ScheduledTaskRead":
        return cls(
            id=str(row.id),
            kind=row.kind,
            document_id=str(row.document_id),
            interval_id=row.interval_id,
            fire_at=row.fire_at,
            state=row.state,
            attempts=row.attempts,
            max_attempts=row.max_attempts,
            last_error=row.last_error,
            payload=row.payload or {},
            updated_at=row.updated_at,
        )
