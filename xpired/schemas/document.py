"""
Request/response schemas for documents and their reminders
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from xpired.reminders.templates import format_expiration_date


def _clean_name(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("name must not be blank")
    return v


class ReminderIntervalRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    label: str
    days_before: int
    code: str


class DocumentCreate(BaseModel):
    """Schema for creating a document with its reminder selection"""
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    identifier: Optional[str] = None
    expiration_date: date
    timezone: Optional[str] = None
    attachment_url: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    # Interval codes, e.g. ["30d", "7d"]; unknown codes are ignored
    reminders: List[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        return _clean_name(v)


class DocumentUpdate(BaseModel):
    """Partial update. ``reminders=None`` leaves the selection unchanged."""
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    identifier: Optional[str] = None
    expiration_date: Optional[date] = None
    timezone: Optional[str] = None
    attachment_url: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    reminders: Optional[List[str]] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _clean_name(v)


class DocumentReminderRead(BaseModel):
    interval_id: int
    code: str
    label: str
    days_before: int
    enabled: bool
    sent_at: Optional[datetime] = None

    @classmethod
    def from_binding(cls, binding) -> "DocumentReminderRead":
        return cls(
            interval_id=binding.interval_id,
            code=binding.interval.code,
            label=binding.interval.label,
            days_before=binding.interval.days_before,
            enabled=binding.enabled,
            sent_at=binding.sent_at,
        )


class ScheduleDecisionRead(BaseModel):
    code: str
    fire_at: datetime
    scheduled: bool
    task_id: Optional[str] = None


class DocumentRead(BaseModel):
    id: str
    user_id: str
    name: str
    description: Optional[str] = None
    identifier: Optional[str] = None
    expiration_date: date
    expiration_date_display: str
    timezone: str
    attachment_url: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    reminders: List[DocumentReminderRead] = Field(default_factory=list)
    schedule: Optional[List[ScheduleDecisionRead]] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_document(cls, document, decisions=None) -> "DocumentRead":
        schedule = None
        if decisions is not None:
            schedule = [
                ScheduleDecisionRead(
                    code=d.code,
                    fire_at=d.fire_at,
                    scheduled=not d.elapsed,
                    task_id=str(d.task_id) if d.task_id else None,
                )
                for d in decisions
            ]
        return cls(
            id=str(document.id),
            user_id=str(document.user_id),
            name=document.name,
            description=document.description,
            identifier=document.identifier,
            expiration_date=document.expiration_date,
            expiration_date_display=format_expiration_date(document.expiration_date),
            timezone=document.timezone,
            attachment_url=document.attachment_url,
            metadata=document.extra_metadata,
            reminders=sorted(
                (DocumentReminderRead.from_binding(b) for b in document.reminders),
                key=lambda r: -r.days_before,
            ),
            schedule=schedule,
            created_at=document.created_at,
            updated_at=document.updated_at,
        )


class ToggleReminderRequest(BaseModel):
    code: str = Field(..., min_length=1)
    enabled: bool
