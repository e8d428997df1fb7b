from typing import List
import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from xpired.api.deps import get_current_user_id, get_runtime, get_service, verify_api_key_dependency
from xpired.core.exceptions import ForbiddenError, NotFoundError, QueueError, ValidationError, XpiredError
from xpired.schemas.document import (
    DocumentCreate,
    DocumentRead,
    DocumentReminderRead,
    DocumentUpdate,
    ReminderIntervalRead,
    ToggleReminderRequest,
)
from xpired.schemas.task import ScheduledTaskRead
from .runtime import ReminderRuntime
from .service import DocumentReminderService

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_api_key_dependency)])
documents_router = APIRouter(dependencies=[Depends(verify_api_key_dependency)])


def _http_error(e: XpiredError) -> HTTPException:
    if isinstance(e, ValidationError):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ForbiddenError):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, QueueError):
        logger.error(f"[Reminders] Reminder store unavailable: {e}")
        return HTTPException(status_code=503, detail="Reminder scheduling is temporarily unavailable")
    return HTTPException(status_code=500, detail=str(e))


@router.get("/intervals", response_model=List[ReminderIntervalRead])
def list_intervals_endpoint(service: DocumentReminderService = Depends(get_service)):
    """Catalog of supported reminder lead times."""
    return [ReminderIntervalRead.model_validate(i) for i in service.list_intervals()]


@router.get("/tasks/failed", response_model=List[ScheduledTaskRead])
def list_failed_tasks_endpoint(
    limit: int = Query(100, ge=1, le=1000),
    runtime: ReminderRuntime = Depends(get_runtime),
):
    """Tasks that exhausted their retries."""
    try:
        rows = runtime.queue.failed_tasks(limit=limit)
    except QueueError as e:
        raise _http_error(e)
    return [ScheduledTaskRead.from_row(r) for r in rows]


@documents_router.post("", response_model=DocumentRead, status_code=201)
def create_document_endpoint(
    payload: DocumentCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: DocumentReminderService = Depends(get_service),
):
    try:
        result = service.create_document(user_id, payload)
    except XpiredError as e:
        raise _http_error(e)
    return DocumentRead.from_document(result.document, result.decisions)


@documents_router.get("", response_model=List[DocumentRead])
def list_documents_endpoint(
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: DocumentReminderService = Depends(get_service),
):
    return [DocumentRead.from_document(d) for d in service.list_documents(user_id)]


@documents_router.get("/{document_id}", response_model=DocumentRead)
def get_document_endpoint(
    document_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: DocumentReminderService = Depends(get_service),
):
    try:
        document = service.get_document(document_id, user_id)
    except XpiredError as e:
        raise _http_error(e)
    return DocumentRead.from_document(document)


@documents_router.patch("/{document_id}", response_model=DocumentRead)
def update_document_endpoint(
    document_id: uuid.UUID,
    payload: DocumentUpdate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: DocumentReminderService = Depends(get_service),
):
    """Partial update; a new expiration date or timezone reschedules every enabled reminder."""
    try:
        result = service.update_document(document_id, user_id, payload)
    except XpiredError as e:
        raise _http_error(e)
    return DocumentRead.from_document(result.document, result.decisions)


@documents_router.delete("/{document_id}", status_code=204)
def delete_document_endpoint(
    document_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: DocumentReminderService = Depends(get_service),
):
    try:
        service.delete_document(document_id, user_id)
    except XpiredError as e:
        raise _http_error(e)
    return Response(status_code=204)


@documents_router.get("/{document_id}/reminders", response_model=List[DocumentReminderRead])
def get_document_reminders_endpoint(
    document_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: DocumentReminderService = Depends(get_service),
):
    try:
        bindings = service.get_document_reminders(document_id, user_id)
    except XpiredError as e:
        raise _http_error(e)
    return [DocumentReminderRead.from_binding(b) for b in bindings]


@documents_router.post("/{document_id}/reminders/toggle", response_model=DocumentReminderRead)
def toggle_reminder_endpoint(
    document_id: uuid.UUID,
    payload: ToggleReminderRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: DocumentReminderService = Depends(get_service),
):
    try:
        binding = service.toggle_reminder(document_id, user_id, payload.code, payload.enabled)
    except XpiredError as e:
        raise _http_error(e)
    return DocumentReminderRead.from_binding(binding)
