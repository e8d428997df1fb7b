"""Translate a requested set of interval codes into binding changes."""
from dataclasses import dataclass, field
from typing import Iterable, List, Optional
import logging

from sqlalchemy.orm import Session

from xpired.crud import binding as binding_crud
from xpired.crud.interval import get_intervals_by_codes
from xpired.models.reminder_interval import ReminderInterval
from .scheduler import ReminderScheduler

logger = logging.getLogger(__name__)


@dataclass
class SelectionResult:
    enabled: List[ReminderInterval] = field(default_factory=list)
    disabled_codes: List[str] = field(default_factory=list)
    unknown_codes: List[str] = field(default_factory=list)


def apply_selection(
    db: Session,
    document,
    codes: Optional[Iterable[str]],
    *,
    scheduler: ReminderScheduler,
    edit: bool = False,
) -> SelectionResult:
    """
    Enable a binding for every known code and, in edit mode, disable enabled
    bindings whose code was not requested and cancel their pending tasks.

    Unknown codes are dropped without error. Scheduling the enabled bindings
    is left to the caller.
    """
    requested = []
    for code in codes or []:
        code = (code or "").strip()
        if code and code not in requested:
            requested.append(code)

    resolved = get_intervals_by_codes(db, requested)
    known = {interval.code for interval in resolved}
    result = SelectionResult(unknown_codes=[c for c in requested if c not in known])
    if result.unknown_codes:
        logger.info(f"[Reminders] Ignoring unknown interval codes for doc={document.id}: {result.unknown_codes}")

    for interval in resolved:
        binding_crud.enable_binding(db, document_id=document.id, interval_id=interval.id)
        result.enabled.append(interval)

    if edit:
        wanted = {interval.id for interval in resolved}
        for binding in binding_crud.list_bindings(db, document_id=document.id, enabled=True):
            if binding.interval_id in wanted:
                continue
            binding_crud.disable_binding(db, document_id=document.id, interval_id=binding.interval_id)
            scheduler.cancel_binding(document.id, binding.interval_id, session=db)
            result.disabled_codes.append(binding.interval.code)
    return result
