"""
Producer side: turns a document's enabled bindings into pending queue tasks.

Scheduling is idempotent per (document, interval): the queue replaces any
pending task for the binding, so calling ``schedule_document`` twice with the
same inputs leaves exactly one pending task per future occurrence.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, List, Optional
import logging
import uuid

from sqlalchemy.orm import Session

from xpired.core.exceptions import QueueError
from xpired.utils.retry import retry_sync
from xpired.utils.timezone import utcnow
from .metrics import reminders_elapsed_total
from .queue import DispatchQueue, ReminderTask
from .schedule import plan_reminders

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScheduleDecision:
    interval_id: int
    code: str
    fire_at: datetime
    task_id: Optional[uuid.UUID]

    @property
    def elapsed(self) -> bool:
        return self.task_id is None


class ReminderScheduler:
    def __init__(
        self,
        queue: DispatchQueue,
        *,
        clock: Callable[[], datetime] = utcnow,
        retries: int = 2,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.queue = queue
        self._clock = clock
        self.retries = retries
        self._sleep = sleep

    def schedule_document(self, document, intervals: Iterable, *, session: Optional[Session] = None) -> List[ScheduleDecision]:
        """
        Enqueue one task per interval whose fire instant is still ahead.

        Elapsed occurrences are skipped (and any stale pending task for them
        cancelled). Raises ValidationError before touching the queue if the
        document's timezone or date is invalid.
        """
        now = self._clock()
        entries = plan_reminders(document.expiration_date, document.timezone, intervals, now)
        decisions = []
        for entry in entries:
            if entry.elapsed:
                self._call(lambda e=entry: self.queue.cancel(document.id, e.interval_id, session=session), session)
                reminders_elapsed_total.inc()
                logger.info(
                    f"[Scheduler] Skipping elapsed reminder doc={document.id} interval={entry.code} "
                    f"fire_at={entry.fire_at.isoformat()}"
                )
                decisions.append(ScheduleDecision(entry.interval_id, entry.code, entry.fire_at, None))
                continue
            task = ReminderTask(
                document_id=document.id,
                user_id=document.user_id,
                interval_id=entry.interval_id,
                expiration_date=document.expiration_date,
                timezone=document.timezone,
            )
            task_id = self._call(lambda t=task, e=entry: self.queue.schedule(t, e.fire_at, session=session), session)
            decisions.append(ScheduleDecision(entry.interval_id, entry.code, entry.fire_at, task_id))
        return decisions

    def cancel_binding(self, document_id: uuid.UUID, interval_id: int, *, session: Optional[Session] = None) -> int:
        return self._call(lambda: self.queue.cancel(document_id, interval_id, session=session), session)

    def cancel_document(self, document_id: uuid.UUID, *, session: Optional[Session] = None) -> int:
        return self._call(lambda: self.queue.cancel_document(document_id, session=session), session)

    def _call(self, fn, session: Optional[Session]):
        # A failed statement poisons a shared transaction; only standalone calls are retried
        if session is not None:
            return fn()
        kwargs = {"retry_on": (QueueError,), "retries": self.retries}
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        try:
            return retry_sync(fn, **kwargs)
        except QueueError as e:
            logger.error(f"[Scheduler] Queue unavailable after {self.retries + 1} attempt(s): {e}")
            raise
