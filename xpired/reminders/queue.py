"""
Durable delayed-dispatch queue.

Tasks are rows in ``scheduled_tasks``. ``drain_due`` leases due rows with
``SELECT ... FOR UPDATE SKIP LOCKED`` so concurrent workers never receive the
same task while its lease is live; a lease that runs out without ``ack`` makes
the task deliverable again (at-least-once).
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional
import logging
import uuid

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from xpired.core.exceptions import QueueError, ValidationError
from xpired.db.session import session_scope
from xpired.models.scheduled_task import ScheduledTask
from xpired.reminders import state_machine
from xpired.reminders.metrics import (
    queue_drained_total,
    reminders_cancelled_total,
    reminders_scheduled_total,
    tasks_failed_terminal_total,
    tasks_retried_total,
)
from xpired.reminders.state_machine import TaskEvent, TaskState
from xpired.utils.retry import backoff_delay
from xpired.utils.timezone import to_utc_aware, utcnow

logger = logging.getLogger(__name__)

TASK_SEND_REMINDER = "send_reminder"


@dataclass(frozen=True)
class ReminderTask:
    """Payload of a send-reminder task, including the cycle it was computed for."""
    document_id: uuid.UUID
    user_id: uuid.UUID
    interval_id: int
    expiration_date: date
    timezone: str
    kind: str = TASK_SEND_REMINDER

    def to_payload(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "document_id": str(self.document_id),
            "user_id": str(self.user_id),
            "interval_id": self.interval_id,
            "expiration_date": self.expiration_date.isoformat(),
            "timezone": self.timezone,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ReminderTask":
        try:
            return cls(
                document_id=uuid.UUID(str(payload["document_id"])),
                user_id=uuid.UUID(str(payload["user_id"])),
                interval_id=int(payload["interval_id"]),
                expiration_date=date.fromisoformat(str(payload["expiration_date"])),
                timezone=str(payload["timezone"]),
                kind=str(payload.get("kind") or TASK_SEND_REMINDER),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError(f"malformed task payload: {payload!r}") from exc


@dataclass(frozen=True)
class LeasedTask:
    id: uuid.UUID
    task: ReminderTask
    fire_at: datetime
    attempts: int
    max_attempts: int
    lease_token: uuid.UUID
    lease_expires_at: datetime

    def to_message(self) -> Dict[str, Any]:
        """JSON-safe form for handing the lease to another process."""
        return {
            "id": str(self.id),
            "payload": self.task.to_payload(),
            "fire_at": self.fire_at.isoformat(),
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "lease_token": str(self.lease_token),
            "lease_expires_at": self.lease_expires_at.isoformat(),
        }

    @classmethod
    def from_message(cls, message: Dict[str, Any]) -> "LeasedTask":
        return cls(
            id=uuid.UUID(message["id"]),
            task=ReminderTask.from_payload(message["payload"]),
            fire_at=datetime.fromisoformat(message["fire_at"]),
            attempts=int(message["attempts"]),
            max_attempts=int(message["max_attempts"]),
            lease_token=uuid.UUID(message["lease_token"]),
            lease_expires_at=datetime.fromisoformat(message["lease_expires_at"]),
        )


@dataclass(frozen=True)
class TerminalFailure:
    task_id: uuid.UUID
    task: Optional[ReminderTask]
    attempts: int
    error: str


class DispatchQueue(ABC):
    """Time-ordered holding area for future work.

    ``session`` lets substrates that live in the application database join
    the caller's transaction; others ignore it.
    """

    @abstractmethod
    def schedule(self, task: ReminderTask, fire_at: datetime, *, session: Optional[Session] = None) -> uuid.UUID:
        """Persist a pending task, replacing any pending task for the same binding."""

    @abstractmethod
    def cancel(self, document_id: uuid.UUID, interval_id: int, *, session: Optional[Session] = None) -> int:
        """Remove the pending task for a binding. No-op if none exists."""

    @abstractmethod
    def cancel_document(self, document_id: uuid.UUID, *, session: Optional[Session] = None) -> int:
        """Remove every pending task of a document."""

    @abstractmethod
    def drain_due(self, now: datetime, limit: int = 100) -> List[LeasedTask]:
        """Lease tasks with ``fire_at <= now`` in non-decreasing fire_at order."""

    @abstractmethod
    def ack(self, leased: LeasedTask, now: Optional[datetime] = None) -> bool:
        """Mark a leased task delivered. False if the lease was superseded."""

    @abstractmethod
    def fail(
        self,
        leased: LeasedTask,
        error: str,
        *,
        retryable: bool = True,
        now: Optional[datetime] = None,
    ) -> Optional[TaskState]:
        """Record a failed execution; returns the settled state or None if the lease was superseded."""

    def close(self) -> None:
        pass


class SqlDispatchQueue(DispatchQueue):
    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        lease_seconds: int = 300,
        max_attempts: int = 5,
        backoff_base_seconds: float = 60,
        backoff_max_seconds: float = 3600,
        on_terminal: Optional[Callable[[TerminalFailure], None]] = None,
    ):
        self._session_factory = session_factory
        self.lease = timedelta(seconds=lease_seconds)
        self.max_attempts = max_attempts
        self.backoff_base_seconds = backoff_base_seconds
        self.backoff_max_seconds = backoff_max_seconds
        self.on_terminal = on_terminal
        self._closed = False

    # --- producer side ---

    def schedule(self, task: ReminderTask, fire_at: datetime, *, session: Optional[Session] = None) -> uuid.UUID:
        def _schedule(db: Session) -> uuid.UUID:
            self._delete_pending(db, task.document_id, task.interval_id)
            row = ScheduledTask(
                kind=task.kind,
                document_id=task.document_id,
                user_id=task.user_id,
                interval_id=task.interval_id,
                payload=task.to_payload(),
                fire_at=to_utc_aware(fire_at),
                state=TaskState.PENDING.value,
                attempts=0,
                max_attempts=self.max_attempts,
            )
            db.add(row)
            db.flush()
            return row.id

        task_id = self._run(_schedule, session, "schedule")
        reminders_scheduled_total.inc()
        logger.info(
            f"[Queue] Scheduled task={task_id} doc={task.document_id} interval={task.interval_id} "
            f"fire_at={to_utc_aware(fire_at).isoformat()}"
        )
        return task_id

    def cancel(self, document_id: uuid.UUID, interval_id: int, *, session: Optional[Session] = None) -> int:
        removed = self._run(lambda db: self._delete_pending(db, document_id, interval_id), session, "cancel")
        if removed:
            reminders_cancelled_total.inc(removed)
            logger.info(f"[Queue] Cancelled {removed} pending task(s) for doc={document_id} interval={interval_id}")
        return removed

    def cancel_document(self, document_id: uuid.UUID, *, session: Optional[Session] = None) -> int:
        def _cancel(db: Session) -> int:
            result = db.execute(
                delete(ScheduledTask)
                .where(ScheduledTask.document_id == document_id)
                .where(ScheduledTask.state == TaskState.PENDING.value)
            )
            return result.rowcount or 0

        removed = self._run(_cancel, session, "cancel_document")
        if removed:
            reminders_cancelled_total.inc(removed)
            logger.info(f"[Queue] Cancelled {removed} pending task(s) for doc={document_id}")
        return removed

    # --- consumer side ---

    def drain_due(self, now: datetime, limit: int = 100) -> List[LeasedTask]:
        now = to_utc_aware(now)
        exhausted: List[TerminalFailure] = []

        def _drain(db: Session) -> List[LeasedTask]:
            rows = db.execute(
                select(ScheduledTask)
                .where(
                    or_(
                        and_(
                            ScheduledTask.state == TaskState.PENDING.value,
                            ScheduledTask.fire_at <= now,
                        ),
                        and_(
                            ScheduledTask.state == TaskState.IN_FLIGHT.value,
                            ScheduledTask.lease_expires_at <= now,
                        ),
                    )
                )
                .order_by(ScheduledTask.fire_at.asc())
                .limit(limit)
                .with_for_update(skip_locked=True)
            ).scalars().all()

            leased = []
            for row in rows:
                try:
                    task = ReminderTask.from_payload(row.payload or {})
                except ValidationError as exc:
                    # A row that can never execute must not block the rows behind it
                    self._mark_terminal(row, str(exc), now)
                    exhausted.append(TerminalFailure(task_id=row.id, task=None, attempts=row.attempts, error=str(exc)))
                    continue
                state = TaskState(row.state)
                if state == TaskState.IN_FLIGHT:
                    state = state_machine.expire_lease(state, attempts=row.attempts, max_attempts=row.max_attempts)
                    if state == TaskState.FAILED_TERMINAL:
                        error = f"lease expired after {row.attempts} attempt(s)"
                        self._mark_terminal(row, error, now)
                        exhausted.append(self._terminal_failure(row, error))
                        continue
                    logger.warning(f"[Queue] Lease expired for task={row.id}; redelivering (attempt {row.attempts + 1})")
                row.state = state_machine.transition(state, TaskEvent.LEASE).value
                row.attempts += 1
                row.lease_token = uuid.uuid4()
                row.lease_expires_at = now + self.lease
                row.updated_at = now
                leased.append(self._to_leased(row, task))
            return leased

        leased = self._run(_drain, None, "drain_due")
        if leased:
            queue_drained_total.inc(len(leased))
        for failure in exhausted:
            self._notify_terminal(failure)
        return leased

    def ack(self, leased: LeasedTask, now: Optional[datetime] = None) -> bool:
        now = to_utc_aware(now) if now else utcnow()

        def _ack(db: Session) -> bool:
            row = self._leased_row(db, leased)
            if row is None:
                return False
            row.state = state_machine.transition(TaskState(row.state), TaskEvent.ACK).value
            row.delivered_at = now
            row.lease_token = None
            row.lease_expires_at = None
            row.updated_at = now
            return True

        acked = self._run(_ack, None, "ack")
        if not acked:
            logger.warning(f"[Queue] Ack ignored for task={leased.id}: lease superseded")
        return acked

    def fail(
        self,
        leased: LeasedTask,
        error: str,
        *,
        retryable: bool = True,
        now: Optional[datetime] = None,
    ) -> Optional[TaskState]:
        now = to_utc_aware(now) if now else utcnow()
        terminal: List[TerminalFailure] = []

        def _fail(db: Session) -> Optional[TaskState]:
            row = self._leased_row(db, leased)
            if row is None:
                return None
            settled = state_machine.fail(
                TaskState(row.state),
                retryable=retryable,
                attempts=row.attempts,
                max_attempts=row.max_attempts,
            )
            if settled == TaskState.FAILED_TERMINAL:
                self._mark_terminal(row, error, now)
                terminal.append(self._terminal_failure(row, error))
                return settled

            if self._has_pending(db, row.document_id, row.interval_id):
                # Rescheduled while in flight; the newer task supersedes this retry
                db.delete(row)
                return settled
            row.state = settled.value
            row.last_error = (error or "")[:2000]
            row.fire_at = now + timedelta(
                seconds=backoff_delay(row.attempts, self.backoff_base_seconds, self.backoff_max_seconds)
            )
            row.lease_token = None
            row.lease_expires_at = None
            row.updated_at = now
            return settled

        settled = self._run(_fail, None, "fail")
        if settled is None:
            logger.warning(f"[Queue] Failure report ignored for task={leased.id}: lease superseded")
        elif settled == TaskState.PENDING:
            tasks_retried_total.inc()
            logger.warning(f"[Queue] Task={leased.id} failed (attempt {leased.attempts}), retrying: {error}")
        for failure in terminal:
            self._notify_terminal(failure)
        return settled

    # --- operator visibility ---

    def get_task(self, task_id: uuid.UUID) -> Optional[ScheduledTask]:
        return self._run(lambda db: db.get(ScheduledTask, task_id), None, "get_task")

    def pending_for_binding(self, document_id: uuid.UUID, interval_id: int) -> List[ScheduledTask]:
        return self._run(
            lambda db: db.execute(
                select(ScheduledTask)
                .where(ScheduledTask.document_id == document_id)
                .where(ScheduledTask.interval_id == interval_id)
                .where(ScheduledTask.state == TaskState.PENDING.value)
            ).scalars().all(),
            None,
            "pending_for_binding",
        )

    def failed_tasks(self, limit: int = 100) -> List[ScheduledTask]:
        return self._run(
            lambda db: db.execute(
                select(ScheduledTask)
                .where(ScheduledTask.state == TaskState.FAILED_TERMINAL.value)
                .order_by(ScheduledTask.updated_at.desc())
                .limit(limit)
            ).scalars().all(),
            None,
            "failed_tasks",
        )

    def purge_delivered(self, before: datetime) -> int:
        def _purge(db: Session) -> int:
            result = db.execute(
                delete(ScheduledTask)
                .where(ScheduledTask.state == TaskState.DELIVERED.value)
                .where(ScheduledTask.delivered_at < to_utc_aware(before))
            )
            return result.rowcount or 0

        return self._run(_purge, None, "purge_delivered")

    def close(self) -> None:
        self._closed = True

    # --- helpers ---

    def _run(self, fn: Callable[[Session], Any], session: Optional[Session], op: str) -> Any:
        if self._closed:
            raise QueueError(f"{op}: queue is closed")
        try:
            if session is not None:
                return fn(session)
            with session_scope(self._session_factory) as db:
                return fn(db)
        except SQLAlchemyError as exc:
            logger.error(f"[Queue] {op} failed: {exc}")
            raise QueueError(f"{op} failed: {exc}") from exc

    @staticmethod
    def _delete_pending(db: Session, document_id: uuid.UUID, interval_id: int) -> int:
        result = db.execute(
            delete(ScheduledTask)
            .where(ScheduledTask.document_id == document_id)
            .where(ScheduledTask.interval_id == interval_id)
            .where(ScheduledTask.state == TaskState.PENDING.value)
        )
        return result.rowcount or 0

    @staticmethod
    def _has_pending(db: Session, document_id: uuid.UUID, interval_id: int) -> bool:
        return db.execute(
            select(ScheduledTask.id)
            .where(ScheduledTask.document_id == document_id)
            .where(ScheduledTask.interval_id == interval_id)
            .where(ScheduledTask.state == TaskState.PENDING.value)
            .limit(1)
        ).first() is not None

    @staticmethod
    def _leased_row(db: Session, leased: LeasedTask) -> Optional[ScheduledTask]:
        return db.execute(
            select(ScheduledTask)
            .where(ScheduledTask.id == leased.id)
            .where(ScheduledTask.lease_token == leased.lease_token)
            .where(ScheduledTask.state == TaskState.IN_FLIGHT.value)
            .with_for_update()
        ).scalar_one_or_none()

    @staticmethod
    def _mark_terminal(row: ScheduledTask, error: str, now: datetime) -> None:
        row.state = TaskState.FAILED_TERMINAL.value
        row.last_error = (error or "")[:2000]
        row.lease_token = None
        row.lease_expires_at = None
        row.updated_at = now

    @staticmethod
    def _terminal_failure(row: ScheduledTask, error: str) -> TerminalFailure:
        try:
            task = ReminderTask.from_payload(row.payload or {})
        except ValidationError:
            task = None
        return TerminalFailure(task_id=row.id, task=task, attempts=row.attempts, error=error)

    def _notify_terminal(self, failure: TerminalFailure) -> None:
        tasks_failed_terminal_total.inc()
        logger.error(f"[Queue] Task={failure.task_id} failed terminally after {failure.attempts} attempt(s): {failure.error}")
        if self.on_terminal is None:
            return
        try:
            self.on_terminal(failure)
        except Exception:
            logger.exception(f"[Queue] on_terminal hook failed for task={failure.task_id}")

    @staticmethod
    def _to_leased(row: ScheduledTask, task: ReminderTask) -> LeasedTask:
        return LeasedTask(
            id=row.id,
            task=task,
            fire_at=to_utc_aware(row.fire_at),
            attempts=row.attempts,
            max_attempts=row.max_attempts,
            lease_token=row.lease_token,
            lease_expires_at=to_utc_aware(row.lease_expires_at),
        )
