"""
Execution of a single send-reminder task.

Reads current binding and document state at run time so that disabling,
deleting or re-dating a document after enqueue never produces a stale send.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from xpired.core.exceptions import PersistenceError, TransportError
from xpired.crud import binding as binding_crud
from xpired.crud import document as document_crud
from xpired.crud import notification_log as log_crud
from xpired.crud.user import ContactInfo, get_contact_info
from xpired.db.session import session_scope
from xpired.utils.timezone import utcnow
from .metrics import executor_skipped_total, reminders_channel_failed_total, reminders_channel_sent_total
from .queue import LeasedTask, TerminalFailure
from .templates import ReminderMessage, build_reminder_message
from .transports import EMAIL_CHANNEL, SMS_CHANNEL, EmailTransport, SmsTransport

logger = logging.getLogger(__name__)

QUEUE_CHANNEL = "queue"

STATUS_SENT = "sent"
STATUS_FAILED = "failed"
STATUS_DUPLICATE = "duplicate"
STATUS_FAILED_TERMINAL = "failed_terminal"


class ExecutionOutcome(str, Enum):
    SENT = "sent"
    DISABLED = "disabled"
    MISSING = "missing"
    STALE = "stale"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class ChannelResult:
    channel: str
    ok: bool
    response: Dict[str, Any]
    error: Optional[str] = None


@dataclass
class ExecutionResult:
    outcome: ExecutionOutcome
    channels: List[ChannelResult] = field(default_factory=list)

    @property
    def sent(self) -> bool:
        return self.outcome == ExecutionOutcome.SENT


@dataclass(frozen=True)
class _Snapshot:
    document_name: str
    expiration_date: date
    interval_label: str
    contact: ContactInfo
    sent_at: Optional[datetime]


class ReminderExecutor:
    def __init__(
        self,
        session_factory: sessionmaker,
        email_transport: EmailTransport,
        sms_transport: SmsTransport,
        *,
        frontend_url: str,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self.email_transport = email_transport
        self.sms_transport = sms_transport
        self.frontend_url = frontend_url
        self._clock = clock

    def execute(self, leased: LeasedTask) -> ExecutionResult:
        """Run one task. Raises PersistenceError if the store is unreachable."""
        task = leased.task
        try:
            outcome, snapshot = self._load(leased)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"loading task={leased.id} failed: {exc}") from exc

        if outcome is not None:
            executor_skipped_total.labels(reason=outcome.value).inc()
            logger.info(
                f"[Reminders] Skipping task={leased.id} doc={task.document_id} "
                f"interval={task.interval_id}: {outcome.value}"
            )
            return ExecutionResult(outcome=outcome)

        if snapshot.sent_at is not None:
            return self._record_duplicate(leased, snapshot)

        message = build_reminder_message(
            document_name=snapshot.document_name,
            expiration_date=snapshot.expiration_date,
            user_name=snapshot.contact.name,
            interval_label=snapshot.interval_label,
            frontend_url=self.frontend_url,
        )
        results = self._deliver(snapshot.contact, message)
        self._record_delivery(leased, results)
        return ExecutionResult(outcome=ExecutionOutcome.SENT, channels=results)

    def record_terminal_failure(self, failure: TerminalFailure) -> None:
        """Make a task that will never run again visible in the notification log."""
        task = failure.task
        try:
            with session_scope(self._session_factory) as db:
                log_crud.append_log(
                    db,
                    channel=QUEUE_CHANNEL,
                    status=STATUS_FAILED_TERMINAL,
                    user_id=task.user_id if task else None,
                    document_id=task.document_id if task else None,
                    interval_id=task.interval_id if task else None,
                    task_id=failure.task_id,
                    response={"error": failure.error},
                    delivery_attempt=failure.attempts,
                )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"recording terminal failure for task={failure.task_id} failed: {exc}") from exc

    def _load(self, leased: LeasedTask):
        task = leased.task
        with session_scope(self._session_factory) as db:
            binding = binding_crud.get_binding(db, document_id=task.document_id, interval_id=task.interval_id)
            if binding is None or not binding.enabled:
                return ExecutionOutcome.DISABLED, None
            document = document_crud.get_document(db, task.document_id)
            if document is None:
                return ExecutionOutcome.MISSING, None
            if document.expiration_date != task.expiration_date or document.timezone != task.timezone:
                # Enqueued for an earlier expiration cycle
                return ExecutionOutcome.STALE, None
            contact = get_contact_info(db, document.user_id)
            if contact is None or not contact.email:
                return ExecutionOutcome.MISSING, None
            return None, _Snapshot(
                document_name=document.name,
                expiration_date=document.expiration_date,
                interval_label=binding.interval.label,
                contact=contact,
                sent_at=binding.sent_at,
            )

    def _deliver(self, contact: ContactInfo, message: ReminderMessage) -> List[ChannelResult]:
        results = [
            self._send_channel(
                EMAIL_CHANNEL,
                lambda: self.email_transport.send_email(contact.email, message.subject, message.html, message.text),
            )
        ]
        if contact.phone:
            results.append(self._send_channel(SMS_CHANNEL, lambda: self.sms_transport.send_sms(contact.phone, message.sms)))
        return results

    def _send_channel(self, channel: str, send: Callable[[], Dict[str, Any]]) -> ChannelResult:
        try:
            response = send() or {}
        except TransportError as e:
            reminders_channel_failed_total.labels(channel=channel).inc()
            logger.error(f"[Reminders] {channel} send failed: {e}")
            return ChannelResult(channel=channel, ok=False, response=e.response, error=str(e))
        except Exception as e:
            reminders_channel_failed_total.labels(channel=channel).inc()
            logger.exception(f"[Reminders] {channel} transport raised unexpectedly")
            return ChannelResult(channel=channel, ok=False, response={}, error=repr(e))
        reminders_channel_sent_total.labels(channel=channel).inc()
        return ChannelResult(channel=channel, ok=True, response=response)

    def _record_delivery(self, leased: LeasedTask, results: List[ChannelResult]) -> None:
        task = leased.task
        try:
            with session_scope(self._session_factory) as db:
                for result in results:
                    response = dict(result.response)
                    if result.error:
                        response["error"] = result.error
                    log_crud.append_log(
                        db,
                        channel=result.channel,
                        status=STATUS_SENT if result.ok else STATUS_FAILED,
                        user_id=task.user_id,
                        document_id=task.document_id,
                        interval_id=task.interval_id,
                        task_id=leased.id,
                        response=response,
                        delivery_attempt=leased.attempts,
                    )
                binding = binding_crud.get_binding(db, document_id=task.document_id, interval_id=task.interval_id)
                if binding is not None:
                    binding_crud.mark_sent(db, binding, self._clock())
        except SQLAlchemyError as exc:
            raise PersistenceError(f"recording delivery of task={leased.id} failed: {exc}") from exc
        sent = ",".join(r.channel for r in results if r.ok) or "none"
        logger.info(
            f"[Reminders] Delivered task={leased.id} doc={task.document_id} interval={task.interval_id} "
            f"attempt={leased.attempts} channels_ok={sent}"
        )

    def _record_duplicate(self, leased: LeasedTask, snapshot: _Snapshot) -> ExecutionResult:
        task = leased.task
        channels = [EMAIL_CHANNEL] + ([SMS_CHANNEL] if snapshot.contact.phone else [])
        try:
            with session_scope(self._session_factory) as db:
                for channel in channels:
                    log_crud.append_log(
                        db,
                        channel=channel,
                        status=STATUS_DUPLICATE,
                        user_id=task.user_id,
                        document_id=task.document_id,
                        interval_id=task.interval_id,
                        task_id=leased.id,
                        response={"sent_at": snapshot.sent_at.isoformat()},
                        delivery_attempt=leased.attempts,
                    )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"recording duplicate of task={leased.id} failed: {exc}") from exc
        executor_skipped_total.labels(reason=ExecutionOutcome.DUPLICATE.value).inc()
        logger.warning(f"[Reminders] Duplicate delivery of task={leased.id}; already sent at {snapshot.sent_at.isoformat()}")
        return ExecutionResult(outcome=ExecutionOutcome.DUPLICATE)
