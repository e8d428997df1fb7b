"""Consumer loop body: lease due tasks, execute them and settle each lease."""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional
import logging

from xpired.core.exceptions import QueueError, ValidationError
from xpired.utils.timezone import utcnow
from .executor import ReminderExecutor
from .queue import DispatchQueue, LeasedTask
from .state_machine import TaskState

logger = logging.getLogger(__name__)


class ProcessOutcome(str, Enum):
    DELIVERED = "delivered"
    SKIPPED = "skipped"
    RETRYING = "retrying"
    FAILED = "failed"
    # Queue could not be updated; the lease will expire and the task is redelivered
    UNSETTLED = "unsettled"
    # Lease ran out before execution started; another worker may own the task now
    EXPIRED = "expired"


@dataclass
class DispatchSummary:
    leased: int = 0
    delivered: int = 0
    skipped: int = 0
    retried: int = 0
    failed: int = 0
    unsettled: int = 0
    expired: int = 0

    def add(self, outcome: ProcessOutcome) -> None:
        if outcome == ProcessOutcome.DELIVERED:
            self.delivered += 1
        elif outcome == ProcessOutcome.SKIPPED:
            self.skipped += 1
        elif outcome == ProcessOutcome.RETRYING:
            self.retried += 1
        elif outcome == ProcessOutcome.FAILED:
            self.failed += 1
        elif outcome == ProcessOutcome.EXPIRED:
            self.expired += 1
        else:
            self.unsettled += 1


def lease_batch_size(batch_size: int, lease_seconds: float, task_budget_seconds: float) -> int:
    """
    Largest batch a single worker can run serially inside one lease.

    ``task_budget_seconds`` is the worst-case time for one task (every
    transport timing out). At least one task is always leased.
    """
    if task_budget_seconds <= 0:
        return max(1, batch_size)
    return max(1, min(batch_size, int(lease_seconds // task_budget_seconds)))


class ReminderDispatcher:
    def __init__(
        self,
        queue: DispatchQueue,
        executor: ReminderExecutor,
        *,
        batch_size: int = 100,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.queue = queue
        self.executor = executor
        self.batch_size = batch_size
        self._clock = clock

    def lease_due(self, now: Optional[datetime] = None) -> List[LeasedTask]:
        return self.queue.drain_due(now or self._clock(), limit=self.batch_size)

    def run_once(self, now: Optional[datetime] = None) -> DispatchSummary:
        """Drain one batch and process it in fire_at order."""
        summary = DispatchSummary()
        try:
            leased = self.lease_due(now)
        except QueueError as e:
            logger.error(f"[Dispatcher] Drain failed: {e}")
            return summary
        summary.leased = len(leased)
        for task in leased:
            summary.add(self.process(task))
        if leased:
            logger.info(
                f"[Dispatcher] Batch done: leased={summary.leased} delivered={summary.delivered} "
                f"skipped={summary.skipped} retried={summary.retried} failed={summary.failed} "
                f"expired={summary.expired}"
            )
        return summary

    def process(self, leased: LeasedTask) -> ProcessOutcome:
        """Execute one leased task and settle its lease.

        A task whose lease has already run out is not executed: the queue may
        have handed it to another worker, and it is redelivered otherwise.
        """
        if leased.lease_expires_at <= self._clock():
            logger.warning(
                f"[Dispatcher] Lease on task={leased.id} expired at {leased.lease_expires_at.isoformat()}; not executing"
            )
            return ProcessOutcome.EXPIRED
        try:
            result = self.executor.execute(leased)
        except QueueError as e:
            # PersistenceError included: the store may come back
            return self._fail(leased, str(e), retryable=True)
        except ValidationError as e:
            return self._fail(leased, str(e), retryable=False)
        except Exception as e:
            logger.exception(f"[Dispatcher] Task={leased.id} raised unexpectedly")
            return self._fail(leased, repr(e), retryable=True)

        try:
            acked = self.queue.ack(leased, now=self._clock())
        except QueueError as e:
            logger.error(f"[Dispatcher] Ack of task={leased.id} failed, lease will expire: {e}")
            return ProcessOutcome.UNSETTLED
        if not acked:
            return ProcessOutcome.UNSETTLED
        return ProcessOutcome.DELIVERED if result.sent else ProcessOutcome.SKIPPED

    def _fail(self, leased: LeasedTask, error: str, *, retryable: bool) -> ProcessOutcome:
        try:
            settled = self.queue.fail(leased, error, retryable=retryable, now=self._clock())
        except QueueError as e:
            logger.error(f"[Dispatcher] Failure report for task={leased.id} not stored, lease will expire: {e}")
            return ProcessOutcome.UNSETTLED
        if settled == TaskState.FAILED_TERMINAL:
            return ProcessOutcome.FAILED
        if settled == TaskState.PENDING:
            return ProcessOutcome.RETRYING
        return ProcessOutcome.UNSETTLED
