from datetime import date, timedelta
import uuid

from xpired.core.exceptions import PersistenceError, QueueError, ValidationError
from xpired.models.notification_log import NotificationLog
from xpired.models.scheduled_task import ScheduledTask
from xpired.reminders.dispatcher import DispatchSummary, ProcessOutcome, ReminderDispatcher, lease_batch_size
from xpired.reminders.executor import ExecutionOutcome, ExecutionResult
from xpired.reminders.queue import ReminderTask
from tests.conftest import WEEK_BEFORE_UTC


class ScriptedExecutor:
    """Raises or returns the next scripted item for each call"""

    def __init__(self, *script):
        self.script = list(script)
        self.seen = []

    def execute(self, leased):
        self.seen.append(leased)
        item = self.script.pop(0) if self.script else ExecutionResult(ExecutionOutcome.SENT)
        if isinstance(item, Exception):
            raise item
        return item


def _schedule(queue, interval_id=7, fire_at=WEEK_BEFORE_UTC):
    task = ReminderTask(
        document_id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        interval_id=interval_id,
        expiration_date=date(2025, 3, 10),
        timezone="UTC",
    )
    return queue.schedule(task, fire_at)


class TestProcess:
    def test_success_acks(self, runtime, clock):
        task_id = _schedule(runtime.queue)
        clock.set(WEEK_BEFORE_UTC)
        dispatcher = ReminderDispatcher(runtime.queue, ScriptedExecutor(), clock=clock)

        summary = dispatcher.run_once()

        assert summary == DispatchSummary(leased=1, delivered=1)
        assert runtime.queue.get_task(task_id).state == "delivered"

    def test_skip_acks(self, runtime, clock):
        task_id = _schedule(runtime.queue)
        clock.set(WEEK_BEFORE_UTC)
        dispatcher = ReminderDispatcher(runtime.queue, ScriptedExecutor(ExecutionResult(ExecutionOutcome.STALE)), clock=clock)

        assert dispatcher.run_once().skipped == 1
        assert runtime.queue.get_task(task_id).state == "delivered"

    def test_persistence_error_retried(self, runtime, clock):
        task_id = _schedule(runtime.queue)
        clock.set(WEEK_BEFORE_UTC)
        dispatcher = ReminderDispatcher(runtime.queue, ScriptedExecutor(PersistenceError("db down")), clock=clock)

        assert dispatcher.run_once().retried == 1

        row = runtime.queue.get_task(task_id)
        assert row.state == "pending"
        assert row.attempts == 1
        assert row.fire_at == WEEK_BEFORE_UTC + timedelta(seconds=10)
        assert "db down" in row.last_error

    def test_unexpected_error_retried(self, runtime, clock):
        _schedule(runtime.queue)
        clock.set(WEEK_BEFORE_UTC)
        dispatcher = ReminderDispatcher(runtime.queue, ScriptedExecutor(KeyError("boom")), clock=clock)

        assert dispatcher.run_once().retried == 1

    def test_validation_error_is_terminal_and_logged(self, runtime, clock, session_factory):
        task_id = _schedule(runtime.queue)
        clock.set(WEEK_BEFORE_UTC)
        dispatcher = ReminderDispatcher(runtime.queue, ScriptedExecutor(ValidationError("bad payload")), clock=clock)

        assert dispatcher.run_once().failed == 1

        assert [t.id for t in runtime.queue.failed_tasks()] == [task_id]
        with session_factory() as s:
            log = s.query(NotificationLog).filter(NotificationLog.task_id == task_id).one()
        assert (log.channel, log.status) == ("queue", "failed_terminal")

    def test_retries_until_exhausted(self, runtime, clock):
        task_id = _schedule(runtime.queue)
        errors = [PersistenceError("db down") for _ in range(3)]
        dispatcher = ReminderDispatcher(runtime.queue, ScriptedExecutor(*errors), clock=clock)

        clock.set(WEEK_BEFORE_UTC)
        outcomes = []
        for _ in range(3):
            outcomes.append(dispatcher.run_once())
            clock.advance(seconds=200)

        assert [(o.retried, o.failed) for o in outcomes] == [(1, 0), (1, 0), (0, 1)]
        assert runtime.queue.get_task(task_id).state == "failed_terminal"

    def test_queue_outage_leaves_task_for_lease_expiry(self, runtime, clock):
        _schedule(runtime.queue)
        clock.set(WEEK_BEFORE_UTC)
        leased = runtime.queue.drain_due(WEEK_BEFORE_UTC)[0]

        class BrokenAckQueue:
            def ack(self, leased, now=None):
                raise QueueError("store unavailable")

        dispatcher = ReminderDispatcher(BrokenAckQueue(), ScriptedExecutor(), clock=clock)
        assert dispatcher.process(leased) == ProcessOutcome.UNSETTLED

        # Redelivered once the lease runs out
        redelivered = runtime.queue.drain_due(WEEK_BEFORE_UTC + timedelta(seconds=61))
        assert [t.id for t in redelivered] == [leased.id]


def test_batch_processed_in_fire_order(runtime, clock):
    for interval_id, hours in ((3, 2), (1, 0), (2, 1)):
        _schedule(runtime.queue, interval_id=interval_id, fire_at=WEEK_BEFORE_UTC + timedelta(hours=hours))
    executor = ScriptedExecutor()
    clock.set(WEEK_BEFORE_UTC + timedelta(hours=3))

    ReminderDispatcher(runtime.queue, executor, clock=clock).run_once()

    assert [l.task.interval_id for l in executor.seen] == [1, 2, 3]


def test_drain_failure_returns_empty_summary(clock):
    class DownQueue:
        def drain_due(self, now, limit=100):
            raise QueueError("store unavailable")

    assert ReminderDispatcher(DownQueue(), ScriptedExecutor(), clock=clock).run_once() == DispatchSummary()


class SlowExecutor(ScriptedExecutor):
    """Advances the clock on every call, like a transport sitting on its timeout"""

    def __init__(self, clock, seconds):
        super().__init__()
        self.clock = clock
        self.seconds = seconds

    def execute(self, leased):
        self.clock.advance(seconds=self.seconds)
        return super().execute(leased)


class TestLeaseExclusion:
    def test_expired_lease_is_not_executed(self, runtime, clock):
        task_id = _schedule(runtime.queue)
        clock.set(WEEK_BEFORE_UTC)
        first_executor, second_executor = ScriptedExecutor(), ScriptedExecutor()
        first = ReminderDispatcher(runtime.queue, first_executor, clock=clock)
        second = ReminderDispatcher(runtime.queue, second_executor, clock=clock)

        [stale] = first.lease_due()
        clock.advance(seconds=61)
        [fresh] = second.lease_due()

        assert first.process(stale) == ProcessOutcome.EXPIRED
        assert first_executor.seen == []
        assert second.process(fresh) == ProcessOutcome.DELIVERED
        assert runtime.queue.get_task(task_id).state == "delivered"

    def test_slow_batch_does_not_run_tasks_released_to_other_workers(self, runtime, clock):
        for interval_id in (1, 2, 3):
            _schedule(runtime.queue, interval_id=interval_id, fire_at=WEEK_BEFORE_UTC + timedelta(seconds=interval_id))
        clock.set(WEEK_BEFORE_UTC + timedelta(minutes=1))
        executor = SlowExecutor(clock, seconds=61)

        summary = ReminderDispatcher(runtime.queue, executor, clock=clock).run_once()

        assert (summary.leased, summary.delivered, summary.expired) == (3, 1, 2)
        assert [l.task.interval_id for l in executor.seen] == [1]
        # The other two are available to the next drain
        assert len(runtime.queue.drain_due(clock())) == 2

    def test_runtime_batch_fits_inside_one_lease(self, runtime):
        # 60s lease, 10s SMTP + 10s SMS worst case per task
        assert runtime.dispatcher.batch_size == 3


class TestLeaseBatchSize:
    def test_capped_by_lease(self):
        assert lease_batch_size(100, 300, 20) == 15

    def test_configured_size_when_smaller(self):
        assert lease_batch_size(10, 300, 20) == 10

    def test_at_least_one(self):
        assert lease_batch_size(100, 5, 20) == 1

    def test_no_budget(self):
        assert lease_batch_size(100, 300, 0) == 100


def test_malformed_task_does_not_stop_delivery(passport, runtime, clock, session_factory, email_transport):
    with session_factory() as s:
        s.add(
            ScheduledTask(
                document_id=uuid.uuid4(),
                user_id=uuid.uuid4(),
                interval_id=7,
                payload={"kind": "send_reminder"},
                fire_at=WEEK_BEFORE_UTC - timedelta(days=1),
                state="pending",
            )
        )
        s.commit()
    clock.set(WEEK_BEFORE_UTC)

    summary = runtime.dispatcher.run_once()

    assert summary.delivered == 1
    assert len(email_transport.sent) == 1
    assert len(runtime.queue.failed_tasks()) == 1
