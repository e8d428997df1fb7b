from datetime import timedelta

from celery import shared_task
from celery.utils.log import get_task_logger

from xpired.core.exceptions import QueueError
from xpired.utils.timezone import utcnow
from .celery_app import celery_app, get_runtime
from .queue import LeasedTask


logger = get_task_logger(__name__)


@shared_task(bind=True, name="reminders.drain_due")
def drain_due_task(self) -> int:
    """Lease due tasks and fan them out to ``reminders.execute``. Returns number published."""
    runtime = get_runtime(self.app)
    try:
        leased = runtime.dispatcher.lease_due()
    except QueueError as e:
        logger.error(f"[Reminders] Drain failed: {e}")
        return 0

    published = 0
    for task in leased:
        try:
            celery_app.send_task(
                "reminders.execute",
                args=[task.to_message()],
                queue=runtime.reminder_settings.CELERY_QUEUE,
            )
            published += 1
        except Exception as e:
            # Lease expires and the task is drained again
            logger.error(f"[Reminders] Publishing task={task.id} failed: {e}")
    if leased:
        logger.info(f"[Reminders] Drained {len(leased)} task(s), published {published}")
    return published


@shared_task(bind=True, name="reminders.execute")
def execute_task(self, message: dict) -> str:
    """Execute one leased task and settle its lease."""
    runtime = get_runtime(self.app)
    leased = LeasedTask.from_message(message)
    outcome = runtime.dispatcher.process(leased)
    return outcome.value


@shared_task(bind=True, name="reminders.purge_delivered")
def purge_delivered_task(self) -> int:
    """Remove delivered task records older than the retention window."""
    runtime = get_runtime(self.app)
    cutoff = utcnow() - timedelta(days=runtime.reminder_settings.DELIVERED_RETENTION_DAYS)
    removed = runtime.queue.purge_delivered(cutoff)
    if removed:
        logger.info(f"[Reminders] Purged {removed} delivered task record(s) older than {cutoff.isoformat()}")
    return removed
