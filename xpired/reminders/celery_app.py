from celery import Celery
from celery.signals import worker_process_init, worker_process_shutdown
from kombu import Exchange, Queue

from .config import settings


celery_app = Celery(
    "reminders",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND or None,
)

exchange = Exchange(settings.CELERY_QUEUE, type="direct", durable=True)

celery_app.conf.update(
    task_acks_late=True,
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.WORKER_CONCURRENCY,
    task_default_queue=settings.CELERY_QUEUE,
    task_default_exchange=settings.CELERY_QUEUE,
    task_default_routing_key=settings.CELERY_QUEUE,
    include=["xpired.reminders.tasks"],
    task_queues=(
        Queue(settings.CELERY_QUEUE, exchange=exchange, routing_key=settings.CELERY_QUEUE, durable=True),
    ),
)

# Celery Beat schedule for periodic draining
celery_app.conf.beat_schedule = {
    "drain-due-reminders": {
        "task": "reminders.drain_due",
        "schedule": settings.SCHEDULER_SCAN_INTERVAL_SECONDS,
    },
    "purge-delivered-tasks": {
        "task": "reminders.purge_delivered",
        "schedule": settings.PURGE_INTERVAL_SECONDS,
    },
}

# Set per worker process by the signal handlers below
celery_app.reminder_runtime = None


def get_runtime(app: Celery = celery_app):
    """Runtime of this process; built on first use when signals did not run (eager mode, beat)."""
    if getattr(app, "reminder_runtime", None) is None:
        from .runtime import build_runtime
        app.reminder_runtime = build_runtime()
    return app.reminder_runtime


@worker_process_init.connect
def _init_worker_runtime(**kwargs) -> None:
    from .runtime import build_runtime
    celery_app.reminder_runtime = build_runtime()


@worker_process_shutdown.connect
def _close_worker_runtime(**kwargs) -> None:
    runtime = getattr(celery_app, "reminder_runtime", None)
    if runtime is not None:
        runtime.close()
        celery_app.reminder_runtime = None
