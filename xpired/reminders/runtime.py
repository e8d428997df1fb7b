"""
Explicit wiring of the reminder subsystem.

One ``ReminderRuntime`` is built per process at startup (API lifespan or
Celery worker init) and closed at shutdown; nothing below it reads globals.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional
import logging

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from xpired.core.config import Settings, settings as core_settings
from xpired.db.session import make_engine, make_session_factory
from xpired.utils.timezone import utcnow
from .config import ReminderSettings, settings as reminder_settings
from .dispatcher import ReminderDispatcher, lease_batch_size
from .executor import ReminderExecutor
from .queue import SqlDispatchQueue
from .scheduler import ReminderScheduler
from .service import DocumentReminderService
from .transports import EmailTransport, SmsTransport, build_email_transport, build_sms_transport

logger = logging.getLogger(__name__)


@dataclass
class ReminderRuntime:
    engine: Engine
    session_factory: sessionmaker
    queue: SqlDispatchQueue
    executor: ReminderExecutor
    dispatcher: ReminderDispatcher
    scheduler: ReminderScheduler
    settings: Settings
    reminder_settings: ReminderSettings
    owns_engine: bool = True

    def service(self, db: Session) -> DocumentReminderService:
        return DocumentReminderService(db, self.scheduler, default_timezone=self.settings.DEFAULT_TIMEZONE)

    def close(self) -> None:
        self.queue.close()
        if self.owns_engine:
            self.engine.dispose()
        logger.info("[Reminders] Runtime closed")


def build_runtime(
    *,
    cfg: Optional[Settings] = None,
    reminder_cfg: Optional[ReminderSettings] = None,
    engine: Optional[Engine] = None,
    email_transport: Optional[EmailTransport] = None,
    sms_transport: Optional[SmsTransport] = None,
    clock: Callable[[], datetime] = utcnow,
) -> ReminderRuntime:
    cfg = cfg or core_settings
    reminder_cfg = reminder_cfg or reminder_settings
    owns_engine = engine is None
    engine = engine or make_engine(cfg.SQLALCHEMY_DATABASE_URI)
    session_factory = make_session_factory(engine)

    queue = SqlDispatchQueue(
        session_factory,
        lease_seconds=reminder_cfg.LEASE_SECONDS,
        max_attempts=reminder_cfg.MAX_ATTEMPTS,
        backoff_base_seconds=reminder_cfg.RETRY_BACKOFF_BASE_SECONDS,
        backoff_max_seconds=reminder_cfg.RETRY_BACKOFF_MAX_SECONDS,
    )
    executor = ReminderExecutor(
        session_factory,
        email_transport or build_email_transport(reminder_cfg),
        sms_transport or build_sms_transport(reminder_cfg),
        frontend_url=reminder_cfg.FRONTEND_URL,
        clock=clock,
    )
    queue.on_terminal = executor.record_terminal_failure
    # Serial processing of one batch must finish inside a single lease
    batch_size = lease_batch_size(
        reminder_cfg.SCHEDULER_BATCH_SIZE,
        reminder_cfg.LEASE_SECONDS,
        reminder_cfg.SMTP_TIMEOUT_SECONDS + reminder_cfg.SMS_TIMEOUT_SECONDS,
    )
    dispatcher = ReminderDispatcher(queue, executor, batch_size=batch_size, clock=clock)
    scheduler = ReminderScheduler(queue, clock=clock)

    logger.info(
        f"[Reminders] Runtime ready: email={type(executor.email_transport).__name__} "
        f"sms={type(executor.sms_transport).__name__} lease={reminder_cfg.LEASE_SECONDS}s "
        f"max_attempts={reminder_cfg.MAX_ATTEMPTS} batch={batch_size}"
    )
    return ReminderRuntime(
        engine=engine,
        session_factory=session_factory,
        queue=queue,
        executor=executor,
        dispatcher=dispatcher,
        scheduler=scheduler,
        settings=cfg,
        reminder_settings=reminder_cfg,
        owns_engine=owns_engine,
    )
