from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class ReminderSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="REMINDER_", env_file=".env", extra="ignore")

    # Celery configuration
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: Optional[str] = None
    CELERY_QUEUE: str = "reminders"
    WORKER_CONCURRENCY: int = 4

    # Scheduling
    SCHEDULER_SCAN_INTERVAL_SECONDS: int = 30
    SCHEDULER_BATCH_SIZE: int = 100
    PURGE_INTERVAL_SECONDS: int = 3600
    DELIVERED_RETENTION_DAYS: int = 30

    # Queue leases and retries
    LEASE_SECONDS: int = 300
    MAX_ATTEMPTS: int = 5
    RETRY_BACKOFF_BASE_SECONDS: int = 60
    RETRY_BACKOFF_MAX_SECONDS: int = 3600

    # Thread worker (alternative to Celery for single-host deployments)
    WORKER_THREADS: int = 2
    POLL_INTERVAL_SECONDS: float = 5.0

    # Email (SMTP)
    SMTP_SERVER: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_SSL: bool = False
    SMTP_TIMEOUT_SECONDS: float = 10.0
    FROM_EMAIL: str = "reminders@xpired.local"

    # SMS gateway
    SMS_API_URL: Optional[str] = None
    SMS_API_KEY: Optional[str] = None
    SMS_SENDER: Optional[str] = None
    SMS_TIMEOUT_SECONDS: float = 10.0

    # Links in notification bodies
    FRONTEND_URL: str = "http://localhost:3000"

    # Metrics
    METRICS_ENABLED: bool = True


settings = ReminderSettings()
