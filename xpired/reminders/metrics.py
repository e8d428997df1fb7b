from prometheus_client import Counter


reminders_scheduled_total = Counter(
    "reminders_scheduled_total",
    "Total reminder tasks enqueued",
)

reminders_elapsed_total = Counter(
    "reminders_elapsed_total",
    "Total reminder occurrences skipped because their fire instant had passed",
)

reminders_cancelled_total = Counter(
    "reminders_cancelled_total",
    "Total pending reminder tasks cancelled",
)

queue_drained_total = Counter(
    "reminder_queue_drained_total",
    "Total tasks leased from the dispatch queue",
)

reminders_channel_sent_total = Counter(
    "reminders_channel_sent_total",
    "Total successful notification sends",
    ["channel"],
)

reminders_channel_failed_total = Counter(
    "reminders_channel_failed_total",
    "Total failed notification sends",
    ["channel"],
)

executor_skipped_total = Counter(
    "reminder_executor_skipped_total",
    "Total tasks acknowledged without sending",
    ["reason"],
)

tasks_retried_total = Counter(
    "reminder_tasks_retried_total",
    "Total tasks returned to pending after a retryable failure",
)

tasks_failed_terminal_total = Counter(
    "reminder_tasks_failed_terminal_total",
    "Total tasks that exhausted retries or failed terminally",
)
