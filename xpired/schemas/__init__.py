from .document import (
    DocumentCreate,
    DocumentRead,
    DocumentReminderRead,
    DocumentUpdate,
    ReminderIntervalRead,
    ScheduleDecisionRead,
    ToggleReminderRequest,
)
from .task import ScheduledTaskRead
