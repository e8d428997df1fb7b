from .user import User
from .reminder_interval import ReminderInterval
from .document import Document, DocumentReminder
from .notification_log import NotificationLog
from .scheduled_task import ScheduledTask
