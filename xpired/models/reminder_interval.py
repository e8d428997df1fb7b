from sqlalchemy import CheckConstraint, Column, Integer, String

from xpired.db.base import Base


class ReminderInterval(Base):
    """Catalog entry for a supported lead time (e.g. '7d' = one week before)."""
    __tablename__ = "reminder_intervals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    label = Column(String, nullable=False)  # e.g. '1 week before'
    days_before = Column(Integer, nullable=False)  # 0 = on the day
    code = Column(String, nullable=False, unique=True, index=True)  # e.g. '7d'

    __table_args__ = (
        CheckConstraint("days_before >= 0", name="ck_reminder_intervals_days_before"),
    )

    def __repr__(self) -> str:
        return f"<ReminderInterval {self.code} days_before={self.days_before}>"
