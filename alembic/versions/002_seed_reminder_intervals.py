"""seed reminder interval catalog

Revision ID: 002_seed_reminder_intervals
Revises: 001_initial_schema
Create Date: 2025-03-01
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '002_seed_reminder_intervals'
down_revision = '001_initial_schema'
branch_labels = None
depends_on = None

# Kept in sync with xpired.crud.interval.DEFAULT_INTERVALS
INTERVALS = [
    ("6 months before", 180, "180d"),
    ("3 months before", 90, "90d"),
    ("2 months before", 60, "60d"),
    ("1 month before", 30, "30d"),
    ("3 weeks before", 21, "21d"),
    ("2 weeks before", 14, "14d"),
    ("1 week before", 7, "7d"),
    ("3 days before", 3, "3d"),
    ("1 day before", 1, "1d"),
    ("On the day", 0, "0d"),
]


def upgrade() -> None:
    intervals = sa.table(
        'reminder_intervals',
        sa.column('label', sa.String()),
        sa.column('days_before', sa.Integer()),
        sa.column('code', sa.String()),
    )
    op.bulk_insert(
        intervals,
        [{"label": label, "days_before": days, "code": code} for label, days, code in INTERVALS],
    )


def downgrade() -> None:
    codes = ", ".join(f"'{code}'" for _, _, code in INTERVALS)
    op.execute(f"DELETE FROM reminder_intervals WHERE code IN ({codes})")
