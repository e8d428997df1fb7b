"""initial schema: users, documents, reminder catalog, bindings, logs, scheduled tasks

Revision ID: 001_initial_schema
Revises:
Create Date: 2025-03-01
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('phone_number', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'reminder_intervals',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('label', sa.String(), nullable=False),
        sa.Column('days_before', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(), nullable=False),
        sa.CheckConstraint('days_before >= 0', name='ck_reminder_intervals_days_before'),
    )
    op.create_index('ix_reminder_intervals_code', 'reminder_intervals', ['code'], unique=True)

    op.create_table(
        'documents',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('identifier', sa.String(), nullable=True),
        sa.Column('expiration_date', sa.Date(), nullable=False),
        sa.Column('timezone', sa.String(), nullable=False, server_default='UTC'),
        sa.Column('attachment_url', sa.String(), nullable=True),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )
    op.create_index('ix_documents_user_id', 'documents', ['user_id'])

    op.create_table(
        'document_reminders',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column('document_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('documents.id', ondelete='CASCADE'), nullable=False),
        sa.Column('interval_id', sa.Integer(), sa.ForeignKey('reminder_intervals.id', ondelete='CASCADE'), nullable=False),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.UniqueConstraint('document_id', 'interval_id', name='uq_document_reminders_binding'),
    )
    op.create_index('ix_document_reminders_document_id', 'document_reminders', ['document_id'])
    op.create_index('ix_document_reminders_interval_id', 'document_reminders', ['interval_id'])

    op.create_table(
        'notification_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('document_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('interval_id', sa.Integer(), nullable=True),
        sa.Column('task_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('channel', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('response', postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('delivery_attempt', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )
    op.create_index('ix_notification_logs_user_id', 'notification_logs', ['user_id'])
    op.create_index('ix_notification_logs_document_id', 'notification_logs', ['document_id'])
    op.create_index('ix_notification_logs_interval_id', 'notification_logs', ['interval_id'])
    op.create_index('ix_notification_logs_status', 'notification_logs', ['status'])

    op.create_table(
        'scheduled_tasks',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column('kind', sa.String(), nullable=False, server_default='send_reminder'),
        sa.Column('document_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('interval_id', sa.Integer(), nullable=False),
        sa.Column('payload', postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('fire_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('state', sa.String(), nullable=False, server_default='pending'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_attempts', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('lease_token', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('lease_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )
    op.create_index('ix_scheduled_tasks_state_fire_at', 'scheduled_tasks', ['state', 'fire_at'])
    op.create_index('ix_scheduled_tasks_state_lease', 'scheduled_tasks', ['state', 'lease_expires_at'])
    op.create_index('ix_scheduled_tasks_binding', 'scheduled_tasks', ['document_id', 'interval_id'])
    op.create_index(
        'uq_scheduled_tasks_pending_binding',
        'scheduled_tasks',
        ['document_id', 'interval_id'],
        unique=True,
        postgresql_where=sa.text("state = 'pending'"),
    )


def downgrade() -> None:
    op.drop_index('uq_scheduled_tasks_pending_binding', table_name='scheduled_tasks')
    op.drop_index('ix_scheduled_tasks_binding', table_name='scheduled_tasks')
    op.drop_index('ix_scheduled_tasks_state_lease', table_name='scheduled_tasks')
    op.drop_index('ix_scheduled_tasks_state_fire_at', table_name='scheduled_tasks')
    op.drop_table('scheduled_tasks')
    op.drop_index('ix_notification_logs_status', table_name='notification_logs')
    op.drop_index('ix_notification_logs_interval_id', table_name='notification_logs')
    op.drop_index('ix_notification_logs_document_id', table_name='notification_logs')
    op.drop_index('ix_notification_logs_user_id', table_name='notification_logs')
    op.drop_table('notification_logs')
    op.drop_index('ix_document_reminders_interval_id', table_name='document_reminders')
    op.drop_index('ix_document_reminders_document_id', table_name='document_reminders')
    op.drop_table('document_reminders')
    op.drop_index('ix_documents_user_id', table_name='documents')
    op.drop_table('documents')
    op.drop_index('ix_reminder_intervals_code', table_name='reminder_intervals')
    op.drop_table('reminder_intervals')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
