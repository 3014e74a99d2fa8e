"""Add reminder_notifications table

Revision ID: 0002_reminder_notifications
Revises: 0001_initial_schema
Create Date: 2026-10-17 15:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0002_reminder_notifications'
down_revision = '0001_initial_schema'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('reminder_notifications',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('reminder_id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('due_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('notified_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['reminder_id'], ['reminders.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reminder_id', 'user_id', 'due_at', name='uq_reminder_notification_per_due')
    )
    op.create_index('ix_reminder_notifications_user_id', 'reminder_notifications', ['user_id'])


def downgrade():
    op.drop_index('ix_reminder_notifications_user_id', table_name='reminder_notifications')
    op.drop_table('reminder_notifications')
