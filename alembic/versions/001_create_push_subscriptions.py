"""Create push_subscriptions table

Revision ID: 001_create_push_subscriptions
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_create_push_subscriptions'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _flag(name: str, default: bool) -> sa.Column:
    return sa.Column(name, sa.Boolean(), nullable=False, server_default=sa.true() if default else sa.false())


def upgrade() -> None:
    op.create_table(
        'push_subscriptions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('school_id', sa.String(64), nullable=True),
        sa.Column('endpoint', sa.Text(), nullable=False),
        sa.Column('p256dh_key', sa.String(255), nullable=False),
        sa.Column('auth_key', sa.String(255), nullable=False),
        sa.Column('expiration_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=False, server_default=''),
        _flag('is_ios', False),
        _flag('is_android', False),
        _flag('is_windows', False),
        _flag('is_safari', False),
        _flag('is_chrome', False),
        _flag('is_firefox', False),
        _flag('is_pwa', False),
        sa.Column('browser_name', sa.String(100), nullable=False, server_default=''),
        sa.Column('os_name', sa.String(100), nullable=False, server_default=''),
        _flag('is_active', True),
        _flag('pref_grades', True),
        _flag('pref_assignments', True),
        _flag('pref_announcements', True),
        _flag('pref_events', True),
        _flag('pref_urgent', True),
        sa.Column('total_pushes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('successful_pushes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('failed_pushes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_push_sent', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_push_success', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_error_message', sa.Text(), nullable=True),
        sa.Column('last_error_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_error_status', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('last_updated', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('last_used', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('endpoint', name='uq_push_subscriptions_endpoint'),
    )
    op.create_index('ix_push_subscriptions_user_id', 'push_subscriptions', ['user_id'])
    op.create_index('ix_push_subscriptions_school_id', 'push_subscriptions', ['school_id'])
    op.create_index('ix_push_subscriptions_created_at', 'push_subscriptions', ['created_at'])
    op.create_index('ix_push_sub_user_active', 'push_subscriptions', ['user_id', 'is_active'])
    op.create_index('ix_push_sub_school_active', 'push_subscriptions', ['school_id', 'is_active'])


def downgrade() -> None:
    op.drop_index('ix_push_sub_school_active', table_name='push_subscriptions')
    op.drop_index('ix_push_sub_user_active', table_name='push_subscriptions')
    op.drop_index('ix_push_subscriptions_created_at', table_name='push_subscriptions')
    op.drop_index('ix_push_subscriptions_school_id', table_name='push_subscriptions')
    op.drop_index('ix_push_subscriptions_user_id', table_name='push_subscriptions')
    op.drop_table('push_subscriptions')
