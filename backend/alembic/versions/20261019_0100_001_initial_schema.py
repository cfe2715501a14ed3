"""Initial schema with all entities

Revision ID: 001
Revises:
Create Date: 2026-10-19 01:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('username', sa.String(64), nullable=False, unique=True),
        sa.Column('role', sa.String(16), nullable=False, server_default='USER'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.text('TRUE')),
        sa.Column('wx_user_id', sa.String(128), nullable=True),
        sa.Column('notify_frequency_minutes', sa.Integer, nullable=False, server_default='60'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_is_active', 'users', ['is_active'])

    # Create api_keys table
    op.create_table(
        'api_keys',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('key_hash', sa.String(60), nullable=False, unique=True),
        sa.Column('key_prefix', sa.String(16), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('last_used_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('invalidated_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('permissions_scope', postgresql.JSONB, nullable=False, server_default='["read", "write"]'),
    )
    op.create_index('ix_api_keys_user_id', 'api_keys', ['user_id'])
    op.create_index('ix_api_keys_key_prefix', 'api_keys', ['key_prefix'])
    op.create_index('idx_api_keys_user_active', 'api_keys', ['user_id'], postgresql_where=sa.text('invalidated_at IS NULL'))

    # Create crawled_products table (one row per variant)
    op.create_table(
        'crawled_products',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('product_id', sa.String(64), nullable=False),
        sa.Column('code', sa.String(32), nullable=False, server_default=''),
        sa.Column('sku_id', sa.String(64), nullable=True),
        sa.Column('name', sa.Text, nullable=False, server_default=''),
        sa.Column('color', sa.String(128), nullable=False, server_default=''),
        sa.Column('size', sa.String(64), nullable=False, server_default=''),
        sa.Column('price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('min_price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('origin_price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('stock', sa.Integer, nullable=False, server_default='0'),
        sa.Column('category', sa.String(16), nullable=False),
        sa.Column('status', sa.String(8), nullable=False, server_default='new'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_crawled_products_category_id', 'crawled_products', ['category', 'id'])
    op.create_index('idx_crawled_products_code', 'crawled_products', ['code'])
    op.create_index('ix_crawled_products_sku_id', 'crawled_products', ['sku_id'])

    # Create crawler_schedules table
    op.create_table(
        'crawler_schedules',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('category', sa.String(16), nullable=False, unique=True),
        sa.Column('is_enabled', sa.Boolean, nullable=False, server_default=sa.text('TRUE')),
        sa.Column('cron_expression', sa.String(120), nullable=False),
        sa.Column('interval_minutes', sa.Integer, nullable=True),
        sa.Column('last_run_time', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('next_run_time', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('ix_crawler_schedules_is_enabled', 'crawler_schedules', ['is_enabled'])

    # Create crawl_execution_logs table
    op.create_table(
        'crawl_execution_logs',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('category', sa.String(16), nullable=False),
        sa.Column('started_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('completed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('duration_seconds', sa.Integer, nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('items_found', sa.Integer, nullable=False, server_default='0'),
        sa.Column('new_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('sold_out_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('failed_batches', sa.Integer, nullable=False, server_default='0'),
        sa.Column('error_details', postgresql.JSONB, nullable=True),
        sa.Column('triggered_by', sa.String(50), nullable=False),
    )
    op.create_index('ix_crawl_execution_logs_category', 'crawl_execution_logs', ['category'])
    op.create_index('ix_crawl_execution_logs_status', 'crawl_execution_logs', ['status'])
    op.create_index('idx_crawl_logs_started', 'crawl_execution_logs', ['started_at'], postgresql_ops={'started_at': 'DESC'})

    # Create push_subscriptions table
    op.create_table(
        'push_subscriptions',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('is_enabled', sa.Boolean, nullable=False, server_default=sa.text('FALSE')),
        sa.Column('channel', sa.String(16), nullable=False, server_default='WECHAT'),
        sa.Column('frequency_seconds', sa.Integer, nullable=False, server_default='3600'),
        sa.Column('genders', postgresql.JSONB, nullable=False, server_default='[]'),
        sa.Column('last_push_time', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('ix_push_subscriptions_is_enabled', 'push_subscriptions', ['is_enabled'])

    # Create monitor_tasks table
    op.create_table(
        'monitor_tasks',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.String(64), nullable=False),
        sa.Column('product_code', sa.String(32), nullable=True),
        sa.Column('product_name', sa.Text, nullable=True),
        sa.Column('color', sa.String(128), nullable=False, server_default=''),
        sa.Column('size', sa.String(64), nullable=False, server_default=''),
        sa.Column('target_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('frequency_seconds', sa.Integer, nullable=False, server_default='60'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.text('TRUE')),
        sa.Column('window_start', sa.String(5), nullable=True),
        sa.Column('window_end', sa.String(5), nullable=True),
        sa.Column('last_push_time', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('user_id', 'product_id', 'color', 'size', name='uq_monitor_task_variant'),
    )
    op.create_index('ix_monitor_tasks_user_id', 'monitor_tasks', ['user_id'])
    op.create_index('ix_monitor_tasks_is_active', 'monitor_tasks', ['is_active'])

    # Create task_logs table
    op.create_table(
        'task_logs',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('task_id', sa.Integer, sa.ForeignKey('monitor_tasks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('message', sa.Text, nullable=True),
        sa.Column('timestamp', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('ix_task_logs_task_id', 'task_logs', ['task_id'])
    op.create_index('ix_task_logs_timestamp', 'task_logs', ['timestamp'])

    # Create notification_logs table
    op.create_table(
        'notification_logs',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.String(64), nullable=False),
        sa.Column('color', sa.String(128), nullable=False, server_default=''),
        sa.Column('size', sa.String(64), nullable=False, server_default=''),
        sa.Column('timestamp', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index(
        'idx_notification_logs_variant',
        'notification_logs',
        ['user_id', 'product_id', 'color', 'size', 'timestamp'],
    )


def downgrade() -> None:
    # Drop tables in reverse order
    op.drop_table('notification_logs')
    op.drop_table('task_logs')
    op.drop_table('monitor_tasks')
    op.drop_table('push_subscriptions')
    op.drop_table('crawl_execution_logs')
    op.drop_table('crawler_schedules')
    op.drop_table('crawled_products')
    op.drop_table('api_keys')
    op.drop_table('users')
