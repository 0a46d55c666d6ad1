"""initial schema

Revision ID: 001
Revises:
Create Date: 2025-01-06 09:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Enum columns store member names
TEMPLATE_TYPES = (
    'recurring_summary', 'activity', 'pacing_alert', 'weekly_summary',
    'monthly_summary', 'morning_expenses', 'afternoon_recap',
)


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone_number', sa.String(20), nullable=True),
        sa.Column('send_time', sa.String(5), nullable=False, server_default='08:00'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'sms_preferences',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('template_type', sa.Enum(*TEMPLATE_TYPES, name='templatetype'), nullable=False),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('user_id', 'template_type', name='uq_sms_preferences_user_template'),
    )
    op.create_index('ix_sms_preferences_user_id', 'sms_preferences', ['user_id'])

    op.create_table(
        'transactions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('raw_description', sa.Text(), nullable=False),
        sa.Column('enriched_merchant_name', sa.String(255), nullable=True),
        sa.Column('enriched_category', sa.String(100), nullable=True),
        sa.Column('pending', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_transactions_date', 'transactions', ['date'])
    op.create_index('idx_transaction_user_date', 'transactions', ['user_id', 'date'])

    op.create_table(
        'recurring_merchants',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('merchant_key', sa.String(255), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=False),
        sa.Column('source', sa.Enum('bill', 'income', name='predictionsource'), nullable=False),
        sa.Column(
            'frequency_class',
            sa.Enum('weekly', 'monthly', 'quarterly', 'irregular', 'unconfirmed', name='frequencyclass'),
            nullable=False,
        ),
        sa.Column('average_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('occurrence_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_occurrence_date', sa.Date(), nullable=False),
        sa.Column('next_predicted_date', sa.Date(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('auto_detected', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('user_id', 'merchant_key', 'source', name='uq_recurring_merchants_user_key'),
    )
    op.create_index('ix_recurring_merchants_user_id', 'recurring_merchants', ['user_id'])

    op.create_table(
        'pacing_records',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('key_type', sa.Enum('merchant', 'category', name='trackedkeytype'), nullable=False),
        sa.Column('tracked_key', sa.String(255), nullable=False),
        sa.Column('selection', sa.Enum('auto', 'manual', name='selectionsource'), nullable=False),
        sa.Column('baseline_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('current_period_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('period_start', sa.Date(), nullable=True),
        sa.Column('period_end', sa.Date(), nullable=True),
        sa.Column('pace_ratio', sa.Float(), nullable=True),
        sa.Column(
            'pace_status',
            sa.Enum('over', 'under', 'on_pace', 'no_baseline', name='pacestatus'),
            nullable=False,
        ),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('user_id', 'key_type', 'tracked_key', name='uq_pacing_records_user_key'),
    )
    op.create_index('ix_pacing_records_user_id', 'pacing_records', ['user_id'])

    op.create_table(
        'notification_logs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('template_type', sa.Enum(*TEMPLATE_TYPES, name='templatetype'), nullable=False),
        sa.Column('send_date', sa.Date(), nullable=False),
        sa.Column(
            'status',
            sa.Enum('claimed', 'sent', 'failed', 'skipped', name='notificationstatus'),
            nullable=False,
        ),
        sa.Column(
            'source_endpoint',
            sa.Enum('scheduled', 'manual', 'retry', 'test', name='sourceendpoint'),
            nullable=False,
        ),
        sa.Column('provider_message_id', sa.String(100), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('finalized_at', sa.DateTime(), nullable=True),
        # The only send lock: one row per user, template and day
        sa.UniqueConstraint(
            'user_id', 'template_type', 'send_date',
            name='uq_notification_logs_user_template_day',
        ),
    )
    op.create_index('ix_notification_logs_user_id', 'notification_logs', ['user_id'])
    op.create_index('ix_notification_logs_send_date', 'notification_logs', ['send_date'])


def downgrade() -> None:
    op.drop_table('notification_logs')
    op.drop_table('pacing_records')
    op.drop_table('recurring_merchants')
    op.drop_table('transactions')
    op.drop_table('sms_preferences')
    op.drop_table('users')
