"""add split pacing and cash flow runway templates

Revision ID: 002
Revises: 001
Create Date: 2025-02-03 10:30:00
"""

from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

NEW_TEMPLATE_TYPES = ('merchant_pacing', 'category_pacing', 'cash_flow_runway')


def upgrade() -> None:
    # Non-native enums are plain VARCHAR columns; only Postgres keeps a type
    if op.get_bind().dialect.name != 'postgresql':
        return
    with op.get_context().autocommit_block():
        for name in NEW_TEMPLATE_TYPES:
            op.execute(f"ALTER TYPE templatetype ADD VALUE IF NOT EXISTS '{name}'")


def downgrade() -> None:
    op.execute(
        "DELETE FROM notification_logs WHERE template_type IN "
        "('merchant_pacing', 'category_pacing', 'cash_flow_runway')"
    )
    op.execute(
        "DELETE FROM sms_preferences WHERE template_type IN "
        "('merchant_pacing', 'category_pacing', 'cash_flow_runway')"
    )
