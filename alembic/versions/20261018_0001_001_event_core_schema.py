"""Event core schema - activity ledger and webhook targets.

Revision ID: 001
Revises: None
Create Date: 2026-10-18

This migration adds:
- ledger_records: append-only activity ledger; seq is the autoincrement key
- webhook_targets: registered board callbacks with circuit-breaker state
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

json_type = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        'ledger_records',
        sa.Column('seq', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('scope_id', sa.String(length=64), nullable=False),
        sa.Column('subject_id', sa.String(length=64), nullable=False),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('actor', sa.String(length=100), nullable=False),
        sa.Column('payload', json_type, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_ledger_records_id', 'ledger_records', ['id'], unique=True)
    op.create_index('ix_ledger_records_scope_id', 'ledger_records', ['scope_id'])
    op.create_index('ix_ledger_records_subject_id', 'ledger_records', ['subject_id'])
    op.create_index('ix_ledger_records_created_at', 'ledger_records', ['created_at'])

    op.create_table(
        'webhook_targets',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('scope_id', sa.String(length=64), nullable=False),
        sa.Column('callback_url', sa.String(length=2048), nullable=False),
        sa.Column('secret', sa.String(length=255), nullable=False),
        sa.Column('event_allowlist', json_type, nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('failure_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_attempt_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_webhook_targets_scope_id', 'webhook_targets', ['scope_id'])
    op.create_index('ix_webhook_targets_active', 'webhook_targets', ['active'])


def downgrade() -> None:
    op.drop_index('ix_webhook_targets_active', table_name='webhook_targets')
    op.drop_index('ix_webhook_targets_scope_id', table_name='webhook_targets')
    op.drop_table('webhook_targets')

    op.drop_index('ix_ledger_records_created_at', table_name='ledger_records')
    op.drop_index('ix_ledger_records_subject_id', table_name='ledger_records')
    op.drop_index('ix_ledger_records_scope_id', table_name='ledger_records')
    op.drop_index('ix_ledger_records_id', table_name='ledger_records')
    op.drop_table('ledger_records')
