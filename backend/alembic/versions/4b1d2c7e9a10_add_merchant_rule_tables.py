"""add_merchant_rule_tables

Revision ID: 4b1d2c7e9a10
Revises:
Create Date: 2026-10-17 09:12:41.502318

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4b1d2c7e9a10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema - Create rule catalog, assignment and execution log tables."""

    conn = op.get_bind()
    inspector = sa.inspect(conn)

    def table_exists(name):
        return inspector.has_table(name)

    if not table_exists('merchant_rules'):
        op.create_table(
            'merchant_rules',
            sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
            sa.Column('merchant_id', sa.String(length=64), nullable=False),
            sa.Column('code', sa.String(length=100), nullable=False),
            sa.Column('name', sa.String(length=200), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('type', sa.String(length=50), nullable=False),
            sa.Column('category', sa.String(length=50), nullable=False),
            sa.Column('expression', sa.Text(), nullable=False),
            sa.Column('condition_expression', sa.Text(), nullable=True),
            sa.Column('priority', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('config', sa.JSON(), nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('created_at', sa.DateTime(), nullable=True),
            sa.Column('updated_at', sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('code')
        )
        op.create_index('idx_mr_merchant', 'merchant_rules', ['merchant_id'])
        op.create_index('idx_mr_type', 'merchant_rules', ['type'])
        op.create_index('idx_mr_active', 'merchant_rules', ['is_active'])

    if not table_exists('merchant_rule_assignments'):
        op.create_table(
            'merchant_rule_assignments',
            sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
            sa.Column('merchant_rule_id', sa.Integer(), nullable=False),
            sa.Column('merchant_sales_channel_id', sa.String(length=64), nullable=False),
            sa.Column('priority_override', sa.Integer(), nullable=True),
            sa.Column('config_override', sa.JSON(), nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('created_at', sa.DateTime(), nullable=True),
            sa.Column('updated_at', sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(['merchant_rule_id'], ['merchant_rules.id'], ),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('merchant_rule_id', 'merchant_sales_channel_id', name='uniq_mra_rule_channel')
        )
        op.create_index('idx_mra_channel', 'merchant_rule_assignments', ['merchant_sales_channel_id'])

    if not table_exists('rule_execution_logs'):
        op.create_table(
            'rule_execution_logs',
            sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
            sa.Column('rule_id', sa.Integer(), nullable=True),
            sa.Column('rule_code', sa.String(length=100), nullable=False),
            sa.Column('context_type', sa.String(length=50), nullable=False),
            sa.Column('context_id', sa.String(length=64), nullable=True),
            sa.Column('input_data', sa.JSON(), nullable=False),
            sa.Column('output_value', sa.String(length=255), nullable=True),
            sa.Column('execution_time_ms', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('success', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('error_message', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('idx_rel_rule', 'rule_execution_logs', ['rule_id'])
        op.create_index('idx_rel_context', 'rule_execution_logs', ['context_type', 'context_id'])
        op.create_index('idx_rel_created', 'rule_execution_logs', ['created_at'])


def downgrade() -> None:
    """Downgrade schema - Drop rule tables."""
    op.drop_table('rule_execution_logs')
    op.drop_table('merchant_rule_assignments')
    op.drop_table('merchant_rules')
