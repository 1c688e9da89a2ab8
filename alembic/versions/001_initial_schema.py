"""Initial order book schema.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Orders table
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_hash', sa.String(66), nullable=False),
        sa.Column('maker', sa.String(66), nullable=False),
        sa.Column('taker', sa.String(100), nullable=True),
        sa.Column('maker_token', sa.String(100), nullable=False),
        sa.Column('taker_token', sa.String(100), nullable=False),
        sa.Column('maker_amount', sa.String(78), nullable=False),
        sa.Column('taker_amount', sa.String(78), nullable=False),
        sa.Column('source_chain', sa.Integer(), nullable=True),
        sa.Column('destination_chain', sa.Integer(), nullable=True),
        sa.Column('source_escrow', sa.String(100), nullable=True),
        sa.Column('destination_escrow', sa.String(100), nullable=True),
        sa.Column('hashlock', sa.String(66), nullable=False),
        sa.Column('secret', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('order_data', sa.JSON(), nullable=False),
        sa.Column('signed_data', sa.JSON(), nullable=True),
        sa.Column('receiver', sa.String(100), nullable=True),
        sa.Column('extension', sa.Text(), nullable=True),
        sa.Column('secret_hash', sa.String(66), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, default=1),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_hash')
    )
    op.create_index('ix_orders_order_hash', 'orders', ['order_hash'])
    op.create_index('ix_orders_maker', 'orders', ['maker'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_status_created', 'orders', ['status', 'created_at'])
    op.create_index('ix_orders_chains', 'orders', ['source_chain', 'destination_chain'])

    # Escrow validations table (append-only audit trail)
    op.create_table(
        'escrow_validations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_hash', sa.String(66), nullable=False),
        sa.Column('chain', sa.String(20), nullable=False),
        sa.Column('escrow_address', sa.String(100), nullable=False),
        sa.Column('validation_type', sa.String(20), nullable=False),
        sa.Column('is_valid', sa.Boolean(), nullable=False),
        sa.Column('validation_details', sa.JSON(), nullable=True),
        sa.Column('validated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['order_hash'], ['orders.order_hash'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_escrow_validations_order_type', 'escrow_validations', ['order_hash', 'validation_type'])
    op.create_index('ix_escrow_validations_validated_at', 'escrow_validations', ['validated_at'])

    # Secret commitments table
    op.create_table(
        'secret_commitments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('hashlock', sa.String(66), nullable=False),
        sa.Column('encrypted_secret', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('hashlock')
    )
    op.create_index('ix_secret_commitments_hashlock', 'secret_commitments', ['hashlock'])


def downgrade() -> None:
    op.drop_table('secret_commitments')
    op.drop_table('escrow_validations')
    op.drop_table('orders')
