"""initial balance schema

Revision ID: 001_initial
Revises: 
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('networks',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=32), nullable=False),
        sa.Column('chain_id', sa.Integer(), nullable=False),
        sa.Column('token_address', sa.String(length=64), nullable=True),
        sa.Column('is_native', sa.Boolean(), nullable=False),
        sa.Column('symbol', sa.String(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )

    op.create_table('wallets',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('address', sa.String(length=64), nullable=False),
        sa.Column('label', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('address')
    )

    # Balances are decimal strings in the smallest unit; they exceed BIGINT
    op.create_table('balance_snapshots',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('wallet_id', sa.Integer(), nullable=False),
        sa.Column('network_id', sa.Integer(), nullable=False),
        sa.Column('balance', sa.Text(), nullable=False),
        sa.Column('block_number', sa.BigInteger(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['network_id'], ['networks.id']),
        sa.ForeignKeyConstraint(['wallet_id'], ['wallets.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        'idx_balance_snapshots_pair_timestamp',
        'balance_snapshots',
        ['wallet_id', 'network_id', sa.text('timestamp DESC')],
    )
    op.create_index('idx_balance_snapshots_timestamp', 'balance_snapshots', ['timestamp'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('idx_balance_snapshots_timestamp', table_name='balance_snapshots')
    op.drop_index('idx_balance_snapshots_pair_timestamp', table_name='balance_snapshots')
    op.drop_table('balance_snapshots')
    op.drop_table('wallets')
    op.drop_table('networks')
