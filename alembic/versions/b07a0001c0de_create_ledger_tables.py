"""create_ledger_tables

Revision ID: b07a0001c0de
Revises:
Create Date: 2026-10-19 09:12:44.104512

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'b07a0001c0de'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


MONEY = sa.Numeric(precision=20, scale=8)
NOW = sa.text("(now() at time zone 'utc')")


def upgrade() -> None:
    """Upgrade schema."""
    # Users
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False, comment='Login email'),
        sa.Column('full_name', sa.String(length=255), nullable=True, comment='Full name'),
        sa.Column('kyc_level', sa.Integer(), nullable=False, server_default='0', comment='Verified KYC tier 0-3, non-decreasing'),
        sa.Column('referral_code', sa.String(length=16), nullable=True, comment="User's own referral code"),
        sa.Column('referrer_id', sa.Integer(), nullable=True, comment='User who referred this user'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW, comment='Registration timestamp'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.ForeignKeyConstraint(['referrer_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_referral_code'), 'users', ['referral_code'], unique=True)
    op.create_index(op.f('ix_users_referrer_id'), 'users', ['referrer_id'], unique=False)

    # KYC documents
    op.create_table(
        'kyc_documents',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False, comment='KYC level 1-3'),
        sa.Column('document_type', sa.String(length=50), nullable=False),
        sa.Column('document_path', sa.String(length=500), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_kyc_documents_user_id'), 'kyc_documents', ['user_id'], unique=False)
    op.create_index(op.f('ix_kyc_documents_status'), 'kyc_documents', ['status'], unique=False)
    op.create_index('ix_kyc_documents_user_level', 'kyc_documents', ['user_id', 'level'], unique=False)

    # Bot catalog
    op.create_table(
        'bot_templates',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('strategy', sa.String(length=50), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('risk_level', sa.String(length=20), nullable=False),
        sa.Column('min_profit_pct', sa.Numeric(precision=10, scale=4), nullable=False, comment='Lower bound of per-tick change, %'),
        sa.Column('max_profit_pct', sa.Numeric(precision=10, scale=4), nullable=False, comment='Upper bound of per-tick change, %'),
        sa.Column('min_investment', MONEY, nullable=False),
        sa.Column('max_investment', MONEY, nullable=False),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )

    # Wallets
    op.create_table(
        'wallets',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=20), nullable=False),
        sa.Column('balance', MONEY, nullable=False, server_default='0', comment='Cached sum of transaction amounts'),
        sa.Column('is_frozen', sa.Boolean(), nullable=False, server_default=sa.false(), comment='Writes halted pending reconciliation'),
        sa.Column('frozen_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'currency', name='uq_wallet_user_currency'),
    )
    op.create_index(op.f('ix_wallets_user_id'), 'wallets', ['user_id'], unique=False)

    # Bot instances
    op.create_table(
        'bot_instances',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('template_id', sa.Integer(), nullable=False),
        sa.Column('wallet_id', sa.Integer(), nullable=False, comment='Wallet debited at launch and credited at stop'),
        sa.Column('currency', sa.String(length=20), nullable=False),
        sa.Column('investment', MONEY, nullable=False, comment='Fixed at launch'),
        sa.Column('current_value', MONEY, nullable=False),
        sa.Column('profit_percentage', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='running'),
        sa.Column('profit_seed', sa.String(length=64), nullable=False, comment='Seed of the profit random walk'),
        sa.Column('tick_count', sa.Integer(), nullable=False, server_default='0', comment='Ticks applied so far'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.Column('last_tick_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('stopped_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['template_id'], ['bot_templates.id']),
        sa.ForeignKeyConstraint(['wallet_id'], ['wallets.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_bot_instances_user_id'), 'bot_instances', ['user_id'], unique=False)
    op.create_index(op.f('ix_bot_instances_template_id'), 'bot_instances', ['template_id'], unique=False)
    op.create_index(op.f('ix_bot_instances_wallet_id'), 'bot_instances', ['wallet_id'], unique=False)
    op.create_index(op.f('ix_bot_instances_status'), 'bot_instances', ['status'], unique=False)

    # Ledger (append-only)
    op.create_table(
        'wallet_transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('wallet_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=30), nullable=False),
        sa.Column('amount', MONEY, nullable=False, comment='Signed amount'),
        sa.Column('balance_after', MONEY, nullable=False, comment='Wallet balance right after this entry'),
        sa.Column('fee', MONEY, nullable=False, server_default='0', comment='Fee included in amount'),
        sa.Column('bot_instance_id', sa.Integer(), nullable=True),
        sa.Column('external_ref', sa.String(length=128), nullable=True, comment='Idempotency key (deposit tx hash, etc.)'),
        sa.Column('destination_address', sa.String(length=128), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.ForeignKeyConstraint(['wallet_id'], ['wallets.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['bot_instance_id'], ['bot_instances.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_ref'),
    )
    op.create_index(op.f('ix_wallet_transactions_wallet_id'), 'wallet_transactions', ['wallet_id'], unique=False)
    op.create_index(op.f('ix_wallet_transactions_type'), 'wallet_transactions', ['type'], unique=False)
    op.create_index(op.f('ix_wallet_transactions_bot_instance_id'), 'wallet_transactions', ['bot_instance_id'], unique=False)
    op.create_index('ix_wallet_transactions_wallet_created', 'wallet_transactions', ['wallet_id', 'created_at'], unique=False)

    # Deposit addresses
    op.create_table(
        'deposit_addresses',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('wallet_id', sa.Integer(), nullable=False),
        sa.Column('network', sa.String(length=30), nullable=False),
        sa.Column('address', sa.String(length=128), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=NOW),
        sa.ForeignKeyConstraint(['wallet_id'], ['wallets.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('wallet_id', 'network', name='uq_deposit_address_wallet_network'),
    )
    op.create_index(op.f('ix_deposit_addresses_wallet_id'), 'deposit_addresses', ['wallet_id'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_deposit_addresses_wallet_id'), table_name='deposit_addresses')
    op.drop_table('deposit_addresses')

    op.drop_index('ix_wallet_transactions_wallet_created', table_name='wallet_transactions')
    op.drop_index(op.f('ix_wallet_transactions_bot_instance_id'), table_name='wallet_transactions')
    op.drop_index(op.f('ix_wallet_transactions_type'), table_name='wallet_transactions')
    op.drop_index(op.f('ix_wallet_transactions_wallet_id'), table_name='wallet_transactions')
    op.drop_table('wallet_transactions')

    op.drop_index(op.f('ix_bot_instances_status'), table_name='bot_instances')
    op.drop_index(op.f('ix_bot_instances_wallet_id'), table_name='bot_instances')
    op.drop_index(op.f('ix_bot_instances_template_id'), table_name='bot_instances')
    op.drop_index(op.f('ix_bot_instances_user_id'), table_name='bot_instances')
    op.drop_table('bot_instances')

    op.drop_index(op.f('ix_wallets_user_id'), table_name='wallets')
    op.drop_table('wallets')

    op.drop_table('bot_templates')

    op.drop_index('ix_kyc_documents_user_level', table_name='kyc_documents')
    op.drop_index(op.f('ix_kyc_documents_status'), table_name='kyc_documents')
    op.drop_index(op.f('ix_kyc_documents_user_id'), table_name='kyc_documents')
    op.drop_table('kyc_documents')

    op.drop_index(op.f('ix_users_referrer_id'), table_name='users')
    op.drop_index(op.f('ix_users_referral_code'), table_name='users')
    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_table('users')
