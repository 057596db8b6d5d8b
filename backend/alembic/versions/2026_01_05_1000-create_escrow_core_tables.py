"""create_escrow_core_tables

Revision ID: create_escrow_core_20260105
Revises:
Create Date: 2026-01-05 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = 'create_escrow_core_20260105'
down_revision = None
branch_labels = None
depends_on = None


user_role = sa.Enum('RETAILER', 'WHOLESALER', 'DELIVERY_AGENT', 'ADMIN', name='user_role')
user_status = sa.Enum('ACTIVE', 'SUSPENDED', name='user_status')
escrow_transaction_status = sa.Enum(
    'pending', 'funded', 'in_transit', 'delivered', 'on_hold', 'completed', 'cancelled', 'disputed',
    name='escrow_transaction_status',
)
payment_method = sa.Enum('ecocash', 'bank_transfer', 'cash', 'card', name='payment_method')
cash_collection_method = sa.Enum('agent', 'booth', 'none', name='cash_collection_method')
ledger_entry_type = sa.Enum(
    'deposit', 'hold', 'release', 'refund', 'fee', 'adjustment', 'withdrawal',
    name='ledger_entry_type',
)
hardware_generator_status = sa.Enum('active', 'inactive', 'lost', 'damaged', name='hardware_generator_status')


def _base_columns():
    return [
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def _base_indexes(table: str) -> None:
    op.create_index(op.f(f'ix_{table}_id'), table, ['id'], unique=False)
    op.create_index(op.f(f'ix_{table}_created_at'), table, ['created_at'], unique=False)


def upgrade() -> None:
    # users
    op.create_table(
        'users',
        *_base_columns(),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('role', user_role, nullable=False),
        sa.Column('status', user_status, nullable=False, server_default='ACTIVE'),
        sa.Column('external_subject', sa.String(length=255), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    _base_indexes('users')
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_role'), 'users', ['role'], unique=False)
    op.create_index(op.f('ix_users_external_subject'), 'users', ['external_subject'], unique=True)

    # escrow_transactions
    op.create_table(
        'escrow_transactions',
        *_base_columns(),
        sa.Column('reference', sa.String(length=64), nullable=False),
        sa.Column('retailer_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('wholesaler_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('delivery_agent_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('amount', sa.Numeric(20, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('status', escrow_transaction_status, nullable=False, server_default='pending'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payment_method', payment_method, nullable=False),
        sa.Column('cash_collection_method', cash_collection_method, nullable=False, server_default='none'),
        sa.Column('payment_reference', sa.String(length=255), nullable=True),
        sa.Column('funded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('in_transit_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('on_hold_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('disputed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('hold_release_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('available_for_withdrawal_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('funds_locked_notified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('withdrawn_amount', sa.Numeric(20, 2), nullable=False, server_default='0'),
        sa.Column('withdrawn_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivery_address', sa.JSON(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(['retailer_id'], ['users.id'], name='fk_escrow_transactions_retailer_id'),
        sa.ForeignKeyConstraint(['wholesaler_id'], ['users.id'], name='fk_escrow_transactions_wholesaler_id'),
        sa.ForeignKeyConstraint(['delivery_agent_id'], ['users.id'], name='fk_escrow_transactions_delivery_agent_id'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('amount > 0', name='check_escrow_transactions_amount_positive'),
        sa.CheckConstraint(
            'withdrawn_amount >= 0 AND withdrawn_amount <= amount',
            name='check_escrow_transactions_withdrawn_range',
        ),
    )
    _base_indexes('escrow_transactions')
    op.create_index(op.f('ix_escrow_transactions_reference'), 'escrow_transactions', ['reference'], unique=True)
    op.create_index(op.f('ix_escrow_transactions_retailer_id'), 'escrow_transactions', ['retailer_id'], unique=False)
    op.create_index(op.f('ix_escrow_transactions_wholesaler_id'), 'escrow_transactions', ['wholesaler_id'], unique=False)
    op.create_index(op.f('ix_escrow_transactions_delivery_agent_id'), 'escrow_transactions', ['delivery_agent_id'], unique=False)
    op.create_index(op.f('ix_escrow_transactions_status'), 'escrow_transactions', ['status'], unique=False)
    op.create_index('ix_escrow_transactions_status_hold_release', 'escrow_transactions', ['status', 'hold_release_at'], unique=False)
    op.create_index('ix_escrow_transactions_retailer_status', 'escrow_transactions', ['retailer_id', 'status'], unique=False)
    op.create_index('ix_escrow_transactions_wholesaler_status', 'escrow_transactions', ['wholesaler_id', 'status'], unique=False)

    # qr_credentials
    op.create_table(
        'qr_credentials',
        *_base_columns(),
        sa.Column('transaction_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('code', sa.Text(), nullable=False),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('extension_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('extended_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('generated_by', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('hardware_generator_id', sa.String(length=255), nullable=True),
        sa.Column('scanned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('scanned_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.ForeignKeyConstraint(['transaction_id'], ['escrow_transactions.id'], name='fk_qr_credentials_transaction_id'),
        sa.ForeignKeyConstraint(['generated_by'], ['users.id'], name='fk_qr_credentials_generated_by'),
        sa.ForeignKeyConstraint(['scanned_by'], ['users.id'], name='fk_qr_credentials_scanned_by'),
        sa.PrimaryKeyConstraint('id'),
    )
    _base_indexes('qr_credentials')
    op.create_index(op.f('ix_qr_credentials_transaction_id'), 'qr_credentials', ['transaction_id'], unique=True)

    # disputes
    op.create_table(
        'disputes',
        *_base_columns(),
        sa.Column('transaction_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('filed_by', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('filed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('resolution', sa.Text(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['transaction_id'], ['escrow_transactions.id'], name='fk_disputes_transaction_id'),
        sa.ForeignKeyConstraint(['filed_by'], ['users.id'], name='fk_disputes_filed_by'),
        sa.PrimaryKeyConstraint('id'),
    )
    _base_indexes('disputes')
    op.create_index(op.f('ix_disputes_transaction_id'), 'disputes', ['transaction_id'], unique=True)

    # ledger_entries (immutable)
    op.create_table(
        'ledger_entries',
        *_base_columns(),
        sa.Column('entry_id', sa.String(length=64), nullable=False),
        sa.Column('transaction_ref', sa.String(length=64), nullable=False),
        sa.Column('entry_type', ledger_entry_type, nullable=False),
        sa.Column('amount', sa.Numeric(20, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('from_account', sa.String(length=128), nullable=False),
        sa.Column('to_account', sa.String(length=128), nullable=False),
        sa.Column('balance', sa.Numeric(20, 2), nullable=False),
        sa.Column('merchant_account_id', sa.String(length=128), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('amount > 0', name='check_ledger_entries_amount_positive'),
    )
    _base_indexes('ledger_entries')
    op.create_index(op.f('ix_ledger_entries_entry_id'), 'ledger_entries', ['entry_id'], unique=True)
    op.create_index(op.f('ix_ledger_entries_transaction_ref'), 'ledger_entries', ['transaction_ref'], unique=False)
    op.create_index(op.f('ix_ledger_entries_entry_type'), 'ledger_entries', ['entry_type'], unique=False)
    op.create_index(op.f('ix_ledger_entries_merchant_account_id'), 'ledger_entries', ['merchant_account_id'], unique=False)
    op.create_index('ix_ledger_entries_merchant_created', 'ledger_entries', ['merchant_account_id', 'created_at'], unique=False)
    op.create_index('ix_ledger_entries_ref_created', 'ledger_entries', ['transaction_ref', 'created_at'], unique=False)

    # locked_funds_accounts
    op.create_table(
        'locked_funds_accounts',
        *_base_columns(),
        sa.Column('retailer_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('balance', sa.Numeric(20, 2), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['retailer_id'], ['users.id'], name='fk_locked_funds_accounts_retailer_id'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('balance >= 0', name='check_locked_funds_accounts_balance_non_negative'),
    )
    _base_indexes('locked_funds_accounts')
    op.create_index(op.f('ix_locked_funds_accounts_retailer_id'), 'locked_funds_accounts', ['retailer_id'], unique=True)

    # hardware_qr_generators
    op.create_table(
        'hardware_qr_generators',
        *_base_columns(),
        sa.Column('device_id', sa.String(length=255), nullable=False),
        sa.Column('serial_number', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('registered_by', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('assigned_to', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('status', hardware_generator_status, nullable=False, server_default='active'),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['registered_by'], ['users.id'], name='fk_hardware_qr_generators_registered_by'),
        sa.ForeignKeyConstraint(['assigned_to'], ['users.id'], name='fk_hardware_qr_generators_assigned_to'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('serial_number', name='uq_hardware_qr_generators_serial_number'),
    )
    _base_indexes('hardware_qr_generators')
    op.create_index(op.f('ix_hardware_qr_generators_device_id'), 'hardware_qr_generators', ['device_id'], unique=True)
    op.create_index(op.f('ix_hardware_qr_generators_registered_by'), 'hardware_qr_generators', ['registered_by'], unique=False)
    op.create_index(op.f('ix_hardware_qr_generators_assigned_to'), 'hardware_qr_generators', ['assigned_to'], unique=False)


def downgrade() -> None:
    op.drop_table('hardware_qr_generators')
    op.drop_table('locked_funds_accounts')
    op.drop_table('ledger_entries')
    op.drop_table('disputes')
    op.drop_table('qr_credentials')
    op.drop_table('escrow_transactions')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in (
        hardware_generator_status,
        ledger_entry_type,
        cash_collection_method,
        payment_method,
        escrow_transaction_status,
        user_status,
        user_role,
    ):
        enum_type.drop(bind, checkfirst=True)
