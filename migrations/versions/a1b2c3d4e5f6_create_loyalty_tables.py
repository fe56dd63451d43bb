"""Create loyalty programs, tiers, accounts and transactions tables

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1b2c3d4e5f6'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create the loyalty ledger tables."""
    op.create_table(
        'loyalty_programs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('currency_code', sa.String(3), nullable=True),
        sa.Column('points_per_currency', sa.Numeric(10, 2), nullable=False),
        sa.Column('minimum_spend_for_points', sa.Numeric(10, 2), nullable=False),
        sa.Column('bonus_multipliers', sa.JSON(), nullable=True),
        sa.Column('points_expiry_days', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'loyalty_tiers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('program_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('display_name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('min_points_required', sa.Numeric(10, 2), nullable=False),
        sa.Column('points_multiplier', sa.Numeric(5, 2), nullable=False),
        sa.Column('discount_percentage', sa.Numeric(5, 2), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['program_id'], ['loyalty_programs.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_loyalty_tiers_program_threshold', 'loyalty_tiers', ['program_id', 'min_points_required'])

    op.create_table(
        'loyalty_accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('program_id', sa.Integer(), nullable=False),
        sa.Column('tier_id', sa.Integer(), nullable=True),
        sa.Column('current_points', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_earned', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_redeemed', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_expired', sa.Numeric(12, 2), nullable=False),
        sa.Column('last_earned_at', sa.DateTime(), nullable=True),
        sa.Column('last_redeemed_at', sa.DateTime(), nullable=True),
        sa.Column('expiry_date', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['program_id'], ['loyalty_programs.id'], ),
        sa.ForeignKeyConstraint(['tier_id'], ['loyalty_tiers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('customer_id', 'program_id', name='uq_customer_program')
    )
    op.create_index('ix_loyalty_accounts_expiry', 'loyalty_accounts', ['expiry_date', 'current_points'])
    op.create_index('ix_loyalty_accounts_tier', 'loyalty_accounts', ['tier_id'])

    op.create_table(
        'loyalty_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('transaction_type', sa.String(30), nullable=False),
        sa.Column('points_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('balance_after', sa.Numeric(12, 2), nullable=False),
        sa.Column('source', sa.String(50), nullable=False),
        sa.Column('order_reference', sa.String(100), nullable=True),
        sa.Column('base_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('multiplier_applied', sa.Numeric(8, 4), nullable=True),
        sa.Column('description', sa.String(255), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['loyalty_accounts.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_loyalty_transactions_account_type', 'loyalty_transactions', ['account_id', 'transaction_type'])
    op.create_index('ix_loyalty_transactions_order', 'loyalty_transactions', ['order_reference'])
    op.create_index('ix_loyalty_transactions_source', 'loyalty_transactions', ['source'])
    op.create_index('ix_loyalty_transactions_created', 'loyalty_transactions', ['created_at'])


def downgrade():
    """Drop the loyalty ledger tables."""
    op.drop_index('ix_loyalty_transactions_created', table_name='loyalty_transactions')
    op.drop_index('ix_loyalty_transactions_source', table_name='loyalty_transactions')
    op.drop_index('ix_loyalty_transactions_order', table_name='loyalty_transactions')
    op.drop_index('ix_loyalty_transactions_account_type', table_name='loyalty_transactions')
    op.drop_table('loyalty_transactions')

    op.drop_index('ix_loyalty_accounts_tier', table_name='loyalty_accounts')
    op.drop_index('ix_loyalty_accounts_expiry', table_name='loyalty_accounts')
    op.drop_table('loyalty_accounts')

    op.drop_index('ix_loyalty_tiers_program_threshold', table_name='loyalty_tiers')
    op.drop_table('loyalty_tiers')

    op.drop_table('loyalty_programs')
