"""Create slots, credit ledger, stripe_events, bookings and audit tables

Revision ID: 7c2d9e41b0a3
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '7c2d9e41b0a3'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('slots',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('listing_id', sa.String(length=36), nullable=False),
        sa.Column('label', sa.String(length=255), nullable=True),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('booked_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.CheckConstraint('capacity >= 1', name='ck_slots_capacity_positive'),
        sa.CheckConstraint('booked_count >= 0', name='ck_slots_booked_nonnegative'),
        sa.CheckConstraint('booked_count <= capacity', name='ck_slots_booked_within_capacity'),
        sa.CheckConstraint('price > 0', name='ck_slots_price_positive'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_slots_listing_id', 'slots', ['listing_id'])

    op.create_table('credit_accounts',
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.CheckConstraint('balance >= 0', name='ck_credit_accounts_balance_nonnegative'),
        sa.PrimaryKeyConstraint('user_id')
    )

    op.create_table('credit_ledger_entries',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('source', sa.String(length=50), nullable=False),
        sa.Column('stripe_event_id', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.CheckConstraint('amount <> 0', name='ck_credit_ledger_entries_amount_nonzero'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_credit_ledger_entries_user_created', 'credit_ledger_entries', ['user_id', 'created_at'])
    op.create_index('ix_credit_ledger_entries_stripe_event_id', 'credit_ledger_entries', ['stripe_event_id'])

    op.create_table('stripe_events',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('stripe_event_id', sa.String(length=255), nullable=False),
        sa.Column('event_type', sa.String(length=255), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('stripe_event_id')
    )

    op.create_table('bookings',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('stripe_event_id', sa.String(length=255), nullable=False),
        sa.Column('checkout_session_id', sa.String(length=255), nullable=True),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('listing_id', sa.String(length=36), nullable=False),
        sa.Column('slot_id', sa.String(length=36), nullable=False),
        sa.Column('price_minor_units', sa.Integer(), nullable=False),
        sa.Column('amount_paid_minor_units', sa.Integer(), nullable=False),
        sa.Column('redeem_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('award_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=50), nullable=False),
        sa.Column('conflict_reason', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('stripe_event_id')
    )
    op.create_index('ix_bookings_checkout_session_id', 'bookings', ['checkout_session_id'], unique=True)
    op.create_index('ix_bookings_user_id', 'bookings', ['user_id'])
    op.create_index('ix_bookings_slot_id', 'bookings', ['slot_id'])

    op.create_table('audit_events',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=True),
        sa.Column('action', sa.String(length=255), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_audit_events_user_id', 'audit_events', ['user_id'])


def downgrade():
    op.drop_index('ix_audit_events_user_id', table_name='audit_events')
    op.drop_table('audit_events')
    op.drop_index('ix_bookings_slot_id', table_name='bookings')
    op.drop_index('ix_bookings_user_id', table_name='bookings')
    op.drop_index('ix_bookings_checkout_session_id', table_name='bookings')
    op.drop_table('bookings')
    op.drop_table('stripe_events')
    op.drop_index('ix_credit_ledger_entries_stripe_event_id', table_name='credit_ledger_entries')
    op.drop_index('ix_credit_ledger_entries_user_created', table_name='credit_ledger_entries')
    op.drop_table('credit_ledger_entries')
    op.drop_table('credit_accounts')
    op.drop_index('ix_slots_listing_id', table_name='slots')
    op.drop_table('slots')
