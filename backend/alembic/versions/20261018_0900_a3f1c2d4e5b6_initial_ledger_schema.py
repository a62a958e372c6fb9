"""Initial schema: members, fleet, rates, bookings, invoices, payments, credit notes, memberships, audit

Revision ID: a3f1c2d4e5b6
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a3f1c2d4e5b6'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    ]


def _line_columns() -> list[sa.Column]:
    return [
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Numeric(10, 2), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 4), nullable=False),
        sa.Column('tax_rate', sa.Numeric(6, 4), nullable=False, server_default='0'),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('tax_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('line_total', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('rate_inclusive', sa.Numeric(12, 2), nullable=False, server_default='0'),
    ]


# Enum labels are the Python member names, which is what SQLAlchemy persists
instruction_type = sa.Enum('DUAL', 'SOLO', 'TRIAL', name='instructiontype')
booking_status = sa.Enum('CONFIRMED', 'FLYING', 'COMPLETE', 'CANCELLED', name='bookingstatus')
invoice_status = sa.Enum('DRAFT', 'PENDING', 'PAID', 'OVERDUE', 'CANCELLED', 'REFUNDED', name='invoicestatus')
transaction_type = sa.Enum('DEBIT', 'CREDIT', name='transactiontype')
transaction_status = sa.Enum('COMPLETED', 'REVERSED', name='transactionstatus')
payment_method = sa.Enum(
    'CASH', 'CREDIT_CARD', 'DEBIT_CARD', 'BANK_TRANSFER', 'CHECK', 'ONLINE_PAYMENT', 'OTHER', name='paymentmethod'
)
credit_note_status = sa.Enum('DRAFT', 'APPLIED', name='creditnotestatus')


def upgrade() -> None:
    """Create all tables for the billing ledger."""
    # 1. Members (no dependencies)
    op.create_table(
        'members',
        *_base_columns(),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='member'),
        sa.Column('account_balance', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_members_email'), 'members', ['email'], unique=True)

    # 2. Fleet and instruction reference data
    op.create_table(
        'aircraft_types',
        *_base_columns(),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )
    op.create_table(
        'aircraft',
        *_base_columns(),
        sa.Column('registration', sa.String(length=20), nullable=False),
        sa.Column('aircraft_type_id', sa.Uuid(), nullable=True),
        sa.Column('total_time_method', sa.String(length=30), nullable=True),
        sa.Column('total_hours', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('current_hobbs', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('current_tach', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['aircraft_type_id'], ['aircraft_types.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_aircraft_registration'), 'aircraft', ['registration'], unique=True)
    op.create_index(op.f('ix_aircraft_aircraft_type_id'), 'aircraft', ['aircraft_type_id'])

    op.create_table(
        'flight_types',
        *_base_columns(),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('instruction_type', instruction_type, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_table(
        'instructors',
        *_base_columns(),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['members.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_instructors_user_id'), 'instructors', ['user_id'])

    # 3. Rates
    op.create_table(
        'aircraft_charge_rates',
        *_base_columns(),
        sa.Column('aircraft_id', sa.Uuid(), nullable=False),
        sa.Column('flight_type_id', sa.Uuid(), nullable=False),
        sa.Column('rate_per_hour', sa.Numeric(12, 4), nullable=False),
        sa.Column('charge_hobbs', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('charge_tacho', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.ForeignKeyConstraint(['aircraft_id'], ['aircraft.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['flight_type_id'], ['flight_types.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('aircraft_id', 'flight_type_id', name='uq_aircraft_charge_rate'),
    )
    op.create_index(op.f('ix_aircraft_charge_rates_aircraft_id'), 'aircraft_charge_rates', ['aircraft_id'])
    op.create_index(op.f('ix_aircraft_charge_rates_flight_type_id'), 'aircraft_charge_rates', ['flight_type_id'])

    op.create_table(
        'instructor_flight_type_rates',
        *_base_columns(),
        sa.Column('instructor_id', sa.Uuid(), nullable=False),
        sa.Column('flight_type_id', sa.Uuid(), nullable=False),
        sa.Column('rate', sa.Numeric(12, 4), nullable=False),
        sa.ForeignKeyConstraint(['instructor_id'], ['instructors.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['flight_type_id'], ['flight_types.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('instructor_id', 'flight_type_id', name='uq_instructor_flight_type_rate'),
    )
    op.create_index(op.f('ix_instructor_flight_type_rates_instructor_id'), 'instructor_flight_type_rates', ['instructor_id'])
    op.create_index(op.f('ix_instructor_flight_type_rates_flight_type_id'), 'instructor_flight_type_rates', ['flight_type_id'])

    op.create_table(
        'chargeables',
        *_base_columns(),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('chargeable_type', sa.String(length=50), nullable=False),
        sa.Column('rate', sa.Numeric(12, 4), nullable=False, server_default='0'),
        sa.Column('is_taxable', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_chargeables_chargeable_type'), 'chargeables', ['chargeable_type'])

    op.create_table(
        'landing_fee_rates',
        *_base_columns(),
        sa.Column('chargeable_id', sa.Uuid(), nullable=False),
        sa.Column('aircraft_type_id', sa.Uuid(), nullable=False),
        sa.Column('rate', sa.Numeric(12, 4), nullable=False),
        sa.ForeignKeyConstraint(['chargeable_id'], ['chargeables.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['aircraft_type_id'], ['aircraft_types.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('chargeable_id', 'aircraft_type_id', name='uq_landing_fee_rate'),
    )
    op.create_index(op.f('ix_landing_fee_rates_chargeable_id'), 'landing_fee_rates', ['chargeable_id'])
    op.create_index(op.f('ix_landing_fee_rates_aircraft_type_id'), 'landing_fee_rates', ['aircraft_type_id'])

    op.create_table(
        'tax_rates',
        *_base_columns(),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('rate', sa.Numeric(6, 4), nullable=False),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('effective_from', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    # 4. Bookings and flight logs
    op.create_table(
        'bookings',
        *_base_columns(),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('aircraft_id', sa.Uuid(), nullable=False),
        sa.Column('flight_type_id', sa.Uuid(), nullable=True),
        sa.Column('instructor_id', sa.Uuid(), nullable=True),
        sa.Column('start_time', sa.DateTime(), nullable=True),
        sa.Column('end_time', sa.DateTime(), nullable=True),
        sa.Column('status', booking_status, nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['members.id']),
        sa.ForeignKeyConstraint(['aircraft_id'], ['aircraft.id']),
        sa.ForeignKeyConstraint(['flight_type_id'], ['flight_types.id']),
        sa.ForeignKeyConstraint(['instructor_id'], ['instructors.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_bookings_user_id'), 'bookings', ['user_id'])
    op.create_index(op.f('ix_bookings_aircraft_id'), 'bookings', ['aircraft_id'])
    op.create_index(op.f('ix_bookings_status'), 'bookings', ['status'])

    op.create_table(
        'flight_logs',
        *_base_columns(),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('checked_out_aircraft_id', sa.Uuid(), nullable=True),
        sa.Column('checked_out_instructor_id', sa.Uuid(), nullable=True),
        sa.Column('flight_type_id', sa.Uuid(), nullable=True),
        *[
            sa.Column(name, sa.Numeric(10, 2), nullable=True)
            for name in (
                'hobbs_start', 'hobbs_end', 'tach_start', 'tach_end', 'solo_end_hobbs',
                'flight_time_hobbs', 'flight_time_tach', 'flight_time', 'dual_time', 'solo_time',
                'total_hours_start', 'total_hours_end',
            )
        ],
        sa.Column('actual_end', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['checked_out_aircraft_id'], ['aircraft.id']),
        sa.ForeignKeyConstraint(['checked_out_instructor_id'], ['instructors.id']),
        sa.ForeignKeyConstraint(['flight_type_id'], ['flight_types.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_flight_logs_booking_id'), 'flight_logs', ['booking_id'], unique=True)

    # 5. Invoices and items
    op.create_table(
        'invoices',
        *_base_columns(),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=True),
        sa.Column('invoice_number', sa.String(length=50), nullable=False),
        sa.Column('status', invoice_status, nullable=False),
        sa.Column('reference', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('issue_date', sa.DateTime(), nullable=True),
        sa.Column('due_date', sa.DateTime(), nullable=True),
        sa.Column('paid_date', sa.DateTime(), nullable=True),
        sa.Column('tax_rate', sa.Numeric(6, 4), nullable=False, server_default='0'),
        *[
            sa.Column(name, sa.Numeric(12, 2), nullable=False, server_default='0')
            for name in ('subtotal', 'tax_total', 'total_amount', 'total_paid', 'total_credited', 'balance_due')
        ],
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.Column('deleted_by', sa.String(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['members.id']),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_invoices_user_id'), 'invoices', ['user_id'])
    op.create_index(op.f('ix_invoices_booking_id'), 'invoices', ['booking_id'])
    op.create_index(op.f('ix_invoices_invoice_number'), 'invoices', ['invoice_number'], unique=True)
    op.create_index(op.f('ix_invoices_status'), 'invoices', ['status'])
    op.create_index(op.f('ix_invoices_due_date'), 'invoices', ['due_date'])

    op.create_table(
        'invoice_items',
        *_base_columns(),
        sa.Column('invoice_id', sa.Uuid(), nullable=False),
        sa.Column('chargeable_id', sa.Uuid(), nullable=True),
        *_line_columns(),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['chargeable_id'], ['chargeables.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_invoice_items_invoice_id'), 'invoice_items', ['invoice_id'])

    # 6. Payments and credit notes
    op.create_table(
        'payments',
        *_base_columns(),
        sa.Column('payment_number', sa.String(length=50), nullable=False),
        sa.Column('invoice_id', sa.Uuid(), nullable=True),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('payment_method', payment_method, nullable=False),
        sa.Column('payment_reference', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('reversal_of_id', sa.Uuid(), nullable=True),
        sa.Column('corrects_payment_id', sa.Uuid(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id']),
        sa.ForeignKeyConstraint(['user_id'], ['members.id']),
        sa.ForeignKeyConstraint(['reversal_of_id'], ['payments.id']),
        sa.ForeignKeyConstraint(['corrects_payment_id'], ['payments.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reversal_of_id'),
    )
    op.create_index(op.f('ix_payments_payment_number'), 'payments', ['payment_number'], unique=True)
    op.create_index(op.f('ix_payments_invoice_id'), 'payments', ['invoice_id'])
    op.create_index(op.f('ix_payments_user_id'), 'payments', ['user_id'])

    op.create_table(
        'credit_notes',
        *_base_columns(),
        sa.Column('credit_note_number', sa.String(length=50), nullable=False),
        sa.Column('original_invoice_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('status', credit_note_status, nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('tax_total', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('applied_at', sa.DateTime(), nullable=True),
        sa.Column('applied_by', sa.String(), nullable=True),
        sa.Column('created_by', sa.String(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['original_invoice_id'], ['invoices.id']),
        sa.ForeignKeyConstraint(['user_id'], ['members.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_credit_notes_credit_note_number'), 'credit_notes', ['credit_note_number'], unique=True)
    op.create_index(op.f('ix_credit_notes_original_invoice_id'), 'credit_notes', ['original_invoice_id'])
    op.create_index(op.f('ix_credit_notes_user_id'), 'credit_notes', ['user_id'])
    op.create_index(op.f('ix_credit_notes_status'), 'credit_notes', ['status'])

    op.create_table(
        'credit_note_items',
        *_base_columns(),
        sa.Column('credit_note_id', sa.Uuid(), nullable=False),
        sa.Column('original_invoice_item_id', sa.Uuid(), nullable=True),
        *_line_columns(),
        sa.ForeignKeyConstraint(['credit_note_id'], ['credit_notes.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['original_invoice_item_id'], ['invoice_items.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_credit_note_items_credit_note_id'), 'credit_note_items', ['credit_note_id'])

    # 7. Ledger transactions (depend on invoices, payments and credit notes)
    op.create_table(
        'transactions',
        *_base_columns(),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('type', transaction_type, nullable=False),
        sa.Column('status', transaction_status, nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('reference_number', sa.String(length=50), nullable=True),
        sa.Column('invoice_id', sa.Uuid(), nullable=True),
        sa.Column('payment_id', sa.Uuid(), nullable=True),
        sa.Column('credit_note_id', sa.Uuid(), nullable=True),
        sa.Column('reversal_of_id', sa.Uuid(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['members.id']),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id']),
        sa.ForeignKeyConstraint(['payment_id'], ['payments.id']),
        sa.ForeignKeyConstraint(['credit_note_id'], ['credit_notes.id']),
        sa.ForeignKeyConstraint(['reversal_of_id'], ['transactions.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_transactions_user_id'), 'transactions', ['user_id'])
    op.create_index(op.f('ix_transactions_status'), 'transactions', ['status'])
    op.create_index(op.f('ix_transactions_invoice_id'), 'transactions', ['invoice_id'])
    op.create_index(op.f('ix_transactions_payment_id'), 'transactions', ['payment_id'])
    op.create_index(op.f('ix_transactions_credit_note_id'), 'transactions', ['credit_note_id'])

    # 8. Memberships
    op.create_table(
        'membership_types',
        *_base_columns(),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('code', sa.String(length=50), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('duration_months', sa.Integer(), nullable=False, server_default='12'),
        sa.Column('chargeable_id', sa.Uuid(), nullable=True),
        sa.Column('benefits', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.ForeignKeyConstraint(['chargeable_id'], ['chargeables.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_membership_types_code'), 'membership_types', ['code'], unique=True)

    op.create_table(
        'memberships',
        *_base_columns(),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('membership_type_id', sa.Uuid(), nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('expiry_date', sa.DateTime(), nullable=False),
        sa.Column('purchased_date', sa.DateTime(), nullable=False),
        sa.Column('grace_period_days', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('invoice_id', sa.Uuid(), nullable=True),
        sa.Column('renewal_of', sa.Uuid(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('auto_renew', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['members.id']),
        sa.ForeignKeyConstraint(['membership_type_id'], ['membership_types.id']),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id']),
        sa.ForeignKeyConstraint(['renewal_of'], ['memberships.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_memberships_user_id'), 'memberships', ['user_id'])
    op.create_index(op.f('ix_memberships_is_active'), 'memberships', ['is_active'])

    # 9. Audit log
    op.create_table(
        'audit_logs',
        *_base_columns(),
        sa.Column('entity_type', sa.String(), nullable=False),
        sa.Column('entity_id', sa.Uuid(), nullable=False),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('changes', sa.JSON(), nullable=False),
        sa.Column('request_id', sa.String(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_audit_logs_entity_type'), 'audit_logs', ['entity_type'])
    op.create_index(op.f('ix_audit_logs_entity_id'), 'audit_logs', ['entity_id'])


def downgrade() -> None:
    """Drop all tables."""
    for table in (
        'audit_logs',
        'memberships',
        'membership_types',
        'transactions',
        'credit_note_items',
        'credit_notes',
        'payments',
        'invoice_items',
        'invoices',
        'flight_logs',
        'bookings',
        'tax_rates',
        'landing_fee_rates',
        'chargeables',
        'instructor_flight_type_rates',
        'aircraft_charge_rates',
        'instructors',
        'flight_types',
        'aircraft',
        'aircraft_types',
        'members',
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum_type in (
        credit_note_status,
        payment_method,
        transaction_status,
        transaction_type,
        invoice_status,
        booking_status,
        instruction_type,
    ):
        enum_type.drop(bind, checkfirst=True)
