"""create_booking_schema

Revision ID: 3c1f2a9d7e41
Revises:
Create Date: 2026-10-17 09:12:44.512083

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1f2a9d7e41'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = sa.Enum('CLIENT', 'ADMIN', name='userrole')
package_category = sa.Enum('WEDDING', 'PORTRAIT', 'STUDIO', 'EVENT', 'PRODUCT', name='packagecategory')
booking_status = sa.Enum('PENDING', 'CONFIRMED', 'IN_PROGRESS', 'COMPLETED', 'CANCELLED', name='bookingstatus')
booking_payment_status = sa.Enum('PENDING', 'DEPOSIT_PAID', 'FULLY_PAID', 'REFUNDED', name='bookingpaymentstatus')
payment_status = sa.Enum('PENDING', 'PROCESSING', 'SUCCEEDED', 'FAILED', 'CANCELLED', 'REFUNDED', name='paymentstatus')
payment_type = sa.Enum('DEPOSIT', 'REMAINING', 'FULL', 'REFUND', name='paymenttype')


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('phone', sa.String(length=20)),
        sa.Column('role', user_role, nullable=False),
        sa.Column('is_active', sa.Boolean()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'packages',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False, unique=True),
        sa.Column('description', sa.Text()),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('deposit_percentage', sa.Integer(), nullable=False),
        sa.Column('max_bookings_per_day', sa.Integer(), nullable=False),
        sa.Column('duration_hours', sa.Integer(), nullable=False),
        sa.Column('category', package_category, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
        sa.CheckConstraint('deposit_percentage >= 0 AND deposit_percentage <= 100', name='ck_packages_deposit_percentage'),
        sa.CheckConstraint('max_bookings_per_day > 0', name='ck_packages_max_bookings_per_day'),
        sa.CheckConstraint('price >= 0', name='ck_packages_price'),
    )
    op.create_index('ix_packages_id', 'packages', ['id'])

    op.create_table(
        'bookings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('package_id', sa.Integer(), sa.ForeignKey('packages.id'), nullable=False),
        sa.Column('booking_date', sa.Date(), nullable=False),
        sa.Column('booking_time', sa.String(length=50), nullable=False),
        sa.Column('location', sa.String(length=255)),
        sa.Column('notes', sa.String(length=1000)),
        sa.Column('capacity_slot', sa.Integer()),
        sa.Column('contact_name', sa.String(length=200), nullable=False),
        sa.Column('contact_email', sa.String(length=255), nullable=False),
        sa.Column('contact_phone', sa.String(length=20)),
        sa.Column('package_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('deposit_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('remaining_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('total_paid', sa.Numeric(10, 2), nullable=False),
        sa.Column('payment_status', booking_payment_status, nullable=False),
        sa.Column('booking_status', booking_status, nullable=False),
        sa.Column('stripe_deposit_intent_id', sa.String(length=255)),
        sa.Column('stripe_payment_intent_id', sa.String(length=255)),
        sa.Column('cancellation_reason', sa.Text()),
        sa.Column('cancelled_at', sa.DateTime(timezone=True)),
        sa.Column('confirmed_at', sa.DateTime(timezone=True)),
        sa.Column('completed_at', sa.DateTime(timezone=True)),
        sa.Column('photos_delivered', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
        sa.UniqueConstraint('package_id', 'booking_date', 'capacity_slot', name='uq_bookings_package_date_slot'),
        sa.CheckConstraint('total_paid >= 0 AND total_paid <= package_price', name='ck_bookings_total_paid'),
    )
    op.create_index('ix_bookings_id', 'bookings', ['id'])
    op.create_index('ix_bookings_user_id', 'bookings', ['user_id'])
    op.create_index('ix_bookings_booking_date', 'bookings', ['booking_date'])
    op.create_index('ix_bookings_payment_status', 'bookings', ['payment_status'])
    op.create_index('ix_bookings_booking_status', 'bookings', ['booking_status'])
    op.create_index('ix_bookings_package_date', 'bookings', ['package_id', 'booking_date'])

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('booking_id', sa.Integer(), sa.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('payment_type', payment_type, nullable=False),
        sa.Column('status', payment_status, nullable=False),
        sa.Column('stripe_payment_intent_id', sa.String(length=255)),
        sa.Column('stripe_charge_id', sa.String(length=255)),
        sa.Column('stripe_refund_id', sa.String(length=255)),
        sa.Column('failure_reason', sa.Text()),
        sa.Column('refunded_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('refunded_at', sa.DateTime(timezone=True)),
        sa.Column('paid_at', sa.DateTime(timezone=True)),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_payments_id', 'payments', ['id'])
    op.create_index('ix_payments_booking_id', 'payments', ['booking_id'])
    op.create_index('ix_payments_user_id', 'payments', ['user_id'])
    op.create_index('ix_payments_status', 'payments', ['status'])
    op.create_index('ix_payments_stripe_payment_intent_id', 'payments', ['stripe_payment_intent_id'], unique=True)
    op.create_index('ix_payments_stripe_charge_id', 'payments', ['stripe_charge_id'])
    op.create_index(
        'uq_payments_booking_type_succeeded', 'payments', ['booking_id', 'payment_type'],
        unique=True,
        postgresql_where=sa.text("status = 'SUCCEEDED'"),
        sqlite_where=sa.text("status = 'SUCCEEDED'"),
    )

    op.create_table(
        'deliveries',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('booking_id', sa.Integer(), sa.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('album_name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.String(length=1000)),
        sa.Column('photos', sa.JSON(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True)),
        sa.Column('password_hash', sa.String(length=255)),
        sa.Column('is_public', sa.Boolean(), nullable=False),
        sa.Column('allow_download', sa.Boolean(), nullable=False),
        sa.Column('watermark_enabled', sa.Boolean(), nullable=False),
        sa.Column('views', sa.Integer(), nullable=False),
        sa.Column('downloads', sa.Integer(), nullable=False),
        sa.Column('notified_at', sa.DateTime(timezone=True)),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_deliveries_id', 'deliveries', ['id'])


def downgrade():
    op.drop_table('deliveries')
    op.drop_table('payments')
    op.drop_table('bookings')
    op.drop_table('packages')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in (payment_type, payment_status, booking_payment_status, booking_status, package_category, user_role):
        enum_type.drop(bind, checkfirst=True)
