"""initial pawpal schema

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000

Creates the complete clinic schema:
- users, session_tokens, security_events, password_resets: accounts and auth
- pets, medical_records: client pets and their history
- categories, services, products: service catalog and shop
- cages, cage_reservations: boarding capacity and bookings
- appointments, appointment_pets: bookings with payment and document review
- orders, order_items, transactions: shop orders and the payment ledger
- notifications, email_outbox: in-app notifications and queued mail
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated: bool = True):
    cols = [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]
    if updated:
        cols.append(sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                              server_default=sa.text('CURRENT_TIMESTAMP')))
    return cols


def upgrade():
    """
    Create all tables from scratch.

    WHY: cages.current_appointment_id and appointments.cage_id reference each
    other, so the cage -> appointment foreign key is added after both exist.
    """

    # ============================================================================
    # Accounts and authentication
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='client'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)

    op.create_table(
        'security_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('resource', sa.String(length=255), nullable=True),
        sa.Column('action', sa.String(length=255), nullable=True),
        sa.Column('success', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_security_events_user_id', 'security_events', ['user_id'])
    op.create_index('ix_security_events_occurred_at', 'security_events', ['occurred_at'])
    op.create_index('ix_security_events_type_action', 'security_events', ['event_type', 'action'])

    # WHY unique user_id: one live reset token per user, reissue overwrites
    op.create_table(
        'password_resets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token', sa.String(length=64), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('used', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_password_resets_token', 'password_resets', ['token'], unique=True)

    # ============================================================================
    # Pets
    # ============================================================================
    op.create_table(
        'pets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('species', sa.String(length=50), nullable=False),
        sa.Column('breed', sa.String(length=100), nullable=True),
        sa.Column('birth_date', sa.Date(), nullable=False),
        sa.Column('gender', sa.String(length=16), nullable=False),
        sa.Column('weight', sa.Numeric(6, 2), nullable=True),
        sa.Column('color', sa.String(length=50), nullable=True),
        sa.Column('microchip_number', sa.String(length=64), nullable=True),
        sa.Column('photo_url', sa.String(length=500), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('microchip_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_pets_user_id', 'pets', ['user_id'])

    # ============================================================================
    # Catalog
    # ============================================================================
    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('color', sa.String(length=16), nullable=False, server_default='#6b7280'),
        sa.Column('icon', sa.String(length=50), nullable=False, server_default='tag'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'services',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=150), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_services_category_id', 'services', ['category_id'])

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=100), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('stock_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('low_stock_threshold', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('brand', sa.String(length=100), nullable=True),
        sa.Column('weight_kg', sa.Numeric(8, 3), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('photo_url', sa.String(length=500), nullable=True),
        sa.Column('is_on_sale', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('discount_type', sa.String(length=16), nullable=True),
        sa.Column('discount_value', sa.Numeric(10, 2), nullable=True),
        sa.Column('discount_start_date', sa.Date(), nullable=True),
        sa.Column('discount_end_date', sa.Date(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    # SKU uniqueness only applies to non-deleted products; enforced in product_service
    op.create_index('ix_products_sku', 'products', ['sku'])

    # ============================================================================
    # Boarding and appointments
    # ============================================================================
    op.create_table(
        'cages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('cage_number', sa.String(length=32), nullable=False),
        sa.Column('cage_type', sa.String(length=32), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('daily_rate', sa.Numeric(10, 2), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='available'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('current_pet_id', sa.Integer(), nullable=True),
        sa.Column('current_appointment_id', sa.Integer(), nullable=True),
        sa.Column('check_in_date', sa.Date(), nullable=True),
        sa.Column('check_out_date', sa.Date(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['current_pet_id'], ['pets.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('cage_number'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'appointments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('service_id', sa.Integer(), nullable=False),
        sa.Column('cage_id', sa.Integer(), nullable=True),
        sa.Column('appointment_date', sa.Date(), nullable=False),
        sa.Column('appointment_time', sa.Time(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending'),
        sa.Column('payment_method', sa.String(length=32), nullable=False),
        sa.Column('total_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('receipt_url', sa.String(length=500), nullable=True),
        sa.Column('receipt_verified', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('receipt_verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('receipt_verified_by', sa.Integer(), nullable=True),
        sa.Column('check_in_date', sa.Date(), nullable=True),
        sa.Column('check_out_date', sa.Date(), nullable=True),
        sa.Column('boarding_days', sa.Integer(), nullable=True),
        sa.Column('boarding_id_url', sa.String(length=500), nullable=True),
        sa.Column('boarding_id_verified', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('boarding_id_verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('boarding_id_verified_by', sa.Integer(), nullable=True),
        sa.Column('boarding_id_rejection_reason', sa.Text(), nullable=True),
        sa.Column('boarding_signature_url', sa.String(length=500), nullable=True),
        sa.Column('boarding_signature_verified', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('boarding_signature_verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('boarding_signature_verified_by', sa.Integer(), nullable=True),
        sa.Column('boarding_signature_rejection_reason', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['service_id'], ['services.id'], ),
        sa.ForeignKeyConstraint(['cage_id'], ['cages.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['receipt_verified_by'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['boarding_id_verified_by'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['boarding_signature_verified_by'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_appointments_user_id', 'appointments', ['user_id'])
    op.create_index('ix_appointments_appointment_date', 'appointments', ['appointment_date'])
    op.create_index('ix_appointments_user_status', 'appointments', ['user_id', 'status'])

    with op.batch_alter_table('cages') as batch_op:
        batch_op.create_foreign_key(
            'fk_cages_current_appointment', 'appointments',
            ['current_appointment_id'], ['id'], ondelete='SET NULL'
        )

    op.create_table(
        'appointment_pets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('appointment_id', sa.Integer(), nullable=False),
        sa.Column('pet_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['pet_id'], ['pets.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('appointment_id', 'pet_id', name='uq_appointment_pets'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_appointment_pets_appointment_id', 'appointment_pets', ['appointment_id'])
    op.create_index('ix_appointment_pets_pet_id', 'appointment_pets', ['pet_id'])

    # WHY status index: availability checks filter on (cage_id, status) for every search
    op.create_table(
        'cage_reservations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('cage_id', sa.Integer(), nullable=False),
        sa.Column('appointment_id', sa.Integer(), nullable=False),
        sa.Column('pet_id', sa.Integer(), nullable=True),
        sa.Column('check_in_date', sa.Date(), nullable=False),
        sa.Column('check_out_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='reserved'),
        sa.Column('total_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('special_instructions', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['cage_id'], ['cages.id'], ),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['pet_id'], ['pets.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_cage_reservations_cage_id', 'cage_reservations', ['cage_id'])
    op.create_index('ix_cage_reservations_appointment_id', 'cage_reservations', ['appointment_id'])
    op.create_index('ix_cage_reservations_cage_status', 'cage_reservations', ['cage_id', 'status'])

    op.create_table(
        'medical_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('pet_id', sa.Integer(), nullable=False),
        sa.Column('appointment_id', sa.Integer(), nullable=True),
        sa.Column('veterinarian_id', sa.Integer(), nullable=True),
        sa.Column('diagnosis', sa.Text(), nullable=False),
        sa.Column('treatment', sa.Text(), nullable=True),
        sa.Column('prescription', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('record_date', sa.Date(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['pet_id'], ['pets.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['veterinarian_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_medical_records_pet_id', 'medical_records', ['pet_id'])
    op.create_index('ix_medical_records_appointment_id', 'medical_records', ['appointment_id'])

    # ============================================================================
    # Orders and the payment ledger
    # ============================================================================
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('customer_name', sa.String(length=200), nullable=True),
        sa.Column('customer_email', sa.String(length=255), nullable=True),
        sa.Column('customer_phone', sa.String(length=32), nullable=True),
        sa.Column('shipping_address', sa.Text(), nullable=True),
        sa.Column('payment_method', sa.String(length=32), nullable=False),
        sa.Column('subtotal', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('shipping_fee', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('receipt_url', sa.String(length=500), nullable=True),
        sa.Column('receipt_verified', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('receipt_verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('receipt_verified_by', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['receipt_verified_by'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_user_status', 'orders', ['user_id', 'status'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('transaction_type', sa.String(length=32), nullable=False),
        sa.Column('appointment_id', sa.Integer(), nullable=True),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('payment_method', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('transaction_date', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transactions_user_id', 'transactions', ['user_id'])
    op.create_index('ix_transactions_appointment_id', 'transactions', ['appointment_id'])
    op.create_index('ix_transactions_order_id', 'transactions', ['order_id'])
    op.create_index('ix_transactions_user_date', 'transactions', ['user_id', 'transaction_date'])

    # ============================================================================
    # Notifications and outbound mail
    # ============================================================================
    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False, server_default='info'),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('related_type', sa.String(length=32), nullable=True),
        sa.Column('related_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_user_read', 'notifications', ['user_id', 'is_read'])

    op.create_table(
        'email_outbox',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('to_address', sa.String(length=255), nullable=False),
        sa.Column('subject', sa.String(length=255), nullable=False),
        sa.Column('html_body', sa.Text(), nullable=False),
        sa.Column('text_body', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_email_outbox_status', 'email_outbox', ['status'])


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('email_outbox')
    op.drop_table('notifications')
    op.drop_table('transactions')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('medical_records')
    op.drop_table('cage_reservations')
    op.drop_table('appointment_pets')
    with op.batch_alter_table('cages') as batch_op:
        batch_op.drop_constraint('fk_cages_current_appointment', type_='foreignkey')
    op.drop_table('appointments')
    op.drop_table('cages')
    op.drop_table('products')
    op.drop_table('services')
    op.drop_table('categories')
    op.drop_table('pets')
    op.drop_table('password_resets')
    op.drop_table('security_events')
    op.drop_table('session_tokens')
    op.drop_table('users')
