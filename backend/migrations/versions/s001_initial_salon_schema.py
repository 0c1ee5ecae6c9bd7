"""initial salon schema

Revision ID: s001_initial
Revises:
Create Date: 2026-10-17 00:00:00.000000

Creates the complete SalonERP schema:
- locations, staff_members, staff_locations, users
- clients, service_categories, services, staff_services
- products, product_locations, inventory_audits, stock_transfers
- appointments, appointment_status_entries
- transactions, transaction_items

Stock truth is product_locations.stock; every mutation is mirrored by an
inventory_audits row.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 's001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade():
    # ============================================================================
    # locations: branches and sales channels
    # ============================================================================
    op.create_table(
        'locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('kind', sa.String(length=32), nullable=False, server_default='branch'),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('city', sa.String(length=120), nullable=True),
        sa.Column('state', sa.String(length=120), nullable=True),
        sa.Column('zip_code', sa.String(length=32), nullable=True),
        sa.Column('country', sa.String(length=120), nullable=True),
        sa.Column('phone', sa.String(length=64), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_locations_active_name', 'locations', ['is_active', 'name'])
    op.create_index('ix_locations_is_active', 'locations', ['is_active'])

    # ============================================================================
    # users / staff
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False, server_default='staff'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'staff_members',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('employee_number', sa.String(length=32), nullable=True),
        sa.Column('job_role', sa.String(length=64), nullable=False, server_default='stylist'),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='ACTIVE'),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('employee_number', name='uq_staff_employee_number'),
        sa.UniqueConstraint('user_id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_staff_members_status', 'staff_members', ['status'])

    op.create_table(
        'staff_locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('staff_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['staff_id'], ['staff_members.id'], ),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('staff_id', 'location_id', name='uq_staff_locations_staff_location'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_staff_locations_staff_id', 'staff_locations', ['staff_id'])
    op.create_index('ix_staff_locations_location_id', 'staff_locations', ['location_id'])

    # ============================================================================
    # clients and service catalog
    # ============================================================================
    op.create_table(
        'clients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=64), nullable=True),
        sa.Column('preferred_location_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['preferred_location_id'], ['locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_clients_name', 'clients', ['name'])
    op.create_index('ix_clients_email', 'clients', ['email'])

    op.create_table(
        'service_categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'services',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('duration', sa.Integer(), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['category_id'], ['service_categories.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_services_category_active', 'services', ['category_id', 'is_active'])
    op.create_index('ix_services_category_id', 'services', ['category_id'])

    op.create_table(
        'staff_services',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('staff_id', sa.Integer(), nullable=False),
        sa.Column('service_id', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['staff_id'], ['staff_members.id'], ),
        sa.ForeignKeyConstraint(['service_id'], ['services.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('staff_id', 'service_id', name='uq_staff_services_staff_service'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_staff_services_staff_id', 'staff_services', ['staff_id'])
    op.create_index('ix_staff_services_service_id', 'staff_services', ['service_id'])

    # ============================================================================
    # products and the stock ledger
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=120), nullable=True),
        sa.Column('type', sa.String(length=64), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cost_cents', sa.Integer(), nullable=True),
        sa.Column('is_retail', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku', name='uq_products_sku'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_category_active', 'products', ['category', 'is_active'])

    op.create_table(
        'product_locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'location_id', name='uq_product_locations_product_location'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_product_locations_product_id', 'product_locations', ['product_id'])
    op.create_index('ix_product_locations_location_id', 'product_locations', ['location_id'])

    op.create_table(
        'inventory_audits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('adjustment_type', sa.String(length=32), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('previous_stock', sa.Integer(), nullable=False),
        sa.Column('new_stock', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('reference', sa.String(length=64), nullable=True),
        sa.Column('performed_by', sa.String(length=255), nullable=False, server_default='system'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index(
        'ix_inventory_audits_product_location',
        'inventory_audits',
        ['product_id', 'location_id', 'created_at'],
    )
    op.create_index('ix_inventory_audits_adjustment_type', 'inventory_audits', ['adjustment_type'])
    op.create_index('ix_inventory_audits_reference', 'inventory_audits', ['reference'])

    op.create_table(
        'stock_transfers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('reference', sa.String(length=64), nullable=True),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('from_location_id', sa.Integer(), nullable=False),
        sa.Column('to_location_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='completed'),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=255), nullable=False, server_default='system'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['from_location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['to_location_id'], ['locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reference'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_transfers_product_created', 'stock_transfers', ['product_id', 'created_at'])

    # ============================================================================
    # appointments and their status history
    # ============================================================================
    op.create_table(
        'appointments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('booking_reference', sa.String(length=32), nullable=True),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('client_name', sa.String(length=255), nullable=True),
        sa.Column('staff_id', sa.Integer(), nullable=False),
        sa.Column('staff_name', sa.String(length=255), nullable=True),
        sa.Column('service_id', sa.Integer(), nullable=True),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False, server_default='appointment'),
        sa.Column('source', sa.String(length=32), nullable=False, server_default='staff'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=True),
        sa.Column('additional_services', sa.JSON(), nullable=False),
        sa.Column('products', sa.JSON(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.ForeignKeyConstraint(['staff_id'], ['staff_members.id'], ),
        sa.ForeignKeyConstraint(['service_id'], ['services.id'], ),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('booking_reference'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_appointments_staff_date', 'appointments', ['staff_id', 'date'])
    op.create_index('ix_appointments_location_date', 'appointments', ['location_id', 'date'])
    op.create_index('ix_appointments_client_date', 'appointments', ['client_id', 'date'])
    op.create_index('ix_appointments_status', 'appointments', ['status'])

    op.create_table(
        'appointment_status_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('appointment_id', sa.Integer(), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('updated_by', sa.String(length=255), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('appointment_id', 'sequence', name='uq_status_entries_appointment_sequence'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_appointment_status_entries_appointment_id', 'appointment_status_entries', ['appointment_id'])

    # ============================================================================
    # POS transactions (immutable after creation)
    # ============================================================================
    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('reference', sa.String(length=32), nullable=True),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('client_name', sa.String(length=255), nullable=True),
        sa.Column('staff_id', sa.Integer(), nullable=True),
        sa.Column('staff_name', sa.String(length=255), nullable=True),
        sa.Column('appointment_id', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('source', sa.String(length=32), nullable=False, server_default='pos'),
        sa.Column('payment_method', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='completed'),
        sa.Column('original_service_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('service_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('product_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount_percentage', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=255), nullable=False, server_default='system'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.ForeignKeyConstraint(['staff_id'], ['staff_members.id'], ),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reference'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transactions_location_created', 'transactions', ['location_id', 'created_at'])
    op.create_index('ix_transactions_type', 'transactions', ['type'])

    op.create_table(
        'transaction_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('item_type', sa.String(length=16), nullable=False),
        sa.Column('service_id', sa.Integer(), nullable=True),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('discount_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_price_cents', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id'], ),
        sa.ForeignKeyConstraint(['service_id'], ['services.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transaction_items_transaction_id', 'transaction_items', ['transaction_id'])


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('transaction_items')
    op.drop_table('transactions')
    op.drop_table('appointment_status_entries')
    op.drop_table('appointments')
    op.drop_table('stock_transfers')
    op.drop_table('inventory_audits')
    op.drop_table('product_locations')
    op.drop_table('products')
    op.drop_table('staff_services')
    op.drop_table('services')
    op.drop_table('service_categories')
    op.drop_table('clients')
    op.drop_table('staff_locations')
    op.drop_table('staff_members')
    op.drop_table('users')
    op.drop_table('locations')
