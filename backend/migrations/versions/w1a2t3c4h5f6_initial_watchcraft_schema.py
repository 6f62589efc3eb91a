"""initial watchcraft schema

Revision ID: w1a2t3c4h5f6
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the shop schema from scratch:
- inventory_items / inventory_movements: stock ledger with soft delete and
  an append-only outlet movement log
- customers: master data plus the derived account summary
- sales: single-item sales, amounts in cents
- services / service_notes / service_status_changes: repair tickets with
  append-only notes and status history
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'w1a2t3c4h5f6'
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
    # inventory_items: stock per item; quantity only moves via conditional UPDATE
    # ============================================================================
    op.create_table(
        'inventory_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('brand', sa.String(length=128), nullable=False),
        sa.Column('model', sa.String(length=128), nullable=False),
        sa.Column('size', sa.String(length=32), nullable=False, server_default='-'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('outlet', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='available'),
        sa.Column('total_sold', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_sale_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_by_user_id', sa.Integer(), nullable=True),
        sa.Column('added_by_user_id', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.CheckConstraint('quantity >= 0', name='ck_inventory_items_quantity_non_negative'),
        sa.PrimaryKeyConstraint('id', name='pk_inventory_items'),
        sa.UniqueConstraint('code', name='uq_inventory_items_code'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_items_type', 'inventory_items', ['type'])
    op.create_index('ix_inventory_items_outlet', 'inventory_items', ['outlet'])
    op.create_index('ix_inventory_items_status', 'inventory_items', ['status'])
    op.create_index('ix_inventory_items_is_deleted', 'inventory_items', ['is_deleted'])
    op.create_index('ix_inventory_items_brand_model', 'inventory_items', ['brand', 'model'])
    op.create_index('ix_inventory_items_outlet_status', 'inventory_items', ['outlet', 'status'])

    # ============================================================================
    # inventory_movements: append-only outlet log (from_outlet NULL = initial stock)
    # ============================================================================
    op.create_table(
        'inventory_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('from_outlet', sa.String(length=32), nullable=True),
        sa.Column('to_outlet', sa.String(length=32), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('moved_by_user_id', sa.Integer(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['item_id'], ['inventory_items.id'],
                                name='fk_inventory_movements_item_id_inventory_items'),
        sa.PrimaryKeyConstraint('id', name='pk_inventory_movements'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_movements_item_id', 'inventory_movements', ['item_id'])
    op.create_index('ix_inventory_movements_item_date', 'inventory_movements', ['item_id', 'date'])

    # ============================================================================
    # customers: master data + derived summary (rebuilt by recompute)
    # ============================================================================
    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=False),
        sa.Column('address', sa.String(length=500), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('purchases', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('service_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('net_value_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_purchase_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_service_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('added_by_user_id', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_customers'),
        sa.UniqueConstraint('email', name='uq_customers_email'),
        sa.UniqueConstraint('phone', name='uq_customers_phone'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_customers_status', 'customers', ['status'])
    op.create_index('ix_customers_name', 'customers', ['name'])
    op.create_index('ix_customers_status_net_value', 'customers', ['status', 'net_value_cents'])

    # ============================================================================
    # sales: one item per sale; amounts in cents, discount capped at subtotal
    # ============================================================================
    op.create_table(
        'sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('inventory_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('discount_type', sa.String(length=16), nullable=False, server_default='none'),
        sa.Column('discount_value', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='completed'),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('updated_by_user_id', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.CheckConstraint('quantity > 0', name='ck_sales_quantity_positive'),
        sa.CheckConstraint('discount_amount_cents <= subtotal_cents', name='ck_sales_discount_capped'),
        sa.CheckConstraint('total_amount_cents >= 0', name='ck_sales_total_non_negative'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'],
                                name='fk_sales_customer_id_customers'),
        sa.ForeignKeyConstraint(['inventory_id'], ['inventory_items.id'],
                                name='fk_sales_inventory_id_inventory_items'),
        sa.PrimaryKeyConstraint('id', name='pk_sales'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_customer_id', 'sales', ['customer_id'])
    op.create_index('ix_sales_inventory_id', 'sales', ['inventory_id'])
    op.create_index('ix_sales_status', 'sales', ['status'])
    op.create_index('ix_sales_created_at', 'sales', ['created_at'])
    op.create_index('ix_sales_customer_created', 'sales', ['customer_id', 'created_at'])
    op.create_index('ix_sales_payment_created', 'sales', ['payment_method', 'created_at'])

    # ============================================================================
    # services: repair tickets (only 'completed' counts toward net value)
    # ============================================================================
    op.create_table(
        'services',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('brand', sa.String(length=128), nullable=False),
        sa.Column('model', sa.String(length=128), nullable=False),
        sa.Column('dial_color', sa.String(length=64), nullable=False),
        sa.Column('movement_no', sa.String(length=64), nullable=False),
        sa.Column('gender', sa.String(length=16), nullable=False),
        sa.Column('case_type', sa.String(length=16), nullable=False),
        sa.Column('strap_type', sa.String(length=16), nullable=False),
        sa.Column('issue', sa.Text(), nullable=False),
        sa.Column('cost_cents', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('service_date', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('estimated_delivery', sa.DateTime(timezone=True), nullable=True),
        sa.Column('actual_delivery', sa.DateTime(timezone=True), nullable=True),
        sa.Column('final_cost_cents', sa.Integer(), nullable=True),
        sa.Column('warranty_period', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('completion_description', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('held_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.CheckConstraint('cost_cents >= 0', name='ck_services_cost_non_negative'),
        sa.CheckConstraint('warranty_period >= 0 AND warranty_period <= 60',
                           name='ck_services_warranty_range'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'],
                                name='fk_services_customer_id_customers'),
        sa.PrimaryKeyConstraint('id', name='pk_services'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_services_customer_id', 'services', ['customer_id'])
    op.create_index('ix_services_status', 'services', ['status'])
    op.create_index('ix_services_service_date', 'services', ['service_date'])
    op.create_index('ix_services_customer_status', 'services', ['customer_id', 'status'])
    op.create_index('ix_services_brand_model', 'services', ['brand', 'model'])

    op.create_table(
        'service_notes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('service_id', sa.Integer(), nullable=False),
        sa.Column('note', sa.Text(), nullable=False),
        sa.Column('added_by_user_id', sa.Integer(), nullable=True),
        sa.Column('added_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['service_id'], ['services.id'],
                                name='fk_service_notes_service_id_services'),
        sa.PrimaryKeyConstraint('id', name='pk_service_notes'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_service_notes_service_id', 'service_notes', ['service_id'])

    op.create_table(
        'service_status_changes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('service_id', sa.Integer(), nullable=False),
        sa.Column('from_status', sa.String(length=16), nullable=True),
        sa.Column('to_status', sa.String(length=16), nullable=False),
        sa.Column('changed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('changed_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['service_id'], ['services.id'],
                                name='fk_service_status_changes_service_id_services'),
        sa.PrimaryKeyConstraint('id', name='pk_service_status_changes'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_service_status_changes_service_id', 'service_status_changes', ['service_id'])


def downgrade():
    op.drop_table('service_status_changes')
    op.drop_table('service_notes')
    op.drop_table('services')
    op.drop_table('sales')
    op.drop_table('customers')
    op.drop_table('inventory_movements')
    op.drop_table('inventory_items')
