"""initial storefront schema

Revision ID: 0001_storefront
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the storefront order lifecycle schema from scratch:
- products / stock_reservations: Stock ledger and advisory checkout holds
- orders: One row per order, lifecycle state in the indexed `partition` column
- order_events: Append-only audit log (no FK, survives purges)
- cancellation_requests / return_requests / returned_orders: Request workflows
- notifications: Staff and customer notifications
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_storefront'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """
    Create all storefront tables.

    WHY: Lifecycle state is a column, not a table per state, so an order id
    can only ever be in one state at a time.
    """

    # ============================================================================
    # products: Catalog and authoritative stock figure
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=120), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('image_url', sa.String(length=500), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=True),
        sa.Column('stock_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('stock_quantity >= 0', name='ck_products_stock_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_category', 'products', ['category'])
    op.create_index('ix_products_active_category', 'products', ['is_active', 'category'])

    # ============================================================================
    # stock_reservations: Advisory holds, swept when expired
    # ============================================================================
    op.create_table(
        'stock_reservations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('reservation_id', sa.String(length=128), nullable=False),
        sa.Column('items', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reservation_id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_reservations_status_expires', 'stock_reservations', ['status', 'expires_at'])

    # ============================================================================
    # orders: Every order, every lifecycle state
    # ============================================================================
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('partition', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('order_number', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('phone_number', sa.String(length=64), nullable=True),
        sa.Column('items', sa.JSON(), nullable=False),
        sa.Column('address', sa.JSON(), nullable=True),
        sa.Column('payment_method', sa.String(length=64), nullable=True),
        sa.Column('payment_type', sa.String(length=64), nullable=True),
        sa.Column('payment_split_percent', sa.Integer(), nullable=True),
        sa.Column('payment_reference', sa.String(length=255), nullable=True),
        sa.Column('payment_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('change_upon_delivery', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('proof_of_payment', sa.Text(), nullable=True),
        sa.Column('payment_verified', sa.Boolean(), nullable=True),
        sa.Column('payment_verified_by', sa.String(length=255), nullable=True),
        sa.Column('payment_verification_notes', sa.Text(), nullable=True),
        sa.Column('payment_verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('delivery_fee_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='active'),
        sa.Column('display_status', sa.String(length=32), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('source', sa.String(length=32), nullable=False, server_default='checkout_page'),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('denied_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('denial_reason', sa.Text(), nullable=True),
        sa.Column('returned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('return_reason', sa.Text(), nullable=True),
        sa.Column('return_image', sa.Text(), nullable=True),
        sa.Column('return_image_uploaded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('return_processed_by', sa.String(length=255), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('cancellation_request_id', sa.Integer(), nullable=True),
        sa.Column('order_date', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('last_modified_by', sa.String(length=255), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_orders_partition', 'orders', ['partition'])
    op.create_index('ix_orders_partition_created', 'orders', ['partition', 'created_at'])
    op.create_index('ix_orders_partition_user', 'orders', ['partition', 'user_id'])
    op.create_index('ix_orders_partition_email', 'orders', ['partition', 'email'])

    # ============================================================================
    # order_events: Append-only lifecycle audit log
    # ============================================================================
    op.create_table(
        'order_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('order_number', sa.String(length=64), nullable=True),
        sa.Column('event_type', sa.String(length=32), nullable=False),
        sa.Column('from_partition', sa.String(length=16), nullable=True),
        sa.Column('to_partition', sa.String(length=16), nullable=True),
        sa.Column('operation', sa.String(length=64), nullable=True),
        sa.Column('actor', sa.String(length=255), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_order_events_order_number', 'order_events', ['order_number'])
    op.create_index('ix_order_events_event_type', 'order_events', ['event_type'])
    op.create_index('ix_order_events_order_occurred', 'order_events', ['order_id', 'occurred_at'])

    # ============================================================================
    # cancellation_requests: Frozen order snapshot awaiting staff decision
    # ============================================================================
    op.create_table(
        'cancellation_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('original_order_id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(length=64), nullable=True),
        sa.Column('user_id', sa.String(length=64), nullable=True),
        sa.Column('user_id_string', sa.String(length=64), nullable=True),
        sa.Column('user_id_number', sa.BigInteger(), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('customer_email', sa.String(length=255), nullable=True),
        sa.Column('customer_phone', sa.String(length=64), nullable=True),
        sa.Column('order_snapshot', sa.JSON(), nullable=False),
        sa.Column('source_partition', sa.String(length=16), nullable=False),
        sa.Column('original_order_status', sa.String(length=32), nullable=True),
        sa.Column('original_order_total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('original_order_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('additional_comments', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending_review'),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('submitted_by', sa.String(length=255), nullable=False, server_default='customer'),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processed_by', sa.String(length=255), nullable=True),
        sa.Column('staff_notes', sa.Text(), nullable=True),
        sa.Column('cancelled_order_id', sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_cancellation_requests_original_order_id', 'cancellation_requests', ['original_order_id'])
    op.create_index('ix_cancellation_requests_user_id_string', 'cancellation_requests', ['user_id_string'])
    op.create_index('ix_cancellation_requests_user_id_number', 'cancellation_requests', ['user_id_number'])
    op.create_index('ix_cancellation_requests_customer_email', 'cancellation_requests', ['customer_email'])
    op.create_index('ix_cancellation_requests_status_submitted', 'cancellation_requests',
                    ['status', 'submitted_at'])

    # ============================================================================
    # return_requests: Open return/exchange requests (deleted when decided)
    # ============================================================================
    op.create_table(
        'return_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('original_order_id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(length=64), nullable=True),
        sa.Column('user_id', sa.String(length=64), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('customer_email', sa.String(length=255), nullable=True),
        sa.Column('customer_phone', sa.String(length=64), nullable=True),
        sa.Column('return_type', sa.String(length=16), nullable=False),
        sa.Column('selected_items', sa.JSON(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('additional_comments', sa.Text(), nullable=True),
        sa.Column('return_image', sa.Text(), nullable=True),
        sa.Column('original_order_total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('original_order_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('source_partition', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending_review'),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('submitted_by', sa.String(length=255), nullable=False, server_default='customer'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_return_requests_original_order_id', 'return_requests', ['original_order_id'])
    op.create_index('ix_return_requests_submitted_at', 'return_requests', ['submitted_at'])

    # ============================================================================
    # returned_orders: Archive of decided return requests
    # ============================================================================
    op.create_table(
        'returned_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('request_id', sa.Integer(), nullable=False),
        sa.Column('staff_decision', sa.String(length=16), nullable=False),
        sa.Column('action', sa.String(length=16), nullable=False),
        sa.Column('staff_notes', sa.Text(), nullable=True),
        sa.Column('staff_decision_image', sa.Text(), nullable=True),
        sa.Column('original_order_id', sa.Integer(), nullable=True),
        sa.Column('original_order_partition', sa.String(length=16), nullable=True),
        sa.Column('user_id', sa.String(length=64), nullable=True),
        sa.Column('order_number', sa.String(length=64), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('customer_email', sa.String(length=255), nullable=True),
        sa.Column('customer_phone', sa.String(length=64), nullable=True),
        sa.Column('return_type', sa.String(length=16), nullable=False, server_default='return'),
        sa.Column('customer_reason', sa.Text(), nullable=True),
        sa.Column('selected_items', sa.JSON(), nullable=False),
        sa.Column('customer_image', sa.Text(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('processed_by', sa.String(length=255), nullable=False, server_default='staff'),
        sa.Column('request_snapshot', sa.JSON(), nullable=False),
        sa.Column('original_order_snapshot', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_returned_orders_request_id', 'returned_orders', ['request_id'])
    op.create_index('ix_returned_orders_original_order_id', 'returned_orders', ['original_order_id'])
    op.create_index('ix_returned_orders_processed', 'returned_orders', ['processed_at'])

    # ============================================================================
    # notifications: Staff feed and customer inbox
    # ============================================================================
    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('audience', sa.String(length=16), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=True),
        sa.Column('type', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('priority', sa.String(length=16), nullable=False, server_default='medium'),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('request_id', sa.Integer(), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_notifications_audience_read', 'notifications', ['audience', 'read', 'created_at'])
    op.create_index('ix_notifications_user', 'notifications', ['user_id', 'created_at'])


def downgrade():
    """Drop every storefront table."""
    op.drop_table('notifications')
    op.drop_table('returned_orders')
    op.drop_table('return_requests')
    op.drop_table('cancellation_requests')
    op.drop_table('order_events')
    op.drop_table('orders')
    op.drop_table('stock_reservations')
    op.drop_table('products')
