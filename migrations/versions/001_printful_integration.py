"""printful_integration

Revision ID: 001
Revises:
Create Date: 2026-10-19 12:00:00

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def _uuid_pk():
    return sa.Column('id', postgresql.UUID(as_uuid=False), server_default=sa.text('gen_random_uuid()'), nullable=False)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade():
    op.execute('CREATE EXTENSION IF NOT EXISTS pgcrypto')

    op.create_table(
        'products',
        _uuid_pk(),
        sa.Column('printful_id', sa.BigInteger(), nullable=True),
        sa.Column('printful_external_id', sa.Text(), nullable=True),
        sa.Column('printful_synced', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('slug', sa.Text(), nullable=False),
        sa.Column('thumbnail_url', sa.Text(), nullable=True),
        sa.Column('published_status', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=True),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('printful_id', name='uq_products_printful_id'),
        sa.UniqueConstraint('slug', name='uq_products_slug'),
    )

    op.create_table(
        'product_variants',
        _uuid_pk(),
        sa.Column('product_id', postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column('printful_id', sa.BigInteger(), nullable=False),
        sa.Column('printful_external_id', sa.Text(), nullable=True),
        sa.Column('printful_product_id', sa.BigInteger(), nullable=True),
        sa.Column('printful_catalog_variant_id', sa.BigInteger(), nullable=True),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('sku', sa.Text(), nullable=True),
        sa.Column('retail_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('currency', sa.Text(), server_default='USD', nullable=False),
        sa.Column('options', postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column('files', postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column('in_stock', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('printful_id', name='uq_product_variants_printful_id'),
    )
    op.create_index('ix_product_variants_product_id', 'product_variants', ['product_id'])

    op.create_table(
        'printful_sync_history',
        sa.Column('id', sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column('sync_type', sa.Text(), nullable=False),
        sa.Column('sync_scope', sa.Text(), server_default='products', nullable=False),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('products_synced', sa.Integer(), server_default='0', nullable=False),
        sa.Column('products_failed', sa.Integer(), server_default='0', nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint("sync_type IN ('full', 'scheduled', 'webhook')", name='ck_sync_history_type'),
        sa.CheckConstraint("status IN ('success', 'partial', 'failed')", name='ck_sync_history_status'),
    )
    op.create_index('ix_sync_history_scope_completed', 'printful_sync_history', ['sync_scope', 'completed_at'])

    op.create_table(
        'printful_product_changes',
        sa.Column('id', sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column('product_id', postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column('variant_id', postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column('printful_product_id', sa.BigInteger(), nullable=True),
        sa.Column('change_type', sa.Text(), nullable=False),
        sa.Column('severity', sa.Text(), nullable=False),
        sa.Column('field_name', sa.Text(), nullable=False),
        sa.Column('old_value', sa.Text(), nullable=True),
        sa.Column('new_value', sa.Text(), nullable=True),
        sa.Column('sync_history_id', sa.BigInteger(), nullable=True),
        sa.Column('status', sa.Text(), server_default='pending_review', nullable=False),
        sa.Column('reviewed_by', sa.Text(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['sync_history_id'], ['printful_sync_history.id'], ondelete='SET NULL'),
        sa.CheckConstraint(
            "change_type IN ('price', 'inventory', 'metadata', 'image', 'variant', 'other')",
            name='ck_product_changes_type',
        ),
        sa.CheckConstraint("severity IN ('critical', 'standard', 'minor')", name='ck_product_changes_severity'),
        sa.CheckConstraint(
            "status IN ('pending_review', 'approved', 'rejected', 'applied')",
            name='ck_product_changes_status',
        ),
    )
    op.create_index('ix_product_changes_status_created', 'printful_product_changes', ['status', 'created_at'])

    op.create_table(
        'printful_category_mapping',
        sa.Column('id', sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column('printful_category_id', sa.BigInteger(), nullable=False),
        sa.Column('printful_category_name', sa.Text(), nullable=False),
        sa.Column('parent_printful_id', sa.BigInteger(), nullable=True),
        sa.Column('local_category_id', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('printful_category_id', name='uq_category_mapping_printful_id'),
    )

    op.create_table(
        'printful_mockup_tasks',
        sa.Column('id', postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column('variant_id', sa.Text(), nullable=False),
        sa.Column('printful_product_id', sa.BigInteger(), nullable=False),
        sa.Column('printful_variant_id', sa.BigInteger(), nullable=False),
        sa.Column('printful_external_id', sa.Text(), nullable=True),
        sa.Column('view', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('retry_after', sa.DateTime(timezone=True), nullable=True),
        sa.Column('result', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'error', 'rate_limited')",
            name='ck_mockup_tasks_status',
        ),
    )
    op.create_index('ix_mockup_tasks_variant_status', 'printful_mockup_tasks', ['variant_id', 'status'])

    op.create_table(
        'orders',
        _uuid_pk(),
        sa.Column('status', sa.Text(), server_default='pending', nullable=False),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('phone', sa.Text(), nullable=True),
        sa.Column('shipping_name', sa.Text(), nullable=True),
        sa.Column('shipping_address1', sa.Text(), nullable=True),
        sa.Column('shipping_address2', sa.Text(), nullable=True),
        sa.Column('shipping_city', sa.Text(), nullable=True),
        sa.Column('shipping_state', sa.Text(), nullable=True),
        sa.Column('shipping_postal_code', sa.Text(), nullable=True),
        sa.Column('shipping_country', sa.Text(), nullable=True),
        sa.Column('currency', sa.Text(), server_default='USD', nullable=False),
        sa.Column('subtotal', sa.Numeric(10, 2), server_default='0', nullable=False),
        sa.Column('shipping_cost', sa.Numeric(10, 2), server_default='0', nullable=False),
        sa.Column('tax_amount', sa.Numeric(10, 2), server_default='0', nullable=False),
        sa.Column('total', sa.Numeric(10, 2), server_default='0', nullable=False),
        sa.Column('printful_order_id', sa.BigInteger(), nullable=True),
        sa.Column('printful_external_id', sa.Text(), nullable=True),
        sa.Column('printful_status', sa.Text(), nullable=True),
        sa.Column('tracking_number', sa.Text(), nullable=True),
        sa.Column('tracking_url', sa.Text(), nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('submission_error', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('printful_external_id', name='uq_orders_printful_external_id'),
        sa.CheckConstraint(
            "status IN ('pending', 'paid', 'processing', 'shipped', 'delivered', "
            "'cancelled', 'refunded', 'submission_failed')",
            name='ck_orders_status',
        ),
    )

    op.create_table(
        'order_items',
        sa.Column('id', sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column('order_id', postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column('variant_id', postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('quantity', sa.Integer(), server_default='1', nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id']),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    op.create_table(
        'webhook_logs',
        sa.Column('id', sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column('source', sa.Text(), nullable=False),
        sa.Column('event_type', sa.Text(), nullable=False),
        sa.Column('event_id', sa.Text(), nullable=True),
        sa.Column('order_id', postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('payload', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_webhook_logs_source_event', 'webhook_logs', ['source', 'event_id'])


def downgrade():
    op.drop_index('ix_webhook_logs_source_event', table_name='webhook_logs')
    op.drop_table('webhook_logs')
    op.drop_index('ix_order_items_order_id', table_name='order_items')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_index('ix_mockup_tasks_variant_status', table_name='printful_mockup_tasks')
    op.drop_table('printful_mockup_tasks')
    op.drop_table('printful_category_mapping')
    op.drop_index('ix_product_changes_status_created', table_name='printful_product_changes')
    op.drop_table('printful_product_changes')
    op.drop_index('ix_sync_history_scope_completed', table_name='printful_sync_history')
    op.drop_table('printful_sync_history')
    op.drop_index('ix_product_variants_product_id', table_name='product_variants')
    op.drop_table('product_variants')
    op.drop_table('products')
