from alembic import op
import sqlalchemy as sa

revision = '0001_init'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        'vendors',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('business_name', sa.String(200), nullable=False),
        sa.Column('commission', sa.Numeric(5, 2), nullable=False, server_default='10'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('total_orders', sa.Integer, nullable=False, server_default='0'),
        sa.Column('total_revenue', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('pending_payment', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.CheckConstraint('commission >= 0 AND commission <= 100', name='ck_vendors_commission_range'),
    )
    op.create_table(
        'products',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('vendor_id', sa.Integer, sa.ForeignKey('vendors.id'), nullable=False, index=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('images', sa.JSON, nullable=False),
        sa.Column('mrp', sa.Numeric(12, 2), nullable=False),
        sa.Column('selling_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('vendor_discount', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('website_discount', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('total_sold', sa.Integer, nullable=False, server_default='0'),
    )
    op.create_table(
        'product_variants',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('product_id', sa.Integer, sa.ForeignKey('products.id'), nullable=False, index=True),
        sa.Column('size', sa.String(20), nullable=False),
        sa.Column('color', sa.String(50), nullable=False),
        sa.Column('stock', sa.Integer, nullable=False, server_default='0'),
        sa.Column('sku', sa.String(50), nullable=False),
        sa.UniqueConstraint('product_id', 'size', 'color', name='uq_product_variants_size_color'),
        sa.CheckConstraint('stock >= 0', name='ck_product_variants_stock_non_negative'),
    )
    op.create_table(
        'carts',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('customer_id', sa.Integer, nullable=False, unique=True, index=True),
        sa.Column('updated_at', sa.DateTime, nullable=False),
    )
    op.create_table(
        'cart_items',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('cart_id', sa.Integer, sa.ForeignKey('carts.id'), nullable=False),
        sa.Column('product_id', sa.Integer, nullable=False),
        sa.Column('size', sa.String(20), nullable=False),
        sa.Column('color', sa.String(50), nullable=False),
        sa.Column('quantity', sa.Integer, nullable=False, server_default='1'),
    )
    op.create_table(
        'coupons',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('code', sa.String(50), nullable=False, unique=True, index=True),
        sa.Column('description', sa.String(255), nullable=False, server_default=''),
        sa.Column('discount_type', sa.String(20), nullable=False),
        sa.Column('discount_value', sa.Numeric(12, 2), nullable=False),
        sa.Column('min_order_value', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('max_discount', sa.Numeric(12, 2), nullable=True),
        sa.Column('valid_from', sa.DateTime, nullable=False),
        sa.Column('valid_until', sa.DateTime, nullable=False),
        sa.Column('usage_limit', sa.Integer, nullable=True),
        sa.Column('used_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
    )
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('order_id', sa.String(30), nullable=False, unique=True, index=True),
        sa.Column('customer_id', sa.Integer, nullable=False, index=True),
        sa.Column('shipping_address', sa.JSON, nullable=False),
        sa.Column('billing_address', sa.JSON, nullable=False),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('shipping_charges', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('coupon_code', sa.String(50), nullable=True),
        sa.Column('coupon_discount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total', sa.Numeric(12, 2), nullable=False),
        sa.Column('payment_method', sa.String(20), nullable=False),
        sa.Column('payment_status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('gateway_order_id', sa.String(100), nullable=True, index=True),
        sa.Column('gateway_payment_id', sa.String(100), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('estimated_delivery', sa.DateTime, nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=False),
    )
    op.create_table(
        'vendor_payments',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('vendor_id', sa.Integer, sa.ForeignKey('vendors.id'), nullable=False, index=True),
        sa.Column('period_from', sa.DateTime, nullable=False),
        sa.Column('period_to', sa.DateTime, nullable=False),
        sa.Column('gross_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('commission', sa.Numeric(12, 2), nullable=False),
        sa.Column('deductions', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('net_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('transaction_id', sa.String(100), nullable=True),
        sa.Column('paid_at', sa.DateTime, nullable=True),
        sa.Column('remarks', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False),
    )
    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('order_id', sa.Integer, sa.ForeignKey('orders.id'), nullable=False, index=True),
        sa.Column('product_id', sa.Integer, sa.ForeignKey('products.id'), nullable=False),
        sa.Column('vendor_id', sa.Integer, sa.ForeignKey('vendors.id'), nullable=False, index=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('image', sa.String(500), nullable=True),
        sa.Column('size', sa.String(20), nullable=False),
        sa.Column('color', sa.String(50), nullable=False),
        sa.Column('sku', sa.String(50), nullable=True),
        sa.Column('quantity', sa.Integer, nullable=False),
        sa.Column('mrp', sa.Numeric(12, 2), nullable=False),
        sa.Column('selling_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('vendor_discount', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('website_discount', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('final_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('commission', sa.Numeric(12, 2), nullable=False),
        sa.Column('vendor_earning', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('tracking_id', sa.String(100), nullable=True),
        sa.Column('delivered_at', sa.DateTime, nullable=True),
        sa.Column('stock_restored', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('vendor_payment_id', sa.Integer, sa.ForeignKey('vendor_payments.id'), nullable=True, index=True),
    )

def downgrade():
    op.drop_table('order_items')
    op.drop_table('vendor_payments')
    op.drop_table('orders')
    op.drop_table('coupons')
    op.drop_table('cart_items')
    op.drop_table('carts')
    op.drop_table('product_variants')
    op.drop_table('products')
    op.drop_table('vendors')
