"""initial_schema

Revision ID: 3f2c9d1a7b40
Revises:
Create Date: 2025-09-02 10:14:31.204187

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f2c9d1a7b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


order_status = sa.Enum(
    'PENDING', 'PROVISIONING', 'ACTIVE', 'SUSPENDED', 'PAYMENT_FAILED',
    'CANCELLED', 'FAILED', 'DELETED', 'ARCHIVED',
    name='orderstatus',
)
suspension_reason = sa.Enum('BILLING', 'MANUAL', name='suspensionreason')
invoice_status = sa.Enum('OPEN', 'PAID', 'FAILED', name='invoicestatus')
app_role = sa.Enum('ADMIN', 'MODERATOR', 'USER', name='approle')


def upgrade() -> None:
    op.create_table(
        'profiles',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('full_name', sa.String(), nullable=True),
        sa.Column('stripe_customer_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_profiles_user_id', 'profiles', ['user_id'], unique=True)
    op.create_index('ix_profiles_email', 'profiles', ['email'])
    op.create_index('ix_profiles_stripe_customer_id', 'profiles', ['stripe_customer_id'], unique=True)

    op.create_table(
        'user_roles',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('role', app_role, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('user_id', 'role', name='uq_user_roles_user_role'),
    )
    op.create_index('ix_user_roles_user_id', 'user_roles', ['user_id'])

    op.create_table(
        'products',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('slug', sa.String(), nullable=False, unique=True),
        sa.Column('category', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('stripe_product_id', sa.String(), nullable=True),
        sa.Column('egg_id', sa.Integer(), nullable=True),
        sa.Column('nest_id', sa.Integer(), nullable=True),
        sa.Column('docker_image', sa.String(), nullable=True),
        sa.Column('startup_command', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'product_plans',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('product_id', sa.String(length=36), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('ram', sa.Integer(), nullable=False),
        sa.Column('cpu', sa.Integer(), nullable=False),
        sa.Column('disk', sa.Integer(), nullable=False),
        sa.Column('databases', sa.Integer(), nullable=False),
        sa.Column('backups', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('stripe_price_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_product_plans_product_id', 'product_plans', ['product_id'])

    op.create_table(
        'product_variants',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('product_id', sa.String(length=36), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('is_default', sa.Boolean(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('egg_id', sa.Integer(), nullable=True),
        sa.Column('nest_id', sa.Integer(), nullable=True),
        sa.Column('docker_image', sa.String(), nullable=True),
        sa.Column('startup_command', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_product_variants_product_id', 'product_variants', ['product_id'])

    op.create_table(
        'orders',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('display_id', sa.String(length=32), nullable=False, unique=True),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('product_name', sa.String(), nullable=False),
        sa.Column('product_type', sa.String(), nullable=False),
        sa.Column('plan_name', sa.String(), nullable=False),
        sa.Column('variant_id', sa.String(length=36), nullable=True),
        sa.Column('variant_name', sa.String(), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('next_billing_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('pterodactyl_server_id', sa.Integer(), nullable=True),
        sa.Column('pterodactyl_identifier', sa.String(length=8), nullable=True),
        sa.Column('stripe_subscription_id', sa.String(), nullable=True),
        sa.Column('stripe_checkout_session_id', sa.String(), nullable=True, unique=True),
        sa.Column('status', order_status, nullable=False),
        sa.Column('suspension_reason', suspension_reason, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_pterodactyl_server_id', 'orders', ['pterodactyl_server_id'])
    op.create_index('ix_orders_pterodactyl_identifier', 'orders', ['pterodactyl_identifier'])
    op.create_index('ix_orders_stripe_subscription_id', 'orders', ['stripe_subscription_id'])

    op.create_table(
        'invoices',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('order_id', sa.String(length=36), sa.ForeignKey('orders.id'), nullable=True),
        sa.Column('stripe_invoice_id', sa.String(), nullable=False, unique=True),
        sa.Column('stripe_payment_intent_id', sa.String(), nullable=True),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', invoice_status, nullable=False),
        sa.Column('invoice_pdf_url', sa.String(), nullable=True),
        sa.Column('hosted_invoice_url', sa.String(), nullable=True),
        sa.Column('period_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('period_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_invoices_user_id', 'invoices', ['user_id'])

    op.create_table(
        'webhook_events',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('event_id', sa.String(length=255), nullable=False, unique=True),
        sa.Column('event_type', sa.String(length=255), nullable=False),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    op.drop_table('webhook_events')
    op.drop_index('ix_invoices_user_id', table_name='invoices')
    op.drop_table('invoices')
    op.drop_index('ix_orders_stripe_subscription_id', table_name='orders')
    op.drop_index('ix_orders_pterodactyl_identifier', table_name='orders')
    op.drop_index('ix_orders_pterodactyl_server_id', table_name='orders')
    op.drop_index('ix_orders_user_id', table_name='orders')
    op.drop_table('orders')
    op.drop_index('ix_product_variants_product_id', table_name='product_variants')
    op.drop_table('product_variants')
    op.drop_index('ix_product_plans_product_id', table_name='product_plans')
    op.drop_table('product_plans')
    op.drop_table('products')
    op.drop_index('ix_user_roles_user_id', table_name='user_roles')
    op.drop_table('user_roles')
    op.drop_index('ix_profiles_stripe_customer_id', table_name='profiles')
    op.drop_index('ix_profiles_email', table_name='profiles')
    op.drop_index('ix_profiles_user_id', table_name='profiles')
    op.drop_table('profiles')
    order_status.drop(op.get_bind(), checkfirst=True)
    suspension_reason.drop(op.get_bind(), checkfirst=True)
    invoice_status.drop(op.get_bind(), checkfirst=True)
    app_role.drop(op.get_bind(), checkfirst=True)
