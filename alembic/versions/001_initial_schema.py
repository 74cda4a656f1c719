"""Initial schema - businesses, wallets, partners, orders and the address book

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        'businesses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('wallet_balance', sa.BigInteger(), server_default='0', nullable=False),
        sa.Column('wallet_threshold', sa.BigInteger(), server_default='0', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_businesses_id', 'businesses', ['id'])
    op.create_index('ix_businesses_email', 'businesses', ['email'])

    op.create_table(
        'logistics_partners',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('display_name', sa.String(length=100), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_logistics_partners_id', 'logistics_partners', ['id'])
    op.create_index('ix_logistics_partners_name', 'logistics_partners', ['name'], unique=True)

    op.create_table(
        'wallet_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=10), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('balance_after', sa.BigInteger(), nullable=False),
        sa.Column('reference', sa.String(length=100), nullable=True),
        sa.Column('details', JSONType, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_wallet_transactions_business_id', 'wallet_transactions', ['business_id'])
    op.create_index('ix_wallet_transactions_reference', 'wallet_transactions', ['reference'])

    op.create_table(
        'delivery_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('partner_id', sa.Integer(), nullable=True),
        sa.Column('provider_key', sa.String(length=50), nullable=False),
        sa.Column('customer_facing_order_id', sa.String(length=64), nullable=False),
        sa.Column('external_order_id', sa.String(length=255), nullable=True),
        sa.Column('tracking_ref', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=100), nullable=False),
        sa.Column('delivery_cost', JSONType, nullable=False),
        sa.Column('request_snapshot', JSONType, nullable=False),
        sa.Column('provider_response_snapshot', JSONType, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id']),
        sa.ForeignKeyConstraint(['partner_id'], ['logistics_partners.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_delivery_orders_id', 'delivery_orders', ['id'])
    op.create_index('ix_delivery_orders_business_id', 'delivery_orders', ['business_id'])
    op.create_index('ix_delivery_orders_partner_id', 'delivery_orders', ['partner_id'])
    op.create_index('ix_delivery_orders_provider_key', 'delivery_orders', ['provider_key'])
    op.create_index('ix_delivery_orders_customer_facing_order_id', 'delivery_orders', ['customer_facing_order_id'], unique=True)
    op.create_index('ix_delivery_orders_external_order_id', 'delivery_orders', ['external_order_id'])
    op.create_index('ix_delivery_orders_tracking_ref', 'delivery_orders', ['tracking_ref'])

    op.create_table(
        'address_book_map',
        sa.Column('address_hash', sa.String(length=64), nullable=False),
        sa.Column('formatted_address', sa.String(), nullable=False),
        sa.Column('phone_number', sa.String(length=32), nullable=True),
        sa.Column('provider_address_id', sa.String(length=255), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('address_hash')
    )
    op.create_index('ix_address_book_map_updated_at', 'address_book_map', ['updated_at'])


def downgrade() -> None:
    op.drop_index('ix_address_book_map_updated_at', table_name='address_book_map')
    op.drop_table('address_book_map')
    op.drop_table('delivery_orders')
    op.drop_table('wallet_transactions')
    op.drop_table('logistics_partners')
    op.drop_table('businesses')
