"""Initial schema - catalog, price history, links, listings, rollups

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    # Catalog
    op.create_table(
        'catalog_products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('provider', sa.String(length=32), nullable=False),
        sa.Column('provider_product_id', sa.String(length=128), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('sku_normalized', sa.String(length=64), nullable=False),
        sa.Column('brand', sa.String(), nullable=True),
        sa.Column('model', sa.String(), nullable=True),
        sa.Column('colorway', sa.String(), nullable=True),
        sa.Column('image_url', sa.String(), nullable=True),
        sa.Column('category', sa.String(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('sku', 'provider', name='uq_catalog_products_sku_provider'),
    )
    op.create_index(op.f('ix_catalog_products_provider_product_id'), 'catalog_products', ['provider_product_id'])
    op.create_index(op.f('ix_catalog_products_sku_normalized'), 'catalog_products', ['sku_normalized'])

    op.create_table(
        'catalog_variants',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('provider', sa.String(length=32), nullable=False),
        sa.Column('provider_product_id', sa.String(length=128), nullable=False),
        sa.Column('provider_variant_id', sa.String(length=128), nullable=False),
        sa.Column('size', sa.String(length=32), nullable=True),
        sa.Column('size_normalized', sa.String(length=32), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('provider', 'provider_variant_id', name='uq_catalog_variants_provider_variant'),
    )
    op.create_index(
        'ix_catalog_variants_product_size', 'catalog_variants',
        ['provider', 'provider_product_id', 'size_normalized'],
    )

    # Price history
    op.create_table(
        'price_observations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('provider', sa.String(length=32), nullable=False),
        sa.Column('size', sa.String(length=32), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=True),
        sa.Column('lowest_ask', sa.Numeric(12, 2), nullable=True),
        sa.Column('highest_bid', sa.Numeric(12, 2), nullable=True),
        sa.Column('last_sale', sa.Numeric(12, 2), nullable=True),
        sa.Column('observed_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            'sku', 'provider', 'size', 'currency', 'observed_at',
            name='uq_price_observations_bucket_observed_at',
        ),
    )
    op.create_index('ix_price_observations_observed_at', 'price_observations', ['observed_at'])
    op.create_index(op.f('ix_price_observations_created_at'), 'price_observations', ['created_at'])

    op.create_table(
        'market_price_latest',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('provider', sa.String(length=32), nullable=False),
        sa.Column('size', sa.String(length=32), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('observation_id', sa.Integer(), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=True),
        sa.Column('lowest_ask', sa.Numeric(12, 2), nullable=True),
        sa.Column('highest_bid', sa.Numeric(12, 2), nullable=True),
        sa.Column('last_sale', sa.Numeric(12, 2), nullable=True),
        sa.Column('observed_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('sku', 'provider', 'size', 'currency', name='uq_market_price_latest_bucket'),
    )

    op.create_table(
        'sale_records',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('provider', sa.String(length=32), nullable=False),
        sa.Column('size', sa.String(length=32), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('sold_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('sku', 'provider', 'size', 'currency', 'sold_at', 'price', name='uq_sale_records_sale'),
    )
    op.create_index('ix_sale_records_sold_at', 'sale_records', ['sold_at'])
    op.create_index(op.f('ix_sale_records_created_at'), 'sale_records', ['created_at'])

    # Inventory mirror and links
    op.create_table(
        'inventory_items',
        sa.Column('id', sa.String(length=64), primary_key=True),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('size', sa.String(length=32), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('purchase_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('purchase_currency', sa.String(length=3), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        *_timestamps(),
    )
    op.create_index(op.f('ix_inventory_items_user_id'), 'inventory_items', ['user_id'])
    op.create_index(op.f('ix_inventory_items_status'), 'inventory_items', ['status'])

    op.create_table(
        'inventory_market_links',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('inventory_id', sa.String(length=64), sa.ForeignKey('inventory_items.id'), nullable=False),
        sa.Column('provider', sa.String(length=32), nullable=False),
        sa.Column('provider_product_id', sa.String(length=128), nullable=False),
        sa.Column('provider_variant_id', sa.String(length=128), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('size', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('listing_id', sa.String(length=128), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('inventory_id', 'provider', name='uq_inventory_market_links_item_provider'),
    )
    op.create_index(op.f('ix_inventory_market_links_inventory_id'), 'inventory_market_links', ['inventory_id'])
    op.create_index(op.f('ix_inventory_market_links_listing_id'), 'inventory_market_links', ['listing_id'])

    op.create_table(
        'unmatched_inventory',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('inventory_id', sa.String(length=64), nullable=False),
        sa.Column('provider', sa.String(length=32), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('size', sa.String(length=32), nullable=True),
        sa.Column('reason', sa.String(length=32), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('first_seen_at', sa.DateTime(), nullable=False),
        sa.Column('last_seen_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('inventory_id', 'provider', name='uq_unmatched_inventory_item_provider'),
    )
    op.create_index(op.f('ix_unmatched_inventory_inventory_id'), 'unmatched_inventory', ['inventory_id'])

    # Listings
    op.create_table(
        'tracked_listings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('listing_id', sa.String(length=128), nullable=False),
        sa.Column('provider', sa.String(length=32), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('inventory_id', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('remote_status', sa.String(length=32), nullable=True),
        sa.Column('remote_payload', sa.JSON(), nullable=True),
        sa.Column('last_reconciled_at', sa.DateTime(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('provider', 'listing_id', name='uq_tracked_listings_provider_listing'),
    )
    op.create_index(op.f('ix_tracked_listings_user_id'), 'tracked_listings', ['user_id'])
    op.create_index(op.f('ix_tracked_listings_inventory_id'), 'tracked_listings', ['inventory_id'])
    op.create_index(op.f('ix_tracked_listings_status'), 'tracked_listings', ['status'])

    # Rollups
    price_aggregates = []
    for field in ('lowest_ask', 'highest_bid', 'last_sale'):
        for stat in ('avg', 'min', 'max'):
            price_aggregates.append(sa.Column(f'{stat}_{field}', sa.Numeric(12, 2), nullable=True))

    op.create_table(
        'price_rollups',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('granularity', sa.String(length=8), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('provider', sa.String(length=32), nullable=False),
        sa.Column('size', sa.String(length=32), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('bucket_start', sa.DateTime(), nullable=False),
        sa.Column('sample_count', sa.Integer(), nullable=False),
        *price_aggregates,
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            'granularity', 'sku', 'provider', 'size', 'currency', 'bucket_start',
            name='uq_price_rollups_bucket',
        ),
    )

    op.create_table(
        'sale_rollups',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('granularity', sa.String(length=8), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('provider', sa.String(length=32), nullable=False),
        sa.Column('size', sa.String(length=32), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('bucket_start', sa.DateTime(), nullable=False),
        sa.Column('sale_count', sa.Integer(), nullable=False),
        sa.Column('total_revenue', sa.Numeric(14, 2), nullable=False),
        sa.Column('avg_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('min_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('max_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            'granularity', 'sku', 'provider', 'size', 'currency', 'bucket_start',
            name='uq_sale_rollups_bucket',
        ),
    )

    op.create_table(
        'rollup_state',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('series', sa.String(length=16), nullable=False),
        sa.Column('granularity', sa.String(length=8), nullable=False),
        sa.Column('rolled_through', sa.DateTime(), nullable=False),
        sa.Column('rolled_up_at', sa.DateTime(), nullable=False),
        sa.Column('rows_written', sa.Integer(), nullable=False),
        sa.Column('pruned_through', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('series', 'granularity', name='uq_rollup_state_series_granularity'),
    )

    # Portfolio valuation
    op.create_table(
        'portfolio_snapshots',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('snapshot_date', sa.Date(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('market_value', sa.Numeric(14, 2), nullable=False),
        sa.Column('cost_basis_value', sa.Numeric(14, 2), nullable=False),
        sa.Column('total_value', sa.Numeric(14, 2), nullable=False),
        sa.Column('items_priced', sa.Integer(), nullable=False),
        sa.Column('items_unpriced', sa.Integer(), nullable=False),
        sa.Column('items_unvalued', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('user_id', 'snapshot_date', 'currency', name='uq_portfolio_snapshots_user_date_currency'),
    )
    op.create_index(op.f('ix_portfolio_snapshots_user_id'), 'portfolio_snapshots', ['user_id'])


def downgrade() -> None:
    for table in (
        'portfolio_snapshots',
        'rollup_state',
        'sale_rollups',
        'price_rollups',
        'tracked_listings',
        'unmatched_inventory',
        'inventory_market_links',
        'inventory_items',
        'sale_records',
        'market_price_latest',
        'price_observations',
        'catalog_variants',
        'catalog_products',
    ):
        op.drop_table(table)
