# marketsync/models/catalog.py
"""
Marketplace catalog tables.

CatalogProduct is the marketplace's canonical product, keyed by (sku, provider).
CatalogVariant holds its size-specific sub-records so inventory can be linked
to a variant without calling the marketplace again.
"""

from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint, Index

from marketsync.database import Base
from marketsync.core.utils import utc_now


class CatalogProduct(Base):
    __tablename__ = "catalog_products"

    id = Column(Integer, primary_key=True)

    provider = Column(String(32), nullable=False)
    provider_product_id = Column(String(128), nullable=False, index=True)

    # sku is the marketplace's own style code; sku_normalized is what the linker matches on
    sku = Column(String(64), nullable=False)
    sku_normalized = Column(String(64), nullable=False, index=True)

    brand = Column(String, nullable=True)
    model = Column(String, nullable=True)
    colorway = Column(String, nullable=True)
    image_url = Column(String, nullable=True)
    category = Column(String, nullable=True)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("sku", "provider", name="uq_catalog_products_sku_provider"),
    )

    def __repr__(self):
        return f"<CatalogProduct(sku='{self.sku}', provider='{self.provider}', id='{self.provider_product_id}')>"


class CatalogVariant(Base):
    __tablename__ = "catalog_variants"

    id = Column(Integer, primary_key=True)

    provider = Column(String(32), nullable=False)
    provider_product_id = Column(String(128), nullable=False)
    provider_variant_id = Column(String(128), nullable=False)

    size = Column(String(32), nullable=True)
    size_normalized = Column(String(32), nullable=True)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("provider", "provider_variant_id", name="uq_catalog_variants_provider_variant"),
        Index("ix_catalog_variants_product_size", "provider", "provider_product_id", "size_normalized"),
    )

    def __repr__(self):
        return f"<CatalogVariant(product='{self.provider_product_id}', variant='{self.provider_variant_id}', size='{self.size}')>"
