# marketsync/services/linker.py
"""
Links owned inventory rows to marketplace catalog variants.

Matching is exact: SKUs are compared after normalize_sku() (case and
separators only) and sizes after normalize_size() against the size the
variant was recorded with. Nothing is guessed; an item without an exact
match yields NoMatch and keeps whatever link it already had.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Union

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.enums import LinkStatus, UnmatchedReason
from marketsync.core.utils import dialect_insert, normalize_size, normalize_sku, utc_now
from marketsync.models.catalog import CatalogProduct, CatalogVariant
from marketsync.models.market_link import InventoryMarketLink, UnmatchedInventory
from marketsync.services.inventory_source import InventoryRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Linked:
    inventory_id: str
    provider: str
    provider_product_id: str
    provider_variant_id: str
    sku: str
    size: str
    created: bool = False
    changed: bool = False


@dataclass(frozen=True)
class NoMatch:
    inventory_id: str
    provider: str
    sku: str
    size: Optional[str]
    reason: UnmatchedReason


LinkResult = Union[Linked, NoMatch]


@dataclass
class LinkSummary:
    linked: int = 0
    created: int = 0
    changed: int = 0
    unmatched: int = 0
    errors: List[str] = field(default_factory=list)
    no_matches: List[NoMatch] = field(default_factory=list)

    def as_counts(self) -> dict:
        return {
            "linked": self.linked,
            "created": self.created,
            "changed": self.changed,
            "unmatched": self.unmatched,
            "errors": len(self.errors),
        }


class InventoryLinker:
    """Callers own the transaction for link(); link_items() commits per item."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def link(self, inventory_id: str, sku: str, size: Optional[str], provider: str) -> LinkResult:
        product = await self._find_product(sku, provider)
        if product is None:
            return NoMatch(inventory_id, provider, sku, size, UnmatchedReason.CATALOG_NOT_FOUND)

        variant = await self._find_variant(product, size)
        if variant is None:
            return NoMatch(inventory_id, provider, sku, size, UnmatchedReason.SIZE_NOT_FOUND)

        existing = (
            await self.db.execute(
                select(InventoryMarketLink).where(
                    InventoryMarketLink.inventory_id == inventory_id,
                    InventoryMarketLink.provider == provider,
                ).execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        changed = existing is not None and existing.provider_variant_id != variant.provider_variant_id

        now = utc_now()
        values = {
            "inventory_id": inventory_id,
            "provider": provider,
            "provider_product_id": product.provider_product_id,
            "provider_variant_id": variant.provider_variant_id,
            "sku": product.sku,
            "size": variant.size_normalized,
            "status": LinkStatus.ACTIVE.value,
            "last_synced_at": now,
            "updated_at": now,
        }
        stmt = dialect_insert(self.db, InventoryMarketLink).values(**values)
        # listing_id is not in the update set
        stmt = stmt.on_conflict_do_update(
            index_elements=["inventory_id", "provider"],
            set_={k: getattr(stmt.excluded, k) for k in values if k not in ("inventory_id", "provider")},
        )
        await self.db.execute(stmt)

        await self.db.execute(
            delete(UnmatchedInventory).where(
                UnmatchedInventory.inventory_id == inventory_id,
                UnmatchedInventory.provider == provider,
            )
        )

        if changed:
            logger.info(
                f"Re-linked {inventory_id} on {provider}: {existing.provider_variant_id} -> {variant.provider_variant_id}"
            )
        return Linked(
            inventory_id=inventory_id,
            provider=provider,
            provider_product_id=product.provider_product_id,
            provider_variant_id=variant.provider_variant_id,
            sku=product.sku,
            size=variant.size_normalized,
            created=existing is None,
            changed=changed,
        )

    async def record_unmatched(self, no_match: NoMatch) -> None:
        """Write the negative result so 'no link' is explicit, not inferred from a missing row."""
        now = utc_now()
        stmt = dialect_insert(self.db, UnmatchedInventory).values(
            inventory_id=no_match.inventory_id,
            provider=no_match.provider,
            sku=no_match.sku,
            size=no_match.size,
            reason=no_match.reason.value,
            attempts=1,
            first_seen_at=now,
            last_seen_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["inventory_id", "provider"],
            set_={
                "sku": stmt.excluded.sku,
                "size": stmt.excluded.size,
                "reason": stmt.excluded.reason,
                "last_seen_at": stmt.excluded.last_seen_at,
                "attempts": UnmatchedInventory.attempts + 1,
            },
        )
        await self.db.execute(stmt)

    async def link_items(self, items: Iterable[InventoryRecord], provider: str) -> LinkSummary:
        """Link a batch of inventory items, committing each one on its own."""
        summary = LinkSummary()
        for item in items:
            try:
                result = await self.link(item.id, item.sku, item.size, provider)
                if isinstance(result, NoMatch):
                    await self.record_unmatched(result)
                    summary.unmatched += 1
                    summary.no_matches.append(result)
                    logger.info(f"No {provider} match for {item.id} ({item.sku} / {item.size}): {result.reason.value}")
                else:
                    summary.linked += 1
                    summary.created += int(result.created)
                    summary.changed += int(result.changed)
                await self.db.commit()
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(f"Failed to link {item.id}: {e}", exc_info=True)
                summary.errors.append(f"{item.id}: {e}")
        return summary

    async def _find_product(self, sku: str, provider: str) -> Optional[CatalogProduct]:
        key = normalize_sku(sku)
        if not key:
            return None
        rows = (
            await self.db.execute(
                select(CatalogProduct)
                .where(CatalogProduct.provider == provider, CatalogProduct.sku_normalized == key)
                .order_by(CatalogProduct.updated_at.desc(), CatalogProduct.id.desc())
            )
        ).scalars().all()
        if len(rows) > 1:
            logger.warning(f"{len(rows)} {provider} catalog rows normalize to {key}; using {rows[0].sku}")
        return rows[0] if rows else None

    async def _find_variant(self, product: CatalogProduct, size: Optional[str]) -> Optional[CatalogVariant]:
        wanted = normalize_size(size)
        if not wanted:
            return None
        return (
            await self.db.execute(
                select(CatalogVariant)
                .where(
                    CatalogVariant.provider == product.provider,
                    CatalogVariant.provider_product_id == product.provider_product_id,
                    CatalogVariant.size_normalized == wanted,
                )
                .limit(1)
            )
        ).scalar_one_or_none()
