# marketsync/services/listing_reconciler.py
"""
Brings locally tracked sell listings back in line with the marketplace.

The marketplace is authoritative; TrackedListing is a cache. A local listing
that the marketplace no longer reports is marked DELETED and the inventory
link pointing at it loses its back-reference in the same transaction.
DELETED is terminal: a listing id that reappears remotely is not resurrected.
Live remote listings with no local row are reported as orphans and never adopted.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.enums import ListingStatus
from marketsync.core.exceptions import MarketplaceAPIError, MarketplaceAuthError
from marketsync.core.utils import to_decimal, to_naive_utc, utc_now
from marketsync.models.listing import TrackedListing
from marketsync.models.market_link import InventoryMarketLink
from marketsync.schemas.marketplace import RemoteListing
from marketsync.services.marketplace.base import MarketplaceClient

logger = logging.getLogger(__name__)


_REMOTE_STATUS_MAP = {
    "ACTIVE": ListingStatus.ACTIVE,
    "PENDING": ListingStatus.ACTIVE,
    "INACTIVE": ListingStatus.INACTIVE,
    "CANCELED": ListingStatus.INACTIVE,
    "CANCELLED": ListingStatus.INACTIVE,
    "EXPIRED": ListingStatus.INACTIVE,
    "MATCHED": ListingStatus.SOLD,
    "COMPLETED": ListingStatus.SOLD,
    "SOLD": ListingStatus.SOLD,
    "DELETED": ListingStatus.DELETED,
}


def normalize_remote_status(status: Optional[str]) -> Optional[ListingStatus]:
    """Map a raw marketplace listing state onto a local ListingStatus (None if unknown)."""
    if status is None:
        return None
    normalized = str(status).strip().upper()
    if not normalized:
        return None
    return _REMOTE_STATUS_MAP.get(normalized)


@dataclass
class _LocalListing:
    """Plain copy of the fields the reconciler compares."""
    id: int
    listing_id: str
    status: str
    amount: Optional[Decimal]
    currency: Optional[str]
    expires_at: Optional[datetime]

    @property
    def is_terminal(self) -> bool:
        return self.status == ListingStatus.DELETED.value


@dataclass
class ReconcileReport:
    user_id: str
    provider: str
    validated: int = 0
    updated: int = 0
    deleted: int = 0
    orphaned: int = 0
    errors: int = 0
    skipped_terminal: int = 0
    remote_total: int = 0
    local_total: int = 0
    fetch_failed: bool = False
    orphaned_ids: List[str] = field(default_factory=list)
    error_messages: List[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        self.errors += 1
        self.error_messages.append(message)

    def as_counts(self) -> dict:
        return {
            "validated": self.validated,
            "updated": self.updated,
            "deleted": self.deleted,
            "orphaned": self.orphaned,
            "errors": self.errors,
            "skipped_terminal": self.skipped_terminal,
        }


class ListingReconciler:
    def __init__(self, db: AsyncSession, client: MarketplaceClient):
        self.db = db
        self.client = client
        self.provider = client.provider

    async def reconcile(self, user_id: str) -> ReconcileReport:
        """
        Reconcile every tracked listing of a user against the marketplace.

        A failed remote fetch leaves local state untouched and is reported as
        one error; it never marks local listings as deleted.

        Raises:
            MarketplaceAuthError: credentials rejected
        """
        report = ReconcileReport(user_id=user_id, provider=self.provider)

        local = await self._load_local(user_id)
        report.local_total = len(local)

        try:
            remote_listings = await self.client.list_listings(user_id)
        except MarketplaceAuthError:
            raise
        except MarketplaceAPIError as e:
            logger.error(f"Could not fetch {self.provider} listings for {user_id}: {e}")
            report.fetch_failed = True
            report.add_error(f"fetch listings: {e}")
            return report

        remote: Dict[str, RemoteListing] = {r.listing_id: r for r in remote_listings}
        report.remote_total = len(remote)

        for listing_id, row in local.items():
            remote_listing = remote.get(listing_id)
            try:
                await self._reconcile_one(row, remote_listing, report)
                await self.db.commit()
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(f"Failed to reconcile listing {listing_id}: {e}", exc_info=True)
                report.add_error(f"{listing_id}: {e}")

        for listing_id, remote_listing in remote.items():
            if listing_id in local:
                continue
            if normalize_remote_status(remote_listing.status) is ListingStatus.DELETED:
                continue
            report.orphaned += 1
            report.orphaned_ids.append(listing_id)

        if report.orphaned_ids:
            logger.info(f"{report.orphaned} {self.provider} listings for {user_id} are not tracked locally")

        logger.info(
            f"Reconcile {self.provider}/{user_id}: validated={report.validated} updated={report.updated} "
            f"deleted={report.deleted} orphaned={report.orphaned} errors={report.errors}"
        )
        return report

    async def _load_local(self, user_id: str) -> Dict[str, _LocalListing]:
        rows = (
            await self.db.execute(
                select(
                    TrackedListing.id,
                    TrackedListing.listing_id,
                    TrackedListing.status,
                    TrackedListing.amount,
                    TrackedListing.currency,
                    TrackedListing.expires_at,
                )
                .where(TrackedListing.user_id == user_id, TrackedListing.provider == self.provider)
                .order_by(TrackedListing.id)
            )
        ).all()
        return {
            row.listing_id: _LocalListing(
                id=row.id,
                listing_id=row.listing_id,
                status=row.status,
                amount=row.amount,
                currency=row.currency,
                expires_at=row.expires_at,
            )
            for row in rows
        }

    async def _reconcile_one(
        self,
        row: _LocalListing,
        remote_listing: Optional[RemoteListing],
        report: ReconcileReport,
    ) -> None:
        if row.is_terminal:
            if remote_listing is not None:
                logger.info(f"Listing {row.listing_id} reappeared on {self.provider}; keeping it DELETED")
                report.skipped_terminal += 1
            else:
                report.validated += 1
            return

        if remote_listing is None:
            await self._mark_deleted(row, remote_status=None)
            report.deleted += 1
            return

        remote_status = normalize_remote_status(remote_listing.status)
        if remote_status is ListingStatus.DELETED:
            await self._mark_deleted(row, remote_status=remote_listing.status)
            report.deleted += 1
            return

        if remote_status is None:
            logger.warning(f"Unknown {self.provider} status '{remote_listing.status}' for listing {row.listing_id}")

        new_status = remote_status.value if remote_status is not None else row.status
        new_amount = to_decimal(remote_listing.amount) if remote_listing.amount is not None else row.amount
        new_currency = remote_listing.currency or row.currency
        new_expires = to_naive_utc(remote_listing.expires_at) if remote_listing.expires_at else row.expires_at

        now = utc_now()
        values = {
            "remote_status": remote_listing.status,
            "remote_payload": remote_listing.payload or None,
            "last_reconciled_at": now,
        }

        differs = (
            new_status != row.status
            or new_amount != row.amount
            or new_currency != row.currency
            or new_expires != row.expires_at
        )
        if differs:
            values.update(
                status=new_status,
                amount=new_amount,
                currency=new_currency,
                expires_at=new_expires,
                updated_at=now,
            )
            logger.info(f"Listing {row.listing_id}: {row.status} -> {new_status}")
            report.updated += 1
        else:
            report.validated += 1

        await self.db.execute(update(TrackedListing).where(TrackedListing.id == row.id).values(**values))

    async def _mark_deleted(self, row: _LocalListing, remote_status: Optional[str]) -> None:
        """Both updates share the caller's transaction; they commit or roll back together."""
        now = utc_now()
        await self.db.execute(
            update(TrackedListing)
            .where(TrackedListing.id == row.id)
            .values(
                status=ListingStatus.DELETED.value,
                deleted_at=now,
                remote_status=remote_status,
                last_reconciled_at=now,
                updated_at=now,
            )
        )
        await self.db.execute(
            update(InventoryMarketLink)
            .where(
                InventoryMarketLink.provider == self.provider,
                InventoryMarketLink.listing_id == row.listing_id,
            )
            .values(listing_id=None, updated_at=now)
        )
        logger.info(f"Listing {row.listing_id} no longer on {self.provider}; marked DELETED")
