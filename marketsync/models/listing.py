# marketsync/models/listing.py
from sqlalchemy import Column, Integer, String, DateTime, Numeric, JSON, UniqueConstraint

from marketsync.database import Base
from marketsync.core.enums import ListingStatus
from marketsync.core.utils import utc_now


class TrackedListing(Base):
    """
    Local cache of a sell listing placed on a marketplace.

    Rows are inserted by listing-creation flows; afterwards only the listing
    reconciler changes them. DELETED is terminal.
    """
    __tablename__ = "tracked_listings"

    id = Column(Integer, primary_key=True)

    listing_id = Column(String(128), nullable=False)
    provider = Column(String(32), nullable=False)
    user_id = Column(String(64), nullable=False, index=True)
    inventory_id = Column(String(64), nullable=True, index=True)

    status = Column(String(16), nullable=False, default=ListingStatus.ACTIVE.value, index=True)
    amount = Column(Numeric(12, 2), nullable=True)
    currency = Column(String(3), nullable=True)
    expires_at = Column(DateTime, nullable=True)

    remote_status = Column(String(32), nullable=True)  # raw marketplace state from the last reconcile
    remote_payload = Column(JSON, nullable=True)
    last_reconciled_at = Column(DateTime, nullable=True)
    deleted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("provider", "listing_id", name="uq_tracked_listings_provider_listing"),
    )

    def __repr__(self):
        return f"<TrackedListing(listing_id='{self.listing_id}', provider='{self.provider}', status='{self.status}')>"
