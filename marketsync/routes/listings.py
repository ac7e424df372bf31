import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.exceptions import MarketplaceAuthError
from marketsync.dependencies import get_client, get_db
from marketsync.services.listing_reconciler import ListingReconciler
from marketsync.services.marketplace import MarketplaceClient

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["listings"])


@router.post("/listings/{user_id}/reconcile")
async def reconcile_listings(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    client: MarketplaceClient = Depends(get_client),
):
    """Bring the user's tracked listings in line with the marketplace."""
    try:
        report = await ListingReconciler(db, client).reconcile(user_id)
    except MarketplaceAuthError as e:
        logger.error(f"Reconcile for {user_id} rejected by marketplace: {e}")
        raise HTTPException(status_code=502, detail="Marketplace credentials rejected")

    return {
        "user_id": report.user_id,
        "provider": report.provider,
        "status": "error" if report.fetch_failed else "success",
        "summary": report.as_counts(),
        "orphaned_ids": report.orphaned_ids,
        "errors": report.error_messages,
    }
