from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.config import Settings, get_settings
from marketsync.dependencies import get_db
from marketsync.models.inventory import InventoryItem
from marketsync.services.price_resolver import PriceResolver

router = APIRouter(prefix="/api", tags=["inventory"])


@router.get("/inventory/{inventory_id}/market-value")
async def get_market_value(
    inventory_id: str,
    currency: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Resolved market value of one item; source NONE means fall back to cost."""
    item = await db.get(InventoryItem, inventory_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Inventory item not found")

    resolved = await PriceResolver(db, settings=settings).resolve_item(item, currency or settings.DEFAULT_CURRENCY)
    return {
        "inventory_id": inventory_id,
        "currency": resolved.currency,
        "source": resolved.source.value,
        "value": str(resolved.value) if resolved.value is not None else None,
        "unit_value": str(resolved.unit_value) if resolved.unit_value is not None else None,
        "quantity": resolved.quantity,
        "as_of": resolved.as_of.isoformat() if resolved.as_of else None,
        "provider": resolved.provider,
        "field": resolved.field.value if resolved.field else None,
    }
