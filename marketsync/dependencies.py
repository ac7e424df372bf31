from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.database import async_session
from marketsync.services.marketplace import MarketplaceClient, get_marketplace_client


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database sessions."""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_client() -> AsyncGenerator[MarketplaceClient, None]:
    """Dependency for a marketplace client, closed after the request."""
    client = get_marketplace_client()
    try:
        yield client
    finally:
        await client.aclose()
