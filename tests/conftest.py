# tests/conftest.py
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from marketsync.core.config import Settings
from marketsync.database import Base
from marketsync import models  # noqa: F401  registers every table
from marketsync.models.inventory import InventoryItem
from tests.mocks.mock_marketplace import MockMarketplaceClient

TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture
def settings():
    """Test settings: one currency, no pacing delays, fake credentials"""
    return Settings(
        DATABASE_URL=TEST_DATABASE_URL,
        MARKETPLACE_PROVIDER="stockx",
        MARKETPLACE_API_URL="https://marketplace.test",
        MARKETPLACE_API_KEY="test-key",
        MARKETPLACE_ACCESS_TOKEN="test-token",
        MARKETPLACE_MAX_RETRIES=2,
        MARKETPLACE_MAX_BACKOFF_SECONDS=30,
        INGEST_VARIANT_DELAY_SECONDS=0,
        INGEST_PRODUCT_DELAY_SECONDS=0,
        MARKET_CURRENCIES="GBP",
        DEFAULT_CURRENCY="GBP",
        PROVIDER_PRIORITY="stockx,alias",
    )


@pytest_asyncio.fixture
async def test_engine():
    """In-memory database, created fresh for each test function."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine):
    """Provide a database session for tests"""
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def no_sleep():
    return AsyncMock()


@pytest.fixture
def mock_client():
    return MockMarketplaceClient()


@pytest.fixture
def make_item(db_session):
    """Insert an inventory item and return it."""
    async def _make_item(
        item_id: str,
        sku: str,
        size: str = "UK10",
        quantity: int = 1,
        user_id: str = "user-1",
        purchase_price: str = None,
        purchase_currency: str = None,
        status: str = "ACTIVE",
    ) -> InventoryItem:
        item = InventoryItem(
            id=item_id,
            user_id=user_id,
            sku=sku,
            size=size,
            quantity=quantity,
            purchase_price=Decimal(purchase_price) if purchase_price is not None else None,
            purchase_currency=purchase_currency,
            status=status,
        )
        db_session.add(item)
        await db_session.commit()
        return item

    return _make_item
