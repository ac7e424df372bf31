# tests/test_routes/conftest.py
import httpx
import pytest_asyncio

from marketsync.core.config import get_settings
from marketsync.dependencies import get_client, get_db
from marketsync.main import app


@pytest_asyncio.fixture
async def api_client(db_session, mock_client, settings):
    """HTTP client against the app with the test session, mock marketplace and test settings."""
    async def override_get_db():
        yield db_session

    async def override_get_client():
        yield mock_client

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_client] = override_get_client
    app.dependency_overrides[get_settings] = lambda: settings

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
