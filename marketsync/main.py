# marketsync/main.py

from contextlib import asynccontextmanager

from fastapi import FastAPI

from marketsync.core.config import get_settings
from marketsync.core.logging_config import configure_logging
from marketsync.routes import health, inventory, listings, sync
from marketsync.scheduler import get_scheduler_status, start_scheduler, stop_scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    if settings.SCHEDULER_ENABLED:
        await start_scheduler(settings)
    try:
        yield
    finally:
        await stop_scheduler()


app = FastAPI(
    title="marketsync",
    description="Marketplace catalog, price and listing synchronization",
    lifespan=lifespan,
)

app.include_router(sync.router)
app.include_router(listings.router)
app.include_router(inventory.router)
app.include_router(health.router)


@app.get("/api/scheduler/status")
async def scheduler_status():
    return await get_scheduler_status()
