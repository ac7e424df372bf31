# marketsync/routes/sync.py
"""
HTTP triggers for per-user sync runs.

By default a run is queued in the background and the caller polls
``/api/sync/status/{sync_run_id}``; ``wait=true`` runs it inside the request
and returns the report directly.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.config import Settings, get_settings
from marketsync.dependencies import get_client, get_db
from marketsync.services.jobs import run_user_sync
from marketsync.services.marketplace import MarketplaceClient
from marketsync.services.sync_orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["sync"])

_active_sync_tasks: Dict[str, asyncio.Task] = {}
_cancel_events: Dict[str, asyncio.Event] = {}
_sync_history: Dict[str, Dict[str, Any]] = {}

HISTORY_LIMIT = 25


@router.post("/sync/{user_id}")
async def trigger_sync(
    user_id: str,
    currency: Optional[str] = None,
    wait: bool = False,
    db: AsyncSession = Depends(get_db),
    client: MarketplaceClient = Depends(get_client),
    settings: Settings = Depends(get_settings),
):
    """Run (or queue) a sync for one user."""
    if wait:
        report = await SyncOrchestrator(db, client, settings).run(user_id, currency=currency)
        return report.as_dict()

    run_id = str(uuid.uuid4())
    cancel_event = asyncio.Event()
    _cancel_events[run_id] = cancel_event

    logger.info(f"Queueing sync run {run_id} for user {user_id}")
    task = asyncio.get_running_loop().create_task(
        run_user_sync(user_id, currency=currency, cancel_event=cancel_event, sync_run_id=run_id, settings=settings)
    )
    _active_sync_tasks[run_id] = task

    def _finalize(t: asyncio.Task, sync_id: str) -> None:
        _active_sync_tasks.pop(sync_id, None)
        _cancel_events.pop(sync_id, None)
        try:
            _sync_history[sync_id] = t.result().as_dict()
        except Exception as exc:
            logger.exception("Sync run %s crashed", sync_id, exc_info=exc)
            _sync_history[sync_id] = {"sync_run_id": sync_id, "state": "FAILED", "fatal_error": str(exc)}

        if len(_sync_history) > HISTORY_LIMIT:
            for stale_id in list(_sync_history.keys())[:-HISTORY_LIMIT]:
                _sync_history.pop(stale_id, None)

    task.add_done_callback(lambda t, sync_id=run_id: _finalize(t, sync_id))

    return {"status": "queued", "sync_run_id": run_id, "user_id": user_id}


@router.get("/sync/status/{sync_run_id}")
async def get_sync_status(sync_run_id: str) -> Dict[str, Any]:
    if sync_run_id in _active_sync_tasks:
        return {"status": "running", "sync_run_id": sync_run_id}

    result = _sync_history.get(sync_run_id)
    if result is not None:
        return result

    raise HTTPException(status_code=404, detail="Unknown sync run id")


@router.post("/sync/cancel/{sync_run_id}")
async def cancel_sync(sync_run_id: str) -> Dict[str, Any]:
    """Ask a queued run to stop at its next step boundary."""
    event = _cancel_events.get(sync_run_id)
    if event is None:
        raise HTTPException(status_code=404, detail="No running sync with that id")
    event.set()
    return {"status": "cancelling", "sync_run_id": sync_run_id}
