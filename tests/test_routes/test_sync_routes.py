# tests/test_routes/test_sync_routes.py
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from marketsync.routes import sync as sync_routes


@pytest.mark.asyncio
async def test_sync_wait_returns_the_report(api_client, mock_client, make_item):
    mock_client.add_product("DZ5485-612", {"UK10": {"last_sale": "150"}})
    await make_item("inv-1", "DZ5485-612")

    response = await api_client.post("/api/sync/user-1", params={"wait": "true", "currency": "gbp"})

    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "COMPLETED"
    assert body["currency"] == "GBP"
    assert body["steps"]["LINK_INVENTORY"]["counts"]["linked"] == 1


@pytest.mark.asyncio
async def test_sync_wait_reports_failure_in_body(api_client, mock_client, make_item):
    await make_item("inv-1", "DZ5485-612")
    mock_client.auth_fails = True

    response = await api_client.post("/api/sync/user-1", params={"wait": "true"})

    assert response.status_code == 200
    assert response.json()["state"] == "FAILED"


@pytest.mark.asyncio
async def test_queued_sync_can_be_polled(api_client, mocker):
    report = MagicMock()
    report.as_dict.return_value = {"sync_run_id": "x", "state": "COMPLETED"}
    run = mocker.patch.object(sync_routes, "run_user_sync", AsyncMock(return_value=report))

    response = await api_client.post("/api/sync/user-1")
    assert response.status_code == 200
    run_id = response.json()["sync_run_id"]
    assert response.json()["status"] == "queued"

    task = sync_routes._active_sync_tasks.get(run_id)
    if task is not None:
        await task
    await asyncio.sleep(0)

    status = await api_client.get(f"/api/sync/status/{run_id}")
    assert status.json()["state"] == "COMPLETED"
    assert run.await_args.kwargs["sync_run_id"] == run_id


@pytest.mark.asyncio
async def test_cancel_sets_the_run_event(api_client, mocker):
    started = asyncio.Event()
    release = asyncio.Event()
    seen = {}

    async def slow_sync(user_id, currency=None, cancel_event=None, sync_run_id=None, settings=None):
        seen["event"] = cancel_event
        started.set()
        await release.wait()
        report = MagicMock()
        report.as_dict.return_value = {"sync_run_id": sync_run_id, "state": "CANCELLED"}
        return report

    mocker.patch.object(sync_routes, "run_user_sync", side_effect=slow_sync)

    run_id = (await api_client.post("/api/sync/user-1")).json()["sync_run_id"]
    await started.wait()

    running = await api_client.get(f"/api/sync/status/{run_id}")
    assert running.json()["status"] == "running"

    cancelled = await api_client.post(f"/api/sync/cancel/{run_id}")
    assert cancelled.json()["status"] == "cancelling"
    assert seen["event"].is_set()

    release.set()
    await sync_routes._active_sync_tasks[run_id]
    await asyncio.sleep(0)
    assert (await api_client.get(f"/api/sync/status/{run_id}")).json()["state"] == "CANCELLED"


@pytest.mark.asyncio
async def test_unknown_run_ids_are_404(api_client):
    assert (await api_client.get("/api/sync/status/nope")).status_code == 404
    assert (await api_client.post("/api/sync/cancel/nope")).status_code == 404
