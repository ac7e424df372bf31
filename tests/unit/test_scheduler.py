# tests/unit/test_scheduler.py
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from marketsync import scheduler as scheduler_module
from marketsync.core.enums import SyncStep
from marketsync.services import jobs
from marketsync.services.sync_orchestrator import SyncReport


@pytest.fixture
def session_cm(db_session):
    cm = MagicMock()
    cm.__aenter__.return_value = db_session
    cm.__aexit__.return_value = False
    return cm


@pytest.fixture(autouse=True)
def reset_scheduler():
    scheduler_module.scheduler = None
    yield
    scheduler_module.scheduler = None


def report_for(user_id, state):
    report = SyncReport(sync_run_id=f"run-{user_id}", user_id=user_id, provider="stockx", currency="GBP")
    report.finish(state)
    return report


@pytest.mark.asyncio
async def test_sync_all_users_reconciles_only_completed_runs(mocker, session_cm, make_item, settings):
    await make_item("inv-1", "DZ5485-612", user_id="user-a")
    await make_item("inv-2", "DZ5485-612", user_id="user-b")
    await make_item("inv-3", "DZ5485-612", user_id="user-c", status="SOLD")
    mocker.patch("marketsync.scheduler.async_session", return_value=session_cm)

    async def fake_sync(user_id, settings=None):
        return report_for(user_id, SyncStep.COMPLETED if user_id == "user-a" else SyncStep.FAILED)

    mocker.patch("marketsync.scheduler.run_user_sync", side_effect=fake_sync)
    reconcile = mocker.patch("marketsync.scheduler.run_user_reconcile", AsyncMock())

    outcome = await scheduler_module.sync_all_users_task(settings)

    assert outcome == {"users": 2, "completed": 1, "failed": 1, "reconcile_failed": 0}
    reconcile.assert_awaited_once_with("user-a", settings=settings)


@pytest.mark.asyncio
async def test_one_users_crash_does_not_abort_the_others(mocker, session_cm, make_item, settings):
    for user_id in ("user-a", "user-b", "user-c"):
        await make_item(f"inv-{user_id}", "DZ5485-612", user_id=user_id)
    mocker.patch("marketsync.scheduler.async_session", return_value=session_cm)

    async def fake_sync(user_id, settings=None):
        if user_id == "user-c":
            raise OperationalError("SELECT inventory_items", {}, Exception("database is locked"))
        return report_for(user_id, SyncStep.COMPLETED)

    async def fake_reconcile(user_id, settings=None):
        if user_id == "user-a":
            raise OperationalError("SELECT tracked_listings", {}, Exception("database is locked"))

    mocker.patch("marketsync.scheduler.run_user_sync", side_effect=fake_sync)
    reconcile = mocker.patch("marketsync.scheduler.run_user_reconcile", side_effect=fake_reconcile)

    outcome = await scheduler_module.sync_all_users_task(settings)

    assert outcome == {"users": 3, "completed": 2, "failed": 1, "reconcile_failed": 1}
    assert sorted(call.args[0] for call in reconcile.await_args_list) == ["user-a", "user-b"]


def test_create_scheduler_registers_jobs_when_enabled(settings):
    enabled = settings.model_copy(update={"SCHEDULER_ENABLED": True})

    created = scheduler_module.create_scheduler(enabled)

    assert sorted(job.id for job in created.get_jobs()) == ["retention", "sync_all_users"]


def test_create_scheduler_disabled_has_no_jobs(settings):
    created = scheduler_module.create_scheduler(settings)

    assert created.get_jobs() == []


@pytest.mark.asyncio
async def test_status_before_start():
    assert await scheduler_module.get_scheduler_status() == {"status": "not_initialized", "jobs": []}


@pytest.mark.asyncio
async def test_run_retention_skips_refused_prunes(mocker, session_cm, settings):
    mocker.patch("marketsync.services.jobs.async_session", return_value=session_cm)
    # A one-day window reaches past the MONTH watermark early in the month
    settings = settings.model_copy(update={"DAILY_ROLLUP_RETENTION_DAYS": 1})

    results = await jobs.run_retention(settings, now=datetime(2026, 3, 10, 4))

    assert results == {
        "rollup_day": 0,
        "rollup_month": 0,
        "pruned_price_observations": 0,
        "pruned_sale_records": 0,
        "pruned_price_rollups_daily": 0,
    }


@pytest.mark.asyncio
async def test_run_user_sync_closes_its_client(mocker, session_cm, mock_client, settings, make_item):
    await make_item("inv-1", "DZ5485-612")
    mocker.patch("marketsync.services.jobs.async_session", return_value=session_cm)
    mocker.patch("marketsync.services.jobs.get_marketplace_client", return_value=mock_client)
    close = mocker.patch.object(mock_client, "aclose", AsyncMock())

    report = await jobs.run_user_sync("user-1", currency="GBP", sync_run_id="run-9", settings=settings)

    assert report.sync_run_id == "run-9"
    assert report.state is SyncStep.COMPLETED
    close.assert_awaited_once()
