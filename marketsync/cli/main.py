# marketsync/cli/main.py
import asyncio
import json
import logging
import sys
from datetime import timedelta

import click
from dotenv import load_dotenv

from marketsync.core.config import get_settings
from marketsync.core.enums import Granularity, RetentionTable, SyncStep
from marketsync.core.exceptions import MarketplaceAuthError, RetentionError
from marketsync.core.logging_config import configure_logging

logger = logging.getLogger(__name__)


@click.group()
@click.option('--log-level', default=None, help='Override LOG_LEVEL')
def cli(log_level):
    """Marketplace sync engine commands"""
    load_dotenv()
    configure_logging(log_level or get_settings().LOG_LEVEL)


@cli.command()
def create_tables():
    """Create all database tables directly using SQLAlchemy"""
    from marketsync.database import Base, get_engine
    from marketsync import models  # noqa: F401  registers every table

    async def _create_tables():
        async with get_engine().begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        click.echo("All tables created successfully!")

    asyncio.run(_create_tables())


@cli.command()
@click.argument('user_id')
@click.option('--currency', default=None, help='Valuation currency (defaults to DEFAULT_CURRENCY)')
def sync(user_id, currency):
    """Run the full sync for one user"""
    from marketsync.services.jobs import run_user_sync

    report = asyncio.run(run_user_sync(user_id, currency=currency))
    click.echo(json.dumps(report.as_dict(), indent=2, default=str))
    if report.state is not SyncStep.COMPLETED:
        sys.exit(1)


@cli.command()
@click.argument('user_id')
def reconcile(user_id):
    """Reconcile a user's tracked listings with the marketplace"""
    from marketsync.services.jobs import run_user_reconcile

    try:
        report = asyncio.run(run_user_reconcile(user_id))
    except MarketplaceAuthError as e:
        click.echo(f"Marketplace rejected the credentials: {e}", err=True)
        sys.exit(2)

    click.echo(json.dumps(report.as_counts(), indent=2))
    for listing_id in report.orphaned_ids:
        click.echo(f"  orphaned: {listing_id}")
    for message in report.error_messages:
        click.echo(f"  error: {message}", err=True)
    if report.fetch_failed:
        sys.exit(1)


@cli.command()
@click.option('--granularity', type=click.Choice(['day', 'month'], case_sensitive=False), default='day')
def rollup(granularity):
    """Aggregate price and sales history into DAY or MONTH buckets"""
    from marketsync.database import async_session
    from marketsync.services.retention import RetentionManager

    async def _rollup():
        async with async_session() as db:
            return await RetentionManager(db).rollup(Granularity(granularity.upper()))

    rows = asyncio.run(_rollup())
    click.echo(f"{granularity.upper()} rollup wrote {rows} rows")


@cli.command()
@click.option('--table', type=click.Choice([t.value for t in RetentionTable]), required=True)
@click.option('--days', type=int, default=None, help='Retention window in days (defaults to the configured window)')
def prune(table, days):
    """Delete history older than the retention window (rolled-up rows only)"""
    from marketsync.database import async_session
    from marketsync.services.jobs import retention_windows
    from marketsync.services.retention import RetentionManager

    table = RetentionTable(table)
    window = timedelta(days=days) if days is not None else retention_windows(get_settings())[table]

    async def _prune():
        async with async_session() as db:
            return await RetentionManager(db).prune(table, window)

    try:
        deleted = asyncio.run(_prune())
    except RetentionError as e:
        click.echo(f"Refusing to prune: {e}", err=True)
        sys.exit(1)
    click.echo(f"Pruned {deleted} rows from {table.value}")


@cli.command()
@click.option('--host', default='0.0.0.0')
@click.option('--port', type=int, envvar='PORT', default=8000, show_default=True)
def serve(host, port):
    """Run the HTTP trigger API (and the scheduler when SCHEDULER_ENABLED)"""
    import uvicorn

    click.echo(f"Starting marketsync on {host}:{port}")
    uvicorn.run("marketsync.main:app", host=host, port=port, log_level=get_settings().LOG_LEVEL.lower())


if __name__ == "__main__":
    cli()
