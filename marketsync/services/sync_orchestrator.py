# marketsync/services/sync_orchestrator.py
"""
Sync Orchestrator

Runs one user's sync job as a fixed sequence of steps:

    VERIFY_CONNECTION -> FETCH_INVENTORY -> SYNC_CATALOG_PRICES
        -> LINK_INVENTORY -> REFRESH_AGGREGATES -> COMPLETED

Every step writes its counts into the run's SyncReport before the next one
starts. Credential/connection failures and an empty inventory end the run in
FAILED; per-item failures inside a step are only counted. Whatever happens,
the caller gets the report with the counts gathered so far.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.config import Settings, get_settings
from marketsync.core.enums import SyncStep
from marketsync.core.exceptions import FATAL_SYNC_ERRORS, NoInventoryError
from marketsync.core.utils import normalize_sku, utc_now
from marketsync.services.ingestor import CatalogIngestor
from marketsync.services.inventory_source import InventoryRecord, InventorySource
from marketsync.services.linker import InventoryLinker
from marketsync.services.marketplace.base import MarketplaceClient
from marketsync.services.price_resolver import PriceResolver
from marketsync.services.price_store import PriceStore
from marketsync.services.valuation import PortfolioValuationService

logger = logging.getLogger(__name__)


@dataclass
class StepReport:
    step: SyncStep
    counts: Dict[str, int] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def as_dict(self) -> dict:
        return {
            "step": self.step.value,
            "counts": dict(self.counts),
            "errors": list(self.errors),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


@dataclass
class SyncReport:
    """Accumulator owned by one run; steps add to it, nothing else shares it."""
    sync_run_id: str
    user_id: str
    provider: str
    currency: str
    state: SyncStep = SyncStep.VERIFY_CONNECTION
    started_at: datetime = field(default_factory=utc_now)
    finished_at: Optional[datetime] = None
    steps: Dict[SyncStep, StepReport] = field(default_factory=dict)
    fatal_error: Optional[str] = None

    def begin(self, step: SyncStep) -> StepReport:
        self.state = step
        step_report = StepReport(step=step, started_at=utc_now())
        self.steps[step] = step_report
        return step_report

    def finish(self, state: SyncStep, fatal_error: Optional[str] = None) -> None:
        now = utc_now()
        current = self.steps.get(self.state)
        if current is not None and current.finished_at is None:
            current.finished_at = now
        self.state = state
        self.fatal_error = fatal_error
        self.finished_at = now

    @property
    def succeeded(self) -> bool:
        return self.state is SyncStep.COMPLETED

    @property
    def error_count(self) -> int:
        return sum(len(s.errors) for s in self.steps.values())

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def as_dict(self) -> dict:
        return {
            "sync_run_id": self.sync_run_id,
            "user_id": self.user_id,
            "provider": self.provider,
            "currency": self.currency,
            "state": self.state.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
            "fatal_error": self.fatal_error,
            "error_count": self.error_count,
            "steps": {step.value: s.as_dict() for step, s in self.steps.items()},
        }

    def summary_line(self) -> str:
        parts = [f"{step.value.lower()}={s.counts}" for step, s in self.steps.items() if s.counts]
        return (
            f"Sync {self.sync_run_id} {self.provider}/{self.user_id} -> {self.state.value} "
            f"in {self.duration_seconds or 0:.1f}s errors={self.error_count} " + " ".join(parts)
        )


@dataclass
class _RunContext:
    items: List[InventoryRecord] = field(default_factory=list)


class SyncOrchestrator:
    def __init__(
        self,
        db: AsyncSession,
        client: MarketplaceClient,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.db = db
        self.client = client
        self.provider = client.provider
        self.settings = settings or get_settings()
        self.price_store = PriceStore(db)
        self.inventory = InventorySource(db)
        self.ingestor = CatalogIngestor(db, client, self.price_store, self.settings, sleep=sleep)
        self.linker = InventoryLinker(db)
        self.valuation = PortfolioValuationService(db, PriceResolver(db, self.price_store, self.settings))

    async def run(
        self,
        user_id: str,
        currency: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
        sync_run_id: Optional[str] = None,
    ) -> SyncReport:
        """
        Run the full sync for one user and return its report.

        Never raises for job-level failures; inspect ``report.state``.
        Cancellation is honored between steps only.
        """
        report = SyncReport(
            sync_run_id=sync_run_id or str(uuid.uuid4()),
            user_id=user_id,
            provider=self.provider,
            currency=(currency or self.settings.DEFAULT_CURRENCY).upper(),
        )
        context = _RunContext()

        steps = [
            (SyncStep.VERIFY_CONNECTION, self._verify_connection),
            (SyncStep.FETCH_INVENTORY, self._fetch_inventory),
            (SyncStep.SYNC_CATALOG_PRICES, self._sync_catalog_prices),
            (SyncStep.LINK_INVENTORY, self._link_inventory),
            (SyncStep.REFRESH_AGGREGATES, self._refresh_aggregates),
        ]

        logger.info(f"Starting sync {report.sync_run_id} for {user_id} on {self.provider}")
        try:
            for step, handler in steps:
                if cancel_event is not None and cancel_event.is_set():
                    logger.info(f"Sync {report.sync_run_id} cancelled before {step.value}")
                    report.finish(SyncStep.CANCELLED)
                    break
                step_report = report.begin(step)
                await handler(report, step_report, context)
                step_report.finished_at = utc_now()
            else:
                report.finish(SyncStep.COMPLETED)

        except FATAL_SYNC_ERRORS as e:
            await self.db.rollback()
            logger.error(f"Sync {report.sync_run_id} failed at {report.state.value}: {e}")
            report.steps[report.state].errors.append(str(e))
            report.finish(SyncStep.FAILED, fatal_error=f"{e.__class__.__name__}: {e}")

        except Exception as e:
            await self.db.rollback()
            logger.error(f"Unexpected error in sync {report.sync_run_id} at {report.state.value}: {e}", exc_info=True)
            report.steps[report.state].errors.append(str(e))
            report.finish(SyncStep.FAILED, fatal_error=f"{e.__class__.__name__}: {e}")

        logger.info(report.summary_line())
        return report

    async def _verify_connection(self, report: SyncReport, step: StepReport, context: _RunContext) -> None:
        await self.client.verify_connection()
        step.counts["verified"] = 1

    async def _fetch_inventory(self, report: SyncReport, step: StepReport, context: _RunContext) -> None:
        context.items = await self.inventory.items_for_user(report.user_id)
        step.counts["items"] = len(context.items)
        step.counts["skus"] = len(self._unique_skus(context.items))
        if not context.items:
            raise NoInventoryError(f"No syncable inventory for user {report.user_id}")

    async def _sync_catalog_prices(self, report: SyncReport, step: StepReport, context: _RunContext) -> None:
        currencies = list(self.settings.market_currencies)
        if report.currency not in currencies:
            currencies.append(report.currency)

        result = await self.ingestor.ingest(self._unique_skus(context.items), currencies=currencies)
        step.counts.update(result.as_counts())
        step.errors.extend(
            f"{issue.sku}{f' [{issue.variant_id} {issue.currency}]' if issue.variant_id else ''}: {issue.reason}"
            for issue in result.errors
        )

    async def _link_inventory(self, report: SyncReport, step: StepReport, context: _RunContext) -> None:
        summary = await self.linker.link_items(context.items, self.provider)
        step.counts.update(summary.as_counts())
        step.errors.extend(summary.errors)

    async def _refresh_aggregates(self, report: SyncReport, step: StepReport, context: _RunContext) -> None:
        try:
            valuation = await self.valuation.refresh(report.user_id, report.currency, context.items)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to refresh portfolio snapshot for {report.user_id}: {e}", exc_info=True)
            step.errors.append(f"portfolio snapshot: {e}")
            return
        step.counts.update(
            items_priced=valuation.items_priced,
            items_unpriced=valuation.items_unpriced,
            items_unvalued=valuation.items_unvalued,
        )

    @staticmethod
    def _unique_skus(items: List[InventoryRecord]) -> List[str]:
        seen = {}
        for item in items:
            seen.setdefault(normalize_sku(item.sku), item.sku)
        return list(seen.values())
