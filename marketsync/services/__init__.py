from .ingestor import CatalogIngestor, IngestResult
from .inventory_source import InventoryRecord, InventorySource
from .linker import InventoryLinker, Linked, NoMatch
from .listing_reconciler import ListingReconciler, ReconcileReport, normalize_remote_status
from .price_resolver import PriceResolver, ResolvedPrice
from .price_store import Observation, PriceStore, RecordOutcome
from .retention import RetentionManager
from .sync_orchestrator import SyncOrchestrator, SyncReport
from .valuation import PortfolioValuationService

__all__ = [
    "CatalogIngestor",
    "IngestResult",
    "InventoryRecord",
    "InventorySource",
    "InventoryLinker",
    "Linked",
    "NoMatch",
    "ListingReconciler",
    "ReconcileReport",
    "normalize_remote_status",
    "PriceResolver",
    "ResolvedPrice",
    "Observation",
    "PriceStore",
    "RecordOutcome",
    "RetentionManager",
    "SyncOrchestrator",
    "SyncReport",
    "PortfolioValuationService",
]
