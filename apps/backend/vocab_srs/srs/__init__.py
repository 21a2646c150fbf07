"""SM-2 scheduling engine: transition, due queries, review recording, batches, stats."""

from .batch import BatchResult, BatchReviewProcessor, ItemOutcome
from .due import DueEntry, DueItemQueryEngine, DueItemsResult
from .ports import CatalogStore, ProgressStore
from .recorder import ReviewRecorder
from .service import SRSService
from .stats import SRSStats, StatsAggregator

__all__ = [
    "BatchResult",
    "BatchReviewProcessor",
    "CatalogStore",
    "DueEntry",
    "DueItemQueryEngine",
    "DueItemsResult",
    "ItemOutcome",
    "ProgressStore",
    "ReviewRecorder",
    "SRSService",
    "SRSStats",
    "StatsAggregator",
]
