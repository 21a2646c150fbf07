from __future__ import annotations

from datetime import UTC, datetime

from ..errors import ValidationError
from ..models.progress import ProgressRecord, ReviewRequest
from .batch import BATCH_REVIEW_MAX, DEFAULT_CONCURRENCY_LIMIT, BatchResult, BatchReviewProcessor
from .due import DEFAULT_CHUNK_SIZE, DueItemQueryEngine, DueItemsResult
from .offload import run_store_call
from .ports import CatalogStore, ProgressStore
from .recorder import ReviewRecorder
from .stats import SRSStats, StatsAggregator


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SRSService:
    """Wires the scheduling engines to explicitly provided stores.

    ストアはアプリ生成時に構築して渡す（モジュール単位のシングルトンは持たない）。
    ``clock`` はテストで現在時刻を固定するために差し替えられる。
    """

    def __init__(
        self,
        progress: ProgressStore,
        catalog: CatalogStore,
        *,
        batch_max: int = BATCH_REVIEW_MAX,
        batch_concurrency: int = DEFAULT_CONCURRENCY_LIMIT,
        due_chunk_size: int = DEFAULT_CHUNK_SIZE,
        clock=_utcnow,
    ) -> None:
        self.progress = progress
        self.catalog = catalog
        self._batch_concurrency = batch_concurrency
        self._clock = clock
        self.recorder = ReviewRecorder(progress, catalog)
        self.batch = BatchReviewProcessor(self.recorder, catalog, max_batch_size=batch_max)
        self.due = DueItemQueryEngine(progress, catalog, chunk_size=due_chunk_size)
        self.aggregator = StatsAggregator(progress, catalog)

    def now(self) -> datetime:
        return self._clock()

    async def due_items(
        self, user_id: str, limit: int, levels: tuple[int, ...] | None = None
    ) -> DueItemsResult:
        if limit < 1:
            raise ValidationError("limit must be >= 1")
        return await self.due.due_items(user_id, limit, self.now(), levels)

    async def stats(self, user_id: str, levels: tuple[int, ...] | None = None) -> SRSStats:
        return await self.aggregator.stats(user_id, self.now(), levels)

    async def record_review(self, user_id: str, vocabulary_id: str, quality: int) -> ProgressRecord:
        return await self.recorder.record_review(user_id, vocabulary_id, quality, self.now())

    async def process_batch(self, user_id: str, reviews: list[ReviewRequest]) -> BatchResult:
        return await self.batch.process_batch(
            user_id, reviews, self.now(), concurrency_limit=self._batch_concurrency
        )

    async def get_progress(self, user_id: str, vocabulary_id: str) -> ProgressRecord | None:
        return await run_store_call(self.progress.get, user_id, vocabulary_id)

    async def list_progress(self, user_id: str) -> list[ProgressRecord]:
        return await run_store_call(self.progress.query_all, user_id)

    async def delete_progress(self, user_id: str, vocabulary_id: str) -> None:
        await run_store_call(self.progress.delete, user_id, vocabulary_id)
