"""Bounded-concurrency batch review processing.

Each deduplicated review becomes one task in an anyio task group. A
semaphore shared by the whole batch caps how many reviews are talking to
the store at once, and each task writes its outcome into a pre-sized list
at its own index, so the results follow submission order no matter which
write finishes first. One item's failure never cancels its siblings.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

import anyio

from ..errors import SRSError, ValidationError
from ..logging import logger
from ..models.progress import ReviewRequest
from .offload import run_store_call
from .ports import CatalogStore
from .recorder import ReviewRecorder

BATCH_REVIEW_MAX = 100
DEFAULT_CONCURRENCY_LIMIT = 5
VOCABULARY_NOT_FOUND = "Vocabulary not found"


@dataclass(frozen=True)
class ItemOutcome:
    vocabulary_id: str
    success: bool
    error: str | None = None


@dataclass(frozen=True)
class BatchResult:
    results: list[ItemOutcome] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.results)

    @property
    def successful(self) -> int:
        return sum(1 for outcome in self.results if outcome.success)

    @property
    def failed(self) -> int:
        return self.processed - self.successful


def deduplicate(reviews: Iterable[ReviewRequest]) -> list[tuple[str, int]]:
    """同一語の採点は最後のものを採用し、並び順は最初の出現位置を保つ。"""

    latest: dict[str, int] = {}
    for review in reviews:
        latest[review.vocabulary_id] = review.quality
    return list(latest.items())


class BatchReviewProcessor:
    def __init__(
        self,
        recorder: ReviewRecorder,
        catalog: CatalogStore,
        *,
        max_batch_size: int = BATCH_REVIEW_MAX,
    ) -> None:
        self._recorder = recorder
        self._catalog = catalog
        self._max_batch_size = max_batch_size

    async def process_batch(
        self,
        user_id: str,
        reviews: list[ReviewRequest],
        now: datetime,
        concurrency_limit: int = DEFAULT_CONCURRENCY_LIMIT,
    ) -> BatchResult:
        if len(reviews) > self._max_batch_size:
            raise ValidationError(
                f"Too many reviews: {len(reviews)} (max {self._max_batch_size})"
            )
        if concurrency_limit < 1:
            raise ValidationError("concurrency_limit must be >= 1")
        if not user_id:
            raise ValidationError("user_id is required")

        pending = deduplicate(reviews)
        if not pending:
            return BatchResult()

        known = await run_store_call(
            self._catalog.get_by_ids, [vocabulary_id for vocabulary_id, _ in pending]
        )
        results: list[ItemOutcome | None] = [None] * len(pending)
        rejected = 0
        for index, (vocabulary_id, _) in enumerate(pending):
            if vocabulary_id not in known:
                results[index] = ItemOutcome(vocabulary_id, False, VOCABULARY_NOT_FOUND)
                rejected += 1
        if rejected:
            logger.warning(
                "srs_batch_rejected_items",
                user_id=user_id,
                rejected=rejected,
                reason="vocabulary_not_found",
            )

        semaphore = anyio.Semaphore(concurrency_limit)

        async def _run(index: int, vocabulary_id: str, quality: int) -> None:
            async with semaphore:
                try:
                    await self._recorder.apply_review(user_id, vocabulary_id, quality, now)
                except SRSError as exc:
                    logger.warning(
                        "srs_batch_item_failed",
                        user_id=user_id,
                        vocabulary_id=vocabulary_id,
                        error_type=exc.__class__.__name__,
                        error=exc.message,
                    )
                    results[index] = ItemOutcome(vocabulary_id, False, exc.message)
                    return
                except Exception as exc:
                    logger.exception(
                        "srs_batch_item_failed",
                        user_id=user_id,
                        vocabulary_id=vocabulary_id,
                        error_type=exc.__class__.__name__,
                    )
                    results[index] = ItemOutcome(vocabulary_id, False, str(exc) or "Unknown error")
                    return
            results[index] = ItemOutcome(vocabulary_id, True)

        async with anyio.create_task_group() as tg:
            for index, (vocabulary_id, quality) in enumerate(pending):
                if results[index] is None:
                    tg.start_soon(_run, index, vocabulary_id, quality)

        outcomes = [outcome for outcome in results if outcome is not None]
        summary = BatchResult(results=outcomes)
        logger.info(
            "srs_batch_review_complete",
            user_id=user_id,
            processed=summary.processed,
            successful=summary.successful,
            failed=summary.failed,
        )
        return summary
