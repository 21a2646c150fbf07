from __future__ import annotations

from datetime import datetime

from ..errors import ConflictError, NotFoundError, PreconditionFailed, ValidationError
from ..logging import logger
from ..models.progress import ProgressRecord
from .offload import run_store_call
from .ports import CatalogStore, ProgressStore
from .sm2 import PASSING_QUALITY, compute


def validate_quality(quality: int) -> None:
    if isinstance(quality, bool) or not isinstance(quality, int) or not 0 <= quality <= 5:
        raise ValidationError("quality must be an integer between 0 and 5")


def apply_transition(current: ProgressRecord, quality: int, now: datetime) -> ProgressRecord:
    """現在の進捗に SM-2 を適用し、カウンタ類も更新した新しいレコードを返す。"""

    result = compute(
        quality,
        current.ease_factor,
        current.interval,
        current.repetitions,
        now,
    )
    return current.model_copy(
        update={
            "ease_factor": result.ease_factor,
            "interval": result.interval,
            "repetitions": result.repetitions,
            "next_review_date": result.next_review_date,
            "last_quality": quality,
            "last_reviewed_at": now,
            "total_reviews": current.total_reviews + 1,
            "correct_count": current.correct_count + (1 if quality >= PASSING_QUALITY else 0),
        }
    )


class ReviewRecorder:
    """Records one review: load or initialise, transition, conditional write.

    書き込みは「ドキュメントが存在する場合のみ更新」の条件付き更新で行う。
    読み込みから書き込みまでの間に進捗がリセット（削除）された場合は一度だけ
    再取得して復旧を試み、それでも競合したら ConflictError とする。
    ロックは使わず、整合性はストアの条件付き書き込みだけに依存する。
    """

    def __init__(self, progress: ProgressStore, catalog: CatalogStore) -> None:
        self._progress = progress
        self._catalog = catalog

    async def record_review(
        self, user_id: str, vocabulary_id: str, quality: int, now: datetime
    ) -> ProgressRecord:
        validate_quality(quality)
        if not user_id or not vocabulary_id:
            raise ValidationError("user_id and vocabulary_id are required")
        found = await run_store_call(self._catalog.get_by_ids, [vocabulary_id])
        if vocabulary_id not in found:
            raise NotFoundError("Vocabulary not found")
        return await self.apply_review(user_id, vocabulary_id, quality, now)

    async def apply_review(
        self, user_id: str, vocabulary_id: str, quality: int, now: datetime
    ) -> ProgressRecord:
        """Catalog membership must already be established by the caller."""

        validate_quality(quality)
        current = await run_store_call(self._progress.get, user_id, vocabulary_id)
        if current is None:
            current = ProgressRecord.initial(user_id, vocabulary_id, now)
            await run_store_call(self._progress.put, current)

        try:
            return await run_store_call(
                self._progress.conditional_update, apply_transition(current, quality, now)
            )
        except PreconditionFailed:
            logger.warning(
                "srs_review_precondition_failed",
                user_id=user_id,
                vocabulary_id=vocabulary_id,
                attempt=1,
            )

        refetched = await run_store_call(self._progress.get, user_id, vocabulary_id)
        if refetched is None:
            raise NotFoundError("Progress was deleted concurrently")
        try:
            return await run_store_call(
                self._progress.conditional_update, apply_transition(refetched, quality, now)
            )
        except PreconditionFailed as exc:
            logger.warning(
                "srs_review_conflict",
                user_id=user_id,
                vocabulary_id=vocabulary_id,
            )
            raise ConflictError("Failed to update progress due to race condition") from exc
