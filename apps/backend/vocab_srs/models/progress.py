from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


INITIAL_EASE_FACTOR = 2.5


def ensure_utc(value: datetime) -> datetime:
    """naive な datetime は UTC とみなし、aware なものは UTC へ揃える。"""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class ProgressRecord(BaseModel):
    """One learner's SM-2 state for one vocabulary item.

    (user_id, vocabulary_id) の組で一意。初回採点時に遅延生成され、
    リセット（DELETE）まで残り続ける。
    """

    model_config = ConfigDict(extra="ignore")

    user_id: str
    vocabulary_id: str
    next_review_date: datetime
    ease_factor: float = Field(default=INITIAL_EASE_FACTOR, ge=1.3)
    interval: int = Field(default=0, ge=0)
    repetitions: int = Field(default=0, ge=0)
    last_quality: int | None = Field(default=None, ge=0, le=5)
    last_reviewed_at: datetime | None = None
    first_learned_at: datetime | None = None
    total_reviews: int = Field(default=0, ge=0)
    correct_count: int = Field(default=0, ge=0)

    @field_validator("next_review_date", "last_reviewed_at", "first_learned_at", mode="after")
    @classmethod
    def _normalise_timezone(cls, value: datetime | None) -> datetime | None:
        return None if value is None else ensure_utc(value)

    @classmethod
    def initial(cls, user_id: str, vocabulary_id: str, now: datetime) -> "ProgressRecord":
        """未学習語の初期状態。次回復習日時は now（即時に出題対象）。"""

        return cls(
            user_id=user_id,
            vocabulary_id=vocabulary_id,
            next_review_date=now,
            ease_factor=INITIAL_EASE_FACTOR,
            interval=0,
            repetitions=0,
            first_learned_at=now,
        )


class ReviewRequest(BaseModel):
    """Request model for grading a single vocabulary item.

    - vocabulary_id: 語彙カタログのID
    - quality: 0..5 の想起品質（3 以上が正解扱い）
    """

    vocabulary_id: str = Field(min_length=1, max_length=128, pattern=r"^[^/]+$")
    quality: int = Field(ge=0, le=5)


class BatchReviewRequest(BaseModel):
    """一括採点のリクエスト。件数上限はプロセッサ側で検証する。"""

    reviews: list[ReviewRequest]


class ReviewResponse(BaseModel):
    progress: ProgressRecord


class ProgressResponse(BaseModel):
    progress: ProgressRecord | None = None


class ProgressListResponse(BaseModel):
    items: list[ProgressRecord]
    total: int


class DeleteProgressResponse(BaseModel):
    success: bool = True
    message: str = "Progress deleted"


class BatchReviewItemResult(BaseModel):
    vocabulary_id: str
    success: bool
    error: str | None = None


class BatchReviewResponse(BaseModel):
    """一括採点の集計。results は重複排除後の入力順に並ぶ。"""

    success: bool = True
    processed: int
    successful: int
    failed: int
    results: list[BatchReviewItemResult]


class DueItem(BaseModel):
    progress: ProgressRecord
    vocabulary: dict[str, Any] | None = None


class DueItemsResponse(BaseModel):
    """Response model for due review items.

    - total: 絞り込み無し、または全件走査済みなら正確な件数
    - total_is_estimate: 走査予算を使い切った場合の推定値であることを示す
    """

    items: list[DueItem]
    total: int
    total_is_estimate: bool = False


class MasteryBreakdown(BaseModel):
    new: int = 0
    learning: int = 0
    reviewing: int = 0
    mastered: int = 0


class StatsResponse(BaseModel):
    """進捗の見える化用の統計レスポンス。"""

    total_items: int
    due_today: int
    mastery_breakdown: MasteryBreakdown
    average_ease_factor: float
    total_reviews: int
    accuracy_rate: int
