from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from ..models.progress import ProgressRecord
from .filters import matches_levels
from .offload import run_store_call
from .ports import CatalogStore, ProgressStore
from .sm2 import is_due, round_half_up

LEARNING_THRESHOLD_DAYS = 21
MASTERED_THRESHOLD_DAYS = 60


@dataclass
class MasteryCounts:
    new: int = 0
    learning: int = 0
    reviewing: int = 0
    mastered: int = 0

    def add(self, interval: int) -> None:
        if interval <= 0:
            self.new += 1
        elif interval < LEARNING_THRESHOLD_DAYS:
            self.learning += 1
        elif interval < MASTERED_THRESHOLD_DAYS:
            self.reviewing += 1
        else:
            self.mastered += 1


@dataclass
class SRSStats:
    total_items: int = 0
    due_today: int = 0
    mastery_breakdown: MasteryCounts = field(default_factory=MasteryCounts)
    average_ease_factor: float = 0.0
    total_reviews: int = 0
    accuracy_rate: int = 0


def summarize(records: list[ProgressRecord], now: datetime) -> SRSStats:
    """進捗一覧を習熟度バケットや正答率に集約する（I/O なし）。"""

    stats = SRSStats(total_items=len(records))
    if not records:
        return stats
    correct = 0
    ease_sum = 0.0
    for record in records:
        if is_due(record.next_review_date, now):
            stats.due_today += 1
        stats.mastery_breakdown.add(record.interval)
        ease_sum += record.ease_factor
        stats.total_reviews += record.total_reviews
        correct += record.correct_count
    # 小数第 2 位で四捨五入（偶数丸めにしない）
    stats.average_ease_factor = round_half_up(ease_sum / len(records) * 100) / 100
    if stats.total_reviews > 0:
        stats.accuracy_rate = round_half_up(100 * correct / stats.total_reviews)
    return stats


class StatsAggregator:
    def __init__(self, progress: ProgressStore, catalog: CatalogStore) -> None:
        self._progress = progress
        self._catalog = catalog

    async def stats(
        self,
        user_id: str,
        now: datetime,
        levels: tuple[int, ...] | None = None,
    ) -> SRSStats:
        records = await run_store_call(self._progress.query_all, user_id)
        if levels and records:
            meta = await run_store_call(
                self._catalog.get_by_ids, [record.vocabulary_id for record in records]
            )
            records = [
                record
                for record in records
                if matches_levels(meta.get(record.vocabulary_id), levels)
            ]
        return summarize(records, now)
