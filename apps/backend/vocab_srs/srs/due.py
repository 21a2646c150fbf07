"""Due-item retrieval with optional JLPT-level filtering.

The level lives in the vocabulary catalog, not on the progress record, so a
filtered query has to join each due record against catalog metadata before
it knows whether it matches. Instead of joining every due record, due items
are joined in overdue-order chunks and scanning stops once ``limit`` matches
are found or the chunk budget (enough to look at ``2 * limit`` records) is
used up. In the latter case the reported total is extrapolated from the
observed match ratio and flagged as an estimate.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..errors import ValidationError
from ..logging import logger
from ..models.progress import ProgressRecord
from .filters import matches_levels
from .offload import run_store_call
from .ports import CatalogStore, ProgressStore
from .sm2 import round_half_up, select_due

DEFAULT_CHUNK_SIZE = 50


@dataclass(frozen=True)
class DueEntry:
    progress: ProgressRecord
    vocabulary: Mapping[str, Any] | None


@dataclass(frozen=True)
class DueItemsResult:
    items: list[DueEntry] = field(default_factory=list)
    total: int = 0
    total_is_estimate: bool = False


class DueItemQueryEngine:
    def __init__(
        self,
        progress: ProgressStore,
        catalog: CatalogStore,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._progress = progress
        self._catalog = catalog
        self._chunk_size = max(1, int(chunk_size))

    async def due_items(
        self,
        user_id: str,
        limit: int,
        now: datetime,
        levels: tuple[int, ...] | None = None,
    ) -> DueItemsResult:
        if limit < 1:
            raise ValidationError("limit must be >= 1")
        raw = await run_store_call(self._progress.query_due, user_id, now)
        due = select_due(raw, now)
        if not due:
            return DueItemsResult()
        if not levels:
            return await self._unfiltered(due, limit)
        return await self._filtered(user_id, due, limit, levels)

    async def _unfiltered(self, due: list[ProgressRecord], limit: int) -> DueItemsResult:
        head = due[:limit]
        meta = await run_store_call(
            self._catalog.get_by_ids, [record.vocabulary_id for record in head]
        )
        items = [DueEntry(record, meta.get(record.vocabulary_id)) for record in head]
        return DueItemsResult(items=items, total=len(due))

    async def _filtered(
        self,
        user_id: str,
        due: list[ProgressRecord],
        limit: int,
        levels: tuple[int, ...],
    ) -> DueItemsResult:
        max_chunks = math.ceil((limit * 2) / self._chunk_size)
        matches: list[DueEntry] = []
        scanned = 0
        exhausted = False

        for index in range(max_chunks):
            start = index * self._chunk_size
            chunk = due[start : start + self._chunk_size]
            if not chunk:
                exhausted = True
                break
            meta = await run_store_call(
                self._catalog.get_by_ids, [record.vocabulary_id for record in chunk]
            )
            scanned += len(chunk)
            for record in chunk:
                vocabulary = meta.get(record.vocabulary_id)
                if matches_levels(vocabulary, levels):
                    matches.append(DueEntry(record, vocabulary))
            if len(matches) >= limit:
                break

        if scanned >= len(due):
            exhausted = True

        if exhausted or scanned == 0:
            return DueItemsResult(items=matches[:limit], total=len(matches))

        estimate = max(round_half_up(len(due) * len(matches) / scanned), len(matches))
        logger.info(
            "srs_due_total_estimated",
            user_id=user_id,
            due_count=len(due),
            scanned=scanned,
            matched=len(matches),
            estimate=estimate,
        )
        return DueItemsResult(items=matches[:limit], total=estimate, total_is_estimate=True)
