"""Collaborator interfaces consumed by the scheduling engine.

エンジンは Firestore などの具体的なバックエンドを知らず、ここで定義する
メソッドだけに依存する。実装は同期 I/O でよく、エンジン側で
``anyio.to_thread`` へオフロードして呼び出す。
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, Protocol

from ..models.progress import ProgressRecord


class ProgressStore(Protocol):
    def get(self, user_id: str, vocabulary_id: str) -> ProgressRecord | None: ...

    def put(self, record: ProgressRecord) -> None:
        """Unconditional upsert, used to persist a freshly initialised record."""
        ...

    def conditional_update(self, record: ProgressRecord) -> ProgressRecord:
        """Overwrite the stored state only if the document exists.

        Raises ``PreconditionFailed`` when it does not.
        """
        ...

    def delete(self, user_id: str, vocabulary_id: str) -> None: ...

    def query_due(self, user_id: str, now: datetime) -> list[ProgressRecord]:
        """Records with next_review_date <= now, most overdue first."""
        ...

    def query_all(self, user_id: str) -> list[ProgressRecord]: ...


class CatalogStore(Protocol):
    def get_by_ids(self, ids: Iterable[str]) -> dict[str, Mapping[str, Any]]:
        """Batch lookup; ids missing from the catalog are omitted."""
        ...
