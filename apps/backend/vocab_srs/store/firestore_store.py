from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from datetime import UTC, datetime
from typing import Any, Callable, TypeVar

from google.api_core import exceptions as gexc
from google.cloud import firestore

from ..errors import PreconditionFailed, StorageError
from ..logging import logger
from ..models.progress import ProgressRecord

_T = TypeVar("_T")

_DATETIME_FIELDS = ("next_review_date", "last_reviewed_at", "first_learned_at")


def _to_iso(value: datetime) -> str:
    """Firestore 上で文字列比較＝時刻比較になるよう、精度とオフセットを固定する。"""

    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _chunked(values: list[str], size: int) -> Iterator[list[str]]:
    for start in range(0, len(values), size):
        yield values[start : start + size]


def _guard(operation: str, func: Callable[[], _T]) -> _T:
    """Translate backend failures into StorageError.

    google.api_core の例外（タイムアウト/スロットリング/Unavailable 等）は
    エンジン層から見ると一時的なストレージ障害として扱う。
    """

    try:
        return func()
    except gexc.GoogleAPIError as exc:
        logger.error(
            "firestore_operation_failed",
            operation=operation,
            error_type=exc.__class__.__name__,
            error=str(exc)[:200],
        )
        raise StorageError(f"Storage operation failed: {operation}") from exc


class _MissingDocument(Exception):
    pass


def _update_existing(doc_ref: Any, payload: dict[str, Any]) -> None:
    try:
        doc_ref.update(payload)
    except gexc.NotFound as exc:
        raise _MissingDocument() from exc


def progress_doc_id(user_id: str, vocabulary_id: str) -> str:
    return f"{user_id}:{vocabulary_id}"


def record_to_document(record: ProgressRecord) -> dict[str, Any]:
    payload = record.model_dump()
    for key in _DATETIME_FIELDS:
        value = payload.get(key)
        payload[key] = _to_iso(value) if value is not None else None
    return payload


def document_to_record(data: Mapping[str, Any]) -> ProgressRecord:
    return ProgressRecord.model_validate(dict(data))


class FirestoreBaseStore:
    """Firestore クライアント共通のヘルパー。"""

    def __init__(self, client: firestore.Client):
        self._client = client


class FirestoreProgressStore(FirestoreBaseStore):
    """学習者ごとの SM-2 進捗を Firestore の 1 コレクションで管理する。

    ドキュメント ID は ``{user_id}:{vocabulary_id}``。``user_id`` と
    ``next_review_date`` の複合インデックスで期限切れの進捗を走査する。
    """

    _PAGE_SIZE = 200

    def __init__(self, client: firestore.Client, collection: str = "srs_progress"):
        super().__init__(client)
        self._progress = client.collection(collection)

    def _doc(self, user_id: str, vocabulary_id: str):
        return self._progress.document(progress_doc_id(user_id, vocabulary_id))

    def get(self, user_id: str, vocabulary_id: str) -> ProgressRecord | None:
        snapshot = _guard("progress_get", lambda: self._doc(user_id, vocabulary_id).get())
        if not snapshot.exists:
            return None
        return document_to_record(snapshot.to_dict() or {})

    def put(self, record: ProgressRecord) -> None:
        payload = record_to_document(record)
        _guard(
            "progress_put",
            lambda: self._doc(record.user_id, record.vocabulary_id).set(payload),
        )

    def conditional_update(self, record: ProgressRecord) -> ProgressRecord:
        """Document.update は対象が存在しないと NotFound を返すため、それを前提条件として使う。"""

        payload = record_to_document(record)
        doc_ref = self._doc(record.user_id, record.vocabulary_id)
        try:
            _guard("progress_conditional_update", lambda: _update_existing(doc_ref, payload))
        except _MissingDocument as exc:
            raise PreconditionFailed(record.user_id, record.vocabulary_id) from exc
        return record

    def delete(self, user_id: str, vocabulary_id: str) -> None:
        _guard("progress_delete", lambda: self._doc(user_id, vocabulary_id).delete())

    def _paginate(self, query: firestore.Query) -> list[ProgressRecord]:
        """start_after でページングしつつ全件を読み切る。"""

        records: list[ProgressRecord] = []
        cursor = None
        while True:
            page_query = query.limit(self._PAGE_SIZE)
            if cursor is not None:
                page_query = page_query.start_after(cursor)
            page = _guard("progress_scan", lambda: list(page_query.stream()))
            for snapshot in page:
                records.append(document_to_record(snapshot.to_dict() or {}))
            if len(page) < self._PAGE_SIZE:
                return records
            cursor = page[-1]

    def query_due(self, user_id: str, now: datetime) -> list[ProgressRecord]:
        query = (
            self._progress.where("user_id", "==", user_id)
            .where("next_review_date", "<=", _to_iso(now))
            .order_by("next_review_date", direction=firestore.Query.ASCENDING)
        )
        return self._paginate(query)

    def query_all(self, user_id: str) -> list[ProgressRecord]:
        query = self._progress.where("user_id", "==", user_id).order_by(
            "vocabulary_id", direction=firestore.Query.ASCENDING
        )
        return self._paginate(query)


class FirestoreVocabularyStore(FirestoreBaseStore):
    """語彙カタログ（読み取り専用）を ID でまとめて引く。"""

    _GET_ALL_CHUNK = 100

    def __init__(self, client: firestore.Client, collection: str = "vocabulary"):
        super().__init__(client)
        self._vocabulary = client.collection(collection)

    def get_by_ids(self, ids: Iterable[str]) -> dict[str, Mapping[str, Any]]:
        unique = list(dict.fromkeys(vocabulary_id for vocabulary_id in ids if vocabulary_id))
        found: dict[str, Mapping[str, Any]] = {}
        for chunk in _chunked(unique, self._GET_ALL_CHUNK):
            refs = [self._vocabulary.document(vocabulary_id) for vocabulary_id in chunk]
            snapshots = _guard("vocabulary_get_all", lambda: list(self._client.get_all(refs)))
            for snapshot in snapshots:
                if snapshot.exists:
                    data = snapshot.to_dict() or {}
                    data.setdefault("id", snapshot.id)
                    found[snapshot.id] = data
        return found

    def upsert(self, vocabulary_id: str, data: Mapping[str, Any]) -> None:
        payload = dict(data)
        payload["id"] = vocabulary_id
        _guard("vocabulary_upsert", lambda: self._vocabulary.document(vocabulary_id).set(payload))
