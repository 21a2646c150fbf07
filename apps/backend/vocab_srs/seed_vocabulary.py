from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .logging import logger
from .store.firestore_store import FirestoreVocabularyStore


@dataclass(frozen=True)
class VocabularyEntry:
    """JSON から読み込んだ語彙 1 件分のペイロード。"""

    vocabulary_id: str
    payload: dict[str, Any]


def _normalise_level(raw: Any) -> int | None:
    """JLPT レベルは 1..5 の整数のみ保存する。範囲外や不正値は未設定扱い。"""

    try:
        level = int(raw)
    except (TypeError, ValueError):
        return None
    return level if 1 <= level <= 5 else None


def load_vocabulary(path: Path) -> list[VocabularyEntry]:
    """Read a JSON array (or JSONL) of vocabulary entries.

    各要素は ``id`` を必須とし、``jlpt_level`` は正規化して保存する。
    ``id`` が無い要素や重複 ID は読み飛ばす。
    """

    if not path.exists():
        msg = f"Vocabulary file not found: {path}"
        raise FileNotFoundError(msg)

    text = path.read_text(encoding="utf-8")
    if path.suffix == ".jsonl":
        raw_items = [json.loads(line) for line in text.splitlines() if line.strip()]
    else:
        raw_items = json.loads(text)
    if not isinstance(raw_items, list):
        raise ValueError("vocabulary file must contain a JSON array")

    entries: list[VocabularyEntry] = []
    seen: set[str] = set()
    for item in raw_items:
        if not isinstance(item, dict):
            continue
        vocabulary_id = str(item.get("id") or "").strip()
        if not vocabulary_id or "/" in vocabulary_id or vocabulary_id in seen:
            continue
        seen.add(vocabulary_id)
        payload = {key: value for key, value in item.items() if key != "id"}
        if "jlpt_level" in payload:
            payload["jlpt_level"] = _normalise_level(payload["jlpt_level"])
        entries.append(VocabularyEntry(vocabulary_id=vocabulary_id, payload=payload))
    return entries


def seed_vocabulary(path: Path, catalog: FirestoreVocabularyStore) -> int:
    """語彙カタログへ JSON の内容を upsert し、投入件数を返す。"""

    entries = load_vocabulary(path)
    for entry in entries:
        catalog.upsert(entry.vocabulary_id, entry.payload)
    logger.info("vocabulary_seeded", path=str(path), count=len(entries))
    return len(entries)
