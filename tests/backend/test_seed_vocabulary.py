from __future__ import annotations

import json
from pathlib import Path

import pytest

from tests.firestore_fakes import FakeFirestoreClient
from vocab_srs.seed_vocabulary import load_vocabulary, seed_vocabulary
from vocab_srs.store.firestore_store import FirestoreVocabularyStore


def test_load_vocabulary_normalises_entries(tmp_path: Path):
    """id 欠落・重複・不正レベルを含む JSON を読み込めることを確認する。"""

    path = tmp_path / "vocab.json"
    path.write_text(
        json.dumps(
            [
                {"id": "v1", "word": "学校", "jlpt_level": "5"},
                {"id": "v2", "word": "議論", "jlpt_level": 9},
                {"word": "no-id"},
                {"id": "v1", "word": "duplicate"},
                {"id": "a/b", "word": "slash"},
            ],
            ensure_ascii=False,
        ),
        encoding="utf-8",
    )

    entries = load_vocabulary(path)

    assert [entry.vocabulary_id for entry in entries] == ["v1", "v2"]
    assert entries[0].payload == {"word": "学校", "jlpt_level": 5}
    assert entries[1].payload["jlpt_level"] is None


def test_load_vocabulary_accepts_jsonl(tmp_path: Path):
    path = tmp_path / "vocab.jsonl"
    path.write_text('{"id": "v1", "word": "雨"}\n\n{"id": "v2", "word": "雪"}\n', encoding="utf-8")

    assert [entry.vocabulary_id for entry in load_vocabulary(path)] == ["v1", "v2"]


def test_load_vocabulary_missing_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_vocabulary(tmp_path / "absent.json")


def test_seed_vocabulary_upserts_catalog(tmp_path: Path):
    path = tmp_path / "vocab.json"
    path.write_text(json.dumps([{"id": "v1", "word": "海", "jlpt_level": 4}]), encoding="utf-8")
    client = FakeFirestoreClient()
    catalog = FirestoreVocabularyStore(client)

    count = seed_vocabulary(path, catalog)

    assert count == 1
    assert catalog.get_by_ids(["v1"])["v1"] == {"id": "v1", "word": "海", "jlpt_level": 4}
