from __future__ import annotations

import asyncio
import json
from datetime import timedelta

import pytest

from tests.srs_fakes import NOW, InMemoryCatalog, InMemoryProgressStore, make_record
from vocab_srs.errors import ValidationError
from vocab_srs.logging import configure_logging
from vocab_srs.srs.due import DueItemQueryEngine


@pytest.fixture(autouse=True)
def _configure_structlog() -> None:
    configure_logging()


def _structlog_events(caplog: pytest.LogCaptureFixture, event: str) -> list[dict[str, object]]:
    matches: list[dict[str, object]] = []
    for record in caplog.records:
        try:
            payload = json.loads(record.getMessage())
        except (json.JSONDecodeError, TypeError):
            continue
        if isinstance(payload, dict) and payload.get("event") == event:
            matches.append(payload)
    return matches


def _overdue_records(count: int) -> list:
    """w0 が最も期限切れ、以降順に新しくなる進捗を作る。"""

    return [
        make_record(f"w{index}", due_in=-timedelta(hours=count - index))
        for index in range(count)
    ]


def test_due_items_returns_only_due_records_in_overdue_order():
    store = InMemoryProgressStore(
        [
            make_record("a", due_in=timedelta(days=-1)),
            make_record("b", due_in=timedelta(days=1)),
            make_record("c", due_in=timedelta(days=-2)),
            make_record("d", due_in=timedelta(minutes=-10)),
            make_record("other", user_id="learner-2", due_in=timedelta(days=-3)),
        ]
    )
    catalog = InMemoryCatalog({"a": {"word": "食べる"}, "c": {"word": "飲む"}})
    engine = DueItemQueryEngine(store, catalog)

    result = asyncio.run(engine.due_items("learner-1", 20, NOW))

    assert [entry.progress.vocabulary_id for entry in result.items] == ["c", "a", "d"]
    assert result.total == 3
    assert result.total_is_estimate is False
    # カタログに無い語は vocabulary=None のまま返す
    assert result.items[0].vocabulary["word"] == "飲む"
    assert result.items[2].vocabulary is None


def test_due_items_limit_keeps_exact_total():
    store = InMemoryProgressStore(_overdue_records(5))
    catalog = InMemoryCatalog()
    engine = DueItemQueryEngine(store, catalog)

    result = asyncio.run(engine.due_items("learner-1", 2, NOW))

    assert [entry.progress.vocabulary_id for entry in result.items] == ["w0", "w1"]
    assert result.total == 5
    assert result.total_is_estimate is False
    # 返却分だけをカタログと突合する
    assert catalog.calls == [["w0", "w1"]]


def test_due_items_empty_when_nothing_due():
    store = InMemoryProgressStore([make_record("later", due_in=timedelta(days=3))])
    catalog = InMemoryCatalog()
    engine = DueItemQueryEngine(store, catalog)

    result = asyncio.run(engine.due_items("learner-1", 20, NOW))

    assert result.items == []
    assert result.total == 0
    assert catalog.calls == []


def test_filtered_due_items_scan_all_gives_exact_total():
    store = InMemoryProgressStore(_overdue_records(3))
    catalog = InMemoryCatalog(
        {"w0": {"jlpt_level": 5}, "w1": {"jlpt_level": 3}, "w2": {"jlpt_level": 5}}
    )
    engine = DueItemQueryEngine(store, catalog, chunk_size=2)

    result = asyncio.run(engine.due_items("learner-1", 5, NOW, levels=(5,)))

    assert [entry.progress.vocabulary_id for entry in result.items] == ["w0", "w2"]
    assert result.total == 2
    assert result.total_is_estimate is False
    assert catalog.calls == [["w0", "w1"], ["w2"]]


def test_filtered_due_items_estimates_total_when_budget_runs_out(caplog):
    """走査予算内で limit 件に達したら打ち切り、総数は一致率から推定する。"""

    records = _overdue_records(10)
    levels = {f"w{index}": {"jlpt_level": 3 if index % 2 == 0 else 5} for index in range(10)}
    store = InMemoryProgressStore(records)
    catalog = InMemoryCatalog(levels)
    engine = DueItemQueryEngine(store, catalog, chunk_size=2)

    with caplog.at_level("INFO"):
        result = asyncio.run(engine.due_items("learner-1", 2, NOW, levels=(3,)))

    assert [entry.progress.vocabulary_id for entry in result.items] == ["w0", "w2"]
    # 4 件走査して 2 件一致 → 10 × 2 / 4 = 5
    assert result.total == 5
    assert result.total_is_estimate is True
    assert len(catalog.calls) == 2

    payloads = _structlog_events(caplog, "srs_due_total_estimated")
    assert payloads
    assert payloads[0]["scanned"] == 4
    assert payloads[0]["matched"] == 2


def test_filtered_due_items_ignores_unknown_or_unlevelled_vocabulary():
    store = InMemoryProgressStore(_overdue_records(3))
    catalog = InMemoryCatalog({"w0": {"jlpt_level": None}, "w2": {"jlpt_level": "2"}})
    engine = DueItemQueryEngine(store, catalog)

    result = asyncio.run(engine.due_items("learner-1", 10, NOW, levels=(1, 2)))

    assert [entry.progress.vocabulary_id for entry in result.items] == ["w2"]
    assert result.total == 1
    assert result.total_is_estimate is False


@pytest.mark.parametrize("levels", [None, (5,)])
@pytest.mark.parametrize("limit", [0, -3])
def test_due_items_rejects_non_positive_limit(limit, levels):
    """limit < 1 はレベル絞り込みの有無にかかわらずストアを読む前に拒否する。"""

    store = InMemoryProgressStore([make_record("w1", due_in=timedelta(days=-1))])
    catalog = InMemoryCatalog({"w1": {"jlpt_level": 5}})
    engine = DueItemQueryEngine(store, catalog)

    with pytest.raises(ValidationError) as excinfo:
        asyncio.run(engine.due_items("learner-1", limit, NOW, levels=levels))

    assert excinfo.value.message == "limit must be >= 1"
    assert catalog.calls == []
