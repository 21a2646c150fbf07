"""SM-2 spaced repetition transition.

Quality ratings:
0 - complete blackout
1 - incorrect, remembered once the answer was shown
2 - incorrect, but the answer felt easy
3 - correct with serious difficulty
4 - correct after hesitation
5 - perfect response
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, TypeVar

from ..models.progress import INITIAL_EASE_FACTOR, ProgressRecord

MIN_EASE_FACTOR = 1.3
INITIAL_INTERVAL = 1
SECOND_INTERVAL = 6
PASSING_QUALITY = 3

__all__ = [
    "INITIAL_EASE_FACTOR",
    "MIN_EASE_FACTOR",
    "SM2Result",
    "compute",
    "is_due",
    "round_half_up",
    "select_due",
]


@dataclass(frozen=True)
class SM2Result:
    ease_factor: float
    interval: int
    repetitions: int
    next_review_date: datetime


def round_half_up(value: float) -> int:
    """0.5 を常に切り上げる丸め（組み込み round の偶数丸めを避ける）。"""

    return int(math.floor(value + 0.5))


def compute(
    quality: int,
    ease_factor: float,
    interval: int,
    repetitions: int,
    now: datetime,
) -> SM2Result:
    """Compute the next SM-2 state.

    The ease factor is only recalculated on a passing grade, and it is
    updated *before* the interval so the third and later intervals use the
    new value (q=3, ef=2.5, interval=6 gives ef 2.36 and interval 14).
    quality must already be validated to lie in 0..5.
    """

    new_ease_factor = ease_factor
    if quality < PASSING_QUALITY:
        new_repetitions = 0
        new_interval = INITIAL_INTERVAL
    else:
        miss = 5 - quality
        new_ease_factor = max(
            MIN_EASE_FACTOR, ease_factor + (0.1 - miss * (0.08 + miss * 0.02))
        )
        new_repetitions = repetitions + 1
        if new_repetitions == 1:
            new_interval = INITIAL_INTERVAL
        elif new_repetitions == 2:
            new_interval = SECOND_INTERVAL
        else:
            new_interval = round_half_up(interval * new_ease_factor)

    return SM2Result(
        ease_factor=new_ease_factor,
        interval=new_interval,
        repetitions=new_repetitions,
        next_review_date=now + timedelta(days=new_interval),
    )


def is_due(next_review_date: datetime, now: datetime) -> bool:
    return next_review_date <= now


_R = TypeVar("_R", bound=ProgressRecord)


def select_due(records: Iterable[_R], now: datetime) -> list[_R]:
    """Return due records, most overdue first (stable on ties)."""

    due = [record for record in records if is_due(record.next_review_date, now)]
    due.sort(key=lambda record: record.next_review_date)
    return due
