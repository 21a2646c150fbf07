from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..errors import ValidationError

JLPT_LEVEL_FIELD = "jlpt_level"
_MIN_LEVEL = 1
_MAX_LEVEL = 5


def parse_jlpt_levels(raw: str | None) -> tuple[int, ...] | None:
    """Parse a comma separated JLPT level filter such as ``"1,2,3"``.

    空要素は無視し、重複は出現順を保って除去する。1..5 以外の値が
    含まれていれば該当トークンを列挙して ValidationError とする。
    """

    if raw is None:
        return None
    levels: list[int] = []
    invalid: list[str] = []
    for token in raw.split(","):
        token = token.strip()
        if not token:
            continue
        try:
            level = int(token, 10)
        except ValueError:
            invalid.append(token)
            continue
        if level < _MIN_LEVEL or level > _MAX_LEVEL:
            invalid.append(token)
        elif level not in levels:
            levels.append(level)
    if invalid:
        raise ValidationError(
            f"Invalid JLPT level(s): {', '.join(invalid)}. Must be integers between 1 and 5."
        )
    return tuple(levels) or None


def matches_levels(meta: Mapping[str, Any] | None, levels: tuple[int, ...]) -> bool:
    """カタログ側に該当語が無い、またはレベル未設定ならフィルタに一致しない。"""

    if not meta:
        return False
    level = meta.get(JLPT_LEVEL_FIELD)
    if level is None:
        return False
    try:
        return int(level) in levels
    except (TypeError, ValueError):
        return False
