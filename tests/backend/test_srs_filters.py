import pytest

from vocab_srs.errors import ValidationError
from vocab_srs.srs.filters import matches_levels, parse_jlpt_levels


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (None, None),
        ("", None),
        ("3", (3,)),
        ("1,2,3", (1, 2, 3)),
        (" 5 , 4 ,5", (5, 4)),
        ("2,,", (2,)),
    ],
)
def test_parse_jlpt_levels(raw, expected):
    assert parse_jlpt_levels(raw) == expected


def test_parse_jlpt_levels_lists_every_invalid_token():
    with pytest.raises(ValidationError) as excinfo:
        parse_jlpt_levels("1,0,abc,6")

    assert excinfo.value.message == (
        "Invalid JLPT level(s): 0, abc, 6. Must be integers between 1 and 5."
    )


def test_matches_levels_requires_catalog_level():
    assert matches_levels({"jlpt_level": 2}, (2, 3)) is True
    assert matches_levels({"jlpt_level": "3"}, (3,)) is True
    assert matches_levels({"jlpt_level": 4}, (2, 3)) is False
    assert matches_levels({"jlpt_level": None}, (2,)) is False
    assert matches_levels(None, (2,)) is False
