from datetime import date

import pytest

from activity_tracker.commands import _parse_date_range


def test_parse_date_range() -> None:
    assert _parse_date_range(None, None) == (None, None)
    assert _parse_date_range("2024-01-02", " 2024-01-05 ") == (date(2024, 1, 2), date(2024, 1, 5))


def test_parse_date_range_rejects_bad_input() -> None:
    with pytest.raises(ValueError, match="YYYY-MM-DD"):
        _parse_date_range("02/01/2024", None)

    with pytest.raises(ValueError, match="after"):
        _parse_date_range("2024-01-05", "2024-01-02")
