from datetime import date

import pytest

from conftest import TODAY


@pytest.mark.parametrize("text, expected", [
    ("today", date(2026, 10, 19)),
    ("Tomorrow", date(2026, 10, 20)),
    ("kesho", date(2026, 10, 20)),
    ("day after tomorrow", date(2026, 10, 21)),
    ("in 3 days", date(2026, 10, 22)),
    ("friday", date(2026, 10, 23)),
    ("Next Monday", date(2026, 10, 26)),
    ("monday", date(2026, 10, 26)),
    ("this sat", date(2026, 10, 24)),
    ("2026-11-05", date(2026, 11, 5)),
    ("05/11/2026", date(2026, 11, 5)),
    ("5-11-2026", date(2026, 11, 5)),
    ("December 15", date(2026, 12, 15)),
    ("15 Dec", date(2026, 12, 15)),
    ("15th of December", date(2026, 12, 15)),
    ("Dec 15, 2026", date(2026, 12, 15)),
    ("March 3", date(2027, 3, 3)),
])
def test_accepted_dates(date_parser, text, expected):
    result = date_parser.parse(text)
    assert result.is_valid, result.error
    assert result.date == expected


@pytest.mark.parametrize("text, error", [
    ("05/06/27", "ambiguous"),
    ("2026-10-01", "past"),
    ("01/10/2026", "past"),
    ("2028-01-01", "too_far"),
    ("xyz", "unrecognized"),
    ("", "unrecognized"),
])
def test_rejected_dates(date_parser, text, error):
    result = date_parser.parse(text)
    assert not result.is_valid
    assert result.error == error


def test_today_is_injectable(date_parser):
    assert date_parser.today() == TODAY
