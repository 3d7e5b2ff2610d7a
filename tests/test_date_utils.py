from datetime import datetime, timedelta, timezone

import pytest

from skoolharvest.scraper.date_utils import normalize_timestamp, parse_absolute, parse_relative

NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "text, delta",
    [
        ("2 days ago", timedelta(seconds=2 * 86400)),
        ("Joined 2 days ago", timedelta(days=2)),
        ("5 minutes ago", timedelta(minutes=5)),
        ("1 hour ago", timedelta(hours=1)),
        ("an hour ago", timedelta(hours=1)),
        ("3 weeks ago", timedelta(weeks=3)),
        ("2 months ago", timedelta(days=60)),
        ("a year ago", timedelta(days=365)),
        ("Active 10 mins ago", timedelta(minutes=10)),
    ],
)
def test_relative_expressions(text: str, delta: timedelta) -> None:
    assert normalize_timestamp(text, NOW) == NOW - delta


def test_two_days_ago_is_exact_seconds() -> None:
    assert (NOW - normalize_timestamp("2 days ago", NOW)).total_seconds() == 172800


def test_unparseable_text_resolves_to_now() -> None:
    assert normalize_timestamp("sometime in spring", NOW) == NOW


def test_empty_text_resolves_to_now() -> None:
    assert normalize_timestamp("", NOW) == NOW
    assert normalize_timestamp(None, NOW) == NOW


def test_yesterday_and_just_now() -> None:
    assert normalize_timestamp("Yesterday", NOW) == NOW - timedelta(days=1)
    assert normalize_timestamp("just now", NOW) == NOW


def test_absolute_dates_are_utc() -> None:
    assert normalize_timestamp("Joined Mar 5, 2024", NOW) == datetime(2024, 3, 5, tzinfo=timezone.utc)
    assert normalize_timestamp("2023-11-02", NOW) == datetime(2023, 11, 2, tzinfo=timezone.utc)
    assert parse_absolute("2024-01-01T08:30:00Z") == datetime(2024, 1, 1, 8, 30, tzinfo=timezone.utc)


def test_words_containing_an_are_not_relative() -> None:
    assert parse_relative("Canada day", NOW) is None


def test_naive_now_is_treated_as_utc() -> None:
    naive = datetime(2024, 6, 15, 12, 0, 0)
    assert normalize_timestamp("1 day ago", naive) == NOW - timedelta(days=1)
