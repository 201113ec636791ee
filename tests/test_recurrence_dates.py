"""Tests for recurring booking date generation."""
from __future__ import annotations

from datetime import date, datetime

import pytest

from barbershop.errors import ValidationError
from barbershop.recurrence import generate_recurrence_dates


def test_single_booking_without_recurrence() -> None:
    start = datetime(2025, 1, 6, 14, 0)
    assert generate_recurrence_dates(start) == [start]
    assert generate_recurrence_dates(start, "weekly", occurrences=1) == [start]


def test_weekly_dates_keep_weekday_and_time() -> None:
    dates = generate_recurrence_dates(datetime(2025, 1, 6, 14, 0), "weekly", occurrences=4)

    assert dates == [
        datetime(2025, 1, 6, 14, 0),
        datetime(2025, 1, 13, 14, 0),
        datetime(2025, 1, 20, 14, 0),
        datetime(2025, 1, 27, 14, 0),
    ]


def test_biweekly_stops_at_inclusive_end_date() -> None:
    dates = generate_recurrence_dates(
        datetime(2025, 1, 6, 9, 0), "biweekly", occurrences=10, end_date=date(2025, 2, 3)
    )

    assert [d.date() for d in dates] == [date(2025, 1, 6), date(2025, 1, 20), date(2025, 2, 3)]


def test_monthly_clamps_to_end_of_short_months() -> None:
    dates = generate_recurrence_dates(datetime(2025, 1, 31, 10, 0), "monthly", occurrences=4)

    assert [d.date() for d in dates] == [
        date(2025, 1, 31),
        date(2025, 2, 28),
        date(2025, 3, 31),
        date(2025, 4, 30),
    ]


def test_occurrences_are_capped() -> None:
    dates = generate_recurrence_dates(datetime(2025, 1, 6, 9, 0), "weekly", occurrences=500, max_occurrences=52)
    assert len(dates) == 52


def test_unknown_kind_is_rejected() -> None:
    with pytest.raises(ValidationError):
        generate_recurrence_dates(datetime(2025, 1, 6, 9, 0), "daily", occurrences=3)
