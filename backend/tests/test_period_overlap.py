"""Tests for the accounting period overlap check."""

import uuid
from datetime import date

import pytest

from bookkeeper.accounting.period_overlap import DateRange, has_overlap

FY2024 = DateRange(start=date(2024, 1, 1), end=date(2024, 12, 31), id=uuid.uuid4())


@pytest.mark.parametrize(
    "start, end, expected",
    [
        (date(2023, 1, 1), date(2023, 12, 31), False),
        (date(2025, 1, 1), date(2025, 12, 31), False),
        (date(2023, 6, 1), date(2024, 1, 1), True),  # shares the first day
        (date(2024, 12, 31), date(2025, 3, 31), True),  # shares the last day
        (date(2024, 3, 1), date(2024, 3, 31), True),  # fully inside
        (date(2023, 1, 1), date(2025, 12, 31), True),  # fully covering
        (date(2024, 6, 1), date(2025, 1, 1), True),
    ],
)
def test_closed_interval_intersection(start, end, expected):
    assert has_overlap(DateRange(start=start, end=end), [FY2024]) is expected


def test_no_existing_ranges():
    assert has_overlap(DateRange(start=date(2024, 1, 1), end=date(2024, 1, 31)), []) is False


def test_excluded_range_is_ignored():
    candidate = DateRange(start=date(2024, 2, 1), end=date(2024, 11, 30), id=FY2024.id)
    assert has_overlap(candidate, [FY2024], exclude_id=FY2024.id) is False


def test_exclusion_only_skips_matching_id():
    neighbour = DateRange(start=date(2025, 1, 1), end=date(2025, 12, 31), id=uuid.uuid4())
    candidate = DateRange(start=date(2024, 6, 1), end=date(2025, 1, 15), id=FY2024.id)
    assert has_overlap(candidate, [FY2024, neighbour], exclude_id=FY2024.id) is True


def test_order_of_existing_ranges_does_not_matter():
    ranges = [
        DateRange(start=date(2026, 1, 1), end=date(2026, 12, 31)),
        DateRange(start=date(2022, 1, 1), end=date(2022, 12, 31)),
        FY2024,
    ]
    candidate = DateRange(start=date(2024, 7, 1), end=date(2024, 7, 31))
    assert has_overlap(candidate, ranges)
    assert has_overlap(candidate, list(reversed(ranges)))
