"""Unit tests for conflict detection."""
from datetime import date
from unittest.mock import Mock

import pytest

from processor.conflict_detector import (
    ConflictDetector,
    determine_conflict_type,
    is_date_in_past,
    is_valid_date_range,
    ranges_overlap,
)
from tests.conftest import make_reservation


@pytest.fixture
def store():
    store = Mock()
    store.list_active_for_unit.return_value = [
        make_reservation('late', date(2025, 1, 20), date(2025, 1, 25)),
        make_reservation('early', date(2025, 1, 10), date(2025, 1, 15)),
    ]
    return store


@pytest.fixture
def detector(store):
    return ConflictDetector(store)


class TestRanges:
    """Test cases for the date helpers."""

    @pytest.mark.parametrize('a,b,expected', [
        ((10, 15), (15, 20), False),
        ((15, 20), (10, 15), False),
        ((10, 15), (12, 18), True),
        ((10, 15), (5, 11), True),
        ((10, 15), (11, 12), True),
        ((10, 15), (1, 30), True),
        ((10, 15), (16, 18), False),
    ])
    def test_ranges_overlap(self, a, b, expected):
        assert ranges_overlap(
            date(2025, 1, a[0]), date(2025, 1, a[1]),
            date(2025, 1, b[0]), date(2025, 1, b[1])
        ) is expected

    def test_determine_conflict_type(self):
        jan_10, jan_12, jan_15 = date(2025, 1, 10), date(2025, 1, 12), date(2025, 1, 15)
        assert determine_conflict_type(jan_10, jan_15, jan_10, jan_15) == 'double_booking'
        assert determine_conflict_type(jan_10, jan_15, jan_12, jan_15) == 'date_overlap'

    def test_is_valid_date_range(self):
        assert is_valid_date_range(date(2025, 1, 10), date(2025, 1, 11)) is True
        assert is_valid_date_range(date(2025, 1, 10), date(2025, 1, 10)) is False
        assert is_valid_date_range(date(2025, 1, 11), date(2025, 1, 10)) is False

    def test_is_date_in_past(self):
        today = date(2025, 5, 1)
        assert is_date_in_past(date(2025, 4, 30), today) is True
        assert is_date_in_past(today, today) is False


class TestConflictDetector:
    """Test cases for ConflictDetector class."""

    def test_adjacent_range_has_no_conflict(self, detector):
        assert detector.conflicting_reservations(
            'unit-1', date(2025, 1, 15), date(2025, 1, 20)
        ) == []
        assert detector.has_conflict('unit-1', date(2025, 1, 15), date(2025, 1, 20)) is False

    def test_overlapping_range_conflicts(self, detector, store):
        conflicts = detector.conflicting_reservations(
            'unit-1', date(2025, 1, 12), date(2025, 1, 18)
        )
        assert [r.id for r in conflicts] == ['early']
        store.list_active_for_unit.assert_called_once_with('unit-1')

    def test_results_sorted_by_check_in(self, detector):
        conflicts = detector.conflicting_reservations(
            'unit-1', date(2025, 1, 1), date(2025, 1, 31)
        )
        assert [r.id for r in conflicts] == ['early', 'late']

    def test_excluded_reservation_is_ignored(self, detector):
        assert detector.has_conflict(
            'unit-1', date(2025, 1, 12), date(2025, 1, 18),
            exclude_reservation_id='early'
        ) is False

    def test_inactive_statuses_never_conflict(self, store, detector):
        store.list_active_for_unit.return_value = [
            make_reservation('gone', date(2025, 1, 10), date(2025, 1, 15), status='cancelled'),
            make_reservation('left', date(2025, 1, 10), date(2025, 1, 15), status='checked_out'),
            make_reservation('held', date(2025, 1, 10), date(2025, 1, 15), status='pending'),
        ]
        conflicts = detector.conflicting_reservations(
            'unit-1', date(2025, 1, 12), date(2025, 1, 13)
        )
        assert [r.id for r in conflicts] == ['held']
