"""Tests for half-open intervals and conflict detection."""

from datetime import date

import pytest

from lending.exceptions import ValidationError
from lending.factories import BorrowRequestFactory, DeviceFactory
from lending.services.intervals import Interval, conflicts, find_conflicts


def d(day):
    return date(2026, 3, day)


class TestInterval:
    def test_end_must_follow_start(self):
        with pytest.raises(ValidationError, match="after start"):
            Interval(d(5), d(5))
        with pytest.raises(ValidationError):
            Interval(d(6), d(5))

    def test_missing_dates_rejected(self):
        with pytest.raises(ValidationError, match="required"):
            Interval(None, d(5))

    @pytest.mark.parametrize(
        "other,expected",
        [
            ((1, 5), False),  # ends the day the first one starts
            ((10, 12), False),  # starts the day the first one ends
            ((4, 6), True),
            ((9, 11), True),
            ((6, 8), True),  # contained
            ((1, 20), True),  # containing
            ((5, 10), True),  # identical
        ],
    )
    def test_overlaps(self, other, expected):
        first = Interval(d(5), d(10))
        second = Interval(d(other[0]), d(other[1]))
        assert first.overlaps(second) is expected
        assert second.overlaps(first) is expected

    def test_contains_is_half_open(self):
        interval = Interval(d(5), d(10))
        assert interval.contains(d(5))
        assert interval.contains(d(9))
        assert not interval.contains(d(10))
        assert interval.days == 5


@pytest.mark.django_db
class TestConflictDetection:
    def test_blocking_statuses_conflict(self):
        device = DeviceFactory()
        for status in ("pending", "approved", "active"):
            borrow = BorrowRequestFactory(
                device=device, start_date=d(5), end_date=d(10), status=status
            )
            assert conflicts(device.pk, d(8), d(12))
            borrow.delete()

    def test_terminal_statuses_do_not_conflict(self):
        device = DeviceFactory()
        BorrowRequestFactory(
            device=device, start_date=d(5), end_date=d(10), status="returned"
        )
        BorrowRequestFactory(
            device=device, start_date=d(5), end_date=d(10), status="rejected"
        )
        assert not conflicts(device.pk, d(5), d(10))

    def test_back_to_back_is_allowed(self):
        device = DeviceFactory()
        BorrowRequestFactory(device=device, start_date=d(5), end_date=d(10))
        assert not conflicts(device.pk, d(10), d(15))
        assert not conflicts(device.pk, d(1), d(5))

    def test_other_devices_ignored(self):
        device = DeviceFactory()
        BorrowRequestFactory(start_date=d(5), end_date=d(10))
        assert not conflicts(device.pk, d(5), d(10))

    def test_exclude_request_id(self):
        device = DeviceFactory()
        borrow = BorrowRequestFactory(
            device=device, start_date=d(5), end_date=d(10), status="active"
        )
        assert not conflicts(
            device.pk, d(5), d(20), exclude_request_id=borrow.pk
        )

    def test_find_conflicts_lists_clashes_in_date_order(self):
        device = DeviceFactory()
        later = BorrowRequestFactory(
            device=device, start_date=d(12), end_date=d(14)
        )
        earlier = BorrowRequestFactory(
            device=device, start_date=d(3), end_date=d(6)
        )
        BorrowRequestFactory(device=device, start_date=d(20), end_date=d(25))
        assert list(find_conflicts(device.pk, d(1), d(13))) == [
            earlier,
            later,
        ]
