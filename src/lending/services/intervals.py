"""Half-open date intervals and reservation conflict detection."""

from dataclasses import dataclass
from datetime import date

from ..exceptions import ValidationError
from ..models import BorrowRequest


@dataclass(frozen=True)
class Interval:
    """A reservation window ``[start, end)``.

    ``end`` is the first day the device is free again, so a loan ending
    on the 10th and one starting on the 10th do not overlap.
    """

    start: date
    end: date

    def __post_init__(self):
        if self.start is None or self.end is None:
            raise ValidationError("Start and end dates are required.")
        if self.end <= self.start:
            raise ValidationError("End date must be after start date.")

    def overlaps(self, other: "Interval") -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, day: date) -> bool:
        return self.start <= day < self.end

    @property
    def days(self) -> int:
        return (self.end - self.start).days


def find_conflicts(device_id, start, end, exclude_request_id=None):
    """Return blocking reservations of the device overlapping ``[start, end)``.

    Only reservations that are pending, approved or active count. The
    result is reliable only while the caller holds the device lock.
    """
    qs = BorrowRequest.objects.filter(
        device_id=device_id,
        status__in=BorrowRequest.BLOCKING_STATUSES,
        start_date__lt=end,
        end_date__gt=start,
    )
    if exclude_request_id is not None:
        qs = qs.exclude(pk=exclude_request_id)
    return qs.order_by("start_date", "pk")


def conflicts(device_id, start, end, exclude_request_id=None) -> bool:
    """True if ``[start, end)`` clashes with a blocking reservation."""
    return find_conflicts(
        device_id, start, end, exclude_request_id=exclude_request_id
    ).exists()
