"""Read-side query objects for lending requests.

Filters are plain dataclasses turned into ``Q`` objects; every value is
bound by the ORM. Non-admins only ever see their own requests.
"""

from dataclasses import dataclass
from datetime import date

from django.db.models import Q

from ..exceptions import NotFoundError, PermissionDenied, ValidationError
from ..models import BorrowRequest, Device, RenewalRequest, ReturnRequest
from .permissions import can_view_request, is_admin


def _check_choice(value, choices, label):
    if value is not None and value not in dict(choices):
        raise ValidationError(f"'{value}' is not a valid {label}.")


@dataclass
class BorrowRequestFilter:
    status: str = None
    device_id: int = None
    user_id: int = None
    # Requests whose [start_date, end_date) overlaps [date_from, date_to)
    date_from: date = None
    date_to: date = None

    def to_q(self) -> Q:
        _check_choice(self.status, BorrowRequest.STATUS_CHOICES, "status")
        q = Q()
        if self.status:
            q &= Q(status=self.status)
        if self.device_id is not None:
            q &= Q(device_id=self.device_id)
        if self.user_id is not None:
            q &= Q(user_id=self.user_id)
        if self.date_from is not None:
            q &= Q(end_date__gt=self.date_from)
        if self.date_to is not None:
            q &= Q(start_date__lt=self.date_to)
        return q


@dataclass
class ReturnRequestFilter:
    condition: str = None
    device_id: int = None
    user_id: int = None
    date_from: date = None
    date_to: date = None

    def to_q(self) -> Q:
        _check_choice(
            self.condition, ReturnRequest.CONDITION_CHOICES, "condition"
        )
        q = Q()
        if self.condition:
            q &= Q(device_condition=self.condition)
        if self.device_id is not None:
            q &= Q(borrow_request__device_id=self.device_id)
        if self.user_id is not None:
            q &= Q(borrow_request__user_id=self.user_id)
        if self.date_from is not None:
            q &= Q(return_date__gte=self.date_from)
        if self.date_to is not None:
            q &= Q(return_date__lt=self.date_to)
        return q


@dataclass
class RenewalRequestFilter:
    status: str = None
    borrow_request_id: int = None
    user_id: int = None

    def to_q(self) -> Q:
        _check_choice(self.status, RenewalRequest.STATUS_CHOICES, "status")
        q = Q()
        if self.status:
            q &= Q(status=self.status)
        if self.borrow_request_id is not None:
            q &= Q(borrow_request_id=self.borrow_request_id)
        if self.user_id is not None:
            q &= Q(user_id=self.user_id)
        return q


def list_borrow_requests(actor, filters=None):
    filters = filters or BorrowRequestFilter()
    qs = BorrowRequest.objects.select_related(
        "device", "user", "approved_by"
    ).filter(filters.to_q())
    if not is_admin(actor):
        qs = qs.filter(user_id=actor.pk)
    return qs.order_by("-created_at", "-pk")


def list_returns(actor, filters=None):
    filters = filters or ReturnRequestFilter()
    qs = ReturnRequest.objects.select_related(
        "borrow_request__device", "borrow_request__user", "created_by"
    ).filter(filters.to_q())
    if not is_admin(actor):
        qs = qs.filter(borrow_request__user_id=actor.pk)
    return qs.order_by("-created_at", "-pk")


def list_renewals(actor, filters=None):
    filters = filters or RenewalRequestFilter()
    qs = RenewalRequest.objects.select_related(
        "borrow_request__device", "user", "reviewed_by"
    ).filter(filters.to_q())
    if not is_admin(actor):
        qs = qs.filter(user_id=actor.pk)
    return qs.order_by("-created_at", "-pk")


def get_borrow_request(actor, request_id) -> BorrowRequest:
    """Fetch one borrow request the actor is allowed to see."""
    try:
        borrow = BorrowRequest.objects.select_related(
            "device", "user", "approved_by"
        ).get(pk=request_id)
    except BorrowRequest.DoesNotExist:
        raise NotFoundError(f"Borrow request {request_id} not found.") from None
    if not can_view_request(actor, borrow):
        raise PermissionDenied("You can only view your own requests.")
    return borrow


def device_schedule(device_id):
    """Non-terminal reservations of a device, earliest first."""
    if not Device.objects.filter(pk=device_id).exists():
        raise NotFoundError(f"Device {device_id} not found.")
    return (
        BorrowRequest.objects.filter(
            device_id=device_id,
            status__in=BorrowRequest.BLOCKING_STATUSES,
        )
        .select_related("user")
        .order_by("start_date", "pk")
    )
