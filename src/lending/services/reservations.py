"""Reservation service: every write to borrow, return and renewal state.

Each operation authorizes the actor, then inside one coordinator
transaction locks the device row, locks the request row, re-checks its
preconditions and writes. Notifications and audit records are queued to
run only after the commit.
"""

import logging
from datetime import date, datetime

from django.db import IntegrityError
from django.db import transaction as db_transaction
from django.utils import timezone
from django.utils.dateparse import parse_date

from ..exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from ..models import BorrowRequest, Device, RenewalRequest, ReturnRequest
from . import permissions
from .audit import (
    ACTION_CREATE,
    ACTION_STATUS_CHANGE,
    ACTION_UPDATE,
    AuditRecord,
    actor_snapshot,
    emit_audit,
)
from .devices import (
    apply_device_status,
    has_active_reservation,
    latest_return_id,
    lock_device,
    refresh_device_status,
)
from .hooks import run_after_commit
from .intervals import Interval, conflicts
from .notifications import NotificationEvent, admin_ids, dispatch
from .state import (
    BORROW,
    RENEWAL,
    transition_request,
    validate_status,
    validate_transition,
)
from .transactions import execute

logger = logging.getLogger(__name__)

RETURN = "return_request"


def _to_date(value, label) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            parsed = parse_date(value)
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed
    raise ValidationError(f"{label} must be a valid date.")


def _require_text(value, label) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{label} is required.")
    return text


def _validate_condition(condition, notes) -> None:
    if condition not in dict(ReturnRequest.CONDITION_CHOICES):
        raise ValidationError("A valid device condition is required.")
    if condition == ReturnRequest.CONDITION_DAMAGED and not notes:
        raise ValidationError(
            "Notes are required when a device is returned damaged."
        )


def _notify(event: NotificationEvent) -> None:
    run_after_commit(dispatch, event)


def _audit(actor, action, object_type, object_id, **changes) -> None:
    record = AuditRecord(
        action=action,
        object_type=object_type,
        object_id=object_id,
        actor=actor_snapshot(actor),
        **changes,
    )
    run_after_commit(emit_audit, record)


def _borrow_snapshot(borrow) -> dict:
    return {
        "status": borrow.status,
        "start_date": borrow.start_date,
        "end_date": borrow.end_date,
    }


def _device_id_for(queryset, lookup, label, pk):
    device_id = queryset.filter(pk=pk).values_list(lookup, flat=True).first()
    if device_id is None:
        raise NotFoundError(f"{label} {pk} not found.")
    return device_id


def _lock_borrow(pk) -> BorrowRequest:
    try:
        return (
            BorrowRequest.objects.select_for_update(of=("self",))
            .select_related("device", "user")
            .get(pk=pk)
        )
    except BorrowRequest.DoesNotExist:
        raise NotFoundError(f"Borrow request {pk} not found.") from None


def create_borrow(
    actor, device_id, start_date, end_date, reason, borrower=None
) -> BorrowRequest:
    """Reserve a device for ``[start_date, end_date)``.

    The new request is always pending. Admins may pass ``borrower`` to
    reserve on behalf of another user.
    """
    borrower = borrower if borrower is not None else actor
    permissions.authorize_create_borrow(actor, borrower)
    interval = Interval(
        _to_date(start_date, "Start date"), _to_date(end_date, "End date")
    )
    reason = _require_text(reason, "Reason")

    def create():
        device = lock_device(device_id)
        if device.status == Device.STATUS_MAINTENANCE:
            raise ConflictError("Device is under maintenance.")
        if conflicts(device.pk, interval.start, interval.end):
            raise ConflictError("Device is already booked for this period.")
        borrow = BorrowRequest.objects.create(
            device=device,
            user=borrower,
            start_date=interval.start,
            end_date=interval.end,
            reason=reason,
        )
        _notify(
            NotificationEvent(
                type="new_request",
                target_user_ids=admin_ids(),
                title="New Device Request",
                message=(
                    f"{borrower.get_display_name()} requested {device.name}"
                ),
                related_request_id=borrow.pk,
                related_device_id=device.pk,
                link="/admin/requests?tab=borrow",
            )
        )
        _audit(
            actor,
            ACTION_CREATE,
            BORROW,
            borrow.pk,
            after=_borrow_snapshot(borrow),
            metadata={"device_id": device.pk, "user_id": borrower.pk},
        )
        return borrow

    borrow = execute(create)
    logger.info(
        "Borrow request %s created by user %s for device %s",
        borrow.pk,
        actor.pk,
        borrow.device_id,
    )
    return borrow


def set_borrow_status(actor, request_id, target_status) -> BorrowRequest:
    """Move a borrow request along its lifecycle.

    Activation marks the device borrowed; rejection recomputes the
    device status. ``returned`` is only reachable through
    :func:`create_return`.
    """
    validate_status(BORROW, target_status)

    def change():
        device_id = _device_id_for(
            BorrowRequest.objects, "device_id", "Borrow request", request_id
        )
        device = lock_device(device_id)
        borrow = _lock_borrow(request_id)
        previous = borrow.status
        validate_transition(BORROW, previous, target_status)
        permissions.authorize_transition(
            actor, BORROW, previous, target_status, borrow
        )

        extra = {}
        if target_status in (
            BorrowRequest.STATUS_APPROVED,
            BorrowRequest.STATUS_REJECTED,
        ):
            extra["approved_by"] = actor
        if target_status == BorrowRequest.STATUS_ACTIVE:
            if device.status == Device.STATUS_MAINTENANCE:
                raise ConflictError(
                    "Device is under maintenance and cannot be handed out."
                )
            if has_active_reservation(device.pk, exclude_request_id=borrow.pk):
                raise ConflictError("Device is still out on another loan.")

        transition_request(BORROW, borrow, target_status, **extra)

        if target_status == BorrowRequest.STATUS_ACTIVE:
            apply_device_status(device, Device.STATUS_BORROWED)
        elif target_status == BorrowRequest.STATUS_REJECTED:
            refresh_device_status(device)

        if target_status in (
            BorrowRequest.STATUS_APPROVED,
            BorrowRequest.STATUS_REJECTED,
        ):
            _notify(
                NotificationEvent(
                    type=f"request_{target_status}",
                    target_user_ids=[borrow.user_id],
                    title=f"Request {target_status.capitalize()}",
                    message=(
                        f"Your request for {device.name} has been "
                        f"{target_status}"
                    ),
                    related_request_id=borrow.pk,
                    related_device_id=device.pk,
                    link=(
                        "/loans?tab=active"
                        if target_status == BorrowRequest.STATUS_APPROVED
                        else "/loans?tab=history"
                    ),
                )
            )
        _audit(
            actor,
            ACTION_STATUS_CHANGE,
            BORROW,
            borrow.pk,
            before={"status": previous},
            after={"status": target_status},
            metadata={"device_id": device.pk, "user_id": borrow.user_id},
        )
        return borrow

    borrow = execute(change)
    logger.info(
        "Borrow request %s moved to %s by user %s",
        borrow.pk,
        target_status,
        actor.pk,
    )
    return borrow


def create_return(
    actor, borrow_request_id, condition, notes=None
) -> ReturnRequest:
    """Record a device coming back and close its loan.

    The return, the borrow's move to ``returned`` and the device status
    update commit together or not at all.
    """
    notes = (notes or "").strip()
    _validate_condition(condition, notes)

    def create():
        device_id = _device_id_for(
            BorrowRequest.objects,
            "device_id",
            "Borrow request",
            borrow_request_id,
        )
        device = lock_device(device_id)
        borrow = _lock_borrow(borrow_request_id)
        permissions.authorize_create_return(actor, borrow)
        if ReturnRequest.objects.filter(borrow_request=borrow).exists():
            raise ConflictError("This loan has already been returned.")
        validate_transition(
            BORROW, borrow.status, BorrowRequest.STATUS_RETURNED
        )

        try:
            with db_transaction.atomic():
                return_request = ReturnRequest.objects.create(
                    borrow_request=borrow,
                    return_date=timezone.localdate(),
                    device_condition=condition,
                    notes=notes,
                    created_by=actor,
                )
        except IntegrityError as exc:
            raise ConflictError(
                "This loan has already been returned."
            ) from exc

        transition_request(BORROW, borrow, BorrowRequest.STATUS_RETURNED)
        refresh_device_status(device, return_condition=condition)

        _notify(
            NotificationEvent(
                type="device_returned",
                target_user_ids=admin_ids(),
                title="Device Returned",
                message=(
                    f"{borrow.user.get_display_name()} returned "
                    f"{device.name} ({condition})"
                ),
                related_request_id=borrow.pk,
                related_device_id=device.pk,
                link="/admin/inventory",
            )
        )
        _notify(
            NotificationEvent(
                type="device_returned",
                target_user_ids=[borrow.user_id],
                title="Device Return Confirmed",
                message=f"Your return of {device.name} has been processed",
                related_request_id=borrow.pk,
                related_device_id=device.pk,
                link="/loans?tab=history",
            )
        )
        _audit(
            actor,
            ACTION_CREATE,
            RETURN,
            return_request.pk,
            after={"device_condition": condition, "notes": notes},
            metadata={
                "borrow_request_id": borrow.pk,
                "device_id": device.pk,
                "device_status": device.status,
            },
        )
        return return_request

    return_request = execute(create)
    logger.info(
        "Borrow request %s returned in %s condition by user %s",
        borrow_request_id,
        condition,
        actor.pk,
    )
    return return_request


def update_return_condition(
    actor, return_request_id, condition, notes=None
) -> ReturnRequest:
    """Correct the condition reported on a return.

    Passing ``notes=None`` keeps the existing notes. The device status
    is recomputed only when this is the device's most recent return.
    """
    permissions.authorize_update_return(actor)
    if condition not in dict(ReturnRequest.CONDITION_CHOICES):
        raise ValidationError("A valid device condition is required.")

    def update():
        device_id = _device_id_for(
            ReturnRequest.objects,
            "borrow_request__device_id",
            "Return request",
            return_request_id,
        )
        device = lock_device(device_id)
        try:
            return_request = ReturnRequest.objects.select_for_update().get(
                pk=return_request_id
            )
        except ReturnRequest.DoesNotExist:
            raise NotFoundError(
                f"Return request {return_request_id} not found."
            ) from None

        new_notes = (
            return_request.notes if notes is None else notes.strip()
        )
        _validate_condition(condition, new_notes)
        before = {
            "device_condition": return_request.device_condition,
            "notes": return_request.notes,
        }
        return_request.device_condition = condition
        return_request.notes = new_notes
        return_request.save(
            update_fields=["device_condition", "notes", "updated_at"]
        )

        is_latest = latest_return_id(device.pk) == return_request.pk
        if is_latest:
            refresh_device_status(device, return_condition=condition)
        _audit(
            actor,
            ACTION_UPDATE,
            RETURN,
            return_request.pk,
            before=before,
            after={"device_condition": condition, "notes": new_notes},
            metadata={
                "device_id": device.pk,
                "device_status": device.status,
                "projection_applied": is_latest,
            },
        )
        return return_request

    return_request = execute(update)
    logger.info(
        "Return %s condition set to %s by user %s",
        return_request.pk,
        condition,
        actor.pk,
    )
    return return_request


def create_renewal(
    actor, borrow_request_id, requested_end_date, reason
) -> RenewalRequest:
    """Ask to extend an active loan to ``requested_end_date``."""
    requested_end_date = _to_date(requested_end_date, "Requested end date")

    def create():
        device_id = _device_id_for(
            BorrowRequest.objects,
            "device_id",
            "Borrow request",
            borrow_request_id,
        )
        device = lock_device(device_id)
        borrow = _lock_borrow(borrow_request_id)
        if borrow.status != BorrowRequest.STATUS_ACTIVE:
            raise InvalidTransitionError(
                "Only active loans can be renewed."
            )
        permissions.authorize_create_renewal(actor, borrow)
        cleaned_reason = _require_text(reason, "Reason")
        if requested_end_date <= borrow.end_date:
            raise ValidationError(
                "Requested end date must be after the current end date."
            )
        if borrow.renewal_requests.filter(
            status=RenewalRequest.STATUS_PENDING
        ).exists():
            raise ConflictError(
                "A renewal request is already pending for this loan."
            )

        try:
            with db_transaction.atomic():
                renewal = RenewalRequest.objects.create(
                    borrow_request=borrow,
                    user=actor,
                    current_end_date=borrow.end_date,
                    requested_end_date=requested_end_date,
                    reason=cleaned_reason,
                )
        except IntegrityError as exc:
            raise ConflictError(
                "A renewal request is already pending for this loan."
            ) from exc

        _notify(
            NotificationEvent(
                type="new_request",
                target_user_ids=admin_ids(),
                title="New Renewal Request",
                message=(
                    f"{actor.get_display_name()} asked to keep "
                    f"{device.name} until {requested_end_date}"
                ),
                related_request_id=borrow.pk,
                related_device_id=device.pk,
                link="/admin/requests?tab=renewal",
            )
        )
        _audit(
            actor,
            ACTION_CREATE,
            RENEWAL,
            renewal.pk,
            after={
                "status": renewal.status,
                "current_end_date": renewal.current_end_date,
                "requested_end_date": renewal.requested_end_date,
            },
            metadata={"borrow_request_id": borrow.pk, "device_id": device.pk},
        )
        return renewal

    renewal = execute(create)
    logger.info(
        "Renewal %s requested for borrow request %s by user %s",
        renewal.pk,
        borrow_request_id,
        actor.pk,
    )
    return renewal


def set_renewal_status(actor, renewal_id, target_status) -> RenewalRequest:
    """Approve or reject a pending renewal.

    Approval re-checks the extended window against every other blocking
    reservation of the device and moves the loan's end date.
    """
    validate_status(RENEWAL, target_status)

    def change():
        device_id = _device_id_for(
            RenewalRequest.objects,
            "borrow_request__device_id",
            "Renewal request",
            renewal_id,
        )
        device = lock_device(device_id)
        try:
            renewal = RenewalRequest.objects.select_for_update().get(
                pk=renewal_id
            )
        except RenewalRequest.DoesNotExist:
            raise NotFoundError(
                f"Renewal request {renewal_id} not found."
            ) from None
        borrow = _lock_borrow(renewal.borrow_request_id)
        previous = renewal.status
        validate_transition(RENEWAL, previous, target_status)
        permissions.authorize_transition(
            actor, RENEWAL, previous, target_status, renewal
        )

        if target_status == RenewalRequest.STATUS_APPROVED:
            if borrow.status != BorrowRequest.STATUS_ACTIVE:
                raise InvalidTransitionError(
                    "The loan is no longer active and cannot be extended."
                )
            if conflicts(
                device.pk,
                borrow.start_date,
                renewal.requested_end_date,
                exclude_request_id=borrow.pk,
            ):
                raise ConflictError(
                    "The extended period clashes with another booking."
                )
            previous_end = borrow.end_date
            borrow.end_date = renewal.requested_end_date
            borrow.save(update_fields=["end_date", "updated_at"])
            _audit(
                actor,
                ACTION_UPDATE,
                BORROW,
                borrow.pk,
                before={"end_date": previous_end},
                after={"end_date": borrow.end_date},
                metadata={"renewal_request_id": renewal.pk},
            )

        transition_request(
            RENEWAL,
            renewal,
            target_status,
            reviewed_by=actor,
            reviewed_at=timezone.now(),
        )
        _notify(
            NotificationEvent(
                type=f"renewal_{target_status}",
                target_user_ids=[renewal.user_id],
                title=f"Renewal {target_status.capitalize()}",
                message=(
                    f"Your renewal request for {device.name} has been "
                    f"{target_status}"
                ),
                related_request_id=borrow.pk,
                related_device_id=device.pk,
                link="/loans?tab=active",
            )
        )
        _audit(
            actor,
            ACTION_STATUS_CHANGE,
            RENEWAL,
            renewal.pk,
            before={"status": previous},
            after={"status": target_status},
            metadata={"borrow_request_id": borrow.pk, "device_id": device.pk},
        )
        return renewal

    renewal = execute(change)
    logger.info(
        "Renewal %s %s by user %s", renewal.pk, target_status, actor.pk
    )
    return renewal
