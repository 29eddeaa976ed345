"""Device row locking and the device status projection."""

import logging

from ..exceptions import NotFoundError
from ..models import BorrowRequest, Device, ReturnRequest

logger = logging.getLogger(__name__)


def lock_device(device_id) -> Device:
    """Load the device with a row lock held until the transaction ends.

    Must be called inside ``transaction.atomic()``; every writer locks
    the device before touching any of its requests.
    """
    try:
        return Device.objects.select_for_update().get(pk=device_id)
    except Device.DoesNotExist:
        raise NotFoundError(f"Device {device_id} not found.") from None


def has_active_reservation(device_id, exclude_request_id=None) -> bool:
    qs = BorrowRequest.objects.filter(
        device_id=device_id, status=BorrowRequest.STATUS_ACTIVE
    )
    if exclude_request_id is not None:
        qs = qs.exclude(pk=exclude_request_id)
    return qs.exists()


def project_device_status(device: Device, return_condition=None) -> str:
    """Compute the status a device should have from its reservations.

    ``return_condition`` is the condition reported by the return that
    triggered the recomputation, if any. Without one, a device under
    maintenance stays there until inventory resets it.
    """
    if has_active_reservation(device.pk):
        return Device.STATUS_BORROWED
    if return_condition is not None:
        if return_condition == ReturnRequest.CONDITION_DAMAGED:
            return Device.STATUS_MAINTENANCE
        return Device.STATUS_AVAILABLE
    if device.status == Device.STATUS_MAINTENANCE:
        return Device.STATUS_MAINTENANCE
    return Device.STATUS_AVAILABLE


def apply_device_status(device: Device, status: str) -> bool:
    """Write ``status`` to a locked device. Returns True if it changed."""
    if device.status == status:
        return False
    previous = device.status
    device.status = status
    device.save(update_fields=["status"])
    logger.info(
        "Device %s status %s -> %s", device.pk, previous, status
    )
    return True


def refresh_device_status(device: Device, return_condition=None) -> str:
    status = project_device_status(device, return_condition)
    apply_device_status(device, status)
    return status


def latest_return_id(device_id):
    """Primary key of the device's most recent return, or None."""
    return (
        ReturnRequest.objects.filter(borrow_request__device_id=device_id)
        .order_by("-created_at", "-pk")
        .values_list("pk", flat=True)
        .first()
    )
