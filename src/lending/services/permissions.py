"""Role predicates and the declarative transition permission table."""

import enum

from ..exceptions import PermissionDenied
from ..models import BorrowRequest, RenewalRequest
from .state import BORROW, RENEWAL


class Permission(enum.Enum):
    ADMIN = "admin"
    OWNER = "owner"
    OWNER_OR_ADMIN = "owner_or_admin"
    # Reachable only from inside another service operation.
    SYSTEM = "system"


TRANSITION_PERMISSIONS = {
    (
        BORROW,
        BorrowRequest.STATUS_PENDING,
        BorrowRequest.STATUS_APPROVED,
    ): Permission.ADMIN,
    (
        BORROW,
        BorrowRequest.STATUS_PENDING,
        BorrowRequest.STATUS_REJECTED,
    ): Permission.ADMIN,
    (
        BORROW,
        BorrowRequest.STATUS_APPROVED,
        BorrowRequest.STATUS_ACTIVE,
    ): Permission.ADMIN,
    (
        BORROW,
        BorrowRequest.STATUS_APPROVED,
        BorrowRequest.STATUS_REJECTED,
    ): Permission.ADMIN,
    (
        BORROW,
        BorrowRequest.STATUS_ACTIVE,
        BorrowRequest.STATUS_RETURNED,
    ): Permission.SYSTEM,
    (
        RENEWAL,
        RenewalRequest.STATUS_PENDING,
        RenewalRequest.STATUS_APPROVED,
    ): Permission.ADMIN,
    (
        RENEWAL,
        RenewalRequest.STATUS_PENDING,
        RenewalRequest.STATUS_REJECTED,
    ): Permission.ADMIN,
}


def is_admin(user) -> bool:
    return bool(
        user is not None
        and user.is_authenticated
        and user.is_active
        and user.is_admin
    )


def is_owner(user, obj) -> bool:
    """Check if the user is the requester of a borrow or renewal."""
    if user is None or not user.is_authenticated:
        return False
    return obj.user_id == user.pk


def has_permission(user, permission: Permission, obj=None) -> bool:
    if permission is Permission.SYSTEM:
        return False
    if permission is Permission.ADMIN:
        return is_admin(user)
    if permission is Permission.OWNER:
        return obj is not None and is_owner(user, obj)
    return is_admin(user) or (obj is not None and is_owner(user, obj))


def authorize_transition(user, request_type, current, target, obj=None):
    """Raise PermissionDenied unless the user may make this transition.

    Callers validate the transition first; a pair missing from the table
    is treated as denied.
    """
    permission = TRANSITION_PERMISSIONS.get((request_type, current, target))
    if permission is None or not has_permission(user, permission, obj):
        raise PermissionDenied(
            f"You are not allowed to move this request from "
            f"'{current}' to '{target}'."
        )
    return permission


def _require_active(user):
    if user is None or not user.is_authenticated or not user.is_active:
        raise PermissionDenied("An active account is required.")


def authorize_create_borrow(actor, borrower) -> None:
    """Any active user may borrow for themselves; admins for anyone."""
    _require_active(actor)
    if borrower.pk != actor.pk and not is_admin(actor):
        raise PermissionDenied(
            "Only admins can create requests on behalf of another user."
        )
    if not borrower.is_active:
        raise PermissionDenied("The borrower's account is inactive.")


def authorize_create_return(actor, borrow) -> None:
    _require_active(actor)
    if not has_permission(actor, Permission.OWNER_OR_ADMIN, borrow):
        raise PermissionDenied(
            "Only the borrower or an admin can return this device."
        )


def authorize_create_renewal(actor, borrow) -> None:
    _require_active(actor)
    if not has_permission(actor, Permission.OWNER, borrow):
        raise PermissionDenied("Only the borrower can request a renewal.")


def authorize_update_return(actor) -> None:
    if not is_admin(actor):
        raise PermissionDenied(
            "Only admins can correct a return's device condition."
        )


def can_view_request(user, obj) -> bool:
    return is_admin(user) or is_owner(user, obj)
