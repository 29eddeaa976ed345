"""Tests for role predicates and the transition permission table."""

import pytest

from django.contrib.auth.models import AnonymousUser

from lending.exceptions import PermissionDenied
from lending.factories import BorrowRequestFactory, UserFactory
from lending.services.permissions import (
    TRANSITION_PERMISSIONS,
    Permission,
    authorize_create_borrow,
    authorize_create_renewal,
    authorize_create_return,
    authorize_transition,
    authorize_update_return,
    is_admin,
    is_owner,
)
from lending.services.state import BORROW, RENEWAL


@pytest.mark.django_db
class TestRolePredicates:
    def test_is_admin_by_role(self, admin_user, user):
        assert is_admin(admin_user)
        assert not is_admin(user)

    def test_superuser_is_admin(self, superuser):
        assert is_admin(superuser)

    def test_superuser_role_is_admin(self):
        assert is_admin(UserFactory(role="superuser"))

    def test_inactive_admin_is_not_admin(self, admin_user):
        admin_user.is_active = False
        assert not is_admin(admin_user)

    def test_anonymous(self):
        assert not is_admin(AnonymousUser())
        assert not is_admin(None)

    def test_is_owner(self, user, second_user):
        borrow = BorrowRequestFactory(user=user)
        assert is_owner(user, borrow)
        assert not is_owner(second_user, borrow)
        assert not is_owner(AnonymousUser(), borrow)


class TestPermissionTable:
    def test_returned_is_system_only(self):
        key = (BORROW, "active", "returned")
        assert TRANSITION_PERMISSIONS[key] is Permission.SYSTEM

    def test_decisions_need_admin(self):
        for key, permission in TRANSITION_PERMISSIONS.items():
            if key[2] != "returned":
                assert permission is Permission.ADMIN, key

    def test_table_matches_state_machines(self):
        from lending.models import BorrowRequest, RenewalRequest

        expected = set()
        for request_type, model in (
            (BORROW, BorrowRequest),
            (RENEWAL, RenewalRequest),
        ):
            for current, targets in model.VALID_TRANSITIONS.items():
                expected.update(
                    (request_type, current, target) for target in targets
                )
        assert set(TRANSITION_PERMISSIONS) == expected


@pytest.mark.django_db
class TestAuthorizeTransition:
    def test_admin_may_approve(self, admin_user):
        borrow = BorrowRequestFactory()
        permission = authorize_transition(
            admin_user, BORROW, "pending", "approved", borrow
        )
        assert permission is Permission.ADMIN

    def test_owner_may_not_approve(self, user):
        borrow = BorrowRequestFactory(user=user)
        with pytest.raises(PermissionDenied):
            authorize_transition(user, BORROW, "pending", "approved", borrow)

    def test_nobody_may_return_directly(self, superuser):
        borrow = BorrowRequestFactory(status="active")
        with pytest.raises(PermissionDenied):
            authorize_transition(
                superuser, BORROW, "active", "returned", borrow
            )

    def test_unlisted_pair_is_denied(self, admin_user):
        with pytest.raises(PermissionDenied):
            authorize_transition(admin_user, BORROW, "returned", "active")


@pytest.mark.django_db
class TestCreationPermissions:
    def test_user_borrows_for_self(self, user):
        authorize_create_borrow(user, user)

    def test_user_cannot_borrow_for_others(self, user, second_user):
        with pytest.raises(PermissionDenied, match="on behalf"):
            authorize_create_borrow(user, second_user)

    def test_admin_borrows_on_behalf(self, admin_user, user):
        authorize_create_borrow(admin_user, user)

    def test_inactive_borrower_rejected(self, admin_user, user):
        user.is_active = False
        with pytest.raises(PermissionDenied, match="inactive"):
            authorize_create_borrow(admin_user, user)

    def test_anonymous_cannot_borrow(self, user):
        with pytest.raises(PermissionDenied):
            authorize_create_borrow(AnonymousUser(), user)

    def test_return_owner_or_admin(self, user, second_user, admin_user):
        borrow = BorrowRequestFactory(user=user, status="active")
        authorize_create_return(user, borrow)
        authorize_create_return(admin_user, borrow)
        with pytest.raises(PermissionDenied):
            authorize_create_return(second_user, borrow)

    def test_renewal_owner_only(self, user, admin_user):
        borrow = BorrowRequestFactory(user=user, status="active")
        authorize_create_renewal(user, borrow)
        with pytest.raises(PermissionDenied):
            authorize_create_renewal(admin_user, borrow)

    def test_condition_correction_admin_only(self, user, admin_user):
        authorize_update_return(admin_user)
        with pytest.raises(PermissionDenied):
            authorize_update_return(user)
