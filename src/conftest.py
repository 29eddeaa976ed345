"""Shared pytest fixtures for Device Hub tests."""

import pytest

from django.conf import settings

# Run Celery tasks synchronously in tests
settings.CELERY_TASK_ALWAYS_EAGER = True
settings.CELERY_TASK_EAGER_PROPAGATES = True

# Use in-memory cache for tests (avoids Redis connection errors)
settings.CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
    }
}

# No real waiting between transaction retries
settings.LENDING_TRANSACTION_BACKOFF = 0


@pytest.fixture(autouse=True)
def _clear_cache():
    """Clear the in-memory cache before each test."""
    from django.core.cache import cache

    cache.clear()


@pytest.fixture
def password():
    return "testpass123!"


@pytest.fixture
def user(db, password):
    from lending.factories import UserFactory

    return UserFactory(
        username="testuser",
        email="test@example.com",
        display_name="Test User",
        password=password,
    )


@pytest.fixture
def second_user(db, password):
    from lending.factories import UserFactory

    return UserFactory(
        username="otheruser",
        email="other@example.com",
        display_name="Other User",
        password=password,
    )


@pytest.fixture
def admin_user(db, password):
    from lending.factories import AdminUserFactory

    return AdminUserFactory(
        username="admin",
        email="admin@example.com",
        display_name="Lending Admin",
        password=password,
    )


@pytest.fixture
def superuser(db, password):
    from accounts.models import CustomUser

    return CustomUser.objects.create_superuser(
        username="root",
        email="root@example.com",
        password=password,
    )


@pytest.fixture
def device(db):
    from lending.factories import DeviceFactory

    return DeviceFactory(name="ThinkPad X1", asset_tag="DH-TP-001")


@pytest.fixture
def pending_borrow(user, device):
    """A pending request for ``device`` over the next week."""
    from lending.factories import day
    from lending.services.reservations import create_borrow

    return create_borrow(user, device.pk, day(1), day(8), "Conference")


@pytest.fixture
def approved_borrow(pending_borrow, admin_user):
    from lending.services.reservations import set_borrow_status

    return set_borrow_status(admin_user, pending_borrow.pk, "approved")


@pytest.fixture
def active_borrow(approved_borrow, admin_user):
    from lending.services.reservations import set_borrow_status

    return set_borrow_status(admin_user, approved_borrow.pk, "active")


@pytest.fixture
def admin_client(client, superuser, password):
    client.login(username=superuser.username, password=password)
    return client
