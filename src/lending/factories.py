"""Factory Boy factories for lending test data."""

from datetime import date, timedelta

import factory
from factory.django import DjangoModelFactory

from django.utils import timezone


class UserFactory(DjangoModelFactory):
    """Factory for CustomUser model."""

    class Meta:
        model = "accounts.CustomUser"
        skip_postgeneration_save = True

    username = factory.Sequence(lambda n: f"user{n}")
    email = factory.LazyAttribute(lambda o: f"{o.username}@example.com")
    display_name = factory.Faker("name")
    role = "user"
    is_active = True

    @factory.post_generation
    def password(self, create, extracted, **kwargs):
        pwd = extracted or "testpass123!"
        self.set_password(pwd)
        if create:
            self.save(update_fields=["password"])


class AdminUserFactory(UserFactory):
    username = factory.Sequence(lambda n: f"admin{n}")
    role = "admin"
    is_staff = True


class DeviceFactory(DjangoModelFactory):
    """Factory for Device model."""

    class Meta:
        model = "lending.Device"

    name = factory.Sequence(lambda n: f"Laptop {n}")
    asset_tag = factory.Sequence(lambda n: f"DH-{n:05d}")
    category = "laptop"
    status = "available"


class BorrowRequestFactory(DjangoModelFactory):
    """Factory for BorrowRequest model.

    Writes rows directly; use the reservation service when the test is
    about the lifecycle rules.
    """

    class Meta:
        model = "lending.BorrowRequest"

    device = factory.SubFactory(DeviceFactory)
    user = factory.SubFactory(UserFactory)
    start_date = factory.LazyFunction(lambda: timezone.localdate())
    end_date = factory.LazyAttribute(
        lambda o: o.start_date + timedelta(days=7)
    )
    reason = "Project work"
    status = "pending"


class ReturnRequestFactory(DjangoModelFactory):
    """Factory for ReturnRequest model."""

    class Meta:
        model = "lending.ReturnRequest"

    borrow_request = factory.SubFactory(
        BorrowRequestFactory, status="returned"
    )
    return_date = factory.LazyFunction(lambda: timezone.localdate())
    device_condition = "good"
    notes = ""
    created_by = factory.LazyAttribute(lambda o: o.borrow_request.user)


class RenewalRequestFactory(DjangoModelFactory):
    """Factory for RenewalRequest model."""

    class Meta:
        model = "lending.RenewalRequest"

    borrow_request = factory.SubFactory(BorrowRequestFactory, status="active")
    user = factory.LazyAttribute(lambda o: o.borrow_request.user)
    current_end_date = factory.LazyAttribute(
        lambda o: o.borrow_request.end_date
    )
    requested_end_date = factory.LazyAttribute(
        lambda o: o.current_end_date + timedelta(days=7)
    )
    reason = "Need it a little longer"
    status = "pending"


class NotificationFactory(DjangoModelFactory):
    """Factory for Notification model."""

    class Meta:
        model = "lending.Notification"

    user = factory.SubFactory(UserFactory)
    type = "info"
    title = factory.Sequence(lambda n: f"Notification {n}")
    message = "Something happened"


def day(offset: int) -> date:
    """Local date ``offset`` days from today."""
    return timezone.localdate() + timedelta(days=offset)
