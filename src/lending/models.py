"""Models for Device Hub lending."""

from django.conf import settings
from django.db import models
from django.db.models import F, Q


class Device(models.Model):
    """Physical device lent to employees.

    Inventory management owns everything but ``status``, which the
    lending core keeps in step with the device's reservations.
    """

    STATUS_AVAILABLE = "available"
    STATUS_BORROWED = "borrowed"
    STATUS_MAINTENANCE = "maintenance"

    STATUS_CHOICES = [
        (STATUS_AVAILABLE, "Available"),
        (STATUS_BORROWED, "Borrowed"),
        (STATUS_MAINTENANCE, "Maintenance"),
    ]

    CATEGORY_CHOICES = [
        ("laptop", "Laptop"),
        ("mobile", "Mobile"),
        ("tablet", "Tablet"),
        ("monitor", "Monitor"),
        ("accessories", "Accessories"),
        ("storage", "Storage"),
        ("ram", "RAM"),
    ]

    name = models.CharField(max_length=200)
    asset_tag = models.CharField(max_length=50, unique=True)
    category = models.CharField(
        max_length=20, choices=CATEGORY_CHOICES, default="laptop"
    )
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_AVAILABLE,
    )
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["status"], name="idx_device_status"),
        ]

    def __str__(self):
        return f"{self.name} ({self.asset_tag})"


class BorrowRequest(models.Model):
    """A reservation of one device for ``[start_date, end_date)``."""

    STATUS_PENDING = "pending"
    STATUS_APPROVED = "approved"
    STATUS_ACTIVE = "active"
    STATUS_RETURNED = "returned"
    STATUS_REJECTED = "rejected"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_APPROVED, "Approved"),
        (STATUS_ACTIVE, "Active"),
        (STATUS_RETURNED, "Returned"),
        (STATUS_REJECTED, "Rejected"),
    ]

    # Valid state transitions: from_status -> [to_statuses]
    VALID_TRANSITIONS = {
        STATUS_PENDING: [STATUS_APPROVED, STATUS_REJECTED],
        STATUS_APPROVED: [STATUS_ACTIVE, STATUS_REJECTED],
        STATUS_ACTIVE: [STATUS_RETURNED],
        STATUS_RETURNED: [],
        STATUS_REJECTED: [],
    }

    # Statuses that hold a claim on the device's calendar
    BLOCKING_STATUSES = (STATUS_PENDING, STATUS_APPROVED, STATUS_ACTIVE)

    device = models.ForeignKey(
        Device, on_delete=models.CASCADE, related_name="borrow_requests"
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="borrow_requests",
        help_text="The employee the device is lent to",
    )
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="decided_borrow_requests",
        help_text="Admin who approved or rejected this request",
    )
    start_date = models.DateField()
    end_date = models.DateField(
        help_text="First day the device is no longer reserved",
    )
    reason = models.TextField()
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-pk"]
        indexes = [
            models.Index(
                fields=["device", "status"], name="idx_borrow_device_status"
            ),
            models.Index(fields=["user"], name="idx_borrow_user"),
            models.Index(
                fields=["start_date", "end_date"], name="idx_borrow_dates"
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(end_date__gt=F("start_date")),
                name="chk_borrow_end_after_start",
            ),
        ]

    def __str__(self):
        return (
            f"Borrow #{self.pk} {self.device_id} "
            f"[{self.start_date}, {self.end_date}) {self.status}"
        )

    @property
    def is_terminal(self):
        return not self.VALID_TRANSITIONS.get(self.status)

    def can_transition_to(self, new_status):
        """Check if transitioning to new_status is valid."""
        return new_status in self.VALID_TRANSITIONS.get(self.status, [])


class ReturnRequest(models.Model):
    """Record of a device coming back; exactly one per borrow."""

    CONDITION_EXCELLENT = "excellent"
    CONDITION_GOOD = "good"
    CONDITION_FAIR = "fair"
    CONDITION_DAMAGED = "damaged"

    CONDITION_CHOICES = [
        (CONDITION_EXCELLENT, "Excellent"),
        (CONDITION_GOOD, "Good"),
        (CONDITION_FAIR, "Fair"),
        (CONDITION_DAMAGED, "Damaged"),
    ]

    borrow_request = models.OneToOneField(
        BorrowRequest,
        on_delete=models.CASCADE,
        related_name="return_request",
    )
    return_date = models.DateField()
    device_condition = models.CharField(
        max_length=20,
        choices=CONDITION_CHOICES,
        default=CONDITION_GOOD,
    )
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_returns",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-pk"]
        indexes = [
            models.Index(fields=["return_date"], name="idx_return_date"),
            models.Index(
                fields=["device_condition"], name="idx_return_condition"
            ),
        ]

    def __str__(self):
        return f"Return #{self.pk} of borrow #{self.borrow_request_id}"

    @property
    def is_damaged(self):
        return self.device_condition == self.CONDITION_DAMAGED


class RenewalRequest(models.Model):
    """Request to push an active loan's end date further out."""

    STATUS_PENDING = "pending"
    STATUS_APPROVED = "approved"
    STATUS_REJECTED = "rejected"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_APPROVED, "Approved"),
        (STATUS_REJECTED, "Rejected"),
    ]

    VALID_TRANSITIONS = {
        STATUS_PENDING: [STATUS_APPROVED, STATUS_REJECTED],
        STATUS_APPROVED: [],
        STATUS_REJECTED: [],
    }

    borrow_request = models.ForeignKey(
        BorrowRequest,
        on_delete=models.CASCADE,
        related_name="renewal_requests",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="renewal_requests",
    )
    current_end_date = models.DateField(
        help_text="Snapshot of the loan's end date when requested",
    )
    requested_end_date = models.DateField()
    reason = models.TextField()
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING,
    )
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="reviewed_renewals",
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-pk"]
        indexes = [
            models.Index(fields=["status"], name="idx_renewal_status"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(requested_end_date__gt=F("current_end_date")),
                name="chk_renewal_extends_end",
            ),
            models.UniqueConstraint(
                fields=["borrow_request"],
                condition=Q(status="pending"),
                name="uniq_pending_renewal_per_borrow",
            ),
        ]

    def __str__(self):
        return (
            f"Renewal #{self.pk} of borrow #{self.borrow_request_id} "
            f"to {self.requested_end_date} ({self.status})"
        )

    def can_transition_to(self, new_status):
        return new_status in self.VALID_TRANSITIONS.get(self.status, [])


class Notification(models.Model):
    """In-app notification delivered after a lending decision."""

    TYPE_CHOICES = [
        ("request_approved", "Request approved"),
        ("request_rejected", "Request rejected"),
        ("new_request", "New request"),
        ("device_returned", "Device returned"),
        ("renewal_approved", "Renewal approved"),
        ("renewal_rejected", "Renewal rejected"),
        ("info", "Info"),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications",
    )
    type = models.CharField(max_length=30, choices=TYPE_CHOICES)
    title = models.CharField(max_length=255)
    message = models.TextField()
    link = models.CharField(max_length=500, blank=True, default="")
    is_read = models.BooleanField(default=False)
    related_request = models.ForeignKey(
        BorrowRequest,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="notifications",
    )
    related_device = models.ForeignKey(
        Device,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="notifications",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-pk"]
        indexes = [
            models.Index(
                fields=["user", "is_read"], name="idx_notification_unread"
            ),
        ]

    def __str__(self):
        return f"{self.title} -> {self.user}"
