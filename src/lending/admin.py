"""Admin configuration for the lending app using django-unfold.

Requests are read-only on the change forms. Every change goes through
the reservation service actions so locking, notifications and audit
records apply.
"""

import logging

from unfold.admin import ModelAdmin
from unfold.contrib.filters.admin import ChoicesDropdownFilter
from unfold.decorators import action, display

from django.contrib import admin, messages

from .exceptions import LendingError
from .models import (
    BorrowRequest,
    Device,
    Notification,
    RenewalRequest,
    ReturnRequest,
)
from .services import reservations

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    "pending": "warning",
    "approved": "info",
    "active": "success",
    "returned": "info",
    "rejected": "danger",
}


def _apply_each(request, queryset, operation, verb):
    """Run ``operation(obj)`` per object, reporting failures per row."""
    done = 0
    for obj in queryset:
        try:
            operation(obj)
        except LendingError as e:
            messages.error(request, f"{obj}: {e.message}")
        else:
            done += 1
    if done:
        messages.success(request, f"{done} request(s) {verb}.")
    return done


@admin.register(Device)
class DeviceAdmin(ModelAdmin):
    list_display = [
        "display_device",
        "category",
        "display_status",
        "created_at",
    ]
    list_filter = [
        ("status", ChoicesDropdownFilter),
        ("category", ChoicesDropdownFilter),
    ]
    list_filter_submit = True
    search_fields = ["name", "asset_tag", "notes"]
    readonly_fields = ["created_at"]

    @display(description="Device", header=True, ordering="name")
    def display_device(self, obj):
        return obj.name, obj.asset_tag

    @display(
        description="Status",
        label={
            Device.STATUS_AVAILABLE: "success",
            Device.STATUS_BORROWED: "warning",
            Device.STATUS_MAINTENANCE: "danger",
        },
    )
    def display_status(self, obj):
        return obj.status


@admin.register(BorrowRequest)
class BorrowRequestAdmin(ModelAdmin):
    list_display = [
        "pk",
        "device",
        "user",
        "start_date",
        "end_date",
        "display_status",
        "approved_by",
        "created_at",
    ]
    list_filter = [("status", ChoicesDropdownFilter), "start_date"]
    list_filter_submit = True
    search_fields = [
        "device__name",
        "device__asset_tag",
        "user__username",
        "user__email",
        "reason",
    ]
    readonly_fields = [
        "device",
        "user",
        "start_date",
        "end_date",
        "reason",
        "status",
        "approved_by",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "start_date"
    actions = ["approve_requests", "reject_requests", "activate_requests"]

    @display(description="Status", label=STATUS_LABELS)
    def display_status(self, obj):
        return obj.status

    def has_add_permission(self, request):
        return False

    def _set_status(self, request, queryset, target, verb):
        return _apply_each(
            request,
            queryset,
            lambda obj: reservations.set_borrow_status(
                request.user, obj.pk, target
            ),
            verb,
        )

    @action(description="Approve selected requests")
    def approve_requests(self, request, queryset):
        self._set_status(
            request, queryset, BorrowRequest.STATUS_APPROVED, "approved"
        )

    @action(description="Reject selected requests")
    def reject_requests(self, request, queryset):
        self._set_status(
            request, queryset, BorrowRequest.STATUS_REJECTED, "rejected"
        )

    @action(description="Hand out selected devices")
    def activate_requests(self, request, queryset):
        self._set_status(
            request, queryset, BorrowRequest.STATUS_ACTIVE, "activated"
        )


@admin.register(ReturnRequest)
class ReturnRequestAdmin(ModelAdmin):
    list_display = [
        "pk",
        "borrow_request",
        "return_date",
        "display_condition",
        "created_by",
    ]
    list_filter = [("device_condition", ChoicesDropdownFilter), "return_date"]
    list_filter_submit = True
    search_fields = [
        "borrow_request__device__name",
        "borrow_request__user__username",
        "notes",
    ]
    readonly_fields = [
        "borrow_request",
        "return_date",
        "device_condition",
        "notes",
        "created_by",
        "created_at",
        "updated_at",
    ]
    actions = [
        "mark_excellent",
        "mark_good",
        "mark_fair",
        "mark_damaged",
    ]

    @display(
        description="Condition",
        label={
            ReturnRequest.CONDITION_EXCELLENT: "success",
            ReturnRequest.CONDITION_GOOD: "success",
            ReturnRequest.CONDITION_FAIR: "warning",
            ReturnRequest.CONDITION_DAMAGED: "danger",
        },
    )
    def display_condition(self, obj):
        return obj.device_condition

    def has_add_permission(self, request):
        return False

    def _correct(self, request, queryset, condition):
        done = _apply_each(
            request,
            queryset,
            lambda obj: reservations.update_return_condition(
                request.user, obj.pk, condition
            ),
            f"corrected to {condition}",
        )
        logger.info(
            "User %s corrected %d return(s) to %s",
            request.user.pk,
            done,
            condition,
        )

    @action(description="Correct condition: excellent")
    def mark_excellent(self, request, queryset):
        self._correct(request, queryset, ReturnRequest.CONDITION_EXCELLENT)

    @action(description="Correct condition: good")
    def mark_good(self, request, queryset):
        self._correct(request, queryset, ReturnRequest.CONDITION_GOOD)

    @action(description="Correct condition: fair")
    def mark_fair(self, request, queryset):
        self._correct(request, queryset, ReturnRequest.CONDITION_FAIR)

    @action(description="Correct condition: damaged (requires notes)")
    def mark_damaged(self, request, queryset):
        self._correct(request, queryset, ReturnRequest.CONDITION_DAMAGED)


@admin.register(RenewalRequest)
class RenewalRequestAdmin(ModelAdmin):
    list_display = [
        "pk",
        "borrow_request",
        "user",
        "current_end_date",
        "requested_end_date",
        "display_status",
        "reviewed_by",
    ]
    list_filter = [("status", ChoicesDropdownFilter)]
    list_filter_submit = True
    search_fields = ["borrow_request__device__name", "user__username"]
    readonly_fields = [
        "borrow_request",
        "user",
        "current_end_date",
        "requested_end_date",
        "reason",
        "status",
        "reviewed_by",
        "reviewed_at",
        "created_at",
    ]
    actions = ["approve_renewals", "reject_renewals"]

    @display(description="Status", label=STATUS_LABELS)
    def display_status(self, obj):
        return obj.status

    def has_add_permission(self, request):
        return False

    @action(description="Approve selected renewals")
    def approve_renewals(self, request, queryset):
        _apply_each(
            request,
            queryset,
            lambda obj: reservations.set_renewal_status(
                request.user, obj.pk, RenewalRequest.STATUS_APPROVED
            ),
            "approved",
        )

    @action(description="Reject selected renewals")
    def reject_renewals(self, request, queryset):
        _apply_each(
            request,
            queryset,
            lambda obj: reservations.set_renewal_status(
                request.user, obj.pk, RenewalRequest.STATUS_REJECTED
            ),
            "rejected",
        )


@admin.register(Notification)
class NotificationAdmin(ModelAdmin):
    list_display = ["title", "user", "type", "display_read", "created_at"]
    list_filter = [("type", ChoicesDropdownFilter), "is_read"]
    search_fields = ["title", "message", "user__username"]
    readonly_fields = ["created_at"]

    @display(description="Read", boolean=True)
    def display_read(self, obj):
        return obj.is_read
