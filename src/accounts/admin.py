"""Admin configuration for accounts app."""

import logging

from unfold.admin import ModelAdmin
from unfold.decorators import action, display

from django.contrib import admin, messages
from django.contrib.admin.models import CHANGE, LogEntry
from django.contrib.auth.admin import UserAdmin
from django.contrib.contenttypes.models import ContentType

from .forms import CustomUserChangeForm, CustomUserCreationForm
from .models import CustomUser

logger = logging.getLogger(__name__)


@admin.register(CustomUser)
class CustomUserAdmin(UserAdmin, ModelAdmin):
    add_form = CustomUserCreationForm
    form = CustomUserChangeForm
    model = CustomUser
    list_display = [
        "display_user",
        "email",
        "display_role",
        "department",
        "display_active",
    ]
    list_filter = [
        "role",
        "is_active",
        "is_superuser",
    ]
    search_fields = [
        "username",
        "email",
        "display_name",
        "first_name",
        "last_name",
    ]
    fieldsets = (
        (
            "Profile",
            {
                "classes": ["tab"],
                "fields": (
                    "username",
                    "password",
                    "display_name",
                    "first_name",
                    "last_name",
                    "email",
                    "department",
                ),
            },
        ),
        (
            "Permissions",
            {
                "classes": ["tab"],
                "fields": (
                    "role",
                    "is_active",
                    "is_staff",
                    "is_superuser",
                ),
            },
        ),
        (
            "Activity",
            {
                "classes": ["tab"],
                "fields": ("last_login", "date_joined"),
            },
        ),
    )
    readonly_fields = ["last_login", "date_joined"]
    add_fieldsets = UserAdmin.add_fieldsets + (
        (
            "Additional Info",
            {"fields": ("email", "display_name", "role")},
        ),
    )

    @display(description="User", header=True, ordering="username")
    def display_user(self, obj):
        return obj.get_display_name(), obj.username

    @display(
        description="Role",
        label={
            CustomUser.ROLE_SUPERUSER: "danger",
            CustomUser.ROLE_ADMIN: "warning",
            CustomUser.ROLE_USER: "info",
        },
    )
    def display_role(self, obj):
        return obj.role

    @display(description="Active", boolean=True)
    def display_active(self, obj):
        return obj.is_active

    actions = ["grant_admin_role", "revoke_admin_role"]

    def _log_change(self, request, user, message):
        """Create a LogEntry for a bulk action change."""
        ct = ContentType.objects.get_for_model(user)
        LogEntry.objects.create(
            user_id=request.user.pk,
            content_type_id=ct.pk,
            object_id=str(user.pk),
            object_repr=str(user),
            action_flag=CHANGE,
            change_message=message,
        )

    def _set_role(self, request, queryset, role):
        count = 0
        for user in queryset.exclude(role=role):
            user.role = role
            user.save(update_fields=["role"])
            self._log_change(request, user, f"Role set to '{role}'")
            count += 1
        logger.info(
            "User %s set role '%s' on %d account(s)",
            request.user.pk,
            role,
            count,
        )
        return count

    @action(description="Grant lending admin role")
    def grant_admin_role(self, request, queryset):
        count = self._set_role(request, queryset, CustomUser.ROLE_ADMIN)
        messages.success(request, f"{count} user(s) are now admins.")

    @action(description="Revoke lending admin role")
    def revoke_admin_role(self, request, queryset):
        count = self._set_role(request, queryset, CustomUser.ROLE_USER)
        messages.success(request, f"{count} user(s) are now regular users.")
