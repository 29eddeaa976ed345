"""Custom user model for Device Hub."""

from django.contrib.auth.models import AbstractUser
from django.db import models


class CustomUser(AbstractUser):
    """Employee account with a lending role and required email."""

    ROLE_SUPERUSER = "superuser"
    ROLE_ADMIN = "admin"
    ROLE_USER = "user"

    ROLE_CHOICES = [
        (ROLE_SUPERUSER, "Superuser"),
        (ROLE_ADMIN, "Admin"),
        (ROLE_USER, "User"),
    ]

    display_name = models.CharField(
        max_length=255,
        blank=True,
        help_text="Human-readable name shown on loan requests",
    )
    email = models.EmailField("email address", blank=False, unique=True)
    role = models.CharField(
        max_length=20,
        choices=ROLE_CHOICES,
        default=ROLE_USER,
        help_text="Admins approve, activate and reject loan requests",
    )
    department = models.CharField(
        max_length=100,
        blank=True,
        default="",
    )

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"

    @property
    def is_admin(self):
        """True for lending admins, superusers and Django superusers."""
        if self.is_superuser:
            return True
        return self.role in (self.ROLE_ADMIN, self.ROLE_SUPERUSER)

    def get_display_name(self):
        """Return display_name if set, otherwise full name or username."""
        if self.display_name:
            return self.display_name
        full = self.get_full_name()
        return full if full else self.username

    def __str__(self):
        return self.get_display_name()
