"""
Accounts app models.

Defines the custom User model that extends Django's ``AbstractUser``.
Authentication itself happens outside this codebase; the lifecycle
services receive an already-authenticated ``User`` as the *actor* of
every mutation.
"""

from django.contrib.auth.models import AbstractUser
from django.db import models


class UserRole(models.TextChoices):
    CITIZEN = "CITIZEN", "Citizen"
    OFFICER = "OFFICER", "Officer"
    ADMIN = "ADMIN", "Admin"


class User(AbstractUser):
    """
    Custom user model for the civic-safety system.

    Citizens file Reports, officers work cases, admins triage.  A user
    acting as an officer is linked to an ``officers.Officer`` profile
    through ``user.officer_profile``.
    """

    phone_number = models.CharField(
        max_length=20,
        blank=True,
        default="",
        verbose_name="Phone Number",
    )
    role = models.CharField(
        max_length=20,
        choices=UserRole.choices,
        default=UserRole.CITIZEN,
        db_index=True,
        verbose_name="Role",
    )

    class Meta:
        verbose_name = "User"
        verbose_name_plural = "Users"

    def __str__(self):
        return f"{self.username} ({self.get_full_name()}) - {self.get_role_display()}"

    @property
    def display_name(self) -> str:
        return self.get_full_name() or self.username

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN or self.is_staff
