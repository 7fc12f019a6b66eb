"""
Officers app models.

An ``Officer`` is a law-enforcement actor eligible for assignment to
Reports and Incidents.  Assignment eligibility is driven purely by
``status``; rank, department and district are descriptive.
"""

from django.conf import settings
from django.db import models

from core.models import TimeStampedModel


class OfficerRank(models.TextChoices):
    CONSTABLE = "CONSTABLE", "Constable"
    HEAD_CONSTABLE = "HEAD_CONSTABLE", "Head Constable"
    ASSISTANT_SUB_INSPECTOR = "ASSISTANT_SUB_INSPECTOR", "Assistant Sub-Inspector"
    SUB_INSPECTOR = "SUB_INSPECTOR", "Sub-Inspector"
    INSPECTOR = "INSPECTOR", "Inspector"
    DEPUTY_SUPERINTENDENT = "DEPUTY_SUPERINTENDENT", "Deputy Superintendent"
    SUPERINTENDENT = "SUPERINTENDENT", "Superintendent"
    SENIOR_SUPERINTENDENT = "SENIOR_SUPERINTENDENT", "Senior Superintendent"
    DEPUTY_INSPECTOR_GENERAL = "DEPUTY_INSPECTOR_GENERAL", "Deputy Inspector General"
    INSPECTOR_GENERAL = "INSPECTOR_GENERAL", "Inspector General"
    ADDITIONAL_DIRECTOR_GENERAL = "ADDITIONAL_DIRECTOR_GENERAL", "Additional Director General"
    DIRECTOR_GENERAL = "DIRECTOR_GENERAL", "Director General"


class OfficerStatus(models.TextChoices):
    ACTIVE = "ACTIVE", "Active"
    ON_PATROL = "ON_PATROL", "On Patrol"
    IN_TRAINING = "IN_TRAINING", "In Training"
    ON_LEAVE = "ON_LEAVE", "On Leave"
    SUSPENDED = "SUSPENDED", "Suspended"


# Statuses from which an officer may be *newly* added to a case.
ASSIGNABLE_STATUSES = frozenset(
    {
        OfficerStatus.ACTIVE,
        OfficerStatus.ON_PATROL,
        OfficerStatus.IN_TRAINING,
    }
)


class Officer(TimeStampedModel):
    """
    Officer profile, optionally linked to a login ``User``.

    Notifications addressed to an officer go to ``officer.user``; an
    officer without a user is still assignable but is skipped when
    notifying.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="officer_profile",
        verbose_name="User Account",
    )
    name = models.CharField(max_length=150, db_index=True, verbose_name="Name")
    badge_number = models.CharField(
        max_length=50,
        unique=True,
        verbose_name="Badge Number",
    )
    rank = models.CharField(
        max_length=40,
        choices=OfficerRank.choices,
        default=OfficerRank.CONSTABLE,
        verbose_name="Rank",
    )
    department = models.CharField(max_length=150, blank=True, default="", verbose_name="Department")
    district = models.CharField(
        max_length=100,
        blank=True,
        default="",
        db_index=True,
        verbose_name="District",
    )
    status = models.CharField(
        max_length=20,
        choices=OfficerStatus.choices,
        default=OfficerStatus.ACTIVE,
        db_index=True,
        verbose_name="Status",
    )
    email = models.EmailField(blank=True, default="", verbose_name="Email")

    class Meta:
        verbose_name = "Officer"
        verbose_name_plural = "Officers"
        ordering = ["name", "id"]

    def __str__(self):
        return f"{self.name} ({self.badge_number})"

    @property
    def is_assignable(self) -> bool:
        return self.status in ASSIGNABLE_STATUSES
