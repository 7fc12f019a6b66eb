"""
Incidents app models.

An ``Incident`` is a formal, investigable case, created directly,
anonymously, or by converting a ``reports.Report``.  Its history is an
append-only list of ``IncidentUpdate`` rows.
"""

from django.conf import settings
from django.db import models

from core.domain import clock
from core.domain.exceptions import Conflict
from core.models import LocatedModel, Priority, TimeStampedModel


class IncidentStatus(models.TextChoices):
    REPORTED = "REPORTED", "Reported"
    UNDER_INVESTIGATION = "UNDER_INVESTIGATION", "Under Investigation"
    IN_PROGRESS = "IN_PROGRESS", "In Progress"
    RESOLVED = "RESOLVED", "Resolved"
    CLOSED = "CLOSED", "Closed"


# Forward order used to spot regressions (e.g. CLOSED -> REPORTED).
STATUS_RANK: dict[str, int] = {
    IncidentStatus.REPORTED: 0,
    IncidentStatus.UNDER_INVESTIGATION: 1,
    IncidentStatus.IN_PROGRESS: 2,
    IncidentStatus.RESOLVED: 3,
    IncidentStatus.CLOSED: 4,
}


class Incident(TimeStampedModel, LocatedModel):
    """
    Formal case under investigation.

    Anonymous incidents leave ``reported_by`` empty; the user who filed
    them is kept in ``converted_by`` for audit, and output serializers
    never render either field when ``anonymous`` is set.
    ``report_details`` is the snapshot taken from the source Report
    at conversion time and is never rewritten afterwards.
    """

    title = models.CharField(max_length=255, verbose_name="Title")
    description = models.TextField(blank=True, default="", verbose_name="Description")
    incident_type = models.CharField(
        max_length=100,
        default="OTHER",
        db_index=True,
        verbose_name="Incident Type",
    )
    status = models.CharField(
        max_length=25,
        choices=IncidentStatus.choices,
        default=IncidentStatus.REPORTED,
        db_index=True,
        verbose_name="Status",
    )
    priority = models.CharField(
        max_length=10,
        choices=Priority.choices,
        default=Priority.MEDIUM,
        db_index=True,
        verbose_name="Priority",
    )

    # ── Reporter ────────────────────────────────────────────────────
    reported_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="reported_incidents",
        verbose_name="Reported By",
    )
    anonymous = models.BooleanField(default=False, verbose_name="Anonymous")
    reporter_contact_info = models.CharField(
        max_length=255,
        blank=True,
        default="",
        verbose_name="Reporter Contact Info",
    )
    converted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="converted_incidents",
        verbose_name="Converted By",
    )

    # ── Assignment & classification ─────────────────────────────────
    assigned_officers = models.ManyToManyField(
        "officers.Officer",
        blank=True,
        related_name="assigned_incidents",
        verbose_name="Assigned Officers",
    )
    tags = models.JSONField(default=list, blank=True, verbose_name="Tags")
    images = models.JSONField(default=list, blank=True, verbose_name="Images")

    # ── Resolution ──────────────────────────────────────────────────
    resolution_date = models.DateTimeField(null=True, blank=True, verbose_name="Resolution Date")
    resolution_notes = models.TextField(blank=True, default="", verbose_name="Resolution Notes")

    # ── Conversion back-link ────────────────────────────────────────
    source_report = models.OneToOneField(
        "reports.Report",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        db_index=True,
        related_name="incident",
        verbose_name="Source Report",
    )
    report_details = models.JSONField(default=dict, blank=True, verbose_name="Report Details")

    class Meta:
        verbose_name = "Incident"
        verbose_name_plural = "Incidents"
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["status", "priority"]),
            models.Index(fields=["created_at"]),
        ]

    def __str__(self):
        return f"Incident #{self.pk} — {self.title} [{self.get_status_display()}]"


class IncidentUpdate(models.Model):
    """
    Immutable entry in an Incident's timeline.

    ``status`` snapshots the Incident's status at the moment the entry was
    written.  Saving an existing row raises ``Conflict``.
    """

    incident = models.ForeignKey(
        Incident,
        on_delete=models.CASCADE,
        related_name="updates",
        verbose_name="Incident",
    )
    content = models.TextField(verbose_name="Content")
    status = models.CharField(
        max_length=25,
        choices=IncidentStatus.choices,
        verbose_name="Status Snapshot",
    )
    notes = models.TextField(blank=True, default="", verbose_name="Notes")
    evidence_urls = models.JSONField(default=list, blank=True, verbose_name="Evidence URLs")
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="incident_updates",
        verbose_name="Updated By",
    )
    created_at = models.DateTimeField(verbose_name="Created At")

    class Meta:
        verbose_name = "Incident Update"
        verbose_name_plural = "Incident Updates"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["incident", "created_at"]),
        ]

    def __str__(self):
        return f"Update #{self.pk} on Incident #{self.incident_id}: {self.content[:50]}"

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise Conflict("Incident updates are immutable once recorded.")
        if self.created_at is None:
            self.created_at = clock.now()
        super().save(*args, **kwargs)
