"""
Reports app models.

A ``Report`` is a citizen- or officer-submitted preliminary account of an
event.  It is triaged through ``ReportStatus`` and either closed directly
(RESOLVED / REJECTED) or promoted to an ``incidents.Incident``
(CONVERTED).  Reports are never physically deleted.
"""

from django.conf import settings
from django.db import models

from core.models import LocatedModel, Priority, TimeStampedModel


class ReportStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    IN_REVIEW = "IN_REVIEW", "In Review"
    IN_PROGRESS = "IN_PROGRESS", "In Progress"
    RESOLVED = "RESOLVED", "Resolved"
    REJECTED = "REJECTED", "Rejected"
    CONVERTED = "CONVERTED", "Converted to Incident"


TERMINAL_REPORT_STATUSES = frozenset(
    {
        ReportStatus.RESOLVED,
        ReportStatus.REJECTED,
        ReportStatus.CONVERTED,
    }
)


class Report(TimeStampedModel, LocatedModel):
    """
    Preliminary account of an event awaiting triage.

    The Incident produced by conversion is reachable as ``report.incident``
    (reverse side of ``Incident.source_report``).
    """

    title = models.CharField(max_length=255, verbose_name="Title")
    description = models.TextField(blank=True, default="", verbose_name="Description")
    type = models.CharField(
        max_length=100,
        blank=True,
        default="",
        verbose_name="Type",
        help_text="Free text; normalised when the report is converted.",
    )
    status = models.CharField(
        max_length=20,
        choices=ReportStatus.choices,
        default=ReportStatus.PENDING,
        db_index=True,
        verbose_name="Status",
    )
    priority = models.CharField(
        max_length=10,
        choices=Priority.choices,
        default=Priority.MEDIUM,
        verbose_name="Priority",
    )
    witnesses = models.TextField(blank=True, default="", verbose_name="Witnesses")
    evidence = models.TextField(blank=True, default="", verbose_name="Evidence")
    occurred_at = models.DateTimeField(null=True, blank=True, verbose_name="Occurred At")

    assigned_officers = models.ManyToManyField(
        "officers.Officer",
        blank=True,
        related_name="assigned_reports",
        verbose_name="Assigned Officers",
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="reports",
        verbose_name="Created By",
    )

    resolved_at = models.DateTimeField(null=True, blank=True, verbose_name="Resolved At")
    resolution_notes = models.TextField(blank=True, default="", verbose_name="Resolution Notes")

    class Meta:
        verbose_name = "Report"
        verbose_name_plural = "Reports"
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["status", "created_at"]),
        ]

    def __str__(self):
        return f"Report #{self.pk} — {self.title} [{self.get_status_display()}]"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_REPORT_STATUSES
