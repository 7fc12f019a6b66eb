"""
Core app models.

Provides abstract base models, shared enumerations and the
``Notification`` record written by the default notification sink.
"""

from django.conf import settings
from django.contrib.contenttypes.fields import GenericForeignKey
from django.contrib.contenttypes.models import ContentType
from django.db import models

from core.domain import clock


class Priority(models.TextChoices):
    """Urgency shared by Reports and Incidents."""

    LOW = "LOW", "Low"
    MEDIUM = "MEDIUM", "Medium"
    HIGH = "HIGH", "High"
    CRITICAL = "CRITICAL", "Critical"


class TimeStampedModel(models.Model):
    """
    Abstract base model that provides ``created_at`` and ``updated_at``
    timestamp fields for every concrete child model.

    Both are stamped from ``core.domain.clock`` rather than ``auto_now`` so
    that a pinned clock controls every timestamp the services write.
    Pass ``touch=False`` to ``save`` to persist without moving
    ``updated_at``.
    """

    created_at = models.DateTimeField(
        default=clock.now,
        editable=False,
        verbose_name="Created At",
    )
    updated_at = models.DateTimeField(
        default=clock.now,
        verbose_name="Updated At",
    )

    class Meta:
        abstract = True

    def save(self, *args, touch: bool = True, **kwargs):
        if touch and self.pk is not None:
            self.updated_at = clock.now()
            update_fields = kwargs.get("update_fields")
            if update_fields is not None and "updated_at" not in update_fields:
                kwargs["update_fields"] = [*update_fields, "updated_at"]
        super().save(*args, **kwargs)


class LocatedModel(models.Model):
    """Abstract postal + coordinate location block."""

    address = models.CharField(max_length=500, blank=True, default="", verbose_name="Address")
    latitude = models.FloatField(null=True, blank=True, verbose_name="Latitude")
    longitude = models.FloatField(null=True, blank=True, verbose_name="Longitude")
    city = models.CharField(max_length=100, blank=True, default="", verbose_name="City")
    state = models.CharField(max_length=100, blank=True, default="", verbose_name="State")
    country = models.CharField(max_length=100, blank=True, default="", verbose_name="Country")
    postal_code = models.CharField(max_length=20, blank=True, default="", verbose_name="Postal Code")
    district = models.CharField(
        max_length=100,
        blank=True,
        default="",
        db_index=True,
        verbose_name="District",
    )

    LOCATION_FIELDS = (
        "address",
        "latitude",
        "longitude",
        "city",
        "state",
        "country",
        "postal_code",
        "district",
    )

    class Meta:
        abstract = True

    def location_dict(self) -> dict:
        return {name: getattr(self, name) for name in self.LOCATION_FIELDS}


class Notification(TimeStampedModel):
    """
    Notification emitted by a lifecycle service after its transaction
    committed.

    Either addressed to one ``recipient`` or broadcast on a ``channel``
    (e.g. ``"admin"``) with no recipient.  Uses a GenericForeignKey so any
    model instance can be the *source* of a notification.
    """

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="notifications",
        verbose_name="Recipient",
    )
    channel = models.CharField(
        max_length=50,
        blank=True,
        default="",
        verbose_name="Channel",
        help_text="Broadcast channel; blank for direct messages.",
    )
    event_type = models.CharField(max_length=50, verbose_name="Event Type")
    title = models.CharField(max_length=255, verbose_name="Title")
    message = models.TextField(verbose_name="Message")
    is_read = models.BooleanField(default=False, verbose_name="Read")

    # Generic relation to the object that triggered the notification
    content_type = models.ForeignKey(
        ContentType,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        verbose_name="Related Content Type",
    )
    object_id = models.PositiveIntegerField(
        null=True,
        blank=True,
        verbose_name="Related Object ID",
    )
    content_object = GenericForeignKey("content_type", "object_id")

    class Meta:
        verbose_name = "Notification"
        verbose_name_plural = "Notifications"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["recipient", "is_read"]),
            models.Index(fields=["channel", "event_type"]),
        ]

    def __str__(self):
        target = self.recipient or f"#{self.channel}"
        return f"[{target}] {self.title}"
