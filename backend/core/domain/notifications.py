"""
core.domain.notifications — Post-commit notification dispatch.

Centralises notification emission so every lifecycle service uses one
consistent entry-point rather than talking to a delivery backend
directly.

Design decisions
----------------
* **Post-commit** — ``NotificationService`` never delivers inside the
  calling transaction.  Each message is registered with
  ``transaction.on_commit`` and handed to the sink only once the
  mutation is durable; a rolled-back mutation sends nothing.
* **Best effort** — a sink that raises or returns ``False`` is logged and
  otherwise ignored.  One failed delivery never prevents the others and
  never surfaces as the caller's error.
* **Pluggable sink** — the ``NOTIFICATION_SINK`` setting holds the dotted
  path of a class exposing ``notify(recipient, message, type_tag, ...)``.
  The default sink persists ``core.models.Notification`` rows.

Usage::

    from core.domain.notifications import NotificationService

    NotificationService.notify(
        recipient=report.created_by,
        message=f"Your report #{report.pk} was converted.",
        type_tag="REPORT_CONVERTED",
        related_object=report,
    )
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterable

from django.conf import settings
from django.contrib.contenttypes.models import ContentType
from django.db import models
from django.utils.module_loading import import_string

from core.domain.transactions import after_commit

if TYPE_CHECKING:
    from accounts.models import User

logger = logging.getLogger(__name__)

DEFAULT_SINK = "core.domain.notifications.DatabaseNotificationSink"
ADMIN_CHANNEL = "admin"

# ── Type tag → human-readable title ─────────────────────────────────
_EVENT_TITLES: dict[str, str] = {
    "NEW_REPORT":              "New Report Submitted",
    "REPORT_STATUS_UPDATED":   "Report Status Updated",
    "REPORT_ASSIGNED":         "New Report Assignment",
    "REPORT_CONVERTED":        "Report Converted to Incident",
    "INCIDENT_REPORTED":       "New Incident Reported",
    "INCIDENT_STATUS_CHANGED": "Incident Status Updated",
    "INCIDENT_ASSIGNED":       "Incident Assigned",
}


def title_for(type_tag: str) -> str:
    return _EVENT_TITLES.get(type_tag, type_tag.replace("_", " ").title())


# ═══════════════════════════════════════════════════════════════════
#  Sinks
# ═══════════════════════════════════════════════════════════════════


class DatabaseNotificationSink:
    """
    Default sink: one ``Notification`` row per delivery.

    A broadcast (``recipient is None``) is stored once with its
    ``channel`` set; readers of the channel pick it up from there.
    """

    def notify(
        self,
        recipient: User | None,
        message: str,
        type_tag: str,
        *,
        channel: str = "",
        title: str = "",
        related_object: models.Model | None = None,
    ) -> bool:
        from core.models import Notification  # circular import

        content_type = None
        object_id = None
        if related_object is not None and related_object.pk is not None:
            content_type = ContentType.objects.get_for_model(related_object)
            object_id = related_object.pk

        Notification.objects.create(
            recipient=recipient,
            channel=channel,
            event_type=type_tag,
            title=title or title_for(type_tag),
            message=message,
            content_type=content_type,
            object_id=object_id,
        )
        return True


class MemoryNotificationSink:
    """
    Keeps deliveries in a process-wide list.  Handy for local runs and
    tests that want to inspect what was sent without touching the DB.
    """

    sent: list[dict[str, Any]] = []

    def notify(
        self,
        recipient: User | None,
        message: str,
        type_tag: str,
        *,
        channel: str = "",
        title: str = "",
        related_object: models.Model | None = None,
    ) -> bool:
        self.sent.append(
            {
                "recipient": recipient,
                "channel": channel,
                "type_tag": type_tag,
                "title": title or title_for(type_tag),
                "message": message,
                "related_object": related_object,
            }
        )
        return True

    @classmethod
    def reset(cls) -> None:
        cls.sent.clear()


def get_sink():
    """Instantiate the sink named by ``NOTIFICATION_SINK``."""
    path = getattr(settings, "NOTIFICATION_SINK", DEFAULT_SINK)
    return import_string(path)()


# ═══════════════════════════════════════════════════════════════════
#  Service
# ═══════════════════════════════════════════════════════════════════


class NotificationService:
    """
    Stateless helper for emitting notifications after commit.

    All methods are classmethods — no instance state is needed.
    """

    @classmethod
    def notify(
        cls,
        *,
        recipient: User | None,
        message: str,
        type_tag: str,
        related_object: models.Model | None = None,
    ) -> None:
        """
        Queue one direct message for ``recipient``.

        ``recipient=None`` is a no-op with a warning; callers pass whatever
        user they have (e.g. an officer without a login).
        """
        if recipient is None:
            logger.warning(
                "Skipping %s notification with no recipient: %s",
                type_tag,
                message,
            )
            return
        cls._queue(recipient, message, type_tag, channel="", related_object=related_object)

    @classmethod
    def notify_many(
        cls,
        *,
        recipients: Iterable[User | None],
        message: str,
        type_tag: str,
        related_object: models.Model | None = None,
    ) -> int:
        """
        Queue the same message for every distinct recipient.

        Returns:
            Number of deliveries queued (duplicates and ``None`` dropped).
        """
        seen: set[Any] = set()
        queued = 0
        for recipient in recipients:
            if recipient is None or recipient.pk in seen:
                continue
            seen.add(recipient.pk)
            cls._queue(recipient, message, type_tag, channel="", related_object=related_object)
            queued += 1
        return queued

    @classmethod
    def broadcast(
        cls,
        *,
        message: str,
        type_tag: str,
        channel: str = ADMIN_CHANNEL,
        related_object: models.Model | None = None,
    ) -> None:
        """Queue a message for every reader of ``channel``."""
        cls._queue(None, message, type_tag, channel=channel, related_object=related_object)

    # ── internals ───────────────────────────────────────────────────

    @classmethod
    def _queue(
        cls,
        recipient: User | None,
        message: str,
        type_tag: str,
        *,
        channel: str,
        related_object: models.Model | None,
    ) -> None:
        after_commit(
            lambda: cls._deliver(
                recipient,
                message,
                type_tag,
                channel=channel,
                related_object=related_object,
            )
        )

    @staticmethod
    def _deliver(
        recipient: User | None,
        message: str,
        type_tag: str,
        *,
        channel: str,
        related_object: models.Model | None,
    ) -> bool:
        target = recipient if recipient is not None else f"channel:{channel}"
        try:
            delivered = get_sink().notify(
                recipient,
                message,
                type_tag,
                channel=channel,
                title=title_for(type_tag),
                related_object=related_object,
            )
        except Exception:
            logger.exception("Failed to deliver %s notification to %s", type_tag, target)
            return False

        if not delivered:
            logger.warning("Sink rejected %s notification to %s", type_tag, target)
            return False

        logger.info("Delivered %s notification to %s", type_tag, target)
        return True
