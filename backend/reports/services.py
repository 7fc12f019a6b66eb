"""
Reports app Service Layer.

This module is the **single source of truth** for all business logic in
the ``reports`` app, including the promotion of a Report into an
Incident.

Architecture
------------
- ``ReportQueryService``      — Filtered queryset construction & retrieval.
- ``ReportLifecycleManager``  — Creation, status transitions, officer assignment.
- ``ConversionCoordinator``   — Report → Incident promotion.

Report status machine
---------------------
::

    PENDING     → IN_REVIEW, IN_PROGRESS, RESOLVED, REJECTED, CONVERTED
    IN_REVIEW   → IN_PROGRESS, RESOLVED, REJECTED, CONVERTED
    IN_PROGRESS → RESOLVED, REJECTED, CONVERTED
    RESOLVED / REJECTED / CONVERTED → (terminal)

CONVERTED is only ever written by ``ConversionCoordinator.convert``; a
direct ``update_status(..., CONVERTED)`` raises ``InvalidTransition``.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable

from django.conf import settings
from django.db import transaction
from django.db.models import Q, QuerySet
from django.utils import timezone

from core.domain import clock
from core.domain.exceptions import (
    Conflict,
    DomainError,
    InvalidOperation,
    InvalidTransition,
    ValidationError,
)
from core.domain.notifications import NotificationService
from core.domain.transactions import get_or_not_found, lock_for_update
from core.domain.validation import validate_input
from core.models import Priority
from incidents.models import Incident
from incidents.services import IncidentLifecycleManager, build_report_snapshot
from officers.models import Officer
from officers.services import OfficerAssignmentResolver, notify_officers

from .models import Report, ReportStatus
from .serializers import (
    AssignOfficersSerializer,
    ConvertToIncidentSerializer,
    CreateReportSerializer,
    ReportFilterSerializer,
    UpdateReportStatusSerializer,
)

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    ReportStatus.PENDING: {
        ReportStatus.IN_REVIEW,
        ReportStatus.IN_PROGRESS,
        ReportStatus.RESOLVED,
        ReportStatus.REJECTED,
        ReportStatus.CONVERTED,
    },
    ReportStatus.IN_REVIEW: {
        ReportStatus.IN_PROGRESS,
        ReportStatus.RESOLVED,
        ReportStatus.REJECTED,
        ReportStatus.CONVERTED,
    },
    ReportStatus.IN_PROGRESS: {
        ReportStatus.RESOLVED,
        ReportStatus.REJECTED,
        ReportStatus.CONVERTED,
    },
    ReportStatus.RESOLVED: set(),
    ReportStatus.REJECTED: set(),
    ReportStatus.CONVERTED: set(),
}

CLOSING_STATUSES = frozenset({ReportStatus.RESOLVED, ReportStatus.REJECTED})
UNCONVERTIBLE_STATUSES = frozenset({ReportStatus.CONVERTED, ReportStatus.REJECTED})

# Conversion assignment failure policies.
POLICY_LENIENT = "lenient"
POLICY_STRICT = "strict"
CONVERSION_POLICIES = frozenset({POLICY_LENIENT, POLICY_STRICT})

_COORDINATES_RE = re.compile(
    r"lat(?:itude)?\s*[:=]\s*(-?\d{1,2}(?:\.\d+)?)\s*[,;]?\s*"
    r"(?:lng|lon|long|longitude)\s*[:=]\s*(-?\d{1,3}(?:\.\d+)?)",
    re.IGNORECASE,
)


def extract_coordinates(text: str) -> tuple[float, float] | None:
    """
    Find a ``lat: <n>, lng: <n>`` pair in free text.

    Returns ``None`` when absent or out of range.
    """
    match = _COORDINATES_RE.search(text or "")
    if match is None:
        return None
    lat, lng = float(match.group(1)), float(match.group(2))
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        return None
    return lat, lng


# ═══════════════════════════════════════════════════════════════════
#  Report Query Service
# ═══════════════════════════════════════════════════════════════════


class ReportQueryService:
    """
    Constructs filtered querysets for listing reports.
    """

    @staticmethod
    def get_filtered_queryset(filters: dict[str, Any] | None = None) -> QuerySet[Report]:
        """
        Build a filtered queryset of ``Report`` objects.

        ``filters`` is validated with ``ReportFilterSerializer`` first.
        """
        params = validate_input(ReportFilterSerializer, filters)

        qs = Report.objects.select_related("created_by").prefetch_related("assigned_officers")

        search = params.get("search")
        if search:
            qs = qs.filter(
                Q(title__icontains=search)
                | Q(description__icontains=search)
                | Q(address__icontains=search)
            )

        status = params.get("status")
        if status:
            qs = qs.filter(status=status)

        report_type = params.get("type")
        if report_type:
            qs = qs.filter(type__iexact=report_type)

        priority = params.get("priority")
        if priority:
            qs = qs.filter(priority=priority)

        created_by = params.get("created_by")
        if created_by is not None:
            qs = qs.filter(created_by_id=created_by)

        assigned_officer = params.get("assigned_officer")
        if assigned_officer is not None:
            qs = qs.filter(assigned_officers__id=assigned_officer)

        district = params.get("district")
        if district:
            qs = qs.filter(district__iexact=district)

        date_from = params.get("date_from")
        if date_from is not None:
            qs = qs.filter(created_at__date__gte=date_from)

        date_to = params.get("date_to")
        if date_to is not None:
            qs = qs.filter(created_at__date__lte=date_to)

        return qs.distinct().order_by("-created_at", "-id")


# ═══════════════════════════════════════════════════════════════════
#  Report Lifecycle Manager
# ═══════════════════════════════════════════════════════════════════


class ReportLifecycleManager:
    """
    Owns Report creation, status transitions and officer assignment.
    """

    @staticmethod
    def get(report_id: int) -> Report:
        return get_or_not_found(Report, report_id)

    @staticmethod
    def create(data: dict[str, Any], reporter: Any) -> Report:
        """
        File a new Report in PENDING and tell the admin channel about it.

        Raises:
            ValidationError: Malformed input (e.g. blank title, unknown priority).
        """
        validated = validate_input(CreateReportSerializer, data)

        with transaction.atomic():
            report = Report.objects.create(
                **validated,
                status=ReportStatus.PENDING,
                created_by=reporter,
            )
            NotificationService.broadcast(
                message=f"New report #{report.pk}: {report.title}",
                type_tag="NEW_REPORT",
                related_object=report,
            )

        logger.info("Report #%d created by user %s", report.pk, reporter)
        return report

    @staticmethod
    def update_status(report_id: int, new_status: str, notes: str = "", actor: Any = None) -> Report:
        """
        Move a Report along ``ALLOWED_TRANSITIONS``.

        Moving to the current status is a successful no-op: nothing is
        saved and nobody is notified.  Entering RESOLVED or REJECTED stamps
        ``resolved_at``; non-blank ``notes`` become ``resolution_notes``.

        Raises:
            NotFound:          Unknown report.
            InvalidTransition: The move is not in the table, or targets
                               CONVERTED (use ``ConversionCoordinator``).
        """
        validated = validate_input(
            UpdateReportStatusSerializer,
            {"status": new_status, "notes": notes or ""},
        )
        new_status = validated["status"]
        notes = validated["notes"].strip()

        with transaction.atomic():
            report = lock_for_update(Report, report_id)
            current = report.status

            if new_status == current:
                logger.info("Report #%d already %s; nothing to do", report.pk, current)
                return report

            if new_status == ReportStatus.CONVERTED:
                raise InvalidTransition(
                    current=current,
                    target=new_status,
                    reason="Reports are converted through the conversion workflow only.",
                )

            if new_status not in ALLOWED_TRANSITIONS[current]:
                allowed = ", ".join(sorted(ALLOWED_TRANSITIONS[current])) or "none"
                raise InvalidTransition(
                    current=current,
                    target=new_status,
                    reason=f"Allowed targets: {allowed}.",
                )

            report.status = new_status
            if new_status in CLOSING_STATUSES:
                report.resolved_at = clock.now()
            if notes:
                report.resolution_notes = notes
            report.save()

            message = f"Report #{report.pk} status updated from {current} to {new_status}."
            NotificationService.notify(
                recipient=report.created_by,
                message=message,
                type_tag="REPORT_STATUS_UPDATED",
                related_object=report,
            )
            notify_officers(
                report.assigned_officers.select_related("user").exclude(user=report.created_by),
                message=message,
                type_tag="REPORT_STATUS_UPDATED",
                related_object=report,
            )

        logger.info(
            "Report #%d status %s -> %s by user %s",
            report.pk,
            current,
            new_status,
            actor,
        )
        return report

    @staticmethod
    def assign_officers(report_id: int, officer_ids: Iterable[Any], actor: Any = None) -> Report:
        """
        Replace the report's officer set with ``officer_ids``.

        Only officers that were not already assigned are notified.

        Raises:
            ValidationError: ``officer_ids`` is empty.
            NotFound:        Unknown report, or unresolved officer ids
                             (all listed in the message).
            Conflict:        The report is RESOLVED, REJECTED or CONVERTED,
                             or a newly added officer is not assignable.
        """
        validated = validate_input(
            AssignOfficersSerializer,
            {"officer_ids": list(officer_ids or [])},
        )

        with transaction.atomic():
            report = lock_for_update(Report, report_id)
            if report.is_terminal:
                raise Conflict(
                    f"Cannot assign officers to Report #{report.pk} in status {report.status}."
                )

            added = OfficerAssignmentResolver.assign(report, validated["officer_ids"])
            report.save(update_fields=["updated_at"])

            if added:
                notify_officers(
                    Officer.objects.filter(pk__in=added).select_related("user"),
                    message=f"New Report Assignment - #{report.pk}: {report.title}",
                    type_tag="REPORT_ASSIGNED",
                    related_object=report,
                )

        logger.info(
            "Report #%d officers set to %s (%d new) by user %s",
            report.pk,
            validated["officer_ids"],
            len(added),
            actor,
        )
        return report


# ═══════════════════════════════════════════════════════════════════
#  Conversion Coordinator
# ═══════════════════════════════════════════════════════════════════


class ConversionCoordinator:
    """
    Promotes a Report into an Incident.

    The Incident is created, officers are carried over, and the Report is
    flipped to CONVERTED inside one transaction, in that order, so a
    CONVERTED report is never observable without its incident.
    Notifications are queued for after commit.

    Officer assignment failures are governed by a policy:

    * ``lenient`` (default) — log, fall back to the report's own officers,
      and finish the conversion.  Only officers actually assigned to the
      incident are notified.
    * ``strict``  — re-raise; the whole conversion rolls back.

    The default comes from ``REPORT_CONVERSION_ASSIGNMENT_POLICY``.
    """

    @staticmethod
    def resolve_policy(policy: str | None) -> str:
        if policy is None:
            policy = getattr(settings, "REPORT_CONVERSION_ASSIGNMENT_POLICY", POLICY_LENIENT)
        policy = str(policy).lower()
        if policy not in CONVERSION_POLICIES:
            raise ValidationError(
                f"Unknown conversion assignment policy '{policy}'. "
                f"Expected one of: {', '.join(sorted(CONVERSION_POLICIES))}."
            )
        return policy

    @staticmethod
    def normalise_type(report_type: str) -> tuple[str, str]:
        """Return ``(incident_type, tag_suffix)`` for a free-text report type."""
        cleaned = " ".join((report_type or "").split())
        if not cleaned:
            return "OTHER", "other"
        return cleaned.upper(), cleaned.lower().replace(" ", "-")

    @staticmethod
    def build_description(report: Report, notes: str = "") -> str:
        """Original description followed by a metadata block."""
        creator = report.created_by
        created = timezone.localtime(report.created_at)
        block = "\n".join(
            [
                "---",
                "Original Report Details:",
                f"- Report ID: {report.pk}",
                f"- Report Type: {report.type or 'N/A'}",
                f"- Report Status: {report.status}",
                f"- Created At: {created:%Y-%m-%d %H:%M}",
                f"- Reported By: {creator.display_name} ({creator.email or 'no email'})",
            ]
        )
        if notes:
            block = f"{block}\n\nConversion Notes: {notes}"
        original = (report.description or "").rstrip()
        return f"{original}\n\n{block}" if original else block

    @staticmethod
    def build_incident_input(report: Report, notes: str, had_officers: bool) -> dict[str, Any]:
        incident_type, type_slug = ConversionCoordinator.normalise_type(report.type)

        location = report.location_dict()
        if location["latitude"] is None or location["longitude"] is None:
            coordinates = extract_coordinates(report.description)
            if coordinates is not None:
                location["latitude"], location["longitude"] = coordinates

        return {
            "title": report.title.strip() or f"Incident from Report #{report.pk}",
            "description": ConversionCoordinator.build_description(report, notes),
            "incident_type": incident_type,
            "priority": Priority.HIGH if had_officers else Priority.MEDIUM,
            "tags": ["from-report", f"report-{report.pk}", f"type-{type_slug}"],
            "source_report_id": report.pk,
            "report_details": build_report_snapshot(report, notes),
            **location,
        }

    @staticmethod
    def convert(
        report_id: int,
        actor: Any,
        notes: str = "",
        extra_officer_ids: Iterable[Any] = (),
        *,
        policy: str | None = None,
    ) -> Incident:
        """
        Convert a Report into an Incident.

        Args:
            report_id:         Report to promote.
            actor:             User performing the conversion (``converted_by``).
            notes:             Optional conversion notes.
            extra_officer_ids: Officers added on top of the report's own.
            policy:            ``"lenient"`` / ``"strict"``; ``None`` uses the setting.

        Returns:
            The new Incident, linked back through ``source_report``.

        Raises:
            NotFound:         Unknown report.
            InvalidOperation: The report is already CONVERTED or REJECTED.
            NotFound / Conflict: Officer assignment failed under ``strict``.
        """
        validated = validate_input(
            ConvertToIncidentSerializer,
            {"notes": notes or "", "officer_ids": list(extra_officer_ids or [])},
        )
        notes = validated["notes"].strip()
        policy = ConversionCoordinator.resolve_policy(policy)

        with transaction.atomic():
            report = lock_for_update(Report, report_id)
            if report.status in UNCONVERTIBLE_STATUSES:
                raise InvalidOperation(
                    f"Report #{report.pk} is {report.status} and cannot be converted."
                )

            report_officer_ids = list(report.assigned_officers.values_list("pk", flat=True))
            officer_ids = list(dict.fromkeys([*report_officer_ids, *validated["officer_ids"]]))

            incident = IncidentLifecycleManager.create(
                ConversionCoordinator.build_incident_input(
                    report, notes, had_officers=bool(report_officer_ids)
                ),
                report.created_by,
                officer_ids=[],
                converted_by=actor,
            )

            assigned_ids = ConversionCoordinator._assign_officers(
                report, incident, officer_ids, report_officer_ids, policy,
            )

            report.status = ReportStatus.CONVERTED
            report.resolved_at = clock.now()
            resolution = f"Converted to Incident #{incident.pk}"
            if notes:
                resolution = f"{resolution}\n\nConversion Notes:\n{notes}"
            report.resolution_notes = resolution
            report.save()

            ConversionCoordinator._notify(report, incident, assigned_ids)

        logger.info(
            "Report #%d converted to Incident #%d by user %s (policy=%s)",
            report.pk,
            incident.pk,
            actor,
            policy,
        )
        return incident

    @staticmethod
    def _assign_officers(
        report: Report,
        incident: Incident,
        officer_ids: list[int],
        report_officer_ids: list[int],
        policy: str,
    ) -> list[int]:
        """
        Assign the union set and return the ids that ended up on the incident.

        Under ``lenient`` a failed union assignment falls back to the
        report's own officers; if that fails as well the incident is left
        unassigned.
        """
        if not officer_ids:
            return []
        try:
            with transaction.atomic():
                OfficerAssignmentResolver.assign(incident, officer_ids)
            return officer_ids
        except DomainError as exc:
            if policy == POLICY_STRICT:
                raise
            logger.warning(
                "Officer assignment failed while converting Report #%d to Incident #%d: %s",
                report.pk,
                incident.pk,
                exc,
            )

        fallback = report_officer_ids if report_officer_ids != officer_ids else []
        if fallback:
            try:
                with transaction.atomic():
                    OfficerAssignmentResolver.assign(incident, fallback)
            except DomainError as exc:
                logger.warning(
                    "Fallback to Report #%d officers failed for Incident #%d: %s",
                    report.pk,
                    incident.pk,
                    exc,
                )
                fallback = []

        lost = [pk for pk in officer_ids if pk not in fallback]
        logger.warning(
            "Incident #%d (from Report #%d) left without officers %s",
            incident.pk,
            report.pk,
            lost,
        )
        return fallback

    @staticmethod
    def _notify(report: Report, incident: Incident, officer_ids: list[int]) -> None:
        NotificationService.notify(
            recipient=report.created_by,
            message=f"Your report #{report.pk} has been converted to Incident #{incident.pk}.",
            type_tag="REPORT_CONVERTED",
            related_object=incident,
        )
        if not officer_ids:
            return
        notify_officers(
            Officer.objects.filter(pk__in=officer_ids)
            .exclude(user=report.created_by)
            .select_related("user")
            .order_by("name", "id"),
            message=(
                f"Report #{report.pk} ({report.title}) has been converted to "
                f"Incident #{incident.pk}."
            ),
            type_tag="REPORT_CONVERTED",
            related_object=incident,
        )
