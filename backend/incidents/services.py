"""
Incidents app Service Layer.

This module is the **single source of truth** for all business logic in
the ``incidents`` app: creation (direct, anonymous, or on behalf of the
report conversion workflow), status and priority changes, the
append-only update timeline, officer handoffs and deletion guards.

Architecture
------------
- ``IncidentQueryService``      — Filtered querysets, timeline, statistics.
- ``IncidentLifecycleManager``  — Every mutation of an ``Incident``.

Status handling
---------------
Incident status moves freely between any two values; reopen scenarios
need arbitrary movement.  A move *backwards* in the
REPORTED → UNDER_INVESTIGATION → IN_PROGRESS → RESOLVED → CLOSED order
is still allowed but logged at WARNING for audit review.

Every status or priority change appends exactly one ``IncidentUpdate``.
Mutations lock the incident row with ``select_for_update`` inside
``transaction.atomic``; notifications go out after commit.
"""

from __future__ import annotations

import logging
from typing import Any

from django.conf import settings
from django.db import transaction
from django.db.models import Count, Q, QuerySet
from django.db.models.functions import TruncMonth
from django.utils import timezone

from core.domain import clock
from core.domain.exceptions import Conflict, Unauthorized
from core.domain.notifications import NotificationService
from core.domain.transactions import get_or_not_found, lock_for_update
from core.domain.validation import validate_input
from officers.models import Officer
from officers.services import OfficerAssignmentResolver, notify_officers
from reports.models import Report

from .models import STATUS_RANK, Incident, IncidentStatus, IncidentUpdate
from .serializers import (
    AddIncidentUpdateSerializer,
    CreateIncidentSerializer,
    IncidentFilterSerializer,
    ReassignSerializer,
    UpdateIncidentPrioritySerializer,
    UpdateIncidentSerializer,
    UpdateIncidentStatusSerializer,
)

logger = logging.getLogger(__name__)

DIRECT_CREATION_NOTE = "Incident created directly without a report"
DELETION_NOTE = "Incident has been deleted"

RESOLVING_STATUSES = frozenset({IncidentStatus.RESOLVED, IncidentStatus.CLOSED})
FROZEN_STATUSES = frozenset({IncidentStatus.RESOLVED, IncidentStatus.CLOSED})
UNDELETABLE_STATUSES = frozenset({IncidentStatus.UNDER_INVESTIGATION, IncidentStatus.RESOLVED})


def build_report_snapshot(report: Report, conversion_notes: str = "") -> dict[str, Any]:
    """
    Copy the parts of ``report`` an Incident keeps as ``report_details``.

    Taken while the report still carries its pre-conversion status.
    """
    created = timezone.localtime(report.created_at)
    return {
        "report_id": report.pk,
        "witnesses": report.witnesses,
        "evidence": report.evidence,
        "original_description": report.description,
        "original_type": report.type,
        "original_status": report.status,
        "conversion_notes": conversion_notes,
        "report_date": created.date().isoformat(),
        "report_time": created.time().isoformat(timespec="seconds"),
    }


def _direct_snapshot() -> dict[str, Any]:
    now = timezone.localtime(clock.now())
    return {
        "conversion_notes": DIRECT_CREATION_NOTE,
        "report_date": now.date().isoformat(),
        "report_time": now.time().isoformat(timespec="seconds"),
    }


def _unique(values: list[str]) -> list[str]:
    return list(dict.fromkeys(v for v in values if v))


# ═══════════════════════════════════════════════════════════════════
#  Incident Query Service
# ═══════════════════════════════════════════════════════════════════


class IncidentQueryService:
    """
    Read-side helpers.  Nothing here locks rows or writes.
    """

    @staticmethod
    def get_filtered_queryset(filters: dict[str, Any] | None = None) -> QuerySet[Incident]:
        """
        Build a filtered queryset of ``Incident`` objects.

        ``filters`` is validated with ``IncidentFilterSerializer`` first;
        unknown enum values raise ``ValidationError``.
        """
        params = validate_input(IncidentFilterSerializer, filters)

        qs = Incident.objects.select_related("reported_by", "converted_by").prefetch_related(
            "assigned_officers",
        )

        incident_type = params.get("incident_type")
        if incident_type:
            qs = qs.filter(incident_type__iexact=incident_type)

        status = params.get("status")
        if status:
            qs = qs.filter(status=status)

        priority = params.get("priority")
        if priority:
            qs = qs.filter(priority=priority)

        district = params.get("district")
        if district:
            qs = qs.filter(district__iexact=district)

        reported_by = params.get("reported_by")
        if reported_by is not None:
            qs = qs.filter(reported_by_id=reported_by, anonymous=False)

        assigned_officer = params.get("assigned_officer")
        if assigned_officer is not None:
            qs = qs.filter(assigned_officers__id=assigned_officer)

        source_report = params.get("source_report")
        if source_report is not None:
            qs = qs.filter(source_report_id=source_report)

        start_date = params.get("start_date")
        if start_date is not None:
            qs = qs.filter(created_at__date__gte=start_date)

        end_date = params.get("end_date")
        if end_date is not None:
            qs = qs.filter(created_at__date__lte=end_date)

        search = params.get("search")
        if search:
            qs = qs.filter(Q(title__icontains=search) | Q(description__icontains=search))

        return qs.distinct().order_by("-created_at", "-id")

    @staticmethod
    def get_timeline(incident_id: int) -> list[dict[str, Any]]:
        """
        Chronological history: the creation event followed by every
        ``IncidentUpdate`` in ``(created_at, id)`` order.

        The reporter is left out of the creation event for anonymous
        incidents.
        """
        incident = get_or_not_found(Incident, incident_id)
        entries: list[dict[str, Any]] = [
            {
                "timestamp": incident.created_at,
                "event": "CREATED",
                "content": f"Incident reported: {incident.title}",
                "status": IncidentStatus.REPORTED,
                "notes": "",
                "evidence_urls": [],
                "updated_by": None if incident.anonymous else incident.reported_by_id,
            }
        ]
        for update in incident.updates.all():
            entries.append(
                {
                    "timestamp": update.created_at,
                    "event": "UPDATE",
                    "content": update.content,
                    "status": update.status,
                    "notes": update.notes,
                    "evidence_urls": list(update.evidence_urls or []),
                    "updated_by": update.updated_by_id,
                }
            )
        return entries

    @staticmethod
    def monthly_stats(year: int | None = None) -> list[dict[str, Any]]:
        """Per-month totals with the number already RESOLVED / CLOSED."""
        qs = Incident.objects.all()
        if year is not None:
            qs = qs.filter(created_at__year=year)
        rows = (
            qs.annotate(month=TruncMonth("created_at"))
            .values("month")
            .annotate(
                total=Count("id"),
                resolved=Count("id", filter=Q(status__in=RESOLVING_STATUSES)),
            )
            .order_by("month")
        )
        return [
            {
                "month": row["month"].strftime("%Y-%m"),
                "total": row["total"],
                "resolved": row["resolved"],
            }
            for row in rows
        ]

    @staticmethod
    def type_stats() -> list[dict[str, Any]]:
        rows = (
            Incident.objects.values("incident_type")
            .annotate(count=Count("id"))
            .order_by("-count", "incident_type")
        )
        return [{"incident_type": r["incident_type"], "count": r["count"]} for r in rows]


# ═══════════════════════════════════════════════════════════════════
#  Incident Lifecycle Manager
# ═══════════════════════════════════════════════════════════════════


class IncidentLifecycleManager:
    """
    Owns every write to ``Incident`` and its timeline.
    """

    # ── Lookup ──────────────────────────────────────────────────────

    @staticmethod
    def get(incident_id: int) -> Incident:
        return get_or_not_found(Incident, incident_id)

    @staticmethod
    def find_by_source_report_id(report_id: int) -> Incident | None:
        """Indexed lookup through the conversion back-link."""
        return Incident.objects.filter(source_report_id=report_id).first()

    # ── Creation ────────────────────────────────────────────────────

    @staticmethod
    def create(
        data: dict[str, Any],
        reporter: Any,
        officer_ids: list[int] | None = None,
        *,
        converted_by: Any = None,
    ) -> Incident:
        """
        Create an Incident in REPORTED.

        Args:
            data:         Raw input, validated with ``CreateIncidentSerializer``.
            reporter:     The user the incident is attributed to.
            officer_ids:  Initial assignment; overrides ``data["officer_ids"]``
                          when given.  Empty means no assignment.
            converted_by: Set by the conversion workflow only.

        Raises:
            ValidationError: Malformed input.
            NotFound:        ``source_report_id`` or an officer id does not resolve.
            Conflict:        The source report already has an incident, or an
                             officer is not assignable.
        """
        validated = validate_input(CreateIncidentSerializer, data)
        return IncidentLifecycleManager._create(
            validated,
            reporter=reporter,
            officer_ids=officer_ids,
            converted_by=converted_by,
            anonymous=False,
        )

    @staticmethod
    def create_anonymous(data: dict[str, Any], converted_by: Any) -> Incident:
        """
        Create an anonymous Incident filed by ``converted_by`` on behalf of
        an unnamed reporter.

        ``reported_by`` stays empty; the filing user is kept in
        ``converted_by`` for audit and is hidden from every output.

        Raises:
            Unauthorized: Anonymous reporting is switched off
                          (``ANONYMOUS_REPORTING_ENABLED``).
        """
        if not getattr(settings, "ANONYMOUS_REPORTING_ENABLED", True):
            raise Unauthorized("Anonymous reporting is currently disabled.")
        validated = validate_input(CreateIncidentSerializer, data)
        return IncidentLifecycleManager._create(
            validated,
            reporter=None,
            officer_ids=None,
            converted_by=converted_by,
            anonymous=True,
        )

    @staticmethod
    @transaction.atomic
    def _create(
        validated: dict[str, Any],
        *,
        reporter: Any,
        officer_ids: list[int] | None,
        converted_by: Any,
        anonymous: bool,
    ) -> Incident:
        requested_officers = validated.pop("officer_ids", [])
        if officer_ids is not None:
            requested_officers = list(officer_ids)

        report_details = validated.pop("report_details", None)
        source_report_id = validated.pop("source_report_id", None)
        source_report = None
        if source_report_id is not None:
            source_report = get_or_not_found(Report, source_report_id)
            if Incident.objects.filter(source_report_id=source_report.pk).exists():
                raise Conflict(f"Report #{source_report.pk} already has an incident.")
            if report_details is None:
                report_details = build_report_snapshot(source_report)
        elif report_details is None:
            report_details = _direct_snapshot()

        validated["incident_type"] = validated.get("incident_type") or "OTHER"
        validated["tags"] = _unique(validated.get("tags", []))
        validated["images"] = _unique(validated.get("images", []))

        incident = Incident.objects.create(
            **validated,
            reported_by=reporter,
            anonymous=anonymous,
            converted_by=converted_by,
            source_report=source_report,
            report_details=report_details,
        )

        added: set[int] = set()
        if requested_officers:
            added = OfficerAssignmentResolver.assign(incident, requested_officers)

        NotificationService.broadcast(
            message=f"New incident reported: {incident.title} (#{incident.pk})",
            type_tag="INCIDENT_REPORTED",
            related_object=incident,
        )
        if added:
            notify_officers(
                Officer.objects.filter(pk__in=added).select_related("user"),
                message=f"You have been assigned to Incident #{incident.pk}: {incident.title}",
                type_tag="INCIDENT_ASSIGNED",
                related_object=incident,
            )

        logger.info(
            "Incident #%d created (anonymous=%s, source_report=%s) by user %s",
            incident.pk,
            anonymous,
            source_report_id,
            converted_by or reporter,
        )
        return incident

    # ── Status / priority ───────────────────────────────────────────

    @staticmethod
    def _apply_status(
        incident: Incident,
        new_status: str,
        notes: str,
        actor: Any,
        evidence_urls: list[str] | None = None,
    ) -> IncidentUpdate:
        """Move ``incident`` (in memory) and record the change entry."""
        old_status = incident.status
        if STATUS_RANK[new_status] < STATUS_RANK[old_status]:
            logger.warning(
                "Incident #%d status regressed from %s to %s by user %s",
                incident.pk,
                old_status,
                new_status,
                actor,
            )

        incident.status = new_status
        if new_status in RESOLVING_STATUSES and new_status != old_status:
            incident.resolution_date = clock.now()
            if notes:
                incident.resolution_notes = notes

        content = f"Status changed from {old_status} to {new_status}"
        if notes:
            content = f"{content}: {notes}"
        return IncidentUpdate.objects.create(
            incident=incident,
            content=content,
            status=new_status,
            notes=notes,
            evidence_urls=evidence_urls or [],
            updated_by=actor,
        )

    @staticmethod
    def _notify_reporter_of_status(incident: Incident, old_status: str) -> None:
        if incident.anonymous:
            return
        NotificationService.notify(
            recipient=incident.reported_by,
            message=(
                f"Incident #{incident.pk} status changed from {old_status} "
                f"to {incident.status}."
            ),
            type_tag="INCIDENT_STATUS_CHANGED",
            related_object=incident,
        )

    @staticmethod
    def update_status(incident_id: int, new_status: str, notes: str = "", actor: Any = None) -> Incident:
        """
        Move the incident to ``new_status`` (any value) and append one
        ``"Status changed from <old> to <new>[: notes]"`` entry.

        Entering RESOLVED or CLOSED stamps ``resolution_date``.  The
        reporter is notified unless the incident is anonymous.
        """
        validated = validate_input(
            UpdateIncidentStatusSerializer,
            {"status": new_status, "notes": notes or ""},
        )
        new_status = validated["status"]
        notes = validated["notes"].strip()

        with transaction.atomic():
            incident = lock_for_update(Incident, incident_id)
            old_status = incident.status
            IncidentLifecycleManager._apply_status(incident, new_status, notes, actor)
            incident.save()
            IncidentLifecycleManager._notify_reporter_of_status(incident, old_status)

        logger.info(
            "Incident #%d status %s -> %s by user %s",
            incident.pk,
            old_status,
            new_status,
            actor,
        )
        return incident

    @staticmethod
    def update_priority(incident_id: int, priority: str, notes: str = "", actor: Any = None) -> Incident:
        """Change priority; a same-value call is a no-op."""
        validated = validate_input(
            UpdateIncidentPrioritySerializer,
            {"priority": priority, "notes": notes or ""},
        )
        priority = validated["priority"]
        notes = validated["notes"].strip()

        with transaction.atomic():
            incident = lock_for_update(Incident, incident_id)
            old_priority = incident.priority
            if priority == old_priority:
                return incident

            incident.priority = priority
            content = f"Priority changed from {old_priority} to {priority}"
            if notes:
                content = f"{content}: {notes}"
            IncidentUpdate.objects.create(
                incident=incident,
                content=content,
                status=incident.status,
                notes=notes,
                updated_by=actor,
            )
            incident.save()

        logger.info(
            "Incident #%d priority %s -> %s by user %s",
            incident.pk,
            old_priority,
            priority,
            actor,
        )
        return incident

    # ── Multi-field update ──────────────────────────────────────────

    @staticmethod
    def update(incident_id: int, data: dict[str, Any], actor: Any = None) -> Incident:
        """
        Apply any of ``status``, ``priority``, ``officer_ids``,
        ``evidence_urls`` and ``notes`` in one go.

        A status change gets its own dedicated entry; every other changed
        field is listed in one ``"Incident updated: ..."`` entry.  A call
        that changes nothing writes nothing.

        Evidence URLs are merged into ``images`` and the ones not yet on
        the timeline are kept on the aggregated entry.  ``notes`` only
        annotate the entries written for other changes; notes alone are
        dropped (use ``add_update`` for a standalone note).

        Raises:
            Conflict: The incident is RESOLVED or CLOSED.
        """
        validated = validate_input(UpdateIncidentSerializer, data)
        notes = validated.get("notes", "").strip()

        with transaction.atomic():
            incident = lock_for_update(Incident, incident_id)
            if incident.status in FROZEN_STATUSES:
                raise Conflict(
                    f"Incident #{incident.pk} is {incident.status} and can no longer be updated."
                )

            old_status = incident.status
            changed: list[str] = []
            added_officers: set[int] = set()
            new_evidence: list[str] = []

            priority = validated.get("priority")
            if priority is not None and priority != incident.priority:
                changed.append(f"priority ({incident.priority} -> {priority})")
                incident.priority = priority

            if "officer_ids" in validated:
                current = set(incident.assigned_officers.values_list("pk", flat=True))
                if set(validated["officer_ids"]) != current:
                    added_officers = OfficerAssignmentResolver.assign(
                        incident, validated["officer_ids"]
                    )
                    changed.append("assigned officers")

            if validated.get("evidence_urls"):
                recorded = {
                    url
                    for urls in incident.updates.values_list("evidence_urls", flat=True)
                    for url in (urls or [])
                }
                supplied = _unique(validated["evidence_urls"])
                new_evidence = [u for u in supplied if u not in recorded]
                images = _unique([*(incident.images or []), *supplied])
                if new_evidence or images != list(incident.images or []):
                    changed.append("evidence")
                    incident.images = images

            new_status = validated.get("status")
            status_changed = new_status is not None and new_status != old_status

            if not changed and not status_changed:
                logger.debug("Incident #%d update changed nothing", incident.pk)
                return incident

            if status_changed:
                IncidentLifecycleManager._apply_status(incident, new_status, notes, actor)
            if changed:
                IncidentUpdate.objects.create(
                    incident=incident,
                    content=f"Incident updated: {', '.join(changed)}",
                    status=incident.status,
                    notes=notes,
                    evidence_urls=new_evidence,
                    updated_by=actor,
                )
            incident.save()

            if status_changed:
                IncidentLifecycleManager._notify_reporter_of_status(incident, old_status)
            if added_officers:
                notify_officers(
                    Officer.objects.filter(pk__in=added_officers).select_related("user"),
                    message=f"You have been assigned to Incident #{incident.pk}: {incident.title}",
                    type_tag="INCIDENT_ASSIGNED",
                    related_object=incident,
                )

        logger.info(
            "Incident #%d updated (%s%s) by user %s",
            incident.pk,
            "status, " if status_changed else "",
            ", ".join(changed),
            actor,
        )
        return incident

    @staticmethod
    def add_update(incident_id: int, data: dict[str, Any], actor: Any) -> IncidentUpdate:
        """
        Record an officer note (with optional evidence URLs) and, if a
        different status is supplied, move the incident in the same entry.

        Raises:
            Unauthorized: ``actor`` is neither an admin nor an assigned officer.
        """
        validated = validate_input(AddIncidentUpdateSerializer, data)
        notes = validated.get("notes", "").strip()
        evidence_urls = _unique(validated.get("evidence_urls", []))

        with transaction.atomic():
            incident = lock_for_update(Incident, incident_id)
            OfficerAssignmentResolver.verify_assigned(incident, actor)

            old_status = incident.status
            new_status = validated.get("status")
            if new_status and new_status != old_status:
                entry = IncidentLifecycleManager._apply_status(
                    incident, new_status, notes, actor, evidence_urls=evidence_urls,
                )
                IncidentLifecycleManager._notify_reporter_of_status(incident, old_status)
            else:
                entry = IncidentUpdate.objects.create(
                    incident=incident,
                    content=notes or "Evidence added",
                    status=incident.status,
                    notes=notes,
                    evidence_urls=evidence_urls,
                    updated_by=actor,
                )
            incident.save()

        logger.info("Update #%d added to Incident #%d by user %s", entry.pk, incident.pk, actor)
        return entry

    # ── Officers ────────────────────────────────────────────────────

    @staticmethod
    def reassign(
        incident_id: int,
        from_officer_id: int,
        data: dict[str, Any],
        actor: Any = None,
    ) -> Incident:
        """Lock the incident and hand it off (see ``OfficerAssignmentResolver.reassign``)."""
        validated = validate_input(ReassignSerializer, data)
        with transaction.atomic():
            incident = lock_for_update(Incident, incident_id)
            OfficerAssignmentResolver.reassign(
                incident,
                from_officer_id,
                validated["to_officer_id"],
                validated["notes"].strip(),
                actor,
            )
        return incident

    @staticmethod
    def available_officers(incident_id: int, exclude_officer_id: int | None = None) -> list[Officer]:
        incident = get_or_not_found(Incident, incident_id)
        return OfficerAssignmentResolver.find_available(incident, exclude_officer_id)

    # ── Deletion ────────────────────────────────────────────────────

    @staticmethod
    def delete(incident_id: int, actor: Any = None) -> None:
        """
        Physically remove an incident.

        Tags, officers and images are cleared and a final
        ``"Incident has been deleted"`` entry is written before the row
        goes away.

        Raises:
            Conflict: The incident is UNDER_INVESTIGATION or RESOLVED, or it
                      is the product of a report conversion (the CONVERTED
                      report must keep its incident).
        """
        with transaction.atomic():
            incident = lock_for_update(Incident, incident_id)
            if incident.status in UNDELETABLE_STATUSES:
                raise Conflict(
                    f"Incident #{incident.pk} cannot be deleted while {incident.status}."
                )
            if incident.source_report_id is not None:
                raise Conflict(
                    f"Incident #{incident.pk} was converted from Report "
                    f"#{incident.source_report_id} and cannot be deleted."
                )

            incident.tags = []
            incident.images = []
            incident.assigned_officers.clear()
            IncidentUpdate.objects.create(
                incident=incident,
                content=DELETION_NOTE,
                status=incident.status,
                updated_by=actor,
            )
            incident.save()
            pk = incident.pk
            incident.delete()

        logger.info("Incident #%d deleted by user %s", pk, actor)
