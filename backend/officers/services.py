"""
Officers app Service Layer.

This module is the **single source of truth** for deciding which officers
may work a case.  Reports and Incidents both expose an
``assigned_officers`` many-to-many; every change to either set goes
through ``OfficerAssignmentResolver`` so the availability rules are
enforced in one place.

Architecture
------------
- ``OfficerAssignmentResolver`` — Resolve ids, list available officers,
                                  assign (full replace), reassign (handoff).
- ``OfficerQueryService``       — Lookups and per-officer performance stats.

Assignment rules
----------------
- Every id must resolve, otherwise ``NotFound`` naming the missing ids.
- Officers *newly* added must be ACTIVE, ON_PATROL or IN_TRAINING.
  Officers already on the case stay even if their status has since
  changed to ON_LEAVE or SUSPENDED.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from django.db import transaction
from django.db.models import Count, Model

from core.domain.exceptions import Conflict, NotFound, Unauthorized, ValidationError
from core.domain.notifications import NotificationService
from core.domain.transactions import get_or_not_found
from core.models import Priority
from incidents.models import Incident, IncidentStatus, IncidentUpdate

from .models import Officer, OfficerStatus

logger = logging.getLogger(__name__)


def _normalise_ids(officer_ids: Iterable[Any]) -> list[int]:
    """De-duplicate while keeping the caller's order."""
    seen: dict[int, None] = {}
    for raw in officer_ids:
        try:
            seen[int(raw)] = None
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid officer id: {raw!r}.")
    return list(seen)


def notify_officers(
    officers: Iterable[Officer],
    *,
    message: str,
    type_tag: str,
    related_object: Model | None = None,
) -> int:
    """
    Queue ``message`` for the user account of every officer.

    Officers without a linked user are logged and skipped.
    """
    recipients = []
    for officer in officers:
        if officer.user_id is None:
            logger.warning(
                "Officer #%d (%s) has no user account; skipping %s notification",
                officer.pk,
                officer.badge_number,
                type_tag,
            )
            continue
        recipients.append(officer.user)
    return NotificationService.notify_many(
        recipients=recipients,
        message=message,
        type_tag=type_tag,
        related_object=related_object,
    )


# ═══════════════════════════════════════════════════════════════════
#  Assignment Resolver
# ═══════════════════════════════════════════════════════════════════


class OfficerAssignmentResolver:
    """
    Resolves, validates, assigns and reassigns officers on Reports and
    Incidents.

    ``case`` arguments are any saved model instance with an
    ``assigned_officers`` many-to-many to ``Officer``.
    """

    @staticmethod
    def find_available(case: Any, exclude_officer_id: int | None = None) -> list[Officer]:
        """
        Return ACTIVE officers not already on ``case``.

        Args:
            case:               Report / Incident (or ``None`` for no case).
            exclude_officer_id: Extra officer to leave out, typically the
                                one handing the case off.

        Returns:
            Officers ordered by ``(name, id)``; repeated calls on unchanged
            data return the same list.
        """
        qs = Officer.objects.filter(status=OfficerStatus.ACTIVE)
        if case is not None and case.pk is not None:
            qs = qs.exclude(pk__in=case.assigned_officers.values("pk"))
        if exclude_officer_id is not None:
            qs = qs.exclude(pk=exclude_officer_id)
        return list(qs.order_by("name", "id"))

    @staticmethod
    def resolve(officer_ids: Iterable[Any]) -> list[Officer]:
        """
        Load every officer in ``officer_ids``, in the given order.

        Raises:
            NotFound: Listing every id that did not resolve.
        """
        ids = _normalise_ids(officer_ids)
        found = Officer.objects.in_bulk(ids)
        missing = [pk for pk in ids if pk not in found]
        if missing:
            raise NotFound(
                f"Officers not found with ids: {', '.join(str(pk) for pk in missing)}.",
                missing_ids=missing,
            )
        return [found[pk] for pk in ids]

    @staticmethod
    @transaction.atomic
    def assign(case: Any, officer_ids: Iterable[Any]) -> set[int]:
        """
        Replace the full assignment set of ``case`` with ``officer_ids``.

        Returns:
            Ids of officers that were not assigned before this call.

        Raises:
            NotFound: An id does not resolve.
            Conflict: A newly added officer is not in an assignable status.
        """
        officers = OfficerAssignmentResolver.resolve(officer_ids)
        current = set(case.assigned_officers.values_list("pk", flat=True))

        added = [o for o in officers if o.pk not in current]
        unavailable = [o for o in added if not o.is_assignable]
        if unavailable:
            raise Conflict(
                "Officers cannot be assigned in their current status: "
                + ", ".join(f"{o.name} ({o.get_status_display()})" for o in unavailable)
                + "."
            )

        case.assigned_officers.set(officers)
        added_ids = {o.pk for o in added}
        removed_ids = current - {o.pk for o in officers}
        logger.info(
            "%s #%d assignment replaced: +%s -%s",
            type(case).__name__,
            case.pk,
            sorted(added_ids),
            sorted(removed_ids),
        )
        return added_ids

    @staticmethod
    @transaction.atomic
    def reassign(
        incident: Incident,
        from_officer_id: int,
        to_officer_id: int,
        notes: str = "",
        actor: Any = None,
    ) -> IncidentUpdate:
        """
        Hand ``incident`` off from one officer to another.

        Additive for the receiver: ``to`` is added if absent, other
        assignees are untouched.  Records exactly one timeline entry and
        notifies the receiving officer after commit.

        Raises:
            Unauthorized: ``from_officer_id`` is not assigned to the incident.
            NotFound:     ``to_officer_id`` does not resolve.
            ValidationError: Both ids name the same officer.
            Conflict:     ``to`` is newly added but not assignable.
        """
        (from_officer_id,) = _normalise_ids([from_officer_id])
        (to_officer_id,) = _normalise_ids([to_officer_id])
        assigned = set(incident.assigned_officers.values_list("pk", flat=True))
        if from_officer_id not in assigned:
            raise Unauthorized(
                f"Officer {from_officer_id} is not assigned to Incident #{incident.pk}."
            )
        if from_officer_id == to_officer_id:
            raise ValidationError("An incident cannot be reassigned to the same officer.")

        from_officer = Officer.objects.get(pk=from_officer_id)
        (to_officer,) = OfficerAssignmentResolver.resolve([to_officer_id])
        if to_officer.pk not in assigned and not to_officer.is_assignable:
            raise Conflict(
                f"Officer {to_officer.name} cannot be assigned while "
                f"{to_officer.get_status_display()}."
            )

        incident.assigned_officers.remove(from_officer)
        if to_officer.pk not in assigned:
            incident.assigned_officers.add(to_officer)

        update = IncidentUpdate.objects.create(
            incident=incident,
            content=f"Incident reassigned from officer {from_officer.name} to {to_officer.name}",
            status=incident.status,
            notes=notes or "",
            updated_by=actor,
        )
        incident.save(update_fields=["updated_at"])

        notify_officers(
            [to_officer],
            message=(
                f"Incident #{incident.pk}: {incident.title} has been reassigned to you"
                f" from {from_officer.name}."
            ),
            type_tag="INCIDENT_ASSIGNED",
            related_object=incident,
        )
        logger.info(
            "Incident #%d reassigned from officer #%d to #%d by user %s",
            incident.pk,
            from_officer.pk,
            to_officer.pk,
            actor,
        )
        return update

    @staticmethod
    def verify_assigned(case: Any, actor: Any) -> Officer | None:
        """
        Ensure ``actor`` may act on ``case`` as one of its officers.

        Admins pass without an officer profile (returns ``None``).

        Raises:
            Unauthorized: The actor has no officer profile on the case.
        """
        if getattr(actor, "is_admin", False):
            return None
        officer = Officer.objects.filter(user=actor).first() if actor is not None else None
        if officer is None or not case.assigned_officers.filter(pk=officer.pk).exists():
            raise Unauthorized(
                f"You are not assigned to {type(case).__name__} #{case.pk}."
            )
        return officer


# ═══════════════════════════════════════════════════════════════════
#  Officer Query Service
# ═══════════════════════════════════════════════════════════════════


class OfficerQueryService:
    """Read-only officer lookups; run outside write transactions."""

    @staticmethod
    def get(officer_id: int) -> Officer:
        return get_or_not_found(Officer, officer_id)

    @staticmethod
    def list_by_status(status: str | None = None, district: str | None = None):
        qs = Officer.objects.all()
        if status:
            qs = qs.filter(status=status)
        if district:
            qs = qs.filter(district__iexact=district)
        return qs.order_by("name", "id")

    @staticmethod
    def performance_stats(officer_id: int) -> dict[str, Any]:
        """
        Summarise the officer's incident workload.

        Returns a dict with ``total_incidents``, ``by_status``,
        ``by_priority``, ``resolution_rate`` (percent of RESOLVED + CLOSED)
        and ``average_resolution_hours`` (``None`` when nothing resolved),
        plus ``total_reports`` currently assigned.
        """
        officer = get_or_not_found(Officer, officer_id)
        incidents = officer.assigned_incidents.all()

        by_status = {value: 0 for value in IncidentStatus.values}
        for row in incidents.values("status").annotate(n=Count("id")):
            by_status[row["status"]] = row["n"]

        by_priority = {value: 0 for value in Priority.values}
        for row in incidents.values("priority").annotate(n=Count("id")):
            by_priority[row["priority"]] = row["n"]

        total = sum(by_status.values())
        resolved = by_status[IncidentStatus.RESOLVED] + by_status[IncidentStatus.CLOSED]

        durations = [
            (resolution_date - created_at).total_seconds() / 3600
            for created_at, resolution_date in incidents.filter(
                resolution_date__isnull=False,
            ).values_list("created_at", "resolution_date")
        ]

        return {
            "officer_id": officer.pk,
            "total_incidents": total,
            "total_reports": officer.assigned_reports.count(),
            "by_status": by_status,
            "by_priority": by_priority,
            "resolution_rate": round(resolved * 100 / total, 2) if total else 0.0,
            "average_resolution_hours": (
                round(sum(durations) / len(durations), 2) if durations else None
            ),
        }
