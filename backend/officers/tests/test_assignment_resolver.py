"""
Tests for ``OfficerAssignmentResolver`` and ``OfficerQueryService``.

Written as pytest functions on top of the ``create_user`` /
``create_officer`` factories from the root conftest.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone as dt_timezone

import pytest
from django.test import override_settings

from accounts.models import UserRole
from core.domain.exceptions import Conflict, NotFound, Unauthorized, ValidationError
from incidents.models import Incident, IncidentStatus, IncidentUpdate
from officers.models import OfficerStatus
from officers.serializers import OfficerPerformanceSerializer, OfficerSerializer
from officers.services import OfficerAssignmentResolver, OfficerQueryService

pytestmark = pytest.mark.django_db

T0 = datetime(2024, 5, 1, 8, 0, tzinfo=dt_timezone.utc)


@pytest.fixture()
def incident(create_user):
    reporter = create_user(username="reporter")
    return Incident.objects.create(title="Vandalism at the park", reported_by=reporter)


@pytest.fixture()
def admin(create_user):
    return create_user(username="admin", role=UserRole.ADMIN)


# ═══════════════════════════════════════════════════════════════════
#  find_available
# ═══════════════════════════════════════════════════════════════════


def test_find_available_excludes_assigned_excluded_and_non_active(incident, create_officer):
    delta = create_officer(name="Delta")
    bravo = create_officer(name="Bravo")
    charlie = create_officer(name="Charlie")
    alpha = create_officer(name="Alpha")
    create_officer(name="Echo", status=OfficerStatus.SUSPENDED)
    create_officer(name="Foxtrot", status=OfficerStatus.ON_PATROL)
    incident.assigned_officers.add(bravo)

    first = OfficerAssignmentResolver.find_available(incident, exclude_officer_id=charlie.pk)
    second = OfficerAssignmentResolver.find_available(incident, exclude_officer_id=charlie.pk)

    assert [o.name for o in first] == ["Alpha", "Delta"]
    assert first == second
    assert charlie not in first
    assert bravo not in first
    assert {alpha, delta} == set(first)


def test_find_available_ties_on_name_break_by_id(incident, create_officer):
    first = create_officer(name="Sam Patel")
    second = create_officer(name="Sam Patel")

    assert OfficerAssignmentResolver.find_available(incident) == [first, second]


# ═══════════════════════════════════════════════════════════════════
#  resolve / assign
# ═══════════════════════════════════════════════════════════════════


def test_resolve_names_every_missing_id(create_officer):
    officer = create_officer()

    with pytest.raises(NotFound) as excinfo:
        OfficerAssignmentResolver.resolve([officer.pk, 987654, 987653])

    assert excinfo.value.missing_ids == [987653, 987654]
    assert "987654" in excinfo.value.message
    assert "987653" in excinfo.value.message


def test_resolve_rejects_non_numeric_ids():
    with pytest.raises(ValidationError):
        OfficerAssignmentResolver.resolve(["abc"])


def test_assign_replaces_full_set_and_returns_new_ids(incident, create_officer):
    a, b, c = create_officer(), create_officer(), create_officer()
    incident.assigned_officers.set([a, b])

    added = OfficerAssignmentResolver.assign(incident, [b.pk, c.pk, c.pk])

    assert added == {c.pk}
    assert set(incident.assigned_officers.all()) == {b, c}


def test_assign_rejects_newly_added_unavailable_officer(incident, create_officer):
    active = create_officer()
    on_leave = create_officer(name="Leave Taker", status=OfficerStatus.ON_LEAVE)

    with pytest.raises(Conflict) as excinfo:
        OfficerAssignmentResolver.assign(incident, [active.pk, on_leave.pk])

    assert "Leave Taker" in excinfo.value.message
    assert incident.assigned_officers.count() == 0


def test_assign_keeps_already_assigned_officer_whose_status_changed(incident, create_officer):
    veteran = create_officer()
    incident.assigned_officers.add(veteran)
    veteran.status = OfficerStatus.SUSPENDED
    veteran.save()
    trainee = create_officer(status=OfficerStatus.IN_TRAINING)

    added = OfficerAssignmentResolver.assign(incident, [veteran.pk, trainee.pk])

    assert added == {trainee.pk}
    assert set(incident.assigned_officers.all()) == {veteran, trainee}


# ═══════════════════════════════════════════════════════════════════
#  reassign
# ═══════════════════════════════════════════════════════════════════


def test_reassign_requires_from_officer_to_be_assigned(incident, create_officer, admin):
    a, b = create_officer(), create_officer()

    with pytest.raises(Unauthorized):
        OfficerAssignmentResolver.reassign(incident, a.pk, b.pk, "", admin)

    assert not IncidentUpdate.objects.filter(incident=incident).exists()


def test_reassign_hands_off_and_records_one_update(
    incident, create_officer, admin, memory_sink, django_capture_on_commit_callbacks,
):
    a = create_officer(name="Alice Moreno")
    b = create_officer(name="Ben Okafor")
    keeper = create_officer(name="Kim Lee")
    incident.assigned_officers.set([a, keeper])

    with django_capture_on_commit_callbacks(execute=True):
        update = OfficerAssignmentResolver.reassign(incident, a.pk, b.pk, "shift change", admin)

    assert set(incident.assigned_officers.all()) == {b, keeper}
    assert list(incident.updates.all()) == [update]
    assert update.content == "Incident reassigned from officer Alice Moreno to Ben Okafor"
    assert update.notes == "shift change"
    assert update.status == IncidentStatus.REPORTED
    assert update.updated_by == admin

    assert [(n["recipient"], n["type_tag"]) for n in memory_sink] == [(b.user, "INCIDENT_ASSIGNED")]


def test_reassign_to_already_assigned_officer_only_removes_from(incident, create_officer, admin):
    a, b = create_officer(), create_officer()
    incident.assigned_officers.set([a, b])

    OfficerAssignmentResolver.reassign(incident, a.pk, b.pk, "", admin)

    assert list(incident.assigned_officers.all()) == [b]
    assert incident.updates.count() == 1


def test_reassign_to_unknown_officer_is_not_found(incident, create_officer, admin):
    a = create_officer()
    incident.assigned_officers.add(a)

    with pytest.raises(NotFound):
        OfficerAssignmentResolver.reassign(incident, a.pk, 424242, "", admin)

    assert list(incident.assigned_officers.all()) == [a]


def test_reassign_to_suspended_officer_is_conflict(incident, create_officer, admin):
    a = create_officer()
    suspended = create_officer(status=OfficerStatus.SUSPENDED)
    incident.assigned_officers.add(a)

    with pytest.raises(Conflict):
        OfficerAssignmentResolver.reassign(incident, a.pk, suspended.pk, "", admin)


def test_verify_assigned(incident, create_officer, create_user, admin):
    assigned = create_officer()
    outsider = create_officer()
    incident.assigned_officers.add(assigned)

    assert OfficerAssignmentResolver.verify_assigned(incident, assigned.user) == assigned
    assert OfficerAssignmentResolver.verify_assigned(incident, admin) is None
    with pytest.raises(Unauthorized):
        OfficerAssignmentResolver.verify_assigned(incident, outsider.user)
    with pytest.raises(Unauthorized):
        OfficerAssignmentResolver.verify_assigned(incident, create_user())


# ═══════════════════════════════════════════════════════════════════
#  OfficerQueryService
# ═══════════════════════════════════════════════════════════════════


def test_performance_stats(create_user, create_officer):
    officer = create_officer()
    reporter = create_user()

    with override_settings(CLOCK=lambda: T0):
        solved = Incident.objects.create(title="Solved", reported_by=reporter, priority="HIGH")
        Incident.objects.create(title="Open", reported_by=reporter)
    solved.status = IncidentStatus.RESOLVED
    solved.resolution_date = T0 + timedelta(hours=3)
    solved.save()
    officer.assigned_incidents.set(Incident.objects.all())

    stats = OfficerQueryService.performance_stats(officer.pk)

    assert stats["total_incidents"] == 2
    assert stats["by_status"][IncidentStatus.RESOLVED] == 1
    assert stats["by_status"][IncidentStatus.REPORTED] == 1
    assert stats["by_priority"]["HIGH"] == 1
    assert stats["by_priority"]["MEDIUM"] == 1
    assert stats["resolution_rate"] == 50.0
    assert stats["average_resolution_hours"] == 3.0
    assert stats["total_reports"] == 0


def test_performance_stats_for_idle_officer(create_officer):
    stats = OfficerQueryService.performance_stats(create_officer().pk)

    assert stats["total_incidents"] == 0
    assert stats["resolution_rate"] == 0.0
    assert stats["average_resolution_hours"] is None


def test_list_by_status(create_officer):
    create_officer(name="Zed", district="North")
    create_officer(name="Amy", district="north")
    create_officer(name="Off Duty", status=OfficerStatus.ON_LEAVE, district="North")

    names = [o.name for o in OfficerQueryService.list_by_status(OfficerStatus.ACTIVE, "NORTH")]

    assert names == ["Amy", "Zed"]


def test_officer_serializers(create_officer):
    officer = create_officer(name="Nia Brooks", district="Harbor")

    data = OfficerSerializer(officer).data
    assert data["name"] == "Nia Brooks"
    assert data["user"] == officer.user_id
    assert data["status_display"] == "Active"

    stats = OfficerPerformanceSerializer(OfficerQueryService.performance_stats(officer.pk)).data
    assert stats["officer_id"] == officer.pk
    assert stats["average_resolution_hours"] is None
