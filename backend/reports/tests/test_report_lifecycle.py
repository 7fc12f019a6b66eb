"""
Tests for ``ReportLifecycleManager`` and ``ReportQueryService``.
"""

from __future__ import annotations

from datetime import datetime, timezone as dt_timezone

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings

from accounts.models import UserRole
from core.domain.exceptions import Conflict, InvalidTransition, NotFound, ValidationError
from core.domain.notifications import ADMIN_CHANNEL, MemoryNotificationSink
from officers.models import Officer, OfficerStatus
from reports.models import Report, ReportStatus
from reports.serializers import ReportSerializer
from reports.services import ALLOWED_TRANSITIONS, ReportLifecycleManager, ReportQueryService

User = get_user_model()

FIXED_NOW = datetime(2024, 6, 10, 14, 0, tzinfo=dt_timezone.utc)
MEMORY_SINK = "core.domain.notifications.MemoryNotificationSink"


def _officer(name: str, badge: str, status: str = OfficerStatus.ACTIVE, user=None) -> Officer:
    return Officer.objects.create(name=name, badge_number=badge, status=status, user=user)


class ReportTestBase(TestCase):
    @classmethod
    def setUpTestData(cls) -> None:
        cls.citizen = User.objects.create_user(
            username="citizen", password="x", email="citizen@test.local",
            first_name="Cara", last_name="Citizen",
        )
        cls.admin = User.objects.create_user(
            username="admin", password="x", email="admin@test.local", role=UserRole.ADMIN,
        )
        cls.officer_user_1 = User.objects.create_user(username="off1", password="x", role=UserRole.OFFICER)
        cls.officer_user_2 = User.objects.create_user(username="off2", password="x", role=UserRole.OFFICER)
        cls.officer_1 = _officer("Alex Grant", "B-001", user=cls.officer_user_1)
        cls.officer_2 = _officer("Bea Howard", "B-002", user=cls.officer_user_2)
        cls.suspended = _officer("Sid Vale", "B-003", status=OfficerStatus.SUSPENDED)

    def setUp(self) -> None:
        MemoryNotificationSink.reset()

    def _report(self, **overrides) -> Report:
        data = {"title": "Broken streetlight", "type": "Infrastructure", "description": "Dark corner"}
        data.update(overrides)
        return ReportLifecycleManager.create(data, self.citizen)


class TestReportCreate(ReportTestBase):
    @override_settings(NOTIFICATION_SINK=MEMORY_SINK)
    def test_create_starts_pending_and_notifies_admin_channel(self):
        with self.captureOnCommitCallbacks(execute=True):
            report = self._report(priority="HIGH", district="Harbor")

        self.assertEqual(report.status, ReportStatus.PENDING)
        self.assertEqual(report.created_by, self.citizen)
        self.assertEqual(report.priority, "HIGH")
        self.assertEqual(report.district, "Harbor")
        self.assertIsNone(report.resolved_at)

        [sent] = MemoryNotificationSink.sent
        self.assertEqual(sent["type_tag"], "NEW_REPORT")
        self.assertIsNone(sent["recipient"])
        self.assertEqual(sent["channel"], ADMIN_CHANNEL)

    def test_create_rejects_unknown_priority(self):
        with self.assertRaises(ValidationError) as ctx:
            self._report(priority="URGENT")
        self.assertIn("priority", ctx.exception.errors)
        self.assertFalse(Report.objects.exists())

    def test_create_rejects_blank_title(self):
        with self.assertRaises(ValidationError):
            self._report(title="   ")


class TestReportStatusTransitions(ReportTestBase):
    def test_transition_table_is_enforced_for_every_pair(self):
        for current in ReportStatus.values:
            for target in ReportStatus.values:
                report = Report.objects.create(title="t", created_by=self.citizen, status=current)
                allowed = target == current or (
                    target in ALLOWED_TRANSITIONS[current] and target != ReportStatus.CONVERTED
                )
                with self.subTest(current=current, target=target):
                    if allowed:
                        ReportLifecycleManager.update_status(report.pk, target, "", self.admin)
                        report.refresh_from_db()
                        self.assertEqual(report.status, target)
                    else:
                        with self.assertRaises(InvalidTransition):
                            ReportLifecycleManager.update_status(report.pk, target, "", self.admin)
                        report.refresh_from_db()
                        self.assertEqual(report.status, current)

    def test_same_status_is_a_silent_no_op(self):
        report = self._report()
        report.refresh_from_db()
        before = report.updated_at

        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            result = ReportLifecycleManager.update_status(report.pk, ReportStatus.PENDING, "again", self.admin)

        report.refresh_from_db()
        self.assertEqual(result.status, ReportStatus.PENDING)
        self.assertEqual(report.updated_at, before)
        self.assertEqual(report.resolution_notes, "")
        self.assertEqual(callbacks, [])

    def test_direct_conversion_is_rejected(self):
        report = self._report()
        with self.assertRaises(InvalidTransition) as ctx:
            ReportLifecycleManager.update_status(report.pk, ReportStatus.CONVERTED, "", self.admin)
        self.assertIn("conversion workflow", ctx.exception.message)

    @override_settings(CLOCK=lambda: FIXED_NOW)
    def test_resolving_stamps_resolved_at_and_notes(self):
        report = self._report()
        ReportLifecycleManager.update_status(report.pk, ReportStatus.IN_REVIEW, "", self.admin)
        report.refresh_from_db()
        self.assertIsNone(report.resolved_at)

        ReportLifecycleManager.update_status(report.pk, ReportStatus.REJECTED, "  duplicate  ", self.admin)
        report.refresh_from_db()
        self.assertEqual(report.resolved_at, FIXED_NOW)
        self.assertEqual(report.resolution_notes, "duplicate")

    def test_unknown_status_is_rejected_at_boundary(self):
        report = self._report()
        with self.assertRaises(ValidationError):
            ReportLifecycleManager.update_status(report.pk, "ARCHIVED", "", self.admin)

    def test_unknown_report_is_not_found(self):
        with self.assertRaises(NotFound):
            ReportLifecycleManager.update_status(999999, ReportStatus.IN_REVIEW, "", self.admin)

    @override_settings(NOTIFICATION_SINK=MEMORY_SINK)
    def test_status_change_notifies_reporter_and_officers(self):
        report = self._report()
        report.assigned_officers.set([self.officer_1, self.suspended])

        with self.captureOnCommitCallbacks(execute=True):
            ReportLifecycleManager.update_status(report.pk, ReportStatus.IN_PROGRESS, "", self.admin)

        recipients = [n["recipient"] for n in MemoryNotificationSink.sent]
        self.assertEqual(recipients, [self.citizen, self.officer_user_1])
        self.assertTrue(all(n["type_tag"] == "REPORT_STATUS_UPDATED" for n in MemoryNotificationSink.sent))


class TestReportAssignment(ReportTestBase):
    def test_empty_officer_list_is_validation_error(self):
        report = self._report()
        with self.assertRaises(ValidationError):
            ReportLifecycleManager.assign_officers(report.pk, [], self.admin)

    def test_terminal_report_is_conflict(self):
        for status in (ReportStatus.RESOLVED, ReportStatus.REJECTED, ReportStatus.CONVERTED):
            report = Report.objects.create(title="t", created_by=self.citizen, status=status)
            self.assertTrue(report.is_terminal)
            with self.subTest(status=status):
                with self.assertRaises(Conflict):
                    ReportLifecycleManager.assign_officers(report.pk, [self.officer_1.pk], self.admin)

    def test_unresolved_officers_are_listed(self):
        report = self._report()
        with self.assertRaises(NotFound) as ctx:
            ReportLifecycleManager.assign_officers(report.pk, [self.officer_1.pk, 55555, 66666], self.admin)
        self.assertEqual(ctx.exception.missing_ids, [55555, 66666])
        self.assertEqual(report.assigned_officers.count(), 0)

    def test_suspended_officer_cannot_be_newly_assigned(self):
        report = self._report()
        with self.assertRaises(Conflict):
            ReportLifecycleManager.assign_officers(report.pk, [self.suspended.pk], self.admin)

    @override_settings(NOTIFICATION_SINK=MEMORY_SINK)
    def test_full_replace_notifies_only_new_officers(self):
        report = self._report()
        report.assigned_officers.set([self.officer_1])

        with self.captureOnCommitCallbacks(execute=True):
            ReportLifecycleManager.assign_officers(report.pk, [self.officer_2.pk], self.admin)

        self.assertEqual(list(report.assigned_officers.all()), [self.officer_2])
        [sent] = MemoryNotificationSink.sent
        self.assertEqual(sent["recipient"], self.officer_user_2)
        self.assertEqual(sent["type_tag"], "REPORT_ASSIGNED")
        self.assertEqual(sent["message"], f"New Report Assignment - #{report.pk}: Broken streetlight")

    @override_settings(NOTIFICATION_SINK=MEMORY_SINK)
    def test_reassigning_same_set_notifies_nobody(self):
        report = self._report()
        report.assigned_officers.set([self.officer_1, self.officer_2])

        with self.captureOnCommitCallbacks(execute=True):
            ReportLifecycleManager.assign_officers(
                report.pk, [self.officer_2.pk, self.officer_1.pk], self.admin,
            )

        self.assertEqual(MemoryNotificationSink.sent, [])
        self.assertEqual(report.assigned_officers.count(), 2)


class TestReportQueries(ReportTestBase):
    @classmethod
    def setUpTestData(cls) -> None:
        super().setUpTestData()
        cls.pothole = Report.objects.create(
            title="Pothole on Main", type="Road", created_by=cls.citizen, district="North",
        )
        cls.theft = Report.objects.create(
            title="Bike theft", type="Crime", created_by=cls.admin, priority="HIGH",
            status=ReportStatus.IN_REVIEW, address="12 Main Street",
        )
        cls.theft.assigned_officers.add(cls.officer_1)

    def test_filters(self):
        def ids(filters):
            return set(ReportQueryService.get_filtered_queryset(filters).values_list("pk", flat=True))

        self.assertEqual(ids({}), {self.pothole.pk, self.theft.pk})
        self.assertEqual(ids({"search": "main"}), {self.pothole.pk, self.theft.pk})
        self.assertEqual(ids({"status": "IN_REVIEW"}), {self.theft.pk})
        self.assertEqual(ids({"type": "crime"}), {self.theft.pk})
        self.assertEqual(ids({"priority": "HIGH"}), {self.theft.pk})
        self.assertEqual(ids({"created_by": self.citizen.pk}), {self.pothole.pk})
        self.assertEqual(ids({"assigned_officer": self.officer_1.pk}), {self.theft.pk})
        self.assertEqual(ids({"district": "north"}), {self.pothole.pk})

    def test_inverted_date_range_is_rejected(self):
        with self.assertRaises(ValidationError):
            ReportQueryService.get_filtered_queryset({"date_from": "2024-02-01", "date_to": "2024-01-01"})

    def test_serializer_renders_officers_and_missing_incident(self):
        data = ReportSerializer(self.theft).data
        self.assertEqual(data["assigned_officers"][0]["badge_number"], "B-001")
        self.assertIsNone(data["incident_id"])
        self.assertEqual(data["created_by"]["username"], "admin")
