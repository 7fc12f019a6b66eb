"""
Incidents app serializers.

Input serializers validated by ``IncidentLifecycleManager`` and the
output representations of incidents, their timeline entries and the
aggregate statistics.

Structure
---------
1. Filter serializer
2. Write / action serializers
3. Read serializers
"""

from __future__ import annotations

from typing import Any

from rest_framework import serializers

from core.models import Priority
from core.serializers import LocationInputSerializer, UserSummarySerializer
from officers.serializers import OfficerSummarySerializer

from .models import Incident, IncidentStatus, IncidentUpdate

# Fields that identify whoever filed the incident.
REPORTER_FIELDS = ("reported_by", "converted_by", "reporter_contact_info")


def _string_list(**kwargs: Any) -> serializers.ListField:
    return serializers.ListField(
        child=serializers.CharField(max_length=500),
        required=False,
        **kwargs,
    )


# ═══════════════════════════════════════════════════════════════════
#  1. Filter Serializer
# ═══════════════════════════════════════════════════════════════════


class IncidentFilterSerializer(serializers.Serializer):
    """
    Validates filters for ``IncidentQueryService.get_filtered_queryset``.

    Parameters
    ----------
    ``incident_type``    : str  — case-insensitive exact match
    ``status``           : str  — one of ``IncidentStatus`` values
    ``priority``         : str  — one of ``Priority`` values
    ``district``         : str  — case-insensitive exact match
    ``reported_by``      : int  — PK of the reporting user
    ``assigned_officer`` : int  — PK of an assigned officer
    ``source_report``    : int  — PK of the originating Report
    ``start_date``       : date — created on or after
    ``end_date``         : date — created on or before
    ``search``           : str  — matched against title / description
    """

    incident_type = serializers.CharField(required=False, max_length=100)
    status = serializers.ChoiceField(choices=IncidentStatus.choices, required=False)
    priority = serializers.ChoiceField(choices=Priority.choices, required=False)
    district = serializers.CharField(required=False, max_length=100)
    reported_by = serializers.IntegerField(required=False, min_value=1)
    assigned_officer = serializers.IntegerField(required=False, min_value=1)
    source_report = serializers.IntegerField(required=False, min_value=1)
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)
    search = serializers.CharField(required=False, max_length=255, allow_blank=False)

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        start = attrs.get("start_date")
        end = attrs.get("end_date")
        if start and end and start > end:
            raise serializers.ValidationError("start_date must be earlier than end_date.")
        return attrs


# ═══════════════════════════════════════════════════════════════════
#  2. Write / Action Serializers
# ═══════════════════════════════════════════════════════════════════


class CreateIncidentSerializer(LocationInputSerializer):
    """
    Input for direct, anonymous and conversion-driven creation.

    ``report_details`` is only supplied by the conversion flow; direct
    callers leave it out and get a snapshot built from
    ``source_report_id`` (or the "created directly" default).
    """

    title = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    priority = serializers.ChoiceField(choices=Priority.choices, required=False, default=Priority.MEDIUM)
    incident_type = serializers.CharField(required=False, allow_blank=True, max_length=100, default="")
    tags = _string_list(default=list)
    images = _string_list(default=list)
    officer_ids = serializers.ListField(
        child=serializers.IntegerField(min_value=1),
        required=False,
        default=list,
    )
    source_report_id = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    reporter_contact_info = serializers.CharField(
        required=False, allow_blank=True, max_length=255, default="",
    )
    report_details = serializers.DictField(required=False)

    def validate_title(self, value: str) -> str:
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Title may not be blank.")
        return value

    def validate_incident_type(self, value: str) -> str:
        return value.strip().upper() or "OTHER"


class UpdateIncidentSerializer(serializers.Serializer):
    """Every field optional; only the supplied ones are compared."""

    status = serializers.ChoiceField(choices=IncidentStatus.choices, required=False)
    priority = serializers.ChoiceField(choices=Priority.choices, required=False)
    officer_ids = serializers.ListField(
        child=serializers.IntegerField(min_value=1),
        required=False,
        allow_empty=True,
    )
    evidence_urls = _string_list()
    notes = serializers.CharField(required=False, allow_blank=True)


class AddIncidentUpdateSerializer(serializers.Serializer):
    """Officer note on the timeline, optionally moving the status."""

    notes = serializers.CharField(required=False, allow_blank=True, default="")
    evidence_urls = _string_list(default=list)
    status = serializers.ChoiceField(choices=IncidentStatus.choices, required=False)

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        if not attrs.get("notes") and not attrs.get("evidence_urls") and not attrs.get("status"):
            raise serializers.ValidationError(
                "Provide notes, evidence_urls or a status."
            )
        return attrs


class UpdateIncidentStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=IncidentStatus.choices)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class UpdateIncidentPrioritySerializer(serializers.Serializer):
    priority = serializers.ChoiceField(choices=Priority.choices)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class ReassignSerializer(serializers.Serializer):
    to_officer_id = serializers.IntegerField(min_value=1)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


# ═══════════════════════════════════════════════════════════════════
#  3. Read Serializers
# ═══════════════════════════════════════════════════════════════════


class IncidentUpdateSerializer(serializers.ModelSerializer):
    updated_by = UserSummarySerializer(read_only=True)

    class Meta:
        model = IncidentUpdate
        fields = [
            "id",
            "content",
            "status",
            "notes",
            "evidence_urls",
            "updated_by",
            "created_at",
        ]
        read_only_fields = fields


class IncidentSerializer(serializers.ModelSerializer):
    """
    Full incident payload.

    When ``anonymous`` is set the reporter block is dropped from the
    output entirely (the keys are absent, not null).
    """

    status_display = serializers.CharField(source="get_status_display", read_only=True)
    reported_by = UserSummarySerializer(read_only=True)
    converted_by = UserSummarySerializer(read_only=True)
    assigned_officers = OfficerSummarySerializer(many=True, read_only=True)
    updates = IncidentUpdateSerializer(many=True, read_only=True)

    class Meta:
        model = Incident
        fields = [
            "id",
            "title",
            "description",
            "incident_type",
            "status",
            "status_display",
            "priority",
            "address",
            "latitude",
            "longitude",
            "city",
            "state",
            "country",
            "postal_code",
            "district",
            "anonymous",
            "reported_by",
            "converted_by",
            "reporter_contact_info",
            "assigned_officers",
            "tags",
            "images",
            "resolution_date",
            "resolution_notes",
            "source_report_id",
            "report_details",
            "updates",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def to_representation(self, instance: Incident) -> dict[str, Any]:
        data = super().to_representation(instance)
        if instance.anonymous:
            for field in REPORTER_FIELDS:
                data.pop(field, None)
        return data


class TimelineEntrySerializer(serializers.Serializer):
    timestamp = serializers.DateTimeField()
    event = serializers.CharField()
    content = serializers.CharField()
    status = serializers.CharField()
    notes = serializers.CharField(allow_blank=True)
    evidence_urls = serializers.ListField(child=serializers.CharField())
    updated_by = serializers.IntegerField(allow_null=True)
