"""
Reports app serializers.

Contains the input serializers the report services validate against and
the output representation of a ``Report``.  Serializers handle field
definitions and field-level validation only.  **No workflow transitions
live here** — those belong in ``services.py``.

Structure
---------
1. Filter serializer
2. Write / action serializers (create, status update, assignment, conversion)
3. Read serializer
"""

from __future__ import annotations

from typing import Any

from rest_framework import serializers

from core.models import Priority
from core.serializers import LocationInputSerializer, UserSummarySerializer
from officers.serializers import OfficerSummarySerializer

from .models import Report, ReportStatus


# ═══════════════════════════════════════════════════════════════════
#  1. Filter Serializer
# ═══════════════════════════════════════════════════════════════════


class ReportFilterSerializer(serializers.Serializer):
    """
    Validates filters for ``ReportQueryService.get_filtered_queryset``.

    All fields are optional.

    Parameters
    ----------
    ``search``           : str  — matched against title / description / address
    ``status``           : str  — one of ``ReportStatus`` values
    ``type``             : str  — case-insensitive exact match
    ``priority``         : str  — one of ``Priority`` values
    ``created_by``       : int  — PK of the reporting user
    ``assigned_officer`` : int  — PK of an assigned officer
    ``district``         : str  — case-insensitive exact match
    ``date_from``        : date — created on or after
    ``date_to``          : date — created on or before
    """

    search = serializers.CharField(required=False, max_length=255, allow_blank=False)
    status = serializers.ChoiceField(choices=ReportStatus.choices, required=False)
    type = serializers.CharField(required=False, max_length=100)
    priority = serializers.ChoiceField(choices=Priority.choices, required=False)
    created_by = serializers.IntegerField(required=False, min_value=1)
    assigned_officer = serializers.IntegerField(required=False, min_value=1)
    district = serializers.CharField(required=False, max_length=100)
    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        date_from = attrs.get("date_from")
        date_to = attrs.get("date_to")
        if date_from and date_to and date_from > date_to:
            raise serializers.ValidationError("date_from must be earlier than date_to.")
        return attrs


# ═══════════════════════════════════════════════════════════════════
#  2. Write / Action Serializers
# ═══════════════════════════════════════════════════════════════════


class CreateReportSerializer(LocationInputSerializer):
    title = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    type = serializers.CharField(required=False, allow_blank=True, max_length=100, default="")
    priority = serializers.ChoiceField(choices=Priority.choices, required=False, default=Priority.MEDIUM)
    witnesses = serializers.CharField(required=False, allow_blank=True, default="")
    evidence = serializers.CharField(required=False, allow_blank=True, default="")
    occurred_at = serializers.DateTimeField(required=False, allow_null=True)

    def validate_title(self, value: str) -> str:
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Title may not be blank.")
        return value


class UpdateReportStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=ReportStatus.choices)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class AssignOfficersSerializer(serializers.Serializer):
    officer_ids = serializers.ListField(
        child=serializers.IntegerField(min_value=1),
        allow_empty=False,
        help_text="Full replacement set of officer PKs.",
    )


class ConvertToIncidentSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    officer_ids = serializers.ListField(
        child=serializers.IntegerField(min_value=1),
        required=False,
        default=list,
        help_text="Officers added on top of those already on the report.",
    )


# ═══════════════════════════════════════════════════════════════════
#  3. Read Serializer
# ═══════════════════════════════════════════════════════════════════


class ReportSerializer(serializers.ModelSerializer):
    status_display = serializers.CharField(source="get_status_display", read_only=True)
    created_by = UserSummarySerializer(read_only=True)
    assigned_officers = OfficerSummarySerializer(many=True, read_only=True)
    incident_id = serializers.SerializerMethodField()

    class Meta:
        model = Report
        fields = [
            "id",
            "title",
            "description",
            "type",
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
            "witnesses",
            "evidence",
            "occurred_at",
            "assigned_officers",
            "created_by",
            "created_at",
            "updated_at",
            "resolved_at",
            "resolution_notes",
            "incident_id",
        ]
        read_only_fields = fields

    def get_incident_id(self, obj: Report) -> int | None:
        incident = getattr(obj, "incident", None)
        return incident.pk if incident is not None else None
