"""
Officers app serializers.

Output representations only; officers are managed outside the lifecycle
engine.
"""

from __future__ import annotations

from rest_framework import serializers

from .models import Officer


class OfficerSummarySerializer(serializers.ModelSerializer):
    """Compact officer block embedded in Report / Incident payloads."""

    rank_display = serializers.CharField(source="get_rank_display", read_only=True)

    class Meta:
        model = Officer
        fields = ["id", "name", "badge_number", "rank", "rank_display"]
        read_only_fields = fields


class OfficerSerializer(serializers.ModelSerializer):
    status_display = serializers.CharField(source="get_status_display", read_only=True)

    class Meta:
        model = Officer
        fields = [
            "id",
            "user",
            "name",
            "badge_number",
            "rank",
            "department",
            "district",
            "status",
            "status_display",
            "email",
        ]
        read_only_fields = fields


class OfficerPerformanceSerializer(serializers.Serializer):
    officer_id = serializers.IntegerField()
    total_incidents = serializers.IntegerField()
    total_reports = serializers.IntegerField()
    by_status = serializers.DictField(child=serializers.IntegerField())
    by_priority = serializers.DictField(child=serializers.IntegerField())
    resolution_rate = serializers.FloatField()
    average_resolution_hours = serializers.FloatField(allow_null=True)
