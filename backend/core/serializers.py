"""
Core app serializers.

Shared building blocks for the app-level serializers: the location
input block, the user summary rendered inside payloads, and the
``Notification`` output.
"""

from __future__ import annotations

from django.contrib.auth import get_user_model
from rest_framework import serializers

from .models import Notification

User = get_user_model()


class LocationInputSerializer(serializers.Serializer):
    """Location fields accepted by every create payload."""

    address = serializers.CharField(required=False, allow_blank=True, max_length=500, default="")
    latitude = serializers.FloatField(required=False, allow_null=True, min_value=-90, max_value=90)
    longitude = serializers.FloatField(required=False, allow_null=True, min_value=-180, max_value=180)
    city = serializers.CharField(required=False, allow_blank=True, max_length=100, default="")
    state = serializers.CharField(required=False, allow_blank=True, max_length=100, default="")
    country = serializers.CharField(required=False, allow_blank=True, max_length=100, default="")
    postal_code = serializers.CharField(required=False, allow_blank=True, max_length=20, default="")
    district = serializers.CharField(required=False, allow_blank=True, max_length=100, default="")


class UserSummarySerializer(serializers.ModelSerializer):
    display_name = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = ["id", "username", "display_name", "email"]
        read_only_fields = fields


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = [
            "id",
            "recipient",
            "channel",
            "event_type",
            "title",
            "message",
            "is_read",
            "created_at",
        ]
        read_only_fields = fields
