"""
core.domain.validation — Input-boundary helper.

Services accept plain dicts and run them through a DRF serializer before
touching the database.  Serializer failures are re-raised as the domain
``ValidationError`` so that callers only ever see domain exceptions.
"""

from __future__ import annotations

from typing import Any

from rest_framework import serializers

from core.domain.exceptions import ValidationError


def validate_input(
    serializer_class: type[serializers.Serializer],
    data: dict[str, Any] | None,
    **kwargs: Any,
) -> dict[str, Any]:
    """
    Validate ``data`` with ``serializer_class`` and return ``validated_data``.

    Raises:
        ValidationError: With the serializer's field errors attached.
    """
    serializer = serializer_class(data=data or {}, **kwargs)
    if not serializer.is_valid():
        errors = dict(serializer.errors)
        raise ValidationError(
            f"Invalid input: {', '.join(sorted(errors))}.",
            errors=errors,
        )
    return dict(serializer.validated_data)
