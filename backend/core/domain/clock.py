"""
core.domain.clock — Injected "now" provider.

Services never call ``timezone.now()`` directly; they call
``clock.now()``, which resolves the callable named by the ``CLOCK``
setting.  Tests pin time with ``override_settings(CLOCK=...)``.
"""

from __future__ import annotations

from datetime import datetime

from django.conf import settings
from django.utils.module_loading import import_string

DEFAULT_CLOCK = "django.utils.timezone.now"


def now() -> datetime:
    """Return the current aware datetime from the configured clock."""
    provider = getattr(settings, "CLOCK", DEFAULT_CLOCK)
    if isinstance(provider, str):
        provider = import_string(provider)
    return provider()
