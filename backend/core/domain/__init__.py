"""
core.domain — Shared domain utilities for cross-app service layers.

Modules
-------
exceptions         Domain exception taxonomy, each with a stable ``kind``.
exception_handler  Maps any exception to a ``(kind, message)`` pair.
notifications      Post-commit notification dispatch through a pluggable sink.
transactions       ``select_for_update`` + ``on_commit`` helpers.
clock              Settings-injected "now" provider.
validation         Runs DRF serializers at the service input boundary.

Usage from any app::

    from core.domain.exceptions import Conflict, InvalidTransition
    from core.domain.notifications import NotificationService
    from core.domain.transactions import lock_for_update
    from core.domain import clock
"""
