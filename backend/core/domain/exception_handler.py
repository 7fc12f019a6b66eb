"""
core.domain.exception_handler — Stable ``(kind, message)`` error mapping.

Every failure that leaves the service layer is reduced to a pair of
strings so that callers (an API layer, a CLI, a task runner) never need
to import the domain exception classes or see persistence internals.

Usage::

    from core.domain.exception_handler import to_error_pair

    try:
        ReportLifecycleManager.update_status(report_id, status, notes, actor)
    except Exception as exc:
        kind, message = to_error_pair(exc)
"""

from __future__ import annotations

import logging

from django.db import DatabaseError
from rest_framework.exceptions import ValidationError as DRFValidationError

from core.domain.exceptions import DomainError

logger = logging.getLogger(__name__)

PERSISTENCE_ERROR = ("PersistenceError", "An internal storage error occurred.")
INTERNAL_ERROR = ("InternalError", "An unexpected error occurred.")


def to_error_pair(exc: Exception) -> tuple[str, str]:
    """
    Map any exception to a stable ``(kind, message)`` pair.

    * Domain errors keep their own ``kind`` and message.
    * DRF serializer errors that escaped the input boundary become
      ``ValidationError``.
    * Database errors are opaque; the detail is only logged.
    """
    if isinstance(exc, DomainError):
        logger.warning("Domain exception [%s]: %s", exc.kind, exc)
        return exc.kind, exc.message

    if isinstance(exc, DRFValidationError):
        logger.warning("Unconverted serializer error: %s", exc.detail)
        return "ValidationError", "The supplied data is invalid."

    if isinstance(exc, DatabaseError):
        logger.error("Persistence failure", exc_info=exc)
        return PERSISTENCE_ERROR

    logger.error("Unhandled exception", exc_info=exc)
    return INTERNAL_ERROR
