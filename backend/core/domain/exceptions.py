"""
core.domain.exceptions — Domain-specific exception hierarchy.

These exceptions represent business-rule violations inside the lifecycle
services.  They are deliberately **not** DRF exceptions so that the domain
layer stays framework-agnostic.  Every error carries a stable ``kind``
string; ``core.domain.exception_handler.to_error_pair`` turns any exception into the
``(kind, message)`` pair surfaced to callers.

Taxonomy
--------
┌─────────────────────┬─────────────────────────────────────────────────┐
│ Domain Exception    │ Raised when                                     │
├─────────────────────┼─────────────────────────────────────────────────┤
│ NotFound            │ entity or officer id does not resolve           │
│ ValidationError     │ malformed input (e.g. empty officer set)        │
│ InvalidOperation    │ converting a converted / rejected report        │
│ Conflict            │ operation forbidden by the current state        │
│ InvalidTransition   │ illegal report status change (a ``Conflict``)   │
│ Unauthorized        │ actor / officer lacks a relation to the case    │
└─────────────────────┴─────────────────────────────────────────────────┘

Recommended usage inside a service::

    from core.domain.exceptions import InvalidTransition

    if new_status not in ALLOWED_TRANSITIONS[current_status]:
        raise InvalidTransition(current=current_status, target=new_status)
"""

from __future__ import annotations

from typing import Any, Iterable


class DomainError(Exception):
    """
    Base class for all domain / business-rule errors.
    """

    kind = "DomainError"

    def __init__(self, message: str = "A business rule was violated.") -> None:
        self.message = message
        super().__init__(self.message)


class NotFound(DomainError):
    """
    The requested entity does not exist.

    ``missing_ids`` lists every identifier that failed to resolve when the
    lookup was a batch (e.g. an officer id list).
    """

    kind = "NotFound"

    def __init__(
        self,
        message: str = "The requested resource was not found.",
        *,
        missing_ids: Iterable[Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.missing_ids = sorted(missing_ids) if missing_ids else []


class ValidationError(DomainError):
    """
    Malformed input rejected at the service boundary.

    ``errors`` holds the field-level detail produced by the input serializer,
    when there is one.
    """

    kind = "ValidationError"

    def __init__(
        self,
        message: str = "The supplied data is invalid.",
        *,
        errors: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.errors = errors or {}


class InvalidOperation(DomainError):
    """
    The operation can never succeed for this entity in its current state
    (e.g. converting a report that is already converted).
    """

    kind = "InvalidOperation"

    def __init__(self, message: str = "This operation is not allowed.") -> None:
        super().__init__(message)


class Conflict(DomainError):
    """
    The operation conflicts with the current state of the resource.

    Typical usage: deleting an incident under investigation, editing a
    closed incident, assigning an unavailable officer.
    """

    kind = "Conflict"

    def __init__(self, message: str = "The operation conflicts with the current state.") -> None:
        super().__init__(message)


class InvalidTransition(Conflict):
    """
    A state-machine transition that is not allowed from the current status.

    Inherits from ``Conflict`` because an invalid transition IS a conflict
    with the resource's current state.

    Example::

        raise InvalidTransition(
            current="RESOLVED",
            target="IN_REVIEW",
            reason="RESOLVED is terminal.",
        )
    """

    kind = "InvalidTransition"

    def __init__(
        self,
        message: str | None = None,
        *,
        current: str | None = None,
        target: str | None = None,
        reason: str | None = None,
    ) -> None:
        if message is None:
            parts = ["Invalid state transition"]
            if current and target:
                parts.append(f"from '{current}' to '{target}'")
            message = " ".join(parts) + "."
            if reason:
                message = f"{message} {reason}"
        super().__init__(message)
        self.current = current
        self.target = target
        self.reason = reason


class Unauthorized(DomainError):
    """
    The actor (or the officer acted upon) has no relation to the case that
    would permit the operation, e.g. reassigning away from an officer who
    is not assigned.
    """

    kind = "Unauthorized"

    def __init__(self, message: str = "You are not authorized to perform this action.") -> None:
        super().__init__(message)
