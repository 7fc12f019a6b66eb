"""
core.domain.transactions — Row-locking helpers for lifecycle mutations.

Every mutation re-reads the row it is about to change with
``select_for_update()`` inside ``transaction.atomic()`` so that two
concurrent writers on the same Report or Incident serialize; the second
one blocks until the first commits and then works on fresh state.

Usage::

    from django.db import transaction
    from core.domain.transactions import lock_for_update

    with transaction.atomic():
        report = lock_for_update(Report, report_id)
        ...
"""

from __future__ import annotations

from typing import Any, Callable, TypeVar

from django.db import models, transaction

from core.domain.exceptions import NotFound

M = TypeVar("M", bound=models.Model)


def lock_for_update(model_class: type[M], pk: Any) -> M:
    """
    Acquire a row-level lock on the given model instance.

    Convenience wrapper around ``select_for_update().get(pk=pk)``
    that must be called inside an ``atomic()`` block.

    Args:
        model_class: The Django model class.
        pk:          Primary key value.

    Returns:
        The locked model instance.

    Raises:
        NotFound: If no row with that PK exists.
    """
    try:
        return model_class.objects.select_for_update().get(pk=pk)
    except model_class.DoesNotExist:
        raise NotFound(f"{model_class.__name__} with pk={pk} does not exist.")


def get_or_not_found(model_class: type[M], pk: Any) -> M:
    """Unlocked read; raises ``NotFound`` instead of ``DoesNotExist``."""
    try:
        return model_class.objects.get(pk=pk)
    except model_class.DoesNotExist:
        raise NotFound(f"{model_class.__name__} with pk={pk} does not exist.")


def after_commit(fn: Callable[[], Any]) -> None:
    """
    Run ``fn`` once the surrounding transaction commits.

    Outside an atomic block Django runs the callback immediately.  The
    callback never runs if the transaction rolls back.
    """
    transaction.on_commit(fn)
