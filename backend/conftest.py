"""
Root conftest.py — shared fixtures for the entire test suite.

Provides:
  - ``create_user`` factory fixture for creating test users.
  - ``create_officer`` factory fixture for officer profiles.
  - ``memory_sink`` fixture routing notifications to an in-memory list.
"""

from __future__ import annotations

import pytest


@pytest.fixture()
def create_user(db):
    """
    Factory fixture that creates a user with sensible defaults.

    Usage::

        def test_something(create_user):
            user = create_user(username="alice")
            admin = create_user(role=UserRole.ADMIN)
    """
    from accounts.models import User

    _counter = 0

    def _factory(
        *,
        username: str | None = None,
        password: str = "TestPass123!",
        email: str | None = None,
        role=None,
        **kwargs,
    ) -> User:
        nonlocal _counter
        _counter += 1
        if username is None:
            username = f"testuser{_counter}"
        if email is None:
            email = f"{username}@test.local"
        if role is not None:
            kwargs["role"] = role
        return User.objects.create_user(
            username=username,
            password=password,
            email=email,
            **kwargs,
        )

    return _factory


@pytest.fixture()
def create_officer(db, create_user):
    """
    Factory fixture for ``Officer`` rows, each linked to its own user
    unless ``with_user=False``.
    """
    from accounts.models import UserRole
    from officers.models import Officer, OfficerStatus

    _counter = 0

    def _factory(
        *,
        name: str | None = None,
        status: str = OfficerStatus.ACTIVE,
        with_user: bool = True,
        **kwargs,
    ) -> Officer:
        nonlocal _counter
        _counter += 1
        if name is None:
            name = f"Officer {_counter:03d}"
        user = create_user(role=UserRole.OFFICER) if with_user else None
        return Officer.objects.create(
            name=name,
            badge_number=kwargs.pop("badge_number", f"B-{_counter:05d}"),
            status=status,
            user=user,
            **kwargs,
        )

    return _factory


@pytest.fixture()
def memory_sink(settings):
    """Route notifications to ``MemoryNotificationSink`` and return its log."""
    from core.domain.notifications import MemoryNotificationSink

    settings.NOTIFICATION_SINK = "core.domain.notifications.MemoryNotificationSink"
    MemoryNotificationSink.reset()
    yield MemoryNotificationSink.sent
    MemoryNotificationSink.reset()
