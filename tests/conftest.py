# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- Unit tests
- Integration tests
"""

from collections.abc import Mapping
from datetime import date
from typing import Any

import pytest

from src.infrastructure.gateway import InMemoryBackend, InMemoryRowStore, create_memory_backend
from src.models.session import Identity


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (requires services)"
    )


# =============================================================================
# Helpers
# =============================================================================


def term_row(
    term_id: str,
    *,
    display_order: int,
    is_active: bool = False,
    **overrides: Any,
) -> dict[str, Any]:
    """Build a terms table row."""
    row = {
        "id": term_id,
        "name": f"Term {term_id}",
        "slug": f"term-{term_id}",
        "start_date": date(2025, 4, 1),
        "end_date": date(2025, 7, 31),
        "enrollment_start": None,
        "enrollment_end": None,
        "display_order": display_order,
        "is_active": is_active,
    }
    row.update(overrides)
    return row


class NonAtomicRows:
    """Row store wrapper without the single-statement activation capability.

    Records the active term ids after every update so tests can observe the
    window between the two activation writes.
    """

    def __init__(self, inner: InMemoryRowStore) -> None:
        self.inner = inner
        self.active_after_update: list[list[str]] = []

    async def select(self, table: str, **kwargs: Any):
        return await self.inner.select(table, **kwargs)

    async def select_one(self, table: str, **filters: Any):
        return await self.inner.select_one(table, **filters)

    async def insert(self, table: str, row: Mapping[str, Any]):
        return await self.inner.insert(table, row)

    async def update(self, table: str, values: Mapping[str, Any], *, filters=None):
        updated = await self.inner.update(table, values, filters=filters)
        if table == "terms":
            active = await self.inner.select("terms", filters={"is_active": True})
            self.active_after_update.append([row["id"] for row in active])
        return updated

    async def delete(self, table: str, **filters: Any):
        return await self.inner.delete(table, **filters)

    async def count(self, table: str, **filters: Any):
        return await self.inner.count(table, **filters)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def backend() -> InMemoryBackend:
    """Provide an empty in-memory backend."""
    return create_memory_backend()


@pytest.fixture
def two_terms(backend: InMemoryBackend) -> InMemoryBackend:
    """Backend seeded with T1 (active) and T2 (inactive, newer)."""
    backend.rows.seed(
        "terms",
        [
            term_row("T1", display_order=1, is_active=True),
            term_row("T2", display_order=2),
        ],
    )
    return backend


@pytest.fixture
def admin_identity(backend: InMemoryBackend) -> Identity:
    """Registered identity with an admin profile."""
    identity = backend.auth.register("admin@example.com", "secret", identity_id="admin-1")
    backend.rows.seed(
        "profiles",
        [{"id": identity.id, "email": identity.email, "role": "admin", "display_name": "admin"}],
    )
    return identity


@pytest.fixture
def tutor_identity(backend: InMemoryBackend) -> Identity:
    """Registered identity with a tutor profile."""
    identity = backend.auth.register("tutor@example.com", "secret", identity_id="tutor-1")
    backend.rows.seed(
        "profiles",
        [{"id": identity.id, "email": identity.email, "role": "tutor", "display_name": "tutor"}],
    )
    return identity


@pytest.fixture
def bare_identity(backend: InMemoryBackend) -> Identity:
    """Registered identity without a profile row."""
    return backend.auth.register("new@example.com", "secret", identity_id="new-1")


@pytest.fixture
def make_term_row():
    """Provide the terms row builder."""
    return term_row


@pytest.fixture
def non_atomic_rows(backend: InMemoryBackend) -> NonAtomicRows:
    """Row store over the backend that activates terms in two writes."""
    return NonAtomicRows(backend.rows)
