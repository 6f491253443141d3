# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the in-memory backend gateway."""

from unittest.mock import AsyncMock

import pytest

from src.infrastructure.gateway import (
    DuplicateKeyError,
    ExclusiveActivation,
    ForeignKeyViolationError,
    InvalidCredentialsError,
    TableUnavailableError,
)
from src.infrastructure.gateway.listeners import AuthListenerRegistry
from src.models.session import AuthChange, AuthEvent


class TestInMemoryRowStore:
    """Tests for row storage and constraints."""

    @pytest.mark.asyncio
    async def test_insert_assigns_id(self, backend):
        row = await backend.rows.insert("courses", {"name": "Algebra"})

        assert row["id"]
        assert await backend.rows.count("courses") == 1

    @pytest.mark.asyncio
    async def test_duplicate_primary_key(self, backend):
        await backend.rows.insert("profiles", {"id": "p1", "email": "a@example.com", "role": "admin"})

        with pytest.raises(DuplicateKeyError):
            await backend.rows.insert("profiles", {"id": "p1", "email": "a@example.com", "role": "tutor"})

    @pytest.mark.asyncio
    async def test_select_filters_and_orders(self, two_terms):
        rows = await two_terms.rows.select("terms", order_by="display_order", descending=True)
        active = await two_terms.rows.select("terms", filters={"is_active": True})

        assert [r["id"] for r in rows] == ["T2", "T1"]
        assert [r["id"] for r in active] == ["T1"]

    @pytest.mark.asyncio
    async def test_select_returns_copies(self, two_terms):
        row = await two_terms.rows.select_one("terms", id="T1")
        row["name"] = "changed"

        stored = await two_terms.rows.select_one("terms", id="T1")
        assert stored["name"] == "Term T1"

    @pytest.mark.asyncio
    async def test_update_without_filters_touches_all_rows(self, two_terms):
        updated = await two_terms.rows.update("terms", {"is_active": False})

        assert updated == 2
        assert await two_terms.rows.count("terms", is_active=True) == 0

    @pytest.mark.asyncio
    async def test_delete_blocked_by_reference(self, two_terms):
        two_terms.rows.seed("enrollments", [{"id": "E1", "term_id": "T2"}])

        with pytest.raises(ForeignKeyViolationError):
            await two_terms.rows.delete("terms", id="T2")

        assert await two_terms.rows.count("terms") == 2

    @pytest.mark.asyncio
    async def test_unavailable_table(self, backend):
        backend.rows.set_available("terms", False)

        with pytest.raises(TableUnavailableError):
            await backend.rows.select("terms")

        backend.rows.set_available("terms", True)
        assert await backend.rows.select("terms") == []

    @pytest.mark.asyncio
    async def test_unknown_table(self, backend):
        with pytest.raises(TableUnavailableError):
            await backend.rows.count("invoices")

    @pytest.mark.asyncio
    async def test_activate_exclusive(self, two_terms):
        assert isinstance(two_terms.rows, ExclusiveActivation)

        assert await two_terms.rows.activate_exclusive("terms", "T2") == 1
        assert await two_terms.rows.activate_exclusive("terms", "missing") == 0
        active = await two_terms.rows.select("terms", filters={"is_active": True})
        assert [r["id"] for r in active] == ["T2"]


class TestInMemoryAuth:
    """Tests for password auth and event publishing."""

    @pytest.mark.asyncio
    async def test_sign_in_publishes_event(self, backend, admin_identity):
        changes = []

        async def record(change):
            changes.append(change)

        backend.auth.on_auth_state_change(record)
        identity = await backend.auth.sign_in_with_password("ADMIN@example.com", "secret")

        assert identity == admin_identity
        assert await backend.auth.get_current_identity() == admin_identity
        assert [c.event for c in changes] == [AuthEvent.SIGNED_IN]

    @pytest.mark.asyncio
    async def test_wrong_password(self, backend, admin_identity):
        with pytest.raises(InvalidCredentialsError):
            await backend.auth.sign_in_with_password("admin@example.com", "nope")

        assert await backend.auth.get_current_identity() is None

    @pytest.mark.asyncio
    async def test_unsubscribe(self, backend, admin_identity):
        handler = AsyncMock()
        subscription = backend.auth.on_auth_state_change(handler)
        subscription.unsubscribe()

        await backend.auth.sign_in_with_password("admin@example.com", "secret")

        handler.assert_not_awaited()
        assert backend.auth.listener_count == 0

    @pytest.mark.asyncio
    async def test_refresh_without_session_is_silent(self, backend):
        handler = AsyncMock()
        backend.auth.on_auth_state_change(handler)

        await backend.auth.refresh_token()

        handler.assert_not_awaited()


class TestAuthListenerRegistry:
    """Tests for listener fan-out."""

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self):
        registry = AuthListenerRegistry()
        failing = AsyncMock(side_effect=RuntimeError("boom"))
        healthy = AsyncMock()
        registry.add(failing)
        registry.add(healthy)

        await registry.publish(AuthChange(event=AuthEvent.SIGNED_OUT))

        healthy.assert_awaited_once()

    def test_remove_unknown_handler(self):
        registry = AuthListenerRegistry()

        assert registry.remove(AsyncMock()) is False
