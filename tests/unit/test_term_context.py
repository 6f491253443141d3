# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the term context service."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.domains.term.context import (
    TermContextService,
    TermContextState,
    default_selection,
    find_active_term,
)
from src.infrastructure.gateway import TableUnavailableError
from src.models.term import Term


@pytest.fixture
def context(two_terms):
    """Term context over the two-term backend."""
    return TermContextService(two_terms.rows)


def _term(term_id: str, order: int, active: bool = False) -> Term:
    return Term(
        id=term_id,
        name=term_id,
        slug=term_id.lower(),
        start_date="2025-04-01",
        end_date="2025-07-31",
        display_order=order,
        is_active=active,
    )


class TestActiveTermDerivation:
    """Tests for find_active_term and default_selection."""

    def test_single_active_term(self):
        terms = [_term("A", 3), _term("B", 2, active=True), _term("C", 1)]

        assert find_active_term(terms).id == "B"

    def test_no_active_term(self):
        terms = [_term("A", 2), _term("B", 1)]

        assert find_active_term(terms) is None

    def test_multiple_active_terms_yield_none(self):
        terms = [_term("A", 2, active=True), _term("B", 1, active=True)]

        assert find_active_term(terms) is None

    def test_default_selection_prefers_active(self):
        terms = [_term("A", 2), _term("B", 1, active=True)]

        assert default_selection(terms) == "B"

    def test_default_selection_falls_back_to_first(self):
        terms = [_term("A", 2), _term("B", 1)]

        assert default_selection(terms) == "A"

    def test_default_selection_empty(self):
        assert default_selection([]) is None


class TestTermContextLoad:
    """Tests for loading terms."""

    def test_initial_state_is_loading(self, context):
        assert context.state is TermContextState.LOADING
        assert context.loading is True
        assert context.terms == ()
        assert context.selected_term_id is None

    @pytest.mark.asyncio
    async def test_load_orders_by_display_order_descending(self, context):
        terms = await context.load_terms()

        assert [t.id for t in terms] == ["T2", "T1"]
        assert context.loading is False

    @pytest.mark.asyncio
    async def test_load_selects_active_term(self, context):
        await context.load_terms()

        assert context.active_term.id == "T1"
        assert context.selected_term_id == "T1"
        assert context.selected_term.id == "T1"

    @pytest.mark.asyncio
    async def test_load_selects_first_term_without_active(self, backend, make_term_row):
        backend.rows.seed(
            "terms",
            [make_term_row("A", display_order=1), make_term_row("B", display_order=5)],
        )
        context = TermContextService(backend.rows)

        await context.load_terms()

        assert context.active_term is None
        assert context.selected_term_id == "B"

    @pytest.mark.asyncio
    async def test_load_with_no_terms(self, backend):
        context = TermContextService(backend.rows)

        terms = await context.load_terms()

        assert terms == []
        assert context.state is TermContextState.READY
        assert context.selected_term_id is None
        assert context.has_terms is False

    @pytest.mark.asyncio
    async def test_unavailable_table_degrades_to_empty(self, backend):
        backend.rows.set_available("terms", False)
        context = TermContextService(backend.rows)

        terms = await context.load_terms()

        assert terms == []
        assert context.loading is False
        assert context.selected_term_id is None

    @pytest.mark.asyncio
    async def test_refresh_failure_keeps_loaded_terms(self, context, two_terms):
        await context.load_terms()
        two_terms.rows.set_available("terms", False)

        terms = await context.refresh_terms()

        assert [t.id for t in terms] == ["T2", "T1"]
        assert context.selected_term_id == "T1"

    @pytest.mark.asyncio
    async def test_load_uses_row_store_contract(self):
        rows = MagicMock()
        rows.select = AsyncMock(return_value=[])
        context = TermContextService(rows)

        await context.load_terms()

        rows.select.assert_awaited_once_with("terms", order_by="display_order", descending=True)

    @pytest.mark.asyncio
    async def test_load_never_raises(self):
        rows = MagicMock()
        rows.select = AsyncMock(side_effect=TableUnavailableError("relation \"terms\" does not exist"))
        context = TermContextService(rows)

        assert await context.load_terms() == []


class TestTermSelection:
    """Tests for manual selection and refresh behavior."""

    @pytest.mark.asyncio
    async def test_manual_selection_survives_refresh(self, context):
        await context.load_terms()

        context.set_selected_term_id("T2")
        await context.refresh_terms()

        assert context.selected_term_id == "T2"

    @pytest.mark.asyncio
    async def test_unknown_selection_rejected(self, context):
        await context.load_terms()

        with pytest.raises(ValueError):
            context.set_selected_term_id("missing")

        assert context.selected_term_id == "T1"

    @pytest.mark.asyncio
    async def test_deleted_selection_falls_back_to_active(self, context, two_terms):
        await context.load_terms()
        context.set_selected_term_id("T2")

        await two_terms.rows.delete("terms", id="T2")
        await context.refresh_terms()

        assert context.selected_term_id == "T1"

    @pytest.mark.asyncio
    async def test_deleted_selection_falls_back_to_first(self, backend, make_term_row):
        backend.rows.seed(
            "terms",
            [
                make_term_row("A", display_order=1),
                make_term_row("B", display_order=2),
                make_term_row("C", display_order=3),
            ],
        )
        context = TermContextService(backend.rows)
        await context.load_terms()
        assert context.selected_term_id == "C"

        await backend.rows.delete("terms", id="C")
        await context.refresh_terms()

        assert context.selected_term_id == "B"

    @pytest.mark.asyncio
    async def test_all_terms_deleted_clears_selection(self, context, two_terms):
        await context.load_terms()

        await two_terms.rows.delete("terms", id="T1")
        await two_terms.rows.delete("terms", id="T2")
        await context.refresh_terms()

        assert context.selected_term_id is None
        assert context.terms == ()

    @pytest.mark.asyncio
    async def test_first_terms_after_empty_load_initialize_selection(self, backend, make_term_row):
        context = TermContextService(backend.rows)
        await context.load_terms()
        assert context.selected_term_id is None

        backend.rows.seed("terms", [make_term_row("N", display_order=1, is_active=True)])
        await context.refresh_terms()

        assert context.selected_term_id == "N"

    @pytest.mark.asyncio
    async def test_transient_no_active_term_keeps_terms(self, context, two_terms):
        await context.load_terms()

        await two_terms.rows.update("terms", {"is_active": False})
        await context.refresh_terms()

        assert context.active_term is None
        assert context.has_terms is True
        assert context.selected_term_id == "T1"


class TestTermContextSubscribers:
    """Tests for subscriber notification and disposal."""

    @pytest.mark.asyncio
    async def test_subscriber_receives_snapshots(self, context):
        snapshots = []
        context.subscribe(snapshots.append)

        await context.load_terms()
        context.set_selected_term_id("T2")

        assert len(snapshots) == 2
        assert snapshots[0].loading is False
        assert snapshots[0].selected_term_id == "T1"
        assert snapshots[0].active_term.id == "T1"
        assert snapshots[1].selected_term_id == "T2"

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_notifications(self, context):
        snapshots = []
        unsubscribe = context.subscribe(snapshots.append)
        unsubscribe()

        await context.load_terms()

        assert snapshots == []

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_block_others(self, context):
        received = []

        def broken(_snapshot):
            raise RuntimeError("boom")

        context.subscribe(broken)
        context.subscribe(received.append)

        await context.load_terms()

        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_load_after_close_does_not_update_state(self, context):
        snapshots = []
        context.subscribe(snapshots.append)
        context.close()

        await context.load_terms()

        assert context.loading is True
        assert context.terms == ()
        assert snapshots == []
