# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for term-scoped reads."""

import pytest

from src.domains.term.context import TermContextService
from src.domains.term.scope import TermScope


@pytest.fixture
def seeded(two_terms):
    two_terms.rows.seed(
        "courses",
        [
            {"id": "C1", "term_id": "T1", "name": "Algebra", "level": "A"},
            {"id": "C2", "term_id": "T1", "name": "Biology", "level": "B"},
            {"id": "C3", "term_id": "T2", "name": "Chemistry", "level": "A"},
        ],
    )
    return two_terms


@pytest.fixture
def context(seeded):
    return TermContextService(seeded.rows)


@pytest.fixture
def scope(context, seeded):
    return TermScope(context, seeded.rows)


class TestTermScope:
    """Tests for the selected-term filter."""

    @pytest.mark.asyncio
    async def test_reads_follow_selected_term(self, scope, context):
        await context.load_terms()

        courses = await scope.select("courses", order_by="name")

        assert [c["id"] for c in courses] == ["C1", "C2"]

    @pytest.mark.asyncio
    async def test_selection_change_rescopes(self, scope, context):
        await context.load_terms()

        context.set_selected_term_id("T2")

        assert scope.term_id == "T2"
        assert [c["id"] for c in await scope.select("courses")] == ["C3"]
        assert await scope.count("courses") == 1

    @pytest.mark.asyncio
    async def test_extra_filters_combined(self, scope, context):
        await context.load_terms()

        courses = await scope.select("courses", level="B")

        assert [c["id"] for c in courses] == ["C2"]
        assert scope.filters(level="B") == {"level": "B", "term_id": "T1"}

    @pytest.mark.asyncio
    async def test_no_selection_reads_unscoped(self, backend):
        backend.rows.seed("courses", [{"id": "C9", "term_id": None, "name": "Orphan"}])
        context = TermContextService(backend.rows)
        await context.load_terms()
        scope = TermScope(context, backend.rows)

        assert scope.term_id is None
        assert scope.filters() == {}
        assert [c["id"] for c in await scope.select("courses")] == ["C9"]

    @pytest.mark.asyncio
    async def test_failed_read_returns_empty(self, scope, context, seeded):
        await context.load_terms()
        seeded.rows.set_available("courses", False)

        assert await scope.select("courses") == []
        assert await scope.count("courses") == 0
