# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Term context: which term every console view should show.

This module provides the TermContextService store:
- Loading all terms ordered by display_order (newest first)
- Deriving the globally active term
- Owning the per-session selected term, which survives refreshes
- Notifying subscribers with immutable snapshots

State machine: LOADING -> READY. A failed load still ends in READY, with
no terms, so the console stays usable when the terms table is missing.

Example:
    >>> context = TermContextService(gateway.rows)
    >>> await context.load_terms()
    >>> context.selected_term_id
    'term-2025-1'
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from pydantic import ValidationError

from src.infrastructure.gateway.ports import GatewayError, RowStore
from src.models.term import Term

logger = logging.getLogger(__name__)


class TermContextState(str, Enum):
    """Lifecycle of the term context."""

    LOADING = "loading"
    READY = "ready"


@dataclass(frozen=True)
class TermSnapshot:
    """Immutable view of the term context handed to subscribers.

    Attributes:
        state: LOADING until the first load finishes, READY afterwards.
        terms: Terms ordered by display_order, highest first.
        active_term: The single active term, or None.
        selected_term_id: The term the console is currently showing.
    """

    state: TermContextState
    terms: tuple[Term, ...]
    active_term: Term | None
    selected_term_id: str | None

    @property
    def loading(self) -> bool:
        return self.state is TermContextState.LOADING


TermListener = Callable[[TermSnapshot], None]


def find_active_term(terms: list[Term] | tuple[Term, ...]) -> Term | None:
    """Return the only active term.

    Zero active terms is a normal transient state during activation; more
    than one is an invalid backend state. Both yield None.
    """
    active = [term for term in terms if term.is_active]
    if len(active) == 1:
        return active[0]
    if len(active) > 1:
        logger.warning(
            "Found %d active terms, expected at most one: %s",
            len(active),
            ", ".join(term.id for term in active),
        )
    return None


def default_selection(terms: list[Term] | tuple[Term, ...]) -> str | None:
    """Active term id, else the first term's id, else None."""
    active = find_active_term(terms)
    if active is not None:
        return active.id
    if terms:
        return terms[0].id
    return None


class TermContextService:
    """Single source of truth for the term every view filters by.

    Attributes:
        _rows: Row store holding the terms table.
        _terms: Last successfully loaded terms.
        _selected_term_id: Current selection, or None.
        _state: LOADING or READY.
    """

    def __init__(self, rows: RowStore, table: str = "terms") -> None:
        """Initialize the term context.

        Args:
            rows: Row store holding the terms table.
            table: Name of the terms table.
        """
        self._rows = rows
        self._table = table
        self._terms: list[Term] = []
        self._selected_term_id: str | None = None
        self._state = TermContextState.LOADING
        self._listeners: list[TermListener] = []
        self._lock = asyncio.Lock()
        self._closed = False

    # =========================================================================
    # Read surface
    # =========================================================================

    @property
    def state(self) -> TermContextState:
        return self._state

    @property
    def loading(self) -> bool:
        return self._state is TermContextState.LOADING

    @property
    def terms(self) -> tuple[Term, ...]:
        return tuple(self._terms)

    @property
    def has_terms(self) -> bool:
        """Whether any term is configured, regardless of activation state."""
        return bool(self._terms)

    @property
    def active_term(self) -> Term | None:
        return find_active_term(self._terms)

    @property
    def selected_term_id(self) -> str | None:
        return self._selected_term_id

    @property
    def selected_term(self) -> Term | None:
        for term in self._terms:
            if term.id == self._selected_term_id:
                return term
        return None

    def snapshot(self) -> TermSnapshot:
        """Return the current state as an immutable snapshot."""
        return TermSnapshot(
            state=self._state,
            terms=tuple(self._terms),
            active_term=self.active_term,
            selected_term_id=self._selected_term_id,
        )

    # =========================================================================
    # Mutations
    # =========================================================================

    def set_selected_term_id(self, term_id: str) -> None:
        """Switch the console to another loaded term.

        Args:
            term_id: Id of a loaded term.

        Raises:
            ValueError: If no loaded term has this id.
        """
        if not any(term.id == term_id for term in self._terms):
            raise ValueError(f"Unknown term: {term_id}")
        if term_id == self._selected_term_id:
            return
        self._selected_term_id = term_id
        logger.debug("Selected term changed to %s", term_id)
        self._notify()

    async def load_terms(self) -> list[Term]:
        """Load all terms and settle the selection.

        Never raises. If the table is unavailable on the first load the
        context becomes READY with no terms; on later loads the previously
        loaded terms are kept.

        Returns:
            Terms ordered by display_order, highest first.
        """
        async with self._lock:
            terms = await self._fetch_terms()
            if self._closed:
                logger.debug("Term context closed during load, discarding result")
                return terms or []
            if terms is not None:
                self._apply(terms)
            elif self._state is TermContextState.LOADING:
                self._apply([])
            self._state = TermContextState.READY
        self._notify()
        return list(self._terms)

    async def refresh_terms(self) -> list[Term]:
        """Reload terms after a create, edit, activate or delete.

        The current selection is kept while its term still exists. If it
        was deleted, selection falls back to the active term, then the
        first term, then None.
        """
        return await self.load_terms()

    def subscribe(self, listener: TermListener) -> Callable[[], None]:
        """Register a listener called with a snapshot after every change.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def close(self) -> None:
        """Dispose the context. Loads still in flight will not touch state."""
        self._closed = True
        self._listeners.clear()

    # =========================================================================
    # Internals
    # =========================================================================

    async def _fetch_terms(self) -> list[Term] | None:
        try:
            rows = await self._rows.select(
                self._table,
                order_by="display_order",
                descending=True,
            )
            return [Term.model_validate(row) for row in rows]
        except (GatewayError, ValidationError) as e:
            logger.warning("Terms unavailable: %s", str(e))
            return None

    def _apply(self, terms: list[Term]) -> None:
        self._terms = terms
        known = {term.id for term in terms}
        if self._selected_term_id in known:
            return
        previous = self._selected_term_id
        self._selected_term_id = default_selection(terms)
        if previous is not None:
            logger.info(
                "Selected term %s no longer exists, falling back to %s",
                previous,
                self._selected_term_id,
            )

    def _notify(self) -> None:
        if self._closed:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error("Term listener failed: %s", str(e), exc_info=True)
