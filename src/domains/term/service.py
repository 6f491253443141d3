# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Term administration service.

This module provides the TermAdminService class for:
- Term CRUD operations
- Activating a term (at most one active term)
- Refreshing the bound term context after every mutation
"""

import logging

from pydantic import ValidationError

from src.domains.term.context import TermContextService
from src.infrastructure.gateway.ports import (
    DuplicateKeyError,
    ExclusiveActivation,
    ForeignKeyViolationError,
    GatewayError,
    RowStore,
)
from src.models.term import Term, TermCreateRequest, TermUpdateRequest

logger = logging.getLogger(__name__)


class TermServiceError(Exception):
    """Base exception for term service errors."""

    pass


class TermNotFoundError(TermServiceError):
    """Raised when a term is not found."""

    pass


class MutationFailedError(TermServiceError):
    """Raised when a term write fails at the backend."""

    pass


class TermInUseError(MutationFailedError):
    """Raised when a term cannot be deleted because rows reference it."""

    pass


class TermAdminService:
    """Service for managing terms.

    Attributes:
        rows: Row store holding the terms table.
        context: Term context refreshed after each successful mutation.
    """

    def __init__(
        self,
        rows: RowStore,
        context: TermContextService | None = None,
        table: str = "terms",
    ) -> None:
        """Initialize term admin service.

        Args:
            rows: Row store holding the terms table.
            context: Optional term context to keep in sync.
            table: Name of the terms table.
        """
        self.rows = rows
        self.context = context
        self._table = table

    async def list_terms(self) -> list[Term]:
        """List all terms in admin table order (display_order ascending).

        Returns:
            Terms, or an empty list if the table cannot be read.
        """
        try:
            rows = await self.rows.select(self._table, order_by="display_order")
            return [Term.model_validate(row) for row in rows]
        except (GatewayError, ValidationError) as e:
            logger.error("Error fetching terms: %s", str(e))
            return []

    async def get_term(self, term_id: str) -> Term:
        """Get term by ID.

        Raises:
            TermNotFoundError: If term not found.
            MutationFailedError: If the lookup itself fails.
        """
        try:
            row = await self.rows.select_one(self._table, id=term_id)
        except GatewayError as e:
            raise MutationFailedError(f"Could not read term {term_id}") from e
        if row is None:
            raise TermNotFoundError(f"Term {term_id} not found")
        return Term.model_validate(row)

    async def create_term(self, request: TermCreateRequest) -> Term:
        """Create a new, inactive term.

        When no display order is given the term goes after the existing ones.

        Args:
            request: Term creation data.

        Returns:
            Created term.

        Raises:
            MutationFailedError: If the slug is taken or the insert fails.
        """
        data = request.to_row()
        data["is_active"] = False

        try:
            if request.display_order is None:
                data["display_order"] = await self.rows.count(self._table) + 1
            else:
                data["display_order"] = request.display_order
            row = await self.rows.insert(self._table, data)
        except DuplicateKeyError as e:
            logger.warning("Term slug already in use: %s", request.slug)
            raise MutationFailedError(f"A term with slug '{request.slug}' already exists") from e
        except GatewayError as e:
            logger.error("Error saving term: %s", str(e))
            raise MutationFailedError("Could not create term") from e

        term = Term.model_validate(row)
        logger.info("Created term: %s (%s)", term.name, term.id)

        await self._refresh_context()
        return term

    async def update_term(self, term_id: str, request: TermUpdateRequest) -> Term:
        """Update a term's form fields.

        Raises:
            TermNotFoundError: If term not found.
            MutationFailedError: If the update fails.
        """
        values = request.to_values()
        if values:
            try:
                updated = await self.rows.update(self._table, values, filters={"id": term_id})
            except DuplicateKeyError as e:
                raise MutationFailedError(f"A term with slug '{values.get('slug')}' already exists") from e
            except GatewayError as e:
                logger.error("Error saving term %s: %s", term_id, str(e))
                raise MutationFailedError(f"Could not update term {term_id}") from e
            if updated == 0:
                raise TermNotFoundError(f"Term {term_id} not found")
            logger.info("Updated term: %s", term_id)

        term = await self.get_term(term_id)
        await self._refresh_context()
        return term

    async def delete_term(self, term_id: str) -> None:
        """Delete a term.

        Raises:
            TermInUseError: If courses or enrollments still reference the term.
            TermNotFoundError: If term not found.
            MutationFailedError: If the delete fails for another reason.
        """
        try:
            deleted = await self.rows.delete(self._table, id=term_id)
        except ForeignKeyViolationError as e:
            logger.warning("Term %s is referenced elsewhere, not deleted", term_id)
            raise TermInUseError(
                "Cannot delete term: it is referenced by courses or enrollments"
            ) from e
        except GatewayError as e:
            logger.error("Error deleting term %s: %s", term_id, str(e))
            raise MutationFailedError(f"Could not delete term {term_id}") from e

        if deleted == 0:
            raise TermNotFoundError(f"Term {term_id} not found")

        logger.info("Deleted term: %s", term_id)
        await self._refresh_context()

    async def set_active_term(self, term_id: str) -> Term:
        """Make a term the only active term.

        Uses the row store's single-statement activation when it has one.
        Otherwise runs two writes (deactivate all, activate one); readers in
        between see no active term. A read-after-write check then repairs
        the result if a concurrent activation interleaved.

        Raises:
            TermNotFoundError: If term not found.
            MutationFailedError: If a write fails.
        """
        await self.get_term(term_id)

        try:
            if isinstance(self.rows, ExclusiveActivation):
                await self.rows.activate_exclusive(self._table, term_id)
            else:
                await self._activate_in_two_steps(term_id)
        except GatewayError as e:
            logger.error("Error setting active term %s: %s", term_id, str(e))
            raise MutationFailedError(f"Could not activate term {term_id}") from e

        logger.info("Set term %s as active", term_id)

        await self._refresh_context()
        return await self.get_term(term_id)

    async def _activate_in_two_steps(self, term_id: str) -> None:
        await self.rows.update(self._table, {"is_active": False})
        await self.rows.update(self._table, {"is_active": True}, filters={"id": term_id})

        active = await self.rows.select(self._table, filters={"is_active": True})
        active_ids = [row["id"] for row in active]
        if active_ids == [term_id]:
            return

        logger.warning(
            "Activation of term %s interleaved with another write (active: %s), repairing",
            term_id,
            active_ids,
        )
        for other_id in active_ids:
            if other_id != term_id:
                await self.rows.update(self._table, {"is_active": False}, filters={"id": other_id})
        if term_id not in active_ids:
            await self.rows.update(self._table, {"is_active": True}, filters={"id": term_id})

    async def _refresh_context(self) -> None:
        if self.context is not None:
            await self.context.refresh_terms()
