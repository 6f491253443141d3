# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Term-scoped reads for console list and detail views.

Every view that lists courses, enrollments or contact submissions reads
through TermScope so that the ``term_id`` filter always matches the
selected term of the bound TermContextService.
"""

import logging
from typing import Any

from src.domains.term.context import TermContextService
from src.infrastructure.gateway.ports import GatewayError, Row, RowStore

logger = logging.getLogger(__name__)


class TermScope:
    """Adds ``term_id = <selected term>`` to row-store reads.

    When no term is selected (no terms configured) the term filter is
    left out and rows are read unscoped.
    """

    def __init__(
        self,
        context: TermContextService,
        rows: RowStore,
        column: str = "term_id",
    ) -> None:
        self._context = context
        self._rows = rows
        self._column = column

    @property
    def term_id(self) -> str | None:
        return self._context.selected_term_id

    def filters(self, **filters: Any) -> dict[str, Any]:
        """Return ``filters`` with the selected term added."""
        scoped = dict(filters)
        if self.term_id is not None:
            scoped[self._column] = self.term_id
        return scoped

    async def select(
        self,
        table: str,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        **filters: Any,
    ) -> list[Row]:
        """List rows of ``table`` belonging to the selected term.

        Returns:
            Matching rows, or an empty list if the read fails.
        """
        try:
            return await self._rows.select(
                table,
                filters=self.filters(**filters),
                order_by=order_by,
                descending=descending,
                limit=limit,
            )
        except GatewayError as e:
            logger.error("Error fetching %s for term %s: %s", table, self.term_id, str(e))
            return []

    async def count(self, table: str, **filters: Any) -> int:
        """Count rows of ``table`` belonging to the selected term."""
        try:
            return await self._rows.count(table, **self.filters(**filters))
        except GatewayError as e:
            logger.error("Error counting %s for term %s: %s", table, self.term_id, str(e))
            return 0
