# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Backend gateway ports.

The console talks to a hosted backend that offers password auth with
pushed auth-state events and a row store with equality filtering. This
module defines that surface as protocols so that the term and session
services can run against any adapter:

- memory: InMemoryBackend, used by tests and local runs
- sql: SQLBackend, SQLAlchemy async over a conventional SQL database

Example:
    >>> gateway = create_memory_backend()
    >>> rows = await gateway.rows.select("terms", order_by="display_order")
"""

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

from src.models.session import AuthChange, Identity

Row = dict[str, Any]
AuthChangeHandler = Callable[[AuthChange], Awaitable[None]]


class GatewayError(Exception):
    """Base exception for backend gateway failures.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying driver or client error.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class DuplicateKeyError(GatewayError):
    """Raised when an insert collides with an existing primary or unique key."""


class ForeignKeyViolationError(GatewayError):
    """Raised when a delete or write breaks a foreign-key reference."""


class TableUnavailableError(GatewayError):
    """Raised when a table does not exist or cannot be reached."""


class InvalidCredentialsError(GatewayError):
    """Raised when a password sign-in is rejected."""


class Subscription(Protocol):
    """Handle returned by auth-state listener registration."""

    def unsubscribe(self) -> None: ...


class AuthGateway(Protocol):
    """Hosted auth operations."""

    async def get_current_identity(self) -> Identity | None: ...

    async def sign_in_with_password(self, email: str, password: str) -> Identity: ...

    async def sign_out(self) -> None: ...

    def on_auth_state_change(self, handler: AuthChangeHandler) -> Subscription: ...


class RowStore(Protocol):
    """Row storage with equality filters.

    ``filters`` maps column names to the value they must equal. An update
    with no filters applies to every row of the table.
    """

    async def select(
        self,
        table: str,
        *,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]: ...

    async def select_one(self, table: str, **filters: Any) -> Row | None: ...

    async def insert(self, table: str, row: Mapping[str, Any]) -> Row: ...

    async def update(
        self,
        table: str,
        values: Mapping[str, Any],
        *,
        filters: Mapping[str, Any] | None = None,
    ) -> int: ...

    async def delete(self, table: str, **filters: Any) -> int: ...

    async def count(self, table: str, **filters: Any) -> int: ...


@runtime_checkable
class ExclusiveActivation(Protocol):
    """Optional row-store capability: flip one row active, all others off.

    Adapters that can do this in a single statement or transaction expose
    it; callers fall back to two sequential updates otherwise.
    """

    async def activate_exclusive(self, table: str, row_id: str) -> int: ...


@dataclass
class BackendGateway:
    """Auth plus row storage, as handed to the console services."""

    auth: AuthGateway
    rows: RowStore

    async def close(self) -> None:
        """Release adapter resources. No-op unless overridden."""
