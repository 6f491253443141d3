# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-memory backend gateway.

Keeps every table as a dict of rows keyed by ``id`` and enforces the two
constraints the console services depend on: primary-key uniqueness on
insert and declared foreign-key references on delete. The auth side holds
registered users, the current identity and the auth-state listeners.

Used as the test double for the term and session services and as the
``memory`` backend for local runs.

Example:
    >>> backend = create_memory_backend()
    >>> backend.auth.register("admin@example.com", "secret")
    >>> await backend.rows.insert("terms", {"id": "t1", ...})
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any
from uuid import uuid4

from src.infrastructure.gateway.listeners import AuthListenerRegistry
from src.infrastructure.gateway.ports import (
    AuthChangeHandler,
    BackendGateway,
    DuplicateKeyError,
    ForeignKeyViolationError,
    InvalidCredentialsError,
    Row,
    TableUnavailableError,
)
from src.models.session import AuthChange, AuthEvent, Identity

logger = logging.getLogger(__name__)

# (child table, child column) pairs that reference a parent table's id
CONSOLE_REFERENCES: dict[str, list[tuple[str, str]]] = {
    "terms": [
        ("courses", "term_id"),
        ("enrollments", "term_id"),
        ("contact_submissions", "term_id"),
    ],
    "courses": [("enrollments", "course_id")],
    "profiles": [("enrollments", "student_id")],
}

CONSOLE_TABLES = (
    "profiles",
    "terms",
    "courses",
    "enrollments",
    "contact_submissions",
)


def _matches(row: Mapping[str, Any], filters: Mapping[str, Any] | None) -> bool:
    if not filters:
        return True
    return all(row.get(column) == value for column, value in filters.items())


class InMemoryRowStore:
    """Dict-backed row store.

    Attributes:
        _tables: Table name to rows keyed by id.
        _references: Parent table to referencing (table, column) pairs.
        _unavailable: Tables that currently fail every operation.
    """

    def __init__(
        self,
        tables: Iterable[str] = CONSOLE_TABLES,
        references: Mapping[str, list[tuple[str, str]]] | None = None,
    ) -> None:
        self._tables: dict[str, dict[str, Row]] = {name: {} for name in tables}
        self._references = dict(references if references is not None else CONSOLE_REFERENCES)
        self._unavailable: set[str] = set()

    def set_available(self, table: str, available: bool) -> None:
        """Make a table fail (or stop failing) every operation."""
        if available:
            self._unavailable.discard(table)
        else:
            self._unavailable.add(table)

    def seed(self, table: str, rows: Iterable[Mapping[str, Any]]) -> None:
        """Load rows without constraint checks."""
        target = self._tables.setdefault(table, {})
        for row in rows:
            data = dict(row)
            data.setdefault("id", str(uuid4()))
            target[data["id"]] = data

    def _rows(self, table: str) -> dict[str, Row]:
        if table in self._unavailable or table not in self._tables:
            raise TableUnavailableError(f"Table '{table}' is not available")
        return self._tables[table]

    async def select(
        self,
        table: str,
        *,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        rows = [dict(row) for row in self._rows(table).values() if _matches(row, filters)]
        if order_by is not None:
            # None sorts first ascending, like NULLS FIRST
            rows.sort(
                key=lambda r: (r.get(order_by) is not None, r.get(order_by)),
                reverse=descending,
            )
        if limit is not None:
            rows = rows[:limit]
        return rows

    async def select_one(self, table: str, **filters: Any) -> Row | None:
        rows = await self.select(table, filters=filters, limit=1)
        return rows[0] if rows else None

    async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        rows = self._rows(table)
        data = dict(row)
        data.setdefault("id", str(uuid4()))
        if data["id"] in rows:
            raise DuplicateKeyError(
                f'duplicate key value violates unique constraint "{table}_pkey"'
            )
        rows[data["id"]] = data
        return dict(data)

    async def update(
        self,
        table: str,
        values: Mapping[str, Any],
        *,
        filters: Mapping[str, Any] | None = None,
    ) -> int:
        updated = 0
        for row in self._rows(table).values():
            if _matches(row, filters):
                row.update(values)
                updated += 1
        return updated

    async def delete(self, table: str, **filters: Any) -> int:
        rows = self._rows(table)
        doomed = [row_id for row_id, row in rows.items() if _matches(row, filters)]
        for row_id in doomed:
            self._check_references(table, row_id)
        for row_id in doomed:
            del rows[row_id]
        return len(doomed)

    async def count(self, table: str, **filters: Any) -> int:
        return sum(1 for row in self._rows(table).values() if _matches(row, filters))

    async def activate_exclusive(self, table: str, row_id: str) -> int:
        rows = self._rows(table)
        if row_id not in rows:
            return 0
        for row in rows.values():
            row["is_active"] = row["id"] == row_id
        return 1

    def _check_references(self, table: str, row_id: str) -> None:
        for child_table, column in self._references.get(table, []):
            children = self._tables.get(child_table, {})
            if any(child.get(column) == row_id for child in children.values()):
                raise ForeignKeyViolationError(
                    f'update or delete on table "{table}" violates foreign key '
                    f'constraint on table "{child_table}"'
                )


class _User:
    def __init__(self, identity: Identity, password: str) -> None:
        self.identity = identity
        self.password = password


class InMemoryAuth:
    """Password auth with a single current identity per process."""

    def __init__(self) -> None:
        self._users: dict[str, _User] = {}
        self._current: Identity | None = None
        self._listeners = AuthListenerRegistry()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def register(self, email: str, password: str, identity_id: str | None = None) -> Identity:
        """Create a user that can sign in. Does not create a profile."""
        identity = Identity(id=identity_id or str(uuid4()), email=email)
        self._users[email.lower()] = _User(identity, password)
        return identity

    def set_current_identity(self, identity: Identity | None) -> None:
        """Restore an existing session without emitting events."""
        self._current = identity

    async def get_current_identity(self) -> Identity | None:
        return self._current

    async def sign_in_with_password(self, email: str, password: str) -> Identity:
        user = self._users.get(email.lower())
        if user is None or user.password != password:
            raise InvalidCredentialsError("Invalid login credentials")
        self._current = user.identity
        await self._listeners.publish(AuthChange(event=AuthEvent.SIGNED_IN, identity=user.identity))
        return user.identity

    async def sign_out(self) -> None:
        self._current = None
        await self._listeners.publish(AuthChange(event=AuthEvent.SIGNED_OUT))

    async def refresh_token(self) -> None:
        """Emit a token refresh for the current identity."""
        if self._current is None:
            return
        await self._listeners.publish(
            AuthChange(event=AuthEvent.TOKEN_REFRESHED, identity=self._current)
        )

    def on_auth_state_change(self, handler: AuthChangeHandler):
        return self._listeners.add(handler)


class InMemoryBackend(BackendGateway):
    """Gateway made of an InMemoryAuth and an InMemoryRowStore."""

    auth: InMemoryAuth
    rows: InMemoryRowStore


def create_memory_backend() -> InMemoryBackend:
    """Create an empty in-memory backend with the console tables."""
    logger.debug("Creating in-memory backend")
    return InMemoryBackend(auth=InMemoryAuth(), rows=InMemoryRowStore())
