# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQL backend gateway using SQLAlchemy async.

Implements the gateway ports over a conventional SQL database: the console
tables are SQLAlchemy Core tables, and the auth layer is a thin
``identities`` table with bcrypt password hashes. Integrity errors from the
driver are mapped onto the gateway error taxonomy so that services never
see SQLAlchemy exceptions.

Uses SQLAlchemy 2.0 async API with asyncpg driver.

Example:
    from src.infrastructure.gateway.sql import create_sql_backend

    backend = create_sql_backend(settings.database)
    await backend.create_schema()
    identity = await backend.auth.register("admin@example.com", "secret")
    ...
    await backend.close()
"""

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import bcrypt
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    delete,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.exc import (
    IntegrityError,
    OperationalError,
    ProgrammingError,
    SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from src.infrastructure.gateway.listeners import AuthListenerRegistry
from src.infrastructure.gateway.ports import (
    AuthChangeHandler,
    BackendGateway,
    DuplicateKeyError,
    ForeignKeyViolationError,
    GatewayError,
    InvalidCredentialsError,
    Row,
    TableUnavailableError,
)
from src.models.session import AuthChange, AuthEvent, Identity

if TYPE_CHECKING:
    from src.core.config.settings import DatabaseSettings

logger = logging.getLogger(__name__)

metadata = MetaData()

identities = Table(
    "identities",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(320), nullable=False, unique=True),
    Column("password_hash", String(128), nullable=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
)

profiles = Table(
    "profiles",
    metadata,
    Column("id", String(36), ForeignKey("identities.id", ondelete="CASCADE"), primary_key=True),
    Column("email", String(320), nullable=False),
    Column("display_name", String(200)),
    Column("role", String(20), nullable=False, server_default="student"),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
)

terms = Table(
    "terms",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(200), nullable=False),
    Column("slug", String(100), nullable=False, unique=True),
    Column("start_date", Date, nullable=False),
    Column("end_date", Date, nullable=False),
    Column("enrollment_start", Date),
    Column("enrollment_end", Date),
    Column("display_order", Integer, nullable=False, server_default="0"),
    Column("is_active", Boolean, nullable=False, server_default="false"),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
)

courses = Table(
    "courses",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("term_id", String(36), ForeignKey("terms.id", ondelete="RESTRICT")),
    Column("name", String(200), nullable=False),
    Column("capacity", Integer),
    Column("price", Integer),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
)

enrollments = Table(
    "enrollments",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("term_id", String(36), ForeignKey("terms.id", ondelete="RESTRICT")),
    Column("course_id", String(36), ForeignKey("courses.id", ondelete="RESTRICT")),
    Column("student_id", String(36), ForeignKey("profiles.id", ondelete="RESTRICT")),
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("payment_status", String(20), nullable=False, server_default="unpaid"),
    Column("payment_amount", Integer),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
)

contact_submissions = Table(
    "contact_submissions",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("term_id", String(36), ForeignKey("terms.id", ondelete="RESTRICT")),
    Column("name", String(200), nullable=False),
    Column("email", String(320), nullable=False),
    Column("message", Text),
    Column("status", String(20), nullable=False, server_default="unread"),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
)


def translate_error(error: SQLAlchemyError, action: str) -> GatewayError:
    """Map a SQLAlchemy error onto the gateway error taxonomy.

    Args:
        error: The error raised by SQLAlchemy.
        action: Short description of the failed operation, for the message.

    Returns:
        The matching GatewayError subclass instance.
    """
    if isinstance(error, IntegrityError):
        detail = str(error.orig).lower()
        if "foreign key" in detail:
            return ForeignKeyViolationError(f"{action} violates a foreign key", error)
        if "duplicate" in detail or "unique" in detail:
            return DuplicateKeyError(f"{action} hit a duplicate key", error)
    if isinstance(error, (OperationalError, ProgrammingError)):
        return TableUnavailableError(f"{action} failed: table unavailable", error)
    return GatewayError(f"{action} failed", error)


class SQLRowStore:
    """Row store over SQLAlchemy Core tables.

    Attributes:
        _engine: Async engine shared with the auth layer.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    @staticmethod
    def _table(name: str) -> Table:
        try:
            return metadata.tables[name]
        except KeyError:
            raise TableUnavailableError(f"Table '{name}' is not available") from None

    @staticmethod
    def _conditions(table: Table, filters: Mapping[str, Any] | None) -> list[Any]:
        if not filters:
            return []
        try:
            return [table.c[column] == value for column, value in filters.items()]
        except KeyError as e:
            raise GatewayError(f"Unknown column on '{table.name}': {e.args[0]}") from None

    async def select(
        self,
        table: str,
        *,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        target = self._table(table)
        stmt = select(target).where(*self._conditions(target, filters))
        if order_by is not None:
            try:
                column = target.c[order_by]
            except KeyError:
                raise GatewayError(f"Unknown column on '{target.name}': {order_by}") from None
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(stmt)
                return [dict(row._mapping) for row in result]
        except SQLAlchemyError as e:
            raise translate_error(e, f"select from {table}") from e

    async def select_one(self, table: str, **filters: Any) -> Row | None:
        rows = await self.select(table, filters=filters, limit=1)
        return rows[0] if rows else None

    async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        target = self._table(table)
        data = dict(row)
        data.setdefault("id", str(uuid4()))
        stmt = insert(target).values(**data).returning(*target.c)
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(stmt)
                return dict(result.one()._mapping)
        except SQLAlchemyError as e:
            raise translate_error(e, f"insert into {table}") from e

    async def update(
        self,
        table: str,
        values: Mapping[str, Any],
        *,
        filters: Mapping[str, Any] | None = None,
    ) -> int:
        target = self._table(table)
        stmt = update(target).where(*self._conditions(target, filters)).values(**values)
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(stmt)
                return result.rowcount
        except SQLAlchemyError as e:
            raise translate_error(e, f"update {table}") from e

    async def delete(self, table: str, **filters: Any) -> int:
        target = self._table(table)
        stmt = delete(target).where(*self._conditions(target, filters))
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(stmt)
                return result.rowcount
        except SQLAlchemyError as e:
            raise translate_error(e, f"delete from {table}") from e

    async def count(self, table: str, **filters: Any) -> int:
        target = self._table(table)
        stmt = select(func.count()).select_from(target).where(*self._conditions(target, filters))
        try:
            async with self._engine.connect() as conn:
                return (await conn.scalar(stmt)) or 0
        except SQLAlchemyError as e:
            raise translate_error(e, f"count {table}") from e

    async def activate_exclusive(self, table: str, row_id: str) -> int:
        """Set ``is_active`` true on one row and false on all others.

        Runs as a single UPDATE inside one transaction, so readers never see
        zero active rows.
        """
        target = self._table(table)
        try:
            async with self._engine.begin() as conn:
                exists = await conn.scalar(
                    select(func.count()).select_from(target).where(target.c.id == row_id)
                )
                if not exists:
                    return 0
                await conn.execute(update(target).values(is_active=target.c.id == row_id))
                return 1
        except SQLAlchemyError as e:
            raise translate_error(e, f"activate row in {table}") from e


class SQLAuth:
    """Thin password auth over the ``identities`` table.

    The signed-in identity is process-local, like a browser session token.
    """

    def __init__(self, engine: AsyncEngine, rounds: int = 12) -> None:
        self._engine = engine
        self._rounds = rounds
        self._current: Identity | None = None
        self._listeners = AuthListenerRegistry()

    async def register(self, email: str, password: str) -> Identity:
        """Create an identity with a bcrypt password hash.

        Raises:
            ValueError: If password is empty.
            DuplicateKeyError: If the email is already registered.
        """
        if not password:
            raise ValueError("Password cannot be empty")
        password_hash = bcrypt.hashpw(
            password.encode("utf-8"), bcrypt.gensalt(rounds=self._rounds)
        ).decode("utf-8")
        identity = Identity(id=str(uuid4()), email=email)
        try:
            async with self._engine.begin() as conn:
                await conn.execute(
                    insert(identities).values(
                        id=identity.id,
                        email=email.lower(),
                        password_hash=password_hash,
                    )
                )
        except SQLAlchemyError as e:
            raise translate_error(e, "register identity") from e
        logger.info("Registered identity %s", identity.id)
        return identity

    async def get_current_identity(self) -> Identity | None:
        return self._current

    async def sign_in_with_password(self, email: str, password: str) -> Identity:
        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(
                    select(identities).where(identities.c.email == email.lower())
                )
                row = result.one_or_none()
        except SQLAlchemyError as e:
            raise translate_error(e, "sign in") from e

        if row is None or not self._verify(password, row.password_hash):
            raise InvalidCredentialsError("Invalid login credentials")

        self._current = Identity(id=row.id, email=row.email)
        await self._listeners.publish(AuthChange(event=AuthEvent.SIGNED_IN, identity=self._current))
        return self._current

    async def sign_out(self) -> None:
        self._current = None
        await self._listeners.publish(AuthChange(event=AuthEvent.SIGNED_OUT))

    def on_auth_state_change(self, handler: AuthChangeHandler):
        return self._listeners.add(handler)

    @staticmethod
    def _verify(password: str, password_hash: str) -> bool:
        if not password or not password_hash:
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError as e:
            logger.warning("Password verification failed: %s", str(e))
            return False


class SQLBackend(BackendGateway):
    """Gateway over one async engine."""

    auth: SQLAuth
    rows: SQLRowStore

    def __init__(self, engine: AsyncEngine, *, password_rounds: int = 12) -> None:
        super().__init__(auth=SQLAuth(engine, rounds=password_rounds), rows=SQLRowStore(engine))
        self.engine = engine

    async def create_schema(self) -> None:
        """Create the console tables if they do not exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    async def drop_schema(self) -> None:
        """Drop the console tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.drop_all)

    async def close(self) -> None:
        await self.engine.dispose()


def create_sql_backend(settings: "DatabaseSettings") -> SQLBackend:
    """Create a SQL backend from database settings.

    Args:
        settings: Database settings with the async URL and pool sizes.

    Returns:
        A backend bound to a new engine; call ``close()`` at shutdown.
    """
    engine = create_async_engine(
        settings.url,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        pool_pre_ping=True,
        pool_recycle=1800,
        echo=settings.echo,
    )
    return SQLBackend(engine, password_rounds=settings.password_rounds)
