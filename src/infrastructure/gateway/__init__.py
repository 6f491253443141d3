# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Backend gateway package.

Exports the gateway ports, the error taxonomy and the in-memory adapter.
The SQL adapter lives in ``src.infrastructure.gateway.sql`` and is imported
on demand so that the memory backend works without a database driver.
"""

from src.infrastructure.gateway.memory import (
    InMemoryAuth,
    InMemoryBackend,
    InMemoryRowStore,
    create_memory_backend,
)
from src.infrastructure.gateway.ports import (
    AuthGateway,
    BackendGateway,
    DuplicateKeyError,
    ExclusiveActivation,
    ForeignKeyViolationError,
    GatewayError,
    InvalidCredentialsError,
    Row,
    RowStore,
    Subscription,
    TableUnavailableError,
)

__all__ = [
    # Ports
    "AuthGateway",
    "BackendGateway",
    "ExclusiveActivation",
    "Row",
    "RowStore",
    "Subscription",
    # Errors
    "GatewayError",
    "DuplicateKeyError",
    "ForeignKeyViolationError",
    "TableUnavailableError",
    "InvalidCredentialsError",
    # In-memory adapter
    "InMemoryAuth",
    "InMemoryBackend",
    "InMemoryRowStore",
    "create_memory_backend",
]
