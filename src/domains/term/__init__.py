# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Term domain package.

This package provides term functionality including:
- Term context: loaded terms, active term and per-session selection
- Term administration: CRUD and activation
- Term scope: term_id filtering for console views
"""

from src.domains.term.context import (
    TermContextService,
    TermContextState,
    TermSnapshot,
    default_selection,
    find_active_term,
)
from src.domains.term.scope import TermScope
from src.domains.term.service import (
    MutationFailedError,
    TermAdminService,
    TermInUseError,
    TermNotFoundError,
    TermServiceError,
)

__all__ = [
    "TermContextService",
    "TermContextState",
    "TermSnapshot",
    "default_selection",
    "find_active_term",
    "TermScope",
    "TermAdminService",
    "TermServiceError",
    "TermNotFoundError",
    "MutationFailedError",
    "TermInUseError",
]
