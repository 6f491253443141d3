# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pydantic models shared by the console services.

- term: Term records and admin form payloads
- session: Identities, profiles, roles and auth-state events
"""

from src.models.session import (
    AuthChange,
    AuthEvent,
    Identity,
    Profile,
    Role,
    SessionState,
)
from src.models.term import Term, TermCreateRequest, TermUpdateRequest

__all__ = [
    "AuthChange",
    "AuthEvent",
    "Identity",
    "Profile",
    "Role",
    "SessionState",
    "Term",
    "TermCreateRequest",
    "TermUpdateRequest",
]
