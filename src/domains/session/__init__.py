# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Session domain package.

This package resolves who is signed in and what they may see:
- ProfileCache: identity-scoped profile cache
- ProfileResolver: profile lookup with retry and auto-create
- SessionResolver: session state, auth events, safety timeout
- LoginFlow: password login admitting console roles
- AreaGuard: one-shot redirect for sessions outside an area's role
"""

from src.domains.session.cache import ProfileCache
from src.domains.session.guard import AreaGuard
from src.domains.session.login import (
    CONSOLE_ROLES,
    LANDING_PATHS,
    LOGIN_PATH,
    LoginError,
    LoginFlow,
    LoginResult,
)
from src.domains.session.profiles import (
    AccessDeniedError,
    ProfileResolver,
    ProfileUnresolvedError,
    SessionError,
    default_display_name,
    gate,
)
from src.domains.session.resolver import SessionResolver

__all__ = [
    "ProfileCache",
    "ProfileResolver",
    "SessionResolver",
    "LoginFlow",
    "LoginResult",
    "AreaGuard",
    "gate",
    "default_display_name",
    "CONSOLE_ROLES",
    "LANDING_PATHS",
    "LOGIN_PATH",
    "SessionError",
    "ProfileUnresolvedError",
    "AccessDeniedError",
    "LoginError",
]
