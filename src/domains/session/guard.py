# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Area guard for already-signed-in sessions."""

import logging

from src.domains.session.login import LOGIN_PATH
from src.domains.session.resolver import SessionResolver
from src.models.session import Role

logger = logging.getLogger(__name__)


class AreaGuard:
    """Redirects sessions whose role does not own a console area.

    Each area (admin, instructor, tutor) admits exactly one role. The guard
    answers with the login path the first time it sees a settled session
    without that role, and stays quiet afterwards so the redirect happens
    once.
    """

    def __init__(self, resolver: SessionResolver, role: Role | str, login_path: str = LOGIN_PATH) -> None:
        self._resolver = resolver
        self._role = Role(role)
        self._login_path = login_path
        self._redirected = False

    @property
    def role(self) -> Role:
        return self._role

    def allows(self) -> bool:
        """Whether the settled session may see this area."""
        profile = self._resolver.state.profile
        return profile is not None and profile.role == self._role.value

    def check(self) -> str | None:
        """Return the redirect target, or None to stay.

        None while the session is still loading, when allowed, and after the
        redirect has already been issued.
        """
        state = self._resolver.state
        if state.loading or self.allows() or self._redirected:
            return None
        self._redirected = True
        logger.info(
            "Redirecting %s away from %s area",
            state.identity.id if state.identity else "anonymous session",
            self._role.value,
        )
        return self._login_path

    def reset(self) -> None:
        """Allow another redirect, e.g. after a new sign-in."""
        self._redirected = False
