# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Identity-scoped profile cache owned by a session resolver."""

import logging

from src.models.session import Profile

logger = logging.getLogger(__name__)


class ProfileCache:
    """In-memory profile cache keyed by identity id.

    One instance belongs to one resolver (and the login flow that shares
    it); nothing is module-global.

    Example:
        >>> cache = ProfileCache()
        >>> cache.put(profile)
        >>> cache.get(profile.id) is profile
        True
        >>> cache.invalidate()
    """

    def __init__(self) -> None:
        self._profiles: dict[str, Profile] = {}

    def __len__(self) -> int:
        return len(self._profiles)

    def __contains__(self, identity_id: object) -> bool:
        return identity_id in self._profiles

    def get(self, identity_id: str) -> Profile | None:
        return self._profiles.get(identity_id)

    def put(self, profile: Profile) -> Profile:
        self._profiles[profile.id] = profile
        return profile

    def invalidate(self, identity_id: str | None = None) -> None:
        """Drop one identity's profile, or everything when no id is given."""
        if identity_id is None:
            if self._profiles:
                logger.debug("Clearing %d cached profiles", len(self._profiles))
            self._profiles.clear()
        else:
            self._profiles.pop(identity_id, None)
