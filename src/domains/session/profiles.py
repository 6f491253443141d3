# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Profile lookup with bounded retry and best-effort auto-create.

An identity can exist in the auth system while its profile row is missing
(provisioning failed or lags). ProfileResolver then inserts a profile with
a safe default role and re-reads it. Assigning the real role is left to an
administrator.

Two callers may race to create the same profile. The losing insert gets a
duplicate-key error, which is treated like success and followed by the
re-read.
"""

import asyncio
import logging

from pydantic import ValidationError

from src.domains.session.cache import ProfileCache
from src.infrastructure.gateway.ports import DuplicateKeyError, GatewayError, RowStore
from src.models.session import Identity, Profile, Role

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_NAME = "user"


class SessionError(Exception):
    """Base exception for session errors."""

    pass


class ProfileUnresolvedError(SessionError):
    """Raised when no profile exists for an identity after all retries.

    Attributes:
        identity_id: The identity without a profile.
    """

    def __init__(self, identity_id: str) -> None:
        super().__init__(
            "Could not load your profile. Please contact an administrator."
        )
        self.identity_id = identity_id


class AccessDeniedError(SessionError):
    """Raised when a profile's role may not enter an area.

    Attributes:
        role: The profile's role, or None when there is no profile.
        allowed: Roles the area accepts.
    """

    def __init__(self, role: str | None, allowed: tuple[str, ...]) -> None:
        super().__init__(f"Access denied (role: {role or 'none'})")
        self.role = role
        self.allowed = allowed


def default_display_name(email: str) -> str:
    """Local part of the email address, or a generic name."""
    return email.split("@")[0] or DEFAULT_DISPLAY_NAME


def gate(profile: Profile | None, allowed_roles) -> Profile:
    """Check that a profile's role is one of ``allowed_roles``.

    Args:
        profile: Resolved profile, or None.
        allowed_roles: Iterable of Role values or role strings.

    Returns:
        The profile, when allowed.

    Raises:
        AccessDeniedError: If there is no profile or its role is not allowed.
    """
    allowed = tuple(Role(role).value for role in allowed_roles)
    if profile is None or profile.role not in allowed:
        raise AccessDeniedError(profile.role if profile else None, allowed)
    return profile


class ProfileResolver:
    """Looks up profiles by identity id, creating a default one if missing.

    Attributes:
        _rows: Row store holding the profiles table.
        _cache: Cache consulted before and filled after every lookup.
        _default_role: Role written to auto-created profiles.
        _retries: Lookup rounds before giving up.
        _retry_delay: Seconds to wait before re-reading an inserted profile.
    """

    def __init__(
        self,
        rows: RowStore,
        cache: ProfileCache,
        *,
        default_role: Role | str = Role.STUDENT,
        retries: int = 3,
        retry_delay: float = 0.5,
        table: str = "profiles",
    ) -> None:
        """Initialize the profile resolver.

        Args:
            rows: Row store holding the profiles table.
            cache: Profile cache shared with the owning session service.
            default_role: Role for auto-created profiles. The login flow and
                the background session resolver use different defaults.
            retries: Lookup rounds before raising ProfileUnresolvedError.
            retry_delay: Seconds between insert and re-read.
            table: Name of the profiles table.
        """
        if retries < 1:
            raise ValueError("retries must be at least 1")
        self._rows = rows
        self._cache = cache
        self._default_role = Role(default_role)
        self._retries = retries
        self._retry_delay = retry_delay
        self._table = table

    @property
    def default_role(self) -> Role:
        return self._default_role

    async def fetch_profile(self, identity: Identity, retries: int | None = None) -> Profile:
        """Resolve the profile for an identity.

        Args:
            identity: The authenticated identity.
            retries: Overrides the configured number of rounds.

        Returns:
            The cached, found or auto-created profile.

        Raises:
            ProfileUnresolvedError: If no profile could be read after all rounds.
        """
        cached = self._cache.get(identity.id)
        if cached is not None:
            return cached

        rounds = self._retries if retries is None else retries
        for attempt in range(rounds):
            try:
                profile = await self._select(identity.id)
                if profile is not None:
                    return self._cache.put(profile)

                if attempt == 0:
                    logger.warning(
                        "Profile not found, attempting auto-create for: %s",
                        identity.email,
                    )
                await self._create_default(identity)

                await asyncio.sleep(self._retry_delay)

                profile = await self._select(identity.id)
                if profile is not None:
                    return self._cache.put(profile)
            except GatewayError as e:
                logger.warning("Profile fetch attempt %d failed: %s", attempt + 1, str(e))
                await asyncio.sleep(self._retry_delay * 2 * (attempt + 1))

        logger.error("Profile unresolved for identity %s after %d attempts", identity.id, rounds)
        raise ProfileUnresolvedError(identity.id)

    async def find_profile(self, identity: Identity) -> Profile | None:
        """Read an existing profile once, without auto-create or retry.

        Returns:
            The cached or stored profile, or None if there is none yet.

        Raises:
            GatewayError: If the lookup fails.
        """
        cached = self._cache.get(identity.id)
        if cached is not None:
            return cached
        profile = await self._select(identity.id)
        if profile is None:
            return None
        return self._cache.put(profile)

    async def _select(self, identity_id: str) -> Profile | None:
        row = await self._rows.select_one(self._table, id=identity_id)
        if row is None:
            return None
        try:
            return Profile.model_validate(row)
        except ValidationError as e:
            logger.error("Malformed profile row for %s: %s", identity_id, str(e))
            return None

    async def _create_default(self, identity: Identity) -> None:
        try:
            await self._rows.insert(
                self._table,
                {
                    "id": identity.id,
                    "email": identity.email,
                    "role": self._default_role.value,
                    "display_name": default_display_name(identity.email),
                },
            )
            logger.info(
                "Auto-created profile for %s with role %s",
                identity.id,
                self._default_role.value,
            )
        except DuplicateKeyError:
            logger.debug("Profile for %s was created concurrently", identity.id)
        except GatewayError as e:
            logger.error("Profile insert error: %s", str(e))
