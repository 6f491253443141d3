# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Console login flow.

Sign in with a password, resolve (or auto-create) the profile, and admit
only console roles. Profiles auto-created here default to ``admin``, unlike
the background session resolver, which defaults to ``student``. The two
defaults are configured separately. When bound to a SessionResolver, the
resolver only reads existing profiles while a login runs and adopts the
login result afterwards.
"""

import logging
from collections.abc import Iterable
from contextlib import nullcontext
from dataclasses import dataclass

from src.domains.session.cache import ProfileCache
from src.domains.session.profiles import (
    AccessDeniedError,
    ProfileResolver,
    ProfileUnresolvedError,
    SessionError,
    gate,
)
from src.domains.session.resolver import SessionResolver
from src.infrastructure.gateway.ports import BackendGateway, GatewayError, InvalidCredentialsError
from src.models.session import Identity, Profile, Role

logger = logging.getLogger(__name__)

CONSOLE_ROLES: tuple[Role, ...] = (Role.ADMIN, Role.INSTRUCTOR, Role.TUTOR)

LANDING_PATHS: dict[str, str] = {
    Role.ADMIN.value: "/admin",
    Role.INSTRUCTOR.value: "/instructor",
    Role.TUTOR.value: "/tutor",
}

LOGIN_PATH = "/login"


class LoginError(SessionError):
    """Raised when sign-in or profile resolution fails during login."""

    pass


@dataclass(frozen=True)
class LoginResult:
    """Outcome of a successful login.

    Attributes:
        identity: The signed-in identity.
        profile: Its profile.
        redirect_to: Landing path for the profile's role.
    """

    identity: Identity
    profile: Profile
    redirect_to: str


class LoginFlow:
    """Password login for the console.

    Example:
        >>> flow = LoginFlow(gateway, session=resolver)
        >>> result = await flow.login("admin@example.com", "secret")
        >>> result.redirect_to
        '/admin'
    """

    def __init__(
        self,
        gateway: BackendGateway,
        *,
        cache: ProfileCache | None = None,
        session: SessionResolver | None = None,
        default_role: Role | str = Role.ADMIN,
        allowed_roles: Iterable[Role | str] = CONSOLE_ROLES,
        retries: int = 3,
        retry_delay: float = 0.5,
    ) -> None:
        self._auth = gateway.auth
        self._session = session
        if cache is None:
            cache = session.cache if session is not None else ProfileCache()
        self._cache = cache
        self._allowed = tuple(Role(role) for role in allowed_roles)
        self._profiles = ProfileResolver(
            gateway.rows,
            self._cache,
            default_role=default_role,
            retries=retries,
            retry_delay=retry_delay,
        )

    async def login(self, email: str, password: str) -> LoginResult:
        """Sign in and admit console roles only.

        Args:
            email: Account email.
            password: Account password.

        Returns:
            The identity, its profile and the landing path.

        Raises:
            LoginError: If sign-in fails or no profile can be resolved.
            AccessDeniedError: If the role may not use the console. The
                identity has been signed out again.
        """
        pending = self._session.login_in_progress() if self._session is not None else nullcontext()
        with pending:
            result = await self._login(email, password)
        if self._session is not None:
            self._session.complete_login(result.identity, result.profile)
        return result

    async def _login(self, email: str, password: str) -> LoginResult:
        try:
            identity = await self._auth.sign_in_with_password(email, password)
        except InvalidCredentialsError as e:
            logger.info("Sign in rejected for %s", email)
            raise LoginError(f"Sign-in error: {e.message}") from e
        except GatewayError as e:
            logger.error("Sign in error: %s", str(e))
            raise LoginError(f"Sign-in error: {e.message}") from e

        # A fresh sign-in must never reuse a stale profile
        self._cache.invalidate(identity.id)

        try:
            profile = await self._profiles.fetch_profile(identity)
        except ProfileUnresolvedError as e:
            raise LoginError(str(e)) from e

        try:
            gate(profile, self._allowed)
        except AccessDeniedError:
            logger.warning("Role %s may not use the console, signing out %s", profile.role, identity.id)
            await self._sign_out_quietly()
            raise

        logger.info("Login succeeded for %s as %s", identity.id, profile.role)
        return LoginResult(
            identity=identity,
            profile=profile,
            redirect_to=LANDING_PATHS.get(profile.role, LOGIN_PATH),
        )

    async def _sign_out_quietly(self) -> None:
        self._cache.invalidate()
        try:
            await self._auth.sign_out()
        except GatewayError as e:
            logger.warning("Sign-out after denied login failed: %s", str(e))
