# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Session resolution for the console.

This module provides the SessionResolver that answers "who is signed in
and with which role":
- Initial resolution of the current identity and its profile
- Reaction to pushed auth-state events
- Per-identity profile caching and invalidation
- Role gating for console areas
- A safety timeout bounding the loading state

Ordering between the initial resolution and events pushed by the backend
is not guaranteed. Until the initial resolution finishes, every event but
SIGNED_OUT is ignored. Each resolution carries a generation number;
signing in or out starts a new generation and results of older ones are
dropped without touching state or cache.

While a LoginFlow is signing in, SIGNED_IN only reads an existing profile.
Creating a missing one is left to the login flow and its default role.

Example:
    >>> resolver = SessionResolver(gateway)
    >>> state = await resolver.start()
    >>> resolver.gate([Role.ADMIN])
"""

import asyncio
import logging
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager

from src.domains.session.cache import ProfileCache
from src.domains.session.profiles import (
    ProfileResolver,
    ProfileUnresolvedError,
    gate,
)
from src.infrastructure.gateway.ports import BackendGateway, GatewayError, Subscription
from src.models.session import AuthChange, AuthEvent, Identity, Profile, Role, SessionState
from src.utils.logging import bind_context, clear_context

logger = logging.getLogger(__name__)

SessionListener = Callable[[SessionState], None]


class SessionResolver:
    """Resolves and tracks the signed-in identity and its profile.

    Attributes:
        _auth: Auth side of the backend gateway.
        _cache: Profile cache owned by this resolver.
        _profiles: Profile lookup with retry and auto-create.
        _state: Latest session snapshot.
        _initialized: Latch set once the initial resolution has finished.
        _generation: Bumped by every sign-in and sign-out.
        _pending_logins: Number of LoginFlow sign-ins in flight.
    """

    def __init__(
        self,
        gateway: BackendGateway,
        *,
        cache: ProfileCache | None = None,
        default_role: Role | str = Role.STUDENT,
        retries: int = 3,
        retry_delay: float = 0.5,
        safety_timeout: float = 6.0,
    ) -> None:
        """Initialize the session resolver.

        Args:
            gateway: Backend gateway providing auth and rows.
            cache: Profile cache; a new one is created when omitted.
            default_role: Role for profiles auto-created by this resolver.
            retries: Profile lookup rounds.
            retry_delay: Seconds between profile insert and re-read.
            safety_timeout: Seconds after which loading is forced off.
        """
        self._auth = gateway.auth
        self._cache = cache if cache is not None else ProfileCache()
        self._profiles = ProfileResolver(
            gateway.rows,
            self._cache,
            default_role=default_role,
            retries=retries,
            retry_delay=retry_delay,
        )
        self._safety_timeout = safety_timeout
        self._state = SessionState(loading=True)
        self._initialized = False
        self._closed = False
        self._generation = 0
        self._pending_logins = 0
        self._subscription: Subscription | None = None
        self._timeout_handle: asyncio.TimerHandle | None = None
        self._listeners: list[SessionListener] = []

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def cache(self) -> ProfileCache:
        return self._cache

    @property
    def profiles(self) -> ProfileResolver:
        return self._profiles

    @property
    def initialized(self) -> bool:
        """Whether the initial resolution has finished."""
        return self._initialized

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> SessionState:
        """Subscribe to auth events and run the initial resolution.

        Returns:
            The session state after the initial resolution.
        """
        loop = asyncio.get_running_loop()
        self._timeout_handle = loop.call_later(self._safety_timeout, self._on_safety_timeout)
        self._subscription = self._auth.on_auth_state_change(self.handle_auth_change)
        try:
            return await self.resolve_session()
        finally:
            self._initialized = True
            self._cancel_timeout()

    def close(self) -> None:
        """Stop listening and discard results that arrive afterwards."""
        self._closed = True
        self._cancel_timeout()
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._listeners.clear()

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener called with every new session state.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # =========================================================================
    # Resolution
    # =========================================================================

    async def resolve_session(self) -> SessionState:
        """Resolve the current identity and its profile.

        Never raises: a failed identity lookup yields an anonymous state and
        an unresolved profile is reported on ``state.error``.
        """
        generation = self._next_generation()
        try:
            identity = await self._auth.get_current_identity()
        except GatewayError as e:
            logger.warning("Current identity lookup failed: %s", str(e))
            identity = None

        if generation != self._generation:
            return self._state
        if identity is None:
            return self._set_state(SessionState(loading=False))
        return await self._resolve_for(identity, generation)

    async def fetch_profile(self, identity: Identity, retries: int | None = None) -> Profile:
        """Resolve a profile through this resolver's cache.

        Raises:
            ProfileUnresolvedError: If no profile could be read.
        """
        return await self._profiles.fetch_profile(identity, retries=retries)

    async def handle_auth_change(self, change: AuthChange) -> None:
        """React to a pushed auth-state event.

        - SIGNED_OUT: clear every cached profile, become anonymous.
        - Any other event before the initial resolution: ignored.
        - SIGNED_IN afterwards: drop that identity's cached profile, refetch.
          During a login only an existing profile is read.
        - TOKEN_REFRESHED / USER_UPDATED: reuse the cached profile only.
        """
        if self._closed:
            return

        if change.event is AuthEvent.SIGNED_OUT:
            self._clear_session()
            return

        if not self._initialized:
            logger.debug("Ignoring %s before initial resolution", change.event.value)
            return

        identity = change.identity
        if identity is None:
            self._clear_session()
            return

        if change.event is AuthEvent.SIGNED_IN:
            generation = self._next_generation()
            self._cache.invalidate(identity.id)
            if self._pending_logins:
                await self._read_existing(identity, generation)
            else:
                await self._resolve_for(identity, generation)
            return

        profile = self._cache.get(identity.id)
        self._set_state(
            SessionState(
                identity=identity,
                profile=profile,
                loading=False,
                error=self._state.error if profile is None else None,
            )
        )

    async def sign_out(self) -> None:
        """Sign out at the backend and forget every cached profile."""
        self._next_generation()
        try:
            await self._auth.sign_out()
        except GatewayError as e:
            logger.warning("Sign-out failed at backend: %s", str(e))
        self._clear_session()

    @contextmanager
    def login_in_progress(self) -> Iterator[None]:
        """Mark a LoginFlow sign-in as running.

        Inside the block SIGNED_IN never auto-creates a profile, so the
        login flow's default role applies to new profiles.
        """
        self._pending_logins += 1
        try:
            yield
        finally:
            self._pending_logins -= 1

    def complete_login(self, identity: Identity, profile: Profile) -> SessionState:
        """Adopt the identity and profile a successful login resolved."""
        self._next_generation()
        self._cache.put(profile)
        return self._set_state(SessionState(identity=identity, profile=profile, loading=False))

    def gate(self, allowed_roles: Iterable[Role | str]) -> Profile:
        """Check the resolved profile against an area's allowed roles.

        Raises:
            AccessDeniedError: If anonymous, unresolved or role not allowed.
        """
        return gate(self._state.profile, allowed_roles)

    # =========================================================================
    # Internals
    # =========================================================================

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _clear_session(self) -> None:
        self._next_generation()
        self._cache.invalidate()
        self._set_state(SessionState(loading=False))

    def _is_stale(self, generation: int, identity: Identity, profile: Profile | None) -> bool:
        if generation == self._generation:
            return False
        logger.debug("Discarding superseded profile lookup for %s", identity.id)
        # Undo the cache write made by the superseded lookup
        if profile is not None and self._cache.get(identity.id) is profile:
            self._cache.invalidate(identity.id)
        return True

    async def _resolve_for(self, identity: Identity, generation: int) -> SessionState:
        try:
            profile = await self._profiles.fetch_profile(identity)
        except ProfileUnresolvedError as e:
            if self._is_stale(generation, identity, None):
                return self._state
            return self._set_state(SessionState(identity=identity, loading=False, error=str(e)))
        if self._is_stale(generation, identity, profile):
            return self._state
        return self._set_state(SessionState(identity=identity, profile=profile, loading=False))

    async def _read_existing(self, identity: Identity, generation: int) -> SessionState:
        try:
            profile = await self._profiles.find_profile(identity)
        except GatewayError as e:
            logger.warning("Profile lookup during login failed: %s", str(e))
            return self._state
        if self._is_stale(generation, identity, profile):
            return self._state
        if profile is None:
            logger.debug("No profile yet for %s, left to the login flow", identity.id)
            return self._state
        return self._set_state(SessionState(identity=identity, profile=profile, loading=False))

    def _set_state(self, state: SessionState) -> SessionState:
        if self._closed:
            logger.debug("Session resolver closed, discarding state update")
            return state
        self._state = state
        if state.identity is not None:
            bind_context(identity_id=state.identity.id)
        else:
            clear_context()
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error("Session listener failed: %s", str(e), exc_info=True)
        return state

    def _on_safety_timeout(self) -> None:
        self._timeout_handle = None
        if self._closed or not self._state.loading:
            return
        logger.warning(
            "Session resolution did not finish within %.1fs, releasing loading state",
            self._safety_timeout,
        )
        self._set_state(self._state.model_copy(update={"loading": False}))

    def _cancel_timeout(self) -> None:
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None
