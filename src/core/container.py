# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Service wiring for the admin console.

Builds the backend gateway selected by settings and the services that the
console views consume. The session resolver owns the profile cache; the
login flow shares it so that a fresh sign-in invalidates the same entries.

Example:
    >>> services = build_services(get_settings())
    >>> await start_services(services)
    >>> services.terms.selected_term_id
    >>> await close_services(services)
"""

from dataclasses import dataclass

from src.core.config.settings import Settings, get_settings
from src.domains.session import AreaGuard, LoginFlow, ProfileCache, SessionResolver
from src.domains.term import TermAdminService, TermContextService, TermScope
from src.infrastructure.gateway import BackendGateway, create_memory_backend
from src.models.session import Role
from src.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


@dataclass
class ConsoleServices:
    """Everything a console view needs.

    Attributes:
        gateway: Backend gateway (auth + rows).
        session: Session resolver for the signed-in identity.
        login: Password login flow.
        terms: Term context (loaded terms, active and selected term).
        term_admin: Term CRUD and activation.
        term_scope: Term-scoped reads for list views.
    """

    gateway: BackendGateway
    session: SessionResolver
    login: LoginFlow
    terms: TermContextService
    term_admin: TermAdminService
    term_scope: TermScope

    def guard(self, role: Role | str) -> AreaGuard:
        """Create a guard for the area owned by ``role``."""
        return AreaGuard(self.session, role)


def build_gateway(settings: Settings) -> BackendGateway:
    """Create the gateway adapter named by ``settings.backend``."""
    if settings.backend == "sql":
        # Imported here so the memory backend runs without a DB driver
        from src.infrastructure.gateway.sql import create_sql_backend

        logger.info("Using SQL backend", host=settings.database.host, port=settings.database.port)
        return create_sql_backend(settings.database)

    logger.info("Using in-memory backend")
    return create_memory_backend()


def build_services(
    settings: Settings | None = None,
    gateway: BackendGateway | None = None,
) -> ConsoleServices:
    """Wire the console services.

    Args:
        settings: Application settings; defaults to get_settings().
        gateway: Pre-built gateway; built from settings when omitted.

    Returns:
        Unstarted services; call start_services() next.
    """
    settings = settings or get_settings()
    gateway = gateway or build_gateway(settings)
    session_settings = settings.session

    cache = ProfileCache()
    session = SessionResolver(
        gateway,
        cache=cache,
        default_role=session_settings.resolver_default_role,
        retries=session_settings.profile_retries,
        retry_delay=session_settings.retry_delay,
        safety_timeout=session_settings.safety_timeout,
    )
    login = LoginFlow(
        gateway,
        cache=cache,
        session=session,
        default_role=session_settings.login_default_role,
        allowed_roles=session_settings.console_roles,
        retries=session_settings.profile_retries,
        retry_delay=session_settings.retry_delay,
    )
    terms = TermContextService(gateway.rows)

    return ConsoleServices(
        gateway=gateway,
        session=session,
        login=login,
        terms=terms,
        term_admin=TermAdminService(gateway.rows, context=terms),
        term_scope=TermScope(terms, gateway.rows),
    )


def bootstrap(settings: Settings | None = None) -> ConsoleServices:
    """Configure logging and wire the services in one step."""
    settings = settings or get_settings()
    setup_logging(settings)
    services = build_services(settings)
    logger.info("Console services wired", backend=settings.backend, environment=settings.environment)
    return services


async def start_services(services: ConsoleServices) -> None:
    """Resolve the session, then load terms."""
    await services.session.start()
    await services.terms.load_terms()


async def close_services(services: ConsoleServices) -> None:
    """Dispose the services and release the gateway."""
    services.session.close()
    services.terms.close()
    await services.gateway.close()
