# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Auth-state listener fan-out shared by the auth adapters."""

import logging

from src.infrastructure.gateway.ports import AuthChangeHandler
from src.models.session import AuthChange

logger = logging.getLogger(__name__)


class _ListenerSubscription:
    def __init__(self, registry: "AuthListenerRegistry", handler: AuthChangeHandler) -> None:
        self._registry = registry
        self._handler = handler

    def unsubscribe(self) -> None:
        self._registry.remove(self._handler)


class AuthListenerRegistry:
    """Keeps auth-state handlers and publishes changes to them in order.

    Handlers run one after another on the caller's event loop. An error in
    one handler is logged and does not stop the others.
    """

    def __init__(self) -> None:
        self._handlers: list[AuthChangeHandler] = []

    def __len__(self) -> int:
        return len(self._handlers)

    def add(self, handler: AuthChangeHandler) -> _ListenerSubscription:
        self._handlers.append(handler)
        logger.debug("Auth listener registered (%d total)", len(self._handlers))
        return _ListenerSubscription(self, handler)

    def remove(self, handler: AuthChangeHandler) -> bool:
        try:
            self._handlers.remove(handler)
        except ValueError:
            return False
        return True

    async def publish(self, change: AuthChange) -> None:
        for handler in list(self._handlers):
            try:
                await handler(change)
            except Exception as e:
                logger.error(
                    "Auth listener failed for %s: %s",
                    change.event.value,
                    str(e),
                    exc_info=True,
                )
