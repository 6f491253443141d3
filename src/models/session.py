# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Session models: identities, profiles and auth-state events."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator


class Role(str, Enum):
    """Profile roles known to the console."""

    ADMIN = "admin"
    INSTRUCTOR = "instructor"
    TUTOR = "tutor"
    STUDENT = "student"


class AuthEvent(str, Enum):
    """Auth-state events pushed by the backend."""

    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"


class Identity(BaseModel):
    """An authenticated backend user."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str


class Profile(BaseModel):
    """Application-level user record keyed by identity id.

    ``role`` is kept as a plain string so that rows carrying a role this
    console does not know about still load and are rejected by the gate
    instead of failing validation.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    email: str
    display_name: str | None = None
    role: str

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return str(value) if value is not None else value

    @field_validator("role", mode="before")
    @classmethod
    def _coerce_role(cls, value: Any) -> Any:
        return value.value if isinstance(value, Role) else value


class AuthChange(BaseModel):
    """A single auth-state change notification."""

    model_config = ConfigDict(frozen=True)

    event: AuthEvent
    identity: Identity | None = None


class SessionState(BaseModel):
    """Snapshot of the resolved session.

    Attributes:
        identity: Authenticated identity, None when anonymous.
        profile: Resolved profile, None when anonymous or unresolved.
        loading: True until the first resolution (or the safety timeout).
        error: User-facing message when the profile could not be resolved.
    """

    model_config = ConfigDict(frozen=True)

    identity: Identity | None = None
    profile: Profile | None = None
    loading: bool = True
    error: str | None = None

    @property
    def is_anonymous(self) -> bool:
        """Whether no identity is signed in."""
        return self.identity is None
