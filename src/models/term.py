# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Term models.

A term is a school period (semester, session) that scopes which courses
and enrollments the console shows. Rows come straight from the ``terms``
table, so the model accepts the column names as-is.
"""

from datetime import date
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


# Blank form inputs mean "no date"
OptionalDate = Annotated[date | None, BeforeValidator(_blank_to_none)]


class Term(BaseModel):
    """A term row.

    Attributes:
        id: Term identifier.
        name: Display name, e.g. "2025 Term 1".
        slug: URL-safe identifier, e.g. "2025-term1".
        start_date: First day of the term.
        end_date: Last day of the term.
        enrollment_start: Optional first day enrollments are accepted.
        enrollment_end: Optional last day enrollments are accepted.
        display_order: Sort key; higher values are newer terms.
        is_active: Whether this is the globally live term.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    name: str
    slug: str
    start_date: date
    end_date: date
    enrollment_start: date | None = None
    enrollment_end: date | None = None
    display_order: int = 0
    is_active: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        # UUID primary keys come back as uuid.UUID from some drivers
        return str(value) if value is not None else value


class TermCreateRequest(BaseModel):
    """Admin form payload for a new term.

    New terms are always created inactive; activation is a separate step.
    """

    name: str = Field(min_length=1)
    slug: str = Field(min_length=1)
    start_date: date
    end_date: date
    enrollment_start: OptionalDate = None
    enrollment_end: OptionalDate = None
    display_order: int | None = None

    @model_validator(mode="after")
    def _check_dates(self) -> "TermCreateRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self

    def to_row(self) -> dict[str, Any]:
        """Return the column values to insert."""
        return self.model_dump(exclude={"display_order"})


class TermUpdateRequest(BaseModel):
    """Admin form payload for editing a term. Only set fields are written."""

    name: str | None = Field(default=None, min_length=1)
    slug: str | None = Field(default=None, min_length=1)
    start_date: date | None = None
    end_date: date | None = None
    enrollment_start: OptionalDate = None
    enrollment_end: OptionalDate = None
    display_order: int | None = None

    def to_values(self) -> dict[str, Any]:
        """Return the column values to update."""
        return self.model_dump(exclude_unset=True)
