"""Shared pydantic base for gateway domain models."""

from __future__ import annotations

from typing import TypeVar

from pydantic import BaseModel, ConfigDict

S = TypeVar("S", bound="BaseSchema")


class BaseSchema(BaseModel):
    """
    Base model for all gateway domain schemas.

    - ``populate_by_name=True``: wire aliases (``requestId``) and field names are both accepted.
    - ``extra="forbid"``: unknown fields are rejected.
    - ``validate_assignment=True``: owners mutate jobs and subscriptions in place;
      assignments are validated like construction.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="forbid",
        validate_assignment=True,
    )

    def snapshot(self: S) -> S:
        """Deep copy handed out by owning managers; callers may mutate it freely."""
        return self.model_copy(deep=True)
