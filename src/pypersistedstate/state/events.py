"""Mutation descriptors emitted by state containers."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Mutation(BaseModel):
    """A single state mutation, as seen by subscribers.

    ``type`` is a ``/``-separated namespace (``"cart/items/add"``); the
    persistence filter matches it against the configured paths.
    """

    model_config = ConfigDict(frozen=True)

    type: str = Field(..., description="Namespaced mutation identifier")
    payload: Any = Field(default=None, description="Argument the mutation was committed with")
