"""Merge a rehydrated snapshot into live state."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


def merge_snapshot(state: Mapping[str, Any], snapshot: Mapping[str, Any]) -> dict[str, Any]:
    """Return a new top-level state with *snapshot* merged over *state*.

    Merge rules:
    - a key only in *state* keeps the very same value object;
    - mappings on both sides are merged recursively into a new dict;
    - anything else from *snapshot* (lists included) replaces the current
      value wholesale, lists are never merged by index.

    Nothing in *state* is copied or traversed beyond the keys *snapshot*
    addresses, so self-referential values in untouched branches survive.
    """
    merged: dict[str, Any] = dict(state)
    for key, value in snapshot.items():
        existing = merged.get(key)
        if isinstance(value, Mapping) and isinstance(existing, Mapping):
            merged[key] = merge_snapshot(existing, value)
        else:
            merged[key] = value
    return merged
