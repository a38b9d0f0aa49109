"""Dotted-path helpers: state reduction and mutation filtering."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

#: Separator used by mutation type identifiers (``"cart/items/add"``).
NAMESPACE_SEPARATOR = "/"

_MISSING = object()


def get_path(state: Any, path: str) -> Any:
    """Read the value at a dotted *path*, or ``None`` when it does not exist."""
    node = state
    for segment in path.split("."):
        if not isinstance(node, Mapping):
            return None
        node = node.get(segment, _MISSING)
        if node is _MISSING:
            return None
    return node


def set_path(target: dict[str, Any], path: str, value: Any) -> dict[str, Any]:
    """Write *value* into *target* at a dotted *path*, creating dicts on the way.

    ``None`` values still create the intermediate dicts but leave the
    leaf unset, so the serialized snapshot never carries a ``null`` for a
    reduced path.
    """
    *parents, leaf = path.split(".")
    node = target
    for segment in parents:
        child = node.get(segment)
        if not isinstance(child, dict):
            child = {}
            node[segment] = child
        node = child
    if value is not None:
        node[leaf] = value
    return target


def reduce_state(state: Mapping[str, Any], paths: Sequence[str]) -> Mapping[str, Any]:
    """Select the sub-trees addressed by *paths* out of *state*.

    With no paths the state itself is returned (full persistence).
    """
    if not paths:
        return state
    reduced: dict[str, Any] = {}
    for path in paths:
        set_path(reduced, path, get_path(state, path))
    return reduced


def to_namespace(path: str) -> str:
    """Convert a dotted state path into its mutation-namespace form."""
    return NAMESPACE_SEPARATOR.join(path.split("."))


class MutationFilter:
    """Decide whether a mutation type touches any of the persisted paths."""

    def __init__(self, paths: Iterable[str]) -> None:
        self._prefixes: tuple[str, ...] = tuple(to_namespace(path) for path in paths)

    @property
    def prefixes(self) -> tuple[str, ...]:
        return self._prefixes

    def accepts(self, mutation_type: str) -> bool:
        if not self._prefixes:
            return True
        return mutation_type.startswith(self._prefixes)
