"""Helpers for safe debug logging of state snapshots.

Application state routinely holds credentials and can be large or even
self-referential.  :func:`redact_for_log` renders a bounded, masked copy
that is safe to pass to ``_logger.debug``.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_SENSITIVE_KEY_FRAGMENTS: tuple[str, ...] = (
    "password",
    "passwd",
    "secret",
    "token",
    "apikey",
    "api_key",
    "authorization",
    "cookie",
    "credential",
)


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(fragment in lowered for fragment in _SENSITIVE_KEY_FRAGMENTS)


def redact_for_log(
    value: Any,
    *,
    max_string: int = 256,
    max_items: int = 50,
    max_depth: int = 12,
) -> Any:
    """Return a log-safe rendering of *value*.

    Secret-looking keys are masked, long strings truncated, sequences and
    mappings capped at *max_items* entries, and reference cycles rendered
    as ``"<cycle>"`` instead of being followed.
    """
    return _render(value, max_string, max_items, max_depth, 0, set())


def _render(
    value: Any,
    max_string: int,
    max_items: int,
    max_depth: int,
    depth: int,
    active: set[int],
) -> Any:
    if value is None or isinstance(value, (bool, int, float)):
        return value

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated {len(value) - max_string} chars>"
        return value

    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"

    if depth >= max_depth:
        return "<max-depth>"

    is_mapping = isinstance(value, Mapping)
    if not is_mapping and not isinstance(value, Sequence):
        return repr(value)

    marker = id(value)
    if marker in active:
        return "<cycle>"
    active.add(marker)
    try:
        if is_mapping:
            rendered: dict[str, Any] = {}
            for index, (k, v) in enumerate(value.items()):
                if index >= max_items:
                    rendered["…"] = f"<{len(value) - max_items} more>"
                    break
                key = str(k)
                if _is_sensitive(key):
                    rendered[key] = "<redacted>"
                else:
                    rendered[key] = _render(v, max_string, max_items, max_depth, depth + 1, active)
            return rendered

        items = [_render(v, max_string, max_items, max_depth, depth + 1, active) for v in value[:max_items]]
        if len(value) > max_items:
            items.append(f"<{len(value) - max_items} more>")
        return items
    finally:
        active.discard(marker)
