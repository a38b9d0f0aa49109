"""Storage backend contract and capability probe."""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

_logger = logging.getLogger(__name__)

#: Key written and removed again by :func:`can_write_storage`.
PROBE_KEY = "__pypersistedstate_probe__"

_REQUIRED_METHODS: tuple[str, ...] = ("get", "set", "remove")


@runtime_checkable
class Storage(Protocol):
    """Structural async key-value interface used by the persistence engine.

    Values are opaque strings.  ``get`` returns ``None`` for a missing key
    and ``remove`` of a missing key is not an error.
    """

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...


def has_storage_methods(storage: Any) -> bool:
    """Return True if *storage* exposes callable ``get``/``set``/``remove``."""
    return all(callable(getattr(storage, name, None)) for name in _REQUIRED_METHODS)


async def can_write_storage(storage: Any) -> bool:
    """Probe whether *storage* can be written, read back and cleaned up.

    Any exception raised by the backend during the probe means "no"; it
    is logged at DEBUG and not propagated.
    """
    if storage is None or not has_storage_methods(storage):
        _logger.debug("Storage %r lacks get/set/remove", type(storage).__name__)
        return False

    try:
        await storage.set(PROBE_KEY, PROBE_KEY)
        readable = await storage.get(PROBE_KEY) == PROBE_KEY
        await storage.remove(PROBE_KEY)
    except Exception:
        _logger.debug("Storage write probe failed for %r", type(storage).__name__, exc_info=True)
        return False

    if not readable:
        _logger.debug("Storage %r did not return the probe value", type(storage).__name__)
    return readable
