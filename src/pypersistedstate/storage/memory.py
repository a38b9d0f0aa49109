"""In-process storage backed by a mutable mapping."""

from __future__ import annotations

from collections.abc import MutableMapping


class MemoryStorage:
    """Async :class:`~pypersistedstate.storage.base.Storage` over a mapping.

    Any ``MutableMapping[str, str]`` works (a plain ``dict``, a ``shelve``
    shelf, ...).  Access is synchronous under the hood; the async surface
    only exists to satisfy the storage protocol.
    """

    def __init__(self, data: MutableMapping[str, str] | None = None) -> None:
        self._data: MutableMapping[str, str] = {} if data is None else data

    @property
    def data(self) -> MutableMapping[str, str]:
        """The underlying mapping."""
        return self._data

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def __repr__(self) -> str:
        return f"MemoryStorage(keys={sorted(self._data)!r})"
