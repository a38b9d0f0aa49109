"""Persistence configuration for pypersistedstate."""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

from pypersistedstate.exceptions import PersistConfigError

if TYPE_CHECKING:
    from pypersistedstate.storage.base import Storage

#: Storage key used when none is configured.
DEFAULT_KEY = "pypersistedstate"

Hook = Callable[[str], Any]
"""Transform applied to the raw payload; returns a string or an awaitable of one."""


def _default_storage() -> Storage:
    # Imported lazily: the storage package depends on this module.
    from pypersistedstate.storage.memory import MemoryStorage

    return MemoryStorage()


@dataclasses.dataclass(frozen=True)
class ThrottleOptions:
    """Edge behaviour of the write throttle.

    Parameters
    ----------
    leading : bool
        Persist the first mutation of a burst immediately.
    trailing : bool
        Persist the latest mutation of a burst once the window closes.
    """

    leading: bool = True
    trailing: bool = True


@dataclasses.dataclass(frozen=True)
class PersistConfig:
    """Options for a :class:`~pypersistedstate.PersistedState` engine.

    Parameters
    ----------
    storage : Storage
        Async key-value backend. Defaults to a private in-memory store.
    key : str
        Storage key the snapshot lives under.
    paths : tuple of str
        Dotted addresses of the sub-trees to persist, in order.  Empty
        persists the whole state.
    throttle_time : float
        Throttle window in seconds.  ``0`` persists every mutation.
    throttle : ThrottleOptions
        Leading/trailing edge behaviour of the throttle window.
    after_load : callable or None
        Transform applied to the raw stored value before JSON decoding.
        May be synchronous or return an awaitable.
    before_save : callable or None
        Transform applied to the JSON payload before it is stored.
        May be synchronous or return an awaitable.
    initial_set : bool
        Write the (reduced) state back once right after rehydration,
        before any mutation is observed.
    """

    storage: Storage = dataclasses.field(default_factory=_default_storage)
    key: str = DEFAULT_KEY
    paths: tuple[str, ...] = ()
    throttle_time: float = 0.0
    throttle: ThrottleOptions = dataclasses.field(default_factory=ThrottleOptions)
    after_load: Hook | None = None
    before_save: Hook | None = None
    initial_set: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.key, str) or not self.key:
            raise PersistConfigError("key must be a non-empty string")
        if self.throttle_time < 0:
            raise PersistConfigError(f"throttle_time must be >= 0, got {self.throttle_time!r}")
        if not (self.throttle.leading or self.throttle.trailing):
            raise PersistConfigError("throttle needs at least one of leading/trailing enabled")

        paths = _normalize_paths(self.paths)
        # Frozen dataclass: lists given by callers are stored as tuples.
        object.__setattr__(self, "paths", paths)

    @classmethod
    def from_options(cls, **options: Any) -> PersistConfig:
        """Build a configuration from keyword options, ignoring ``None`` values.

        ``None`` means "use the default", which lets callers forward
        optional arguments without branching.
        """
        return cls(**{name: value for name, value in options.items() if value is not None})


def _normalize_paths(paths: Iterable[str] | str) -> tuple[str, ...]:
    if isinstance(paths, str):
        raise PersistConfigError("paths must be a sequence of strings, not a single string")
    normalized: list[str] = []
    for path in paths:
        if not isinstance(path, str) or not path.strip(".").strip():
            raise PersistConfigError(f"invalid path {path!r}")
        normalized.append(path)
    return tuple(normalized)
