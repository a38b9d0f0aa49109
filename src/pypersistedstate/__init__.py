"""pypersistedstate - Keep application state in sync with async key-value storage."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pypersistedstate")
except PackageNotFoundError:
    __version__ = "0+local"
from pypersistedstate.config import DEFAULT_KEY, PersistConfig, ThrottleOptions
from pypersistedstate.exceptions import (
    PersistConfigError,
    PersistDecodeError,
    PersistEncodeError,
    PersistError,
    PersistStorageError,
)
from pypersistedstate.persisted_state import PersistedState, SyncSession
from pypersistedstate.state.events import Mutation
from pypersistedstate.state.store import StateContainer, Store, Subscription
from pypersistedstate.storage import MemoryStorage, Storage, can_write_storage

__all__ = [
    "__version__",
    "DEFAULT_KEY",
    "MemoryStorage",
    "Mutation",
    "PersistConfig",
    "PersistConfigError",
    "PersistDecodeError",
    "PersistEncodeError",
    "PersistError",
    "PersistStorageError",
    "PersistedState",
    "StateContainer",
    "Storage",
    "Store",
    "Subscription",
    "SyncSession",
    "ThrottleOptions",
    "can_write_storage",
]
