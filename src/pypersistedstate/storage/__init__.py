"""Storage backends.

The engine only relies on the :class:`Storage` protocol; the concrete
backends here cover in-process, HTTP and MQTT persistence.  The HTTP and
MQTT backends are imported from their own modules
(``pypersistedstate.storage.http`` and ``pypersistedstate.storage.mqtt``).
"""

from pypersistedstate.storage.base import Storage, can_write_storage, has_storage_methods
from pypersistedstate.storage.memory import MemoryStorage

__all__ = [
    "MemoryStorage",
    "Storage",
    "can_write_storage",
    "has_storage_methods",
]
