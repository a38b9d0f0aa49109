"""Ready-made ``before_save`` / ``after_load`` transforms.

Hooks receive and return the raw string that goes into storage.  They
can be plain functions or coroutine functions; :func:`chain` composes
either kind.
"""

from __future__ import annotations

import base64
import binascii
import zlib
from collections.abc import Callable
from typing import Any

from pypersistedstate._hooks import as_async_hook


def compress(value: str) -> str:
    """zlib-compress a JSON payload and return it as base64 text."""
    return base64.b64encode(zlib.compress(value.encode("utf-8"))).decode("ascii")


def decompress(value: str) -> str:
    """Inverse of :func:`compress`."""
    try:
        return zlib.decompress(base64.b64decode(value, validate=True)).decode("utf-8")
    except (binascii.Error, zlib.error) as exc:
        raise ValueError(f"value is not a compressed snapshot: {exc}") from exc


def chain(*hooks: Callable[[str], Any]) -> Callable[[str], Any]:
    """Compose hooks left to right into one asynchronous hook.

    ``chain(a, b)(value)`` awaits ``b(a(value))`` whether *a* and *b* are
    synchronous or asynchronous.
    """
    steps = [as_async_hook(hook) for hook in hooks]

    async def _chained(value: str) -> Any:
        for step in steps:
            value = await step(value)
        return value

    return _chained
