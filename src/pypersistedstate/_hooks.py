"""Adapter that gives every transform hook the same awaitable shape."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import Any

AsyncHook = Callable[[str], Awaitable[Any]]


async def _identity(value: str) -> str:
    return value


def as_async_hook(hook: Callable[[str], Any] | None) -> AsyncHook:
    """Wrap *hook* so that calling it always returns an awaitable.

    ``None`` becomes an identity passthrough.  Synchronous hooks run when
    the returned coroutine is awaited, so their exceptions surface at the
    same point as those of asynchronous hooks.
    """
    if hook is None:
        return _identity

    async def _call(value: str) -> Any:
        result = hook(value)
        if inspect.isawaitable(result):
            result = await result
        return result

    return _call
