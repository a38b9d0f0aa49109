"""Asyncio throttle gate with leading/trailing edge control."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Generic, TypeVar

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class Throttle(Generic[T]):
    """Invoke *func* at most once per *wait* seconds.

    The first call of a burst runs immediately when ``leading`` is set.
    Calls made while the window is open are coalesced; when ``trailing``
    is set the latest of them runs once the window closes, which opens a
    new window.  A non-positive *wait* disables throttling entirely.

    Calling the gate returns the result of the most recent invocation,
    which may belong to an earlier call when the current one was
    coalesced.  Timers are scheduled on the running event loop.
    """

    def __init__(
        self,
        func: Callable[..., T],
        wait: float,
        *,
        leading: bool = True,
        trailing: bool = True,
    ) -> None:
        self._func = func
        self._wait = wait
        self._leading = leading
        self._trailing = trailing
        self._timer: asyncio.TimerHandle | None = None
        self._pending: tuple[Any, ...] | None = None
        self._result: T | None = None

    @property
    def pending(self) -> bool:
        """Whether a coalesced call is waiting for the trailing edge."""
        return self._pending is not None

    def __call__(self, *args: Any) -> T | None:
        if self._wait <= 0:
            return self._invoke(args)

        if self._timer is None:
            self._open_window()
            if self._leading:
                return self._invoke(args)
        if self._trailing:
            self._pending = args
        return self._result

    def cancel(self) -> None:
        """Drop any pending trailing call and close the window."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._pending is not None:
            _logger.debug("Throttle cancelled with a pending call")
        self._pending = None

    def _open_window(self) -> None:
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._wait, self._close_window)

    def _close_window(self) -> None:
        self._timer = None
        args = self._pending
        self._pending = None
        if args is None:
            return
        self._open_window()
        self._invoke(args)

    def _invoke(self, args: tuple[Any, ...]) -> T:
        self._result = self._func(*args)
        return self._result
