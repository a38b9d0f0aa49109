"""Versioned write pipeline.

Every write attempt mints a :class:`SaveToken`.  The attempt commits to
storage only if, once its ``before_save`` transform has resolved, its
token is still the newest one minted by the same pipeline and the
pipeline has not been disabled.  Slow transforms that finish out of order
therefore can never overwrite a snapshot taken after them.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pypersistedstate._hooks import AsyncHook
from pypersistedstate._redact import redact_for_log
from pypersistedstate.exceptions import PersistEncodeError
from pypersistedstate.storage.base import Storage

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SaveToken:
    """Identity of one write attempt within a pipeline."""

    version: int


class WritePipeline:
    """Serialize, transform and store snapshots under one key, newest wins."""

    def __init__(self, storage: Storage, key: str, before_save: AsyncHook) -> None:
        self._storage = storage
        self._key = key
        self._before_save = before_save
        self._version = 0
        self._disabled = False

    @property
    def disabled(self) -> bool:
        return self._disabled

    @property
    def current(self) -> SaveToken | None:
        """The token of the most recent write attempt, if any."""
        return SaveToken(self._version) if self._version else None

    def disable(self) -> None:
        """Turn every in-flight and future commit into a no-op."""
        self._disabled = True

    def is_current(self, token: SaveToken) -> bool:
        return not self._disabled and token.version == self._version

    def mint(self) -> SaveToken:
        self._version += 1
        return SaveToken(self._version)

    def write(self, snapshot: Mapping[str, Any], *, log_failures: bool = True) -> asyncio.Future[bool]:
        """Start a write of *snapshot* and return a future for its outcome.

        The snapshot is serialized immediately, so later in-place changes
        to the state do not leak into this write.  The future resolves to
        ``True`` when the value was stored, ``False`` when the attempt was
        superseded or the pipeline was disabled, and raises
        :class:`PersistEncodeError` when encoding failed.

        With *log_failures* (the default) a failure is also logged at
        WARNING, for callers that never await the future.  Pass ``False``
        when the caller awaits it and handles the error itself.
        """
        token = self.mint()
        try:
            payload = json.dumps(snapshot, separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            future: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
            future.set_exception(PersistEncodeError(f"State for key {self._key!r} is not JSON serializable: {exc}"))
            if log_failures:
                future.add_done_callback(self._log_failure)
            return future

        if _logger.isEnabledFor(logging.DEBUG):
            _logger.debug(
                "Write %d started key=%s snapshot=%s",
                token.version,
                self._key,
                redact_for_log(snapshot),
            )
        task = asyncio.ensure_future(self._commit(token, payload))
        if log_failures:
            task.add_done_callback(self._log_failure)
        return task

    async def _commit(self, token: SaveToken, payload: str) -> bool:
        try:
            raw = await self._before_save(payload)
        except Exception as exc:
            raise PersistEncodeError(f"before_save failed for key {self._key!r}: {exc}") from exc

        if not self.is_current(token):
            _logger.debug(
                "Write %d discarded key=%s (current=%d disabled=%s)",
                token.version,
                self._key,
                self._version,
                self._disabled,
            )
            return False

        await self._storage.set(self._key, raw)
        _logger.debug("Write %d committed key=%s", token.version, self._key)
        return True

    def _log_failure(self, future: asyncio.Future[bool]) -> None:
        # Marks the exception as retrieved; callers awaiting the future still see it.
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            _logger.warning("Persisting key %s failed: %s", self._key, exc, exc_info=exc)
