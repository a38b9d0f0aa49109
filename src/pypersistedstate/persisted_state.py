"""Persistence engine: rehydrate a state container and keep storage in sync."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any

from pypersistedstate._hooks import AsyncHook, as_async_hook
from pypersistedstate._merge import merge_snapshot
from pypersistedstate._paths import MutationFilter, reduce_state
from pypersistedstate._pipeline import WritePipeline
from pypersistedstate._redact import redact_for_log
from pypersistedstate._throttle import Throttle
from pypersistedstate.config import PersistConfig
from pypersistedstate.exceptions import PersistDecodeError, PersistStorageError
from pypersistedstate.state.events import Mutation
from pypersistedstate.state.store import StateContainer, SubscriptionHandle
from pypersistedstate.storage.base import can_write_storage

_logger = logging.getLogger(__name__)

# Raw values that mean "nothing was persisted".
_EMPTY_RAW_VALUES: frozenset[str] = frozenset({"undefined"})


class SyncSession:
    """Live synchronization between one container and storage.

    Returned by :meth:`PersistedState.activate`.  Awaiting
    :meth:`teardown` (or the session itself, ``await session()``) stops
    all writes, releases the subscription and removes the persisted key.
    """

    def __init__(
        self,
        config: PersistConfig,
        pipeline: WritePipeline,
        gate: Throttle[asyncio.Future[bool]],
        subscription: SubscriptionHandle,
    ) -> None:
        self._config = config
        self._pipeline = pipeline
        self._gate = gate
        self._subscription = subscription
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    @property
    def pipeline(self) -> WritePipeline:
        return self._pipeline

    async def teardown(self) -> None:
        """Disable writes, unsubscribe and remove the persisted snapshot.

        Resolves once the storage removal has completed.  Calling it again
        is a no-op.
        """
        if not self._active:
            _logger.debug("Teardown for key=%s already done", self._config.key)
            return
        self._active = False

        self._pipeline.disable()
        self._gate.cancel()
        self._subscription.unsubscribe()
        _logger.debug("Sync stopped for key=%s; removing snapshot", self._config.key)
        await self._config.storage.remove(self._config.key)

    async def __call__(self) -> None:
        await self.teardown()


class PersistedState:
    """Persist a state container's state to a key-value storage.

    Usage::

        persisted = PersistedState(storage=MemoryStorage(), paths=["cart"])
        session = await persisted.activate(store)
        ...
        await session.teardown()

    Instances are reusable: each :meth:`activate` call builds its own
    write pipeline, throttle gate and subscription.
    """

    def __init__(self, config: PersistConfig | None = None, **options: Any) -> None:
        if config is None:
            config = PersistConfig.from_options(**options)
        elif options:
            config = PersistConfig.from_options(**{**_config_fields(config), **options})
        self._config = config
        self._filter = MutationFilter(config.paths)
        self._after_load: AsyncHook = as_async_hook(config.after_load)
        self._before_save: AsyncHook = as_async_hook(config.before_save)

    @property
    def config(self) -> PersistConfig:
        return self._config

    async def __call__(self, container: StateContainer) -> SyncSession:
        return await self.activate(container)

    # ------------------------------------------------------------------
    # Activation
    # ------------------------------------------------------------------

    async def activate(self, container: StateContainer) -> SyncSession:
        """Rehydrate *container* from storage and start persisting its mutations.

        Steps run strictly in order and any failure aborts the rest, so a
        failed activation never leaves a subscription behind:

        1. check that the storage can be written
        2. load, decode and merge the stored snapshot
        3. optionally write the current state back (``initial_set``)
        4. subscribe to mutations through the throttle gate
        """
        config = self._config
        storage = config.storage

        if not await can_write_storage(storage):
            raise PersistStorageError("Invalid storage instance given", key=config.key)

        snapshot = await self.load()
        if snapshot is not None:
            container.replace_state(merge_snapshot(container.state, snapshot))
            _logger.debug("Rehydrated key=%s", config.key)

        pipeline = WritePipeline(storage, config.key, self._before_save)

        if config.initial_set:
            await pipeline.write(reduce_state(container.state, config.paths), log_failures=False)

        def persist(state: dict[str, Any]) -> asyncio.Future[bool]:
            return pipeline.write(reduce_state(state, config.paths))

        gate: Throttle[asyncio.Future[bool]] = Throttle(
            persist,
            config.throttle_time,
            leading=config.throttle.leading,
            trailing=config.throttle.trailing,
        )

        def on_mutation(mutation: Mutation, state: dict[str, Any]) -> asyncio.Future[bool] | None:
            # Only eligible mutations may reach the gate.
            if not self._filter.accepts(mutation.type):
                _logger.debug("Mutation %s outside persisted paths; skipped", mutation.type)
                return None
            return gate(state)

        subscription = container.subscribe(on_mutation)
        _logger.debug(
            "Sync started key=%s paths=%s throttle=%ss",
            config.key,
            list(config.paths),
            config.throttle_time,
        )
        return SyncSession(config, pipeline, gate, subscription)

    async def load(self) -> dict[str, Any] | None:
        """Read and decode the stored snapshot.

        Returns ``None`` when nothing usable is stored.  Raises
        :class:`PersistDecodeError` when the ``after_load`` hook fails or
        its result is not valid JSON.
        """
        key = self._config.key
        raw = await self._config.storage.get(key)
        if raw is None or raw in _EMPTY_RAW_VALUES:
            _logger.debug("No snapshot stored under key=%s", key)
            return None

        try:
            text = await self._after_load(raw)
        except Exception as exc:
            raise PersistDecodeError(f"after_load failed for key {key!r}: {exc}") from exc

        try:
            decoded = json.loads(text)
        except (TypeError, ValueError) as exc:
            raise PersistDecodeError(f"Snapshot under key {key!r} is not valid JSON") from exc

        if not isinstance(decoded, Mapping):
            _logger.debug("Snapshot under key=%s is %s, not an object; ignored", key, type(decoded).__name__)
            return None

        if _logger.isEnabledFor(logging.DEBUG):
            _logger.debug("Loaded snapshot key=%s value=%s", key, redact_for_log(decoded))
        return dict(decoded)


def _config_fields(config: PersistConfig) -> dict[str, Any]:
    # Shallow on purpose: the storage object must be shared, not copied.
    return {name: getattr(config, name) for name in PersistConfig.__dataclass_fields__}
