from __future__ import annotations

import asyncio
from typing import Any

import pytest

from pypersistedstate.state.store import MutationHandler, Store, Subscription
from pypersistedstate.storage.memory import MemoryStorage


class SpyStore(Store):
    """Store that records replace_state/subscribe calls."""

    def __init__(self, state: dict[str, Any] | None = None) -> None:
        super().__init__(state)
        self.replaced: list[dict[str, Any]] = []
        self.subscribe_calls = 0

    def replace_state(self, state: dict[str, Any]) -> None:
        self.replaced.append(state)
        super().replace_state(state)

    def subscribe(self, handler: MutationHandler) -> Subscription:
        self.subscribe_calls += 1
        return super().subscribe(handler)

    @property
    def handlers(self) -> list[MutationHandler]:
        return list(self._subscribers)


class DelayedStorage:
    """Wrap a MemoryStorage so that every operation takes *delay* seconds."""

    def __init__(self, inner: MemoryStorage, delay: float = 0.01) -> None:
        self.inner = inner
        self.delay = delay

    async def get(self, key: str) -> str | None:
        await asyncio.sleep(self.delay)
        return await self.inner.get(key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.sleep(self.delay)
        await self.inner.set(key, value)

    async def remove(self, key: str) -> None:
        await asyncio.sleep(self.delay)
        await self.inner.remove(key)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def spy_store():
    return SpyStore


@pytest.fixture
def delayed_storage():
    return DelayedStorage
