from __future__ import annotations

import asyncio
import json
import logging

import pytest

from pypersistedstate import (
    DEFAULT_KEY,
    MemoryStorage,
    Mutation,
    PersistConfig,
    PersistDecodeError,
    PersistEncodeError,
    PersistedState,
    PersistStorageError,
    Store,
    ThrottleOptions,
)


def _dump(value: object) -> str:
    return json.dumps(value, separators=(",", ":"))


def test_can_be_created_with_default_options() -> None:
    persisted = PersistedState()

    assert persisted.config.key == DEFAULT_KEY
    assert isinstance(persisted.config.storage, MemoryStorage)
    assert persisted.config.paths == ()


def test_keyword_options_override_a_given_config(storage: MemoryStorage) -> None:
    base = PersistConfig(storage=storage, key="base", paths=["a"])

    persisted = PersistedState(base, key="custom")

    assert persisted.config.key == "custom"
    assert persisted.config.paths == ("a",)
    assert persisted.config.storage is storage


@pytest.mark.asyncio
async def test_cannot_be_activated_with_invalid_storage(spy_store) -> None:
    store = spy_store({"original": "state"})

    with pytest.raises(PersistStorageError, match="Invalid storage instance given"):
        await PersistedState(storage=object()).activate(store)

    assert store.replaced == []
    assert store.subscribe_calls == 0


@pytest.mark.asyncio
async def test_cannot_be_activated_when_storage_rejects_writes(spy_store) -> None:
    class ReadOnlyStorage(MemoryStorage):
        async def set(self, key: str, value: str) -> None:
            raise PermissionError("read-only")

    store = spy_store({"original": "state"})

    with pytest.raises(PersistStorageError):
        await PersistedState(storage=ReadOnlyStorage()).activate(store)

    assert store.replaced == []
    assert store.subscribe_calls == 0


@pytest.mark.asyncio
async def test_works_with_async_storages(spy_store, delayed_storage) -> None:
    inner = MemoryStorage({DEFAULT_KEY: _dump({"persisted": "json"})})
    store = spy_store({"original": "state"})

    session = await PersistedState(storage=delayed_storage(inner)).activate(store)

    assert store.replaced == [{"original": "state", "persisted": "json"}]
    assert store.subscribe_calls == 1

    await session.teardown()
    assert DEFAULT_KEY not in inner.data


@pytest.mark.asyncio
async def test_replaces_state_and_subscribes_when_initializing(spy_store, storage) -> None:
    storage.data[DEFAULT_KEY] = _dump({"persisted": "json"})
    store = spy_store({"original": "state"})

    await PersistedState(storage=storage).activate(store)

    assert store.replaced == [{"original": "state", "persisted": "json"}]
    assert store.state == {"original": "state", "persisted": "json"}
    assert store.subscribe_calls == 1


@pytest.mark.asyncio
async def test_does_not_replace_state_when_receiving_invalid_json(spy_store, storage) -> None:
    storage.data[DEFAULT_KEY] = "<invalid JSON>"
    store = spy_store({"nested": {"original": "state"}})

    with pytest.raises(PersistDecodeError):
        await PersistedState(storage=storage).activate(store)

    assert store.replaced == []
    assert store.subscribe_calls == 0


@pytest.mark.parametrize("raw", ["null", "undefined", "[1, 2]", '"text"'])
@pytest.mark.asyncio
async def test_non_object_snapshot_skips_replacement_but_still_subscribes(spy_store, storage, raw: str) -> None:
    storage.data[DEFAULT_KEY] = raw
    store = spy_store({"nested": {"original": "state"}})

    await PersistedState(storage=storage).activate(store)

    assert store.replaced == []
    assert store.subscribe_calls == 1


@pytest.mark.asyncio
async def test_missing_snapshot_skips_replacement(spy_store, storage) -> None:
    store = spy_store({"original": "state"})

    await PersistedState(storage=storage).activate(store)

    assert store.replaced == []
    assert store.subscribe_calls == 1


@pytest.mark.asyncio
async def test_persists_state_under_a_custom_storage_key(spy_store, storage) -> None:
    store = spy_store({})

    await PersistedState(storage=storage, key="custom").activate(store)
    await store.handlers[0](Mutation(type="mutation"), {"changed": "state"})

    assert storage.data["custom"] == _dump({"changed": "state"})
    assert DEFAULT_KEY not in storage.data


@pytest.mark.asyncio
async def test_teardown_unsubscribes_and_removes_snapshot(spy_store, storage) -> None:
    store = spy_store({"original": "state"})
    session = await PersistedState(storage=storage).activate(store)

    await store.handlers[0](Mutation(type="mutation"), {"original": "newState"})
    assert storage.data[DEFAULT_KEY] == _dump({"original": "newState"})

    await session()

    assert store.handlers == []
    assert DEFAULT_KEY not in storage.data
    assert not session.active
    assert session.pipeline.disabled

    # A second teardown is a no-op.
    storage.data[DEFAULT_KEY] = "kept"
    await session.teardown()
    assert storage.data[DEFAULT_KEY] == "kept"


@pytest.mark.asyncio
async def test_teardown_resolves_after_removal_completes(spy_store, delayed_storage) -> None:
    inner = MemoryStorage()
    store = spy_store({})
    session = await PersistedState(storage=delayed_storage(inner, delay=0.02)).activate(store)

    await store.handlers[0](Mutation(type="mutation"), {"a": 1})
    assert DEFAULT_KEY in inner.data

    await session.teardown()
    assert DEFAULT_KEY not in inner.data


@pytest.mark.asyncio
async def test_persists_full_state(spy_store, storage) -> None:
    store = spy_store({})

    await PersistedState(storage=storage).activate(store)
    await store.handlers[0](Mutation(type="mutation"), {"changed": "state"})

    assert storage.data[DEFAULT_KEY] == _dump({"changed": "state"})


@pytest.mark.asyncio
async def test_persists_partial_state(spy_store, storage) -> None:
    store = spy_store({})

    await PersistedState(storage=storage, paths=["path"]).activate(store)
    await store.handlers[0](Mutation(type="path/mutation"), {"path": "state", "other": "value"})

    assert storage.data[DEFAULT_KEY] == _dump({"path": "state"})


@pytest.mark.asyncio
async def test_persists_partial_state_under_a_nested_path(spy_store, storage) -> None:
    store = spy_store({})

    await PersistedState(storage=storage, paths=["foo.bar", "bar"]).activate(store)
    await store.handlers[0](Mutation(type="foo/bar/mutation"), {"foo": {"bar": "baz"}, "bar": "baz"})

    assert storage.data[DEFAULT_KEY] == _dump({"foo": {"bar": "baz"}, "bar": "baz"})


@pytest.mark.asyncio
async def test_does_not_persist_null_values(spy_store, storage) -> None:
    store = spy_store({"alpha": {"name": None, "bravo": {"name": None}}})

    await PersistedState(storage=storage, paths=["alpha.name", "alpha.bravo.name"]).activate(store)
    await store.handlers[0](Mutation(type="alpha/name/mutation"), {"charlie": {"name": "charlie"}})

    assert storage.data[DEFAULT_KEY] == _dump({"alpha": {"bravo": {}}})


@pytest.mark.asyncio
async def test_does_not_update_partial_state_on_mutations_with_bad_paths(spy_store, storage) -> None:
    store = spy_store({})

    await PersistedState(storage=storage, paths=["path"]).activate(store)
    result = store.handlers[0](Mutation(type="badPath/mutation"), {"path": "state"})
    await asyncio.sleep(0.01)

    assert result is None
    assert DEFAULT_KEY not in storage.data


@pytest.mark.asyncio
async def test_does_not_merge_array_values_when_rehydrating(spy_store, storage) -> None:
    storage.data[DEFAULT_KEY] = _dump({"persisted": ["json"]})
    store = spy_store({"persisted": ["state"]})

    await PersistedState(storage=storage).activate(store)

    assert store.replaced == [{"persisted": ["json"]}]
    assert store.subscribe_calls == 1


@pytest.mark.asyncio
async def test_does_not_clone_circular_objects_when_rehydrating(spy_store, storage) -> None:
    circular: dict = {"foo": "bar"}
    circular["foo"] = circular
    storage.data[DEFAULT_KEY] = _dump({"persisted": "baz"})
    store = spy_store({"circular": circular})

    await PersistedState(storage=storage).activate(store)

    (replaced,) = store.replaced
    assert replaced["circular"] is circular
    assert replaced["persisted"] == "baz"
    assert store.subscribe_calls == 1


@pytest.mark.asyncio
async def test_initial_set_writes_reduced_state_before_any_mutation(spy_store, storage) -> None:
    storage.data[DEFAULT_KEY] = _dump({"cart": {"items": ["apple"]}})
    store = spy_store({"cart": {"items": []}, "ui": {"open": True}})

    await PersistedState(storage=storage, paths=["cart"], initial_set=True).activate(store)

    assert storage.data[DEFAULT_KEY] == _dump({"cart": {"items": ["apple"]}})


@pytest.mark.asyncio
async def test_without_initial_set_nothing_is_written_on_activation(spy_store, storage) -> None:
    store = spy_store({"ui": {"open": True}})

    await PersistedState(storage=storage).activate(store)

    assert DEFAULT_KEY not in storage.data


@pytest.mark.asyncio
async def test_throttles_subscribe_calls(spy_store, storage) -> None:
    store = spy_store({"original": "state0"})

    await PersistedState(storage=storage, throttle_time=0.05).activate(store)
    handler = store.handlers[0]
    handler(Mutation(type="mutation"), {"original": "state1"})
    handler(Mutation(type="mutation"), {"original": "state2"})
    handler(Mutation(type="mutation"), {"original": "state3"})

    await asyncio.sleep(0.005)
    assert storage.data[DEFAULT_KEY] == _dump({"original": "state1"})

    await asyncio.sleep(0.08)
    assert storage.data[DEFAULT_KEY] == _dump({"original": "state3"})


@pytest.mark.asyncio
async def test_trailing_only_throttle_skips_leading_write(spy_store, storage) -> None:
    store = spy_store({})

    await PersistedState(
        storage=storage,
        throttle_time=0.03,
        throttle=ThrottleOptions(leading=False),
    ).activate(store)
    handler = store.handlers[0]
    handler(Mutation(type="mutation"), {"n": 1})
    handler(Mutation(type="mutation"), {"n": 2})

    await asyncio.sleep(0.005)
    assert DEFAULT_KEY not in storage.data

    await asyncio.sleep(0.06)
    assert storage.data[DEFAULT_KEY] == _dump({"n": 2})


@pytest.mark.asyncio
async def test_ignored_mutation_does_not_displace_pending_throttled_write(storage) -> None:
    store = Store({"cart": {"items": []}, "ui": {"open": False}})

    await PersistedState(storage=storage, paths=["cart"], throttle_time=0.05).activate(store)
    store.commit("cart/add", lambda state, item: state["cart"]["items"].append(item), "a")
    store.commit("cart/add", lambda state, item: state["cart"]["items"].append(item), "b")
    store.commit("ui/toggle", lambda state, _: state["ui"].update(open=True))

    await asyncio.sleep(0.005)
    assert storage.data[DEFAULT_KEY] == _dump({"cart": {"items": ["a"]}})

    await asyncio.sleep(0.1)
    assert storage.data[DEFAULT_KEY] == _dump({"cart": {"items": ["a", "b"]}})


@pytest.mark.asyncio
async def test_failing_initial_set_is_raised_without_a_warning(spy_store, storage, caplog) -> None:
    def broken_before_save(_payload: str) -> str:
        raise RuntimeError("no space left")

    store = spy_store({"a": 1})
    persisted = PersistedState(storage=storage, before_save=broken_before_save, initial_set=True)

    with caplog.at_level(logging.WARNING, logger="pypersistedstate"):
        with pytest.raises(PersistEncodeError, match="no space left"):
            await persisted.activate(store)

    assert caplog.records == []
    assert store.subscribe_calls == 0


@pytest.mark.asyncio
async def test_teardown_prevents_throttled_subscribe_call(spy_store, storage) -> None:
    store = spy_store({"original": "state0"})

    session = await PersistedState(storage=storage, throttle_time=0.05).activate(store)
    handler = store.handlers[0]
    handler(Mutation(type="mutation"), {"original": "state1"})
    handler(Mutation(type="mutation"), {"original": "state2"})
    handler(Mutation(type="mutation"), {"original": "state3"})

    await asyncio.sleep(0.005)
    await session.teardown()
    await asyncio.sleep(0.08)

    assert DEFAULT_KEY not in storage.data


@pytest.mark.asyncio
async def test_write_in_flight_during_teardown_is_discarded(spy_store, storage) -> None:
    async def slow_before_save(payload: str) -> str:
        await asyncio.sleep(0.03)
        return payload

    store = spy_store({})
    session = await PersistedState(storage=storage, before_save=slow_before_save).activate(store)

    in_flight = store.handlers[0](Mutation(type="mutation"), {"late": True})
    await session.teardown()

    assert await in_flight is False
    assert DEFAULT_KEY not in storage.data


@pytest.mark.asyncio
async def test_store_commits_are_persisted_end_to_end(storage) -> None:
    store = Store({"cart": {"items": []}, "ui": {"open": False}})

    session = await PersistedState(storage=storage, paths=["cart"]).activate(store)
    store.commit("cart/add", lambda state, item: state["cart"]["items"].append(item), "apple")
    store.commit("ui/toggle", lambda state, _: state["ui"].update(open=True))
    await asyncio.sleep(0.01)

    assert storage.data[DEFAULT_KEY] == _dump({"cart": {"items": ["apple"]}})

    restored = Store({"cart": {"items": []}, "ui": {"open": False}})
    await PersistedState(storage=storage, paths=["cart"]).activate(restored)
    assert restored.state == {"cart": {"items": ["apple"]}, "ui": {"open": False}}

    await session.teardown()


@pytest.mark.asyncio
async def test_independent_engines_do_not_share_save_tokens(storage) -> None:
    async def slow_before_save(payload: str) -> str:
        await asyncio.sleep(0.02)
        return payload

    first = Store({})
    second = Store({})
    await PersistedState(storage=storage, key="first", before_save=slow_before_save).activate(first)
    await PersistedState(storage=storage, key="second").activate(second)

    first.commit("set", lambda state, _: state.update(value=1))
    second.commit("set", lambda state, _: state.update(value=2))
    await asyncio.sleep(0.05)

    assert storage.data["first"] == _dump({"value": 1})
    assert storage.data["second"] == _dump({"value": 2})
