"""State container contract and a minimal in-memory implementation."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol

from pypersistedstate.state.events import Mutation

_logger = logging.getLogger(__name__)

MutationHandler = Callable[[Mutation, dict[str, Any]], Any]
Mutator = Callable[[dict[str, Any], Any], None]


class SubscriptionHandle(Protocol):
    """Explicit release point for a registered mutation handler."""

    def unsubscribe(self) -> None: ...


class StateContainer(Protocol):
    """Structural interface the persistence engine needs from a state owner."""

    @property
    def state(self) -> dict[str, Any]: ...

    def replace_state(self, state: dict[str, Any]) -> None: ...

    def subscribe(self, handler: MutationHandler) -> SubscriptionHandle: ...


class Subscription:
    """Handle returned by :meth:`Store.subscribe`."""

    def __init__(self, store: Store, handler: MutationHandler) -> None:
        self._store = store
        self._handler = handler
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._store._remove_subscriber(self._handler)  # noqa: SLF001


class Store:
    """Minimal state container with named mutations.

    Usage::

        store = Store({"cart": {"items": []}})
        store.commit("cart/add", lambda state, item: state["cart"]["items"].append(item), "apple")

    Subscribers are called synchronously, in registration order, after
    each commit with the :class:`Mutation` and the post-mutation state.
    A failing subscriber is logged and does not stop the others.
    """

    def __init__(self, state: dict[str, Any] | None = None) -> None:
        self._state: dict[str, Any] = {} if state is None else state
        self._subscribers: list[MutationHandler] = []

    @property
    def state(self) -> dict[str, Any]:
        return self._state

    def replace_state(self, state: dict[str, Any]) -> None:
        self._state = state

    def subscribe(self, handler: MutationHandler) -> Subscription:
        self._subscribers.append(handler)
        return Subscription(self, handler)

    def _remove_subscriber(self, handler: MutationHandler) -> None:
        try:
            self._subscribers.remove(handler)
        except ValueError:
            _logger.debug("Subscriber already removed")

    def commit(self, mutation_type: str, mutator: Mutator, payload: Any = None) -> Mutation:
        """Apply *mutator* to the state in place and notify subscribers."""
        mutation = Mutation(type=mutation_type, payload=payload)
        mutator(self._state, payload)
        for handler in list(self._subscribers):
            try:
                handler(mutation, self._state)
            except Exception:
                _logger.warning("Subscriber failed for mutation %s", mutation.type, exc_info=True)
        return mutation
