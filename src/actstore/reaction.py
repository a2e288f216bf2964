"""Reactions — side effects triggered by store changes.

Two flavors:
- autorun(store, fn): runs fn(store) immediately, then after every change.
- reaction(store, data_fn, effect_fn): selects a slice with data_fn and calls
  effect_fn with it only when the slice changes (by the store's comparator,
  shallow by default).

Both return a handle; call .dispose() to stop.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, TypeVar

if TYPE_CHECKING:
    from actstore.store import Store

T = TypeVar("T")


class Reaction:
    """Runs fn(store) after every committed change until disposed."""

    __slots__ = ("_fn", "_unsubscribe", "_disposed")

    def __init__(self, store: Store, fn: Callable[[Store], None]) -> None:
        self._fn = fn
        self._disposed = False
        self._unsubscribe = store.subscribe(self._run)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _run(self, store: Store) -> None:
        if not self._disposed:
            self._fn(store)

    def dispose(self) -> None:
        """Stop this reaction."""
        self._disposed = True
        self._unsubscribe()

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "active"
        return f"Reaction({getattr(self._fn, '__name__', self._fn)!r}, {state})"


class _SliceReaction(Reaction):
    """Internal: reaction(store, data_fn, effect_fn) implementation."""

    __slots__ = ("_data_fn", "_effect_fn", "_compare", "_last_value", "_initialized")

    def __init__(
        self,
        store: Store,
        data_fn: Callable[[Store], Any],
        effect_fn: Callable[[Any], None],
        comparator: Callable[[Any, Any], bool],
    ) -> None:
        self._data_fn = data_fn
        self._effect_fn = effect_fn
        self._compare = comparator
        self._last_value: Any = None
        self._initialized = False
        super().__init__(store, self._on_change)

    def _on_change(self, store: Store) -> None:
        new_value = self._data_fn(store)
        if not self._initialized or not self._compare(new_value, self._last_value):
            self._last_value = new_value
            self._initialized = True
            self._effect_fn(new_value)


def autorun(store: Store, fn: Callable[[Store], None]) -> Reaction:
    """Run fn(store) now, then after every change.

    Usage:
        log = []
        r = autorun(store, lambda s: log.append(s.state["count"]))
        # log == [0], ran immediately
        store.actions.increment()
        # log == [0, 1]
        r.dispose()
    """
    r = Reaction(store, fn)
    fn(store)
    return r


def reaction(
    store: Store,
    data_fn: Callable[[Store], T],
    effect_fn: Callable[[T], None],
    *,
    fire_immediately: bool = False,
    comparator: Callable[[Any, Any], bool] | None = None,
) -> Reaction:
    """Call effect_fn(slice) when data_fn(store)'s result changes.

    Usage:
        r = reaction(
            store,
            lambda s: (s.state["first"], s.state["last"]),
            lambda names: print(" ".join(names)),
        )
        store.actions.set_first("Bob")   # prints "Bob Smith"
        store.actions.set_other(1)       # slice unchanged, nothing printed
    """
    r = _SliceReaction(store, data_fn, effect_fn, comparator or store.config.comparator)
    if fire_immediately:
        r._on_change(store)
    else:
        # establish the baseline, suppress the initial effect
        r._last_value = data_fn(store)
        r._initialized = True
    return r
