"""Store — one immutable state snapshot plus the machinery around it.

The store is the only writer of its snapshot. Sync actions, the async
executor and props changes all go through ``_apply_effect``; the store
merges the effect's partial result into a new snapshot, feeds the optimistic
history, recomputes derived values and notifies listeners.

Usage:
    store = Store(
        lambda props: {"items": [], "filter": None},
        {
            "set_filter": Sync(set_arg_in("filter")),
            "load": Async(call=lambda ctx: api.load(), effects=set_res_in("items")),
        },
        derived={"visible": DerivedField(get=..., deps=lambda ctx: [ctx.state["filter"]])},
    )
    unsubscribe = store.subscribe(lambda s: print(s.get_state()))
    store.actions.set_filter("a")
    await store.actions.load()
"""

from __future__ import annotations

import asyncio
import dataclasses
import functools
import itertools
import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Mapping

from actstore.config import StoreConfig
from actstore.conflicts import ConflictResolver
from actstore.definitions import (
    DEFAULT_INSTANCE,
    PROPS_CHANGE,
    AdvancedSync,
    Async,
    Context,
    DerivedField,
    EffectKind,
    Partial,
    PropsChange,
    Sync,
)
from actstore.derived import DerivedState
from actstore.errors import ConfigurationError, UnknownActionError
from actstore.executor import AsyncExecutor
from actstore.history import HistoryEntry, OptimisticHistory

logger = logging.getLogger("actstore.store")

Listener = Callable[["Store"], None]


def _merge(state: Mapping[str, Any], partial: Partial) -> Mapping[str, Any]:
    if not partial:
        return state
    return {**state, **partial}


class ActionsProxy:
    """``store.actions.name(*args)`` is ``store.dispatch("name", *args)``."""

    __slots__ = ("_store",)

    def __init__(self, store: Store) -> None:
        self._store = store

    def __getattr__(self, name: str) -> Callable[..., Any]:
        if name not in self._store._definitions:
            raise AttributeError(name)
        return functools.partial(self._store.dispatch, name)

    def __dir__(self) -> list[str]:
        return list(self._store._definitions)

    def __repr__(self) -> str:
        return f"ActionsProxy({list(self._store._definitions)})"


class Store:
    """Action-driven state container."""

    def __init__(
        self,
        initial_state: Callable[[Any], Mapping[str, Any]],
        actions: Mapping[str, Sync | AdvancedSync | Async],
        *,
        derived: Mapping[str, DerivedField] | None = None,
        props: Any = None,
        on_props_change: PropsChange | None = None,
        on_mount: Callable[[Context], None] | None = None,
        config: StoreConfig | None = None,
        name: str | None = None,
    ) -> None:
        self.name = name or "store"
        self.config = config or StoreConfig()

        self._definitions: dict[str, Sync | AdvancedSync | Async] = dict(actions)
        for action_name, definition in self._definitions.items():
            if not isinstance(definition, (Sync, AdvancedSync, Async)):
                raise ConfigurationError(
                    f"{action_name}: expected Sync, AdvancedSync or Async, "
                    f"got {type(definition).__name__}"
                )
            definition.validate(action_name)
        if on_props_change is not None and not isinstance(on_props_change, PropsChange):
            raise ConfigurationError("on_props_change must be a PropsChange")

        self._derived = DerivedState(derived or {}, self.config.comparator)
        self._on_props_change = on_props_change
        self._props = props
        self._listeners: dict[int, Listener] = {}
        self._listener_ids = itertools.count(1)
        self._loading: dict[str, dict[str, bool]] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._batch_depth = 0
        self._notify_pending = False
        self._resolver = ConflictResolver()
        self._history = OptimisticHistory(self.config.clone)
        self._executor = AsyncExecutor(self)
        self.actions = ActionsProxy(self)

        self._state: Mapping[str, Any] = dict(initial_state(props))
        self._alive = True
        self._derived.update(self._state, self._props)

        if on_mount is not None:
            on_mount(self._context())

    # --- Reading ---

    @property
    def state(self) -> Mapping[str, Any]:
        """The current snapshot. Treat it as read-only."""
        return self._state

    @property
    def derived(self) -> Mapping[str, Any]:
        return self._derived.values

    @property
    def props(self) -> Any:
        return self._props

    @property
    def alive(self) -> bool:
        return self._alive

    def get_state(self) -> dict[str, Any]:
        """State and derived values in one mapping."""
        return {**self._state, **self._derived.values}

    # --- Listeners and batching ---

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call listener(store) after each committed change. Returns an unsubscriber."""
        listener_id = next(self._listener_ids)
        self._listeners[listener_id] = listener

        def _unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return _unsubscribe

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Defer listener notification until the outermost block exits.

        Usage:
            with store.transaction():
                store.actions.set_a(1)
                store.actions.set_b(2)
                # listeners run once, here
        """
        self._batch_depth += 1
        try:
            yield
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._notify_pending:
                self._notify_pending = False
                self._notify()

    def _notify(self) -> None:
        if self._batch_depth > 0:
            self._notify_pending = True
            return
        for listener in list(self._listeners.values()):
            listener(self)

    # --- Dispatch ---

    def dispatch(self, name: str, *args: Any) -> asyncio.Future | None:
        """Run action ``name``.

        Sync actions return None once their effect is committed. Async
        actions return a future (see AsyncExecutor); they need a running
        event loop. After destroy() every dispatch is a no-op returning None.
        """
        definition = self._definitions.get(name)
        if definition is None:
            raise UnknownActionError(name)
        if not self._alive:
            logger.debug("%s: %s dispatched after destroy, ignored", self.name, name)
            return None

        if isinstance(definition, Async):
            return self._executor.dispatch(name, definition, args)
        if isinstance(definition, AdvancedSync):
            self._run_advanced_sync(name, definition, args)
            return None
        if isinstance(definition, Sync):
            self._apply_effect(name, EffectKind.EFFECTS, self._context(args), definition.effects)
            return None
        raise TypeError(f"Unhandled action definition {definition!r}")

    def _run_advanced_sync(self, name: str, definition: AdvancedSync, args: tuple) -> None:
        ctx = self._context(args)
        partial = self._apply_effect(name, EffectKind.EFFECTS, ctx, definition.effects)
        if partial is None or definition.side_effects is None:
            return
        if definition.debounce_side_effects > 0:
            loop = asyncio.get_running_loop()
            previous = self._timers.pop(name, None)
            if previous is not None:
                previous.cancel()
            self._timers[name] = loop.call_later(
                definition.debounce_side_effects,
                self._run_debounced, name, definition.side_effects, ctx,
            )
        else:
            definition.side_effects(self._side_effect_context(ctx))

    def _run_debounced(self, name: str, side_effects: Callable[[Context], None], ctx: Context) -> None:
        self._timers.pop(name, None)
        if self._alive:
            side_effects(self._side_effect_context(ctx))

    def _context(self, args: tuple = (), **extra: Any) -> Context:
        return Context(
            state=self._state,
            props=self._props,
            derived=self._derived.values,
            args=args,
            actions=self.actions,
            notify_warning=self.config.notify_warning,
            **extra,
        )

    def _side_effect_context(self, ctx: Context) -> Context:
        return dataclasses.replace(ctx, state=self._state, derived=self._derived.values)

    # --- Committing ---

    def _apply_effect(
        self,
        name: str,
        kind: EffectKind,
        ctx: Context,
        effect: Callable[[Context], Partial] | None,
        *,
        instance_id: str = DEFAULT_INSTANCE,
        loading: bool | None = None,
        optimistic_token: int | None = None,
    ) -> Partial:
        """Run one effect and commit its result. Returns the effect's partial."""
        partial = None
        if effect is not None:
            partial = effect(ctx)
            self._history.record(name, instance_id, kind, ctx)
        state = _merge(self._state, partial)

        if optimistic_token is not None:
            if kind is EffectKind.EFFECTS:
                self._history.resolve(optimistic_token)
            elif kind is EffectKind.ERROR_EFFECTS:
                # the error effect was just recorded, so the replay includes it
                restored = self._history.rollback(optimistic_token, self._replay)
                if restored is not None:
                    state = restored

        self._commit(state, loading=None if loading is None else (name, instance_id, loading))
        return partial

    def _begin_optimistic(self, name: str, definition: Async, ctx: Context, instance_id: str) -> int:
        """Snapshot, then commit the optimistic effect. Returns the history token."""
        token = self._history.begin(name, instance_id, ctx, self._state)
        ctx = dataclasses.replace(ctx, state=self._state, derived=self._derived.values)
        self._commit(_merge(self._state, definition.optimistic_effects(ctx)))
        return token

    def _commit(
        self,
        state: Mapping[str, Any],
        *,
        loading: tuple[str, str, bool] | None = None,
        props_changed: bool = False,
    ) -> None:
        changed = state is not self._state
        self._state = state
        if loading is not None and self._set_loading(*loading):
            changed = True
        if changed or props_changed:
            derived_changed = self._derived.update(self._state, self._props)
            if changed or derived_changed:
                self._notify()

    def _set_loading(self, name: str, instance_id: str, flag: bool) -> bool:
        ids = self._loading.get(name, {})
        if ids.get(instance_id, False) == flag:
            return False
        loading = dict(self._loading)
        if flag:
            loading[name] = {**ids, instance_id: True}
        else:
            ids = {k: v for k, v in ids.items() if k != instance_id}
            if ids:
                loading[name] = ids
            else:
                loading.pop(name, None)
        self._loading = loading
        return True

    def _effect_for(self, name: str, kind: EffectKind) -> Callable[[Context], Partial] | None:
        if name == PROPS_CHANGE:
            return self._on_props_change.effects if self._on_props_change else None
        definition = self._definitions[name]
        if isinstance(definition, Async):
            return definition.effect_for(kind)
        return definition.effects

    def _replay(self, entry: HistoryEntry, state: Mapping[str, Any]) -> Mapping[str, Any]:
        effect = self._effect_for(entry.action_name, entry.kind)
        if effect is None:
            return state
        return _merge(state, effect(dataclasses.replace(entry.context, state=state)))

    # --- Props ---

    def set_props(self, props: Any) -> None:
        """Replace the props; runs on_props_change effects if watched values changed."""
        if not self._alive:
            return
        old_props, self._props = self._props, props
        config = self._on_props_change

        indices: list[int] = []
        if config is not None:
            old_deps = list(config.get_deps(old_props))
            new_deps = list(config.get_deps(props))
            if len(old_deps) != len(new_deps):
                logger.warning("%s: on_props_change.get_deps must return a stable length", self.name)
                indices = list(range(len(new_deps)))
            else:
                compare = self.config.comparator
                indices = [i for i, (a, b) in enumerate(zip(old_deps, new_deps)) if not compare(a, b)]

        if not indices:
            self._commit(self._state, props_changed=True)
            return

        ctx = self._context(indices=tuple(indices))
        with self.transaction():
            self._apply_effect(PROPS_CHANGE, EffectKind.EFFECTS, ctx, config.effects)
            self._commit(self._state, props_changed=True)
        if config.side_effects is not None:
            config.side_effects(self._side_effect_context(ctx))

    # --- Loading ---

    def is_loading(self, *names: str | tuple[str, str]) -> bool:
        """True if any of the given actions is loading.

        Each name is an action name (default instance) or a
        ``(name, instance_id)`` pair for PARALLEL actions.
        """
        for item in names:
            if isinstance(item, tuple):
                name, instance_id = item
            else:
                name, instance_id = item, DEFAULT_INSTANCE
            if self._loading.get(name, {}).get(instance_id, False):
                return True
        return False

    def get_loading_state(self, name: str, instance_id: str | None = None) -> bool:
        return self.is_loading((name, instance_id or DEFAULT_INSTANCE))

    @property
    def loading(self) -> bool:
        return bool(self._loading)

    @property
    def loading_map(self) -> dict[str, bool]:
        return {name: bool(ids) for name, ids in self._loading.items()}

    @property
    def loading_parallel_map(self) -> Mapping[str, Mapping[str, bool]]:
        return self._loading

    # --- Abort and lifecycle ---

    def abort(self, name: str, instance_id: str | None = None) -> bool:
        """Abort an in-flight abortable call. Returns whether anything was aborted."""
        instance_id = instance_id or DEFAULT_INSTANCE
        pending = self._resolver.occupant(name, instance_id)
        if pending is None or pending.controller is None:
            return False
        if not pending.controller.abort():
            return False
        self._resolver.release(name, instance_id, pending.future)
        logger.debug("%s: %s[%s] aborted", self.name, name, instance_id)
        # queued calls must not wait for a call that may ignore its signal
        self._executor.process_next(name)
        return True

    def destroy(self) -> None:
        """Stop the store. In-flight calls settle without touching it."""
        if not self._alive:
            return
        self._alive = False
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        for deferred in self._resolver.clear():
            if not deferred.future.done():
                deferred.future.set_result(None)
        self._history.clear()
        self._listeners.clear()
        self._loading = {}

    def __repr__(self) -> str:
        state = "alive" if self._alive else "destroyed"
        return f"Store({self.name!r}, {state}, actions={list(self._definitions)})"
