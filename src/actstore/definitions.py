"""Action definitions — the closed set of things a store can dispatch.

An action is one of three frozen variants:

- Sync: a pure state transform.
- AdvancedSync: a transform plus an optional (debounced) side effect.
- Async: pre-effect, call, success/error effects, optional optimistic effect,
  retry, cancellation and conflict policies.

Effects take a Context and return a partial mapping merged into the state,
or None when nothing changes.

Usage:
    actions = {
        "set_filter": Sync(lambda ctx: {"filter": ctx.args[0]}),
        "load": Async(
            call=lambda ctx: api.load(*ctx.args),
            effects=lambda ctx: {"items": ctx.result},
            conflict_policy=ConflictPolicy.REUSE,
        ),
    }
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping, Optional, Sequence, Union

from actstore.errors import ConfigurationError

if TYPE_CHECKING:
    from actstore.cancel import AbortSignal

DEFAULT_INSTANCE = "default"

# Pseudo action name under which props-change effects are recorded.
PROPS_CHANGE = "<props_change>"

Partial = Optional[Mapping[str, Any]]
Effect = Callable[["Context"], Partial]
SideEffect = Callable[["Context"], None]


class ConflictPolicy(enum.Enum):
    """What happens when an async action is called while a call is in flight."""

    REJECT = "reject"
    IGNORE = "ignore"
    KEEP_LAST = "keep_last"
    KEEP_ALL = "keep_all"
    PARALLEL = "parallel"
    REUSE = "reuse"


class EffectKind(enum.Enum):
    PRE_EFFECTS = "pre_effects"
    EFFECTS = "effects"
    ERROR_EFFECTS = "error_effects"
    OPTIMISTIC_EFFECTS = "optimistic_effects"


@dataclass(frozen=True)
class Context:
    """Everything an effect, call, side effect or derived getter may read."""

    state: Mapping[str, Any]
    props: Any = None
    derived: Mapping[str, Any] = field(default_factory=dict)
    args: tuple = ()
    instance_id: str = DEFAULT_INSTANCE
    result: Any = None
    error: BaseException | None = None
    aborted: bool = False
    abort_signal: AbortSignal | None = None
    actions: Any = None
    indices: tuple = ()
    notify_warning: Callable[[str], None] | None = None


@dataclass(frozen=True)
class Sync:
    effects: Effect

    def validate(self, name: str) -> None:
        if not callable(self.effects):
            raise ConfigurationError(f"{name}: effects must be callable")


@dataclass(frozen=True)
class AdvancedSync:
    """Sync transform whose side effect runs after a state change.

    debounce_side_effects (seconds): when > 0, only the last side effect of a
    burst runs, once the action has been quiet that long.
    """

    effects: Effect
    side_effects: SideEffect | None = None
    debounce_side_effects: float = 0.0

    def validate(self, name: str) -> None:
        if not callable(self.effects):
            raise ConfigurationError(f"{name}: effects must be callable")
        if self.debounce_side_effects < 0:
            raise ConfigurationError(f"{name}: debounce_side_effects must be >= 0")


@dataclass(frozen=True)
class Async:
    """Asynchronous action.

    call(ctx) returns an awaitable, or None to skip the call entirely (no
    effects, no loading flag). retry_delay_seed is in seconds; the n-th retry
    waits ``retry_delay_seed * n``.
    """

    call: Callable[[Context], Awaitable[Any] | None]
    effects: Effect | None = None
    error_effects: Effect | None = None
    pre_effects: Effect | None = None
    optimistic_effects: Effect | None = None
    side_effects: SideEffect | None = None
    error_side_effects: SideEffect | None = None
    get_success_message: Callable[[Context], str | None] | None = None
    get_error_message: Callable[[Context], str | None] | None = None
    reject_on_error: bool = False
    conflict_policy: ConflictPolicy = ConflictPolicy.KEEP_ALL
    get_instance_id: Callable[..., str] | None = None
    retry_count: int | None = None
    retry_delay_seed: float = 1.0
    is_retry_error: Callable[[BaseException], bool] | None = None
    abortable: bool = False

    @property
    def optimistic(self) -> bool:
        return self.optimistic_effects is not None

    @property
    def max_calls(self) -> int:
        """Total attempts, first call included. REUSE defaults to 3 retries."""
        if self.retry_count is not None:
            return 1 + self.retry_count
        return 4 if self.conflict_policy is ConflictPolicy.REUSE else 1

    def validate(self, name: str) -> None:
        if not callable(self.call):
            raise ConfigurationError(f"{name}: call must be callable")
        if self.conflict_policy is ConflictPolicy.PARALLEL and self.get_instance_id is None:
            raise ConfigurationError(
                f"{name}: conflict policy PARALLEL requires get_instance_id"
            )
        if self.retry_count is not None and self.retry_count < 0:
            raise ConfigurationError(f"{name}: retry_count must be >= 0")
        if self.retry_delay_seed < 0:
            raise ConfigurationError(f"{name}: retry_delay_seed must be >= 0")

    def effect_for(self, kind: EffectKind) -> Effect | None:
        return getattr(self, kind.value)


ActionDefinition = Union[Sync, AdvancedSync, Async]


@dataclass(frozen=True)
class DerivedField:
    """A memoized value computed from state, props and other derived fields.

    deps(ctx) returns the values the field depends on; the field recomputes
    when any of them changes. derived_deps names other derived fields; the
    field recomputes whenever one of them does. With neither, the field
    recomputes on every evaluation.
    """

    get: Callable[[Context], Any]
    deps: Callable[[Context], Sequence[Any]] | None = None
    derived_deps: tuple[str, ...] = ()


@dataclass(frozen=True)
class PropsChange:
    """Reaction of the store to new props.

    get_deps(props) selects the prop values to watch; effects/side_effects
    run when one of them changes, with ``ctx.indices`` listing which.
    """

    get_deps: Callable[[Any], Sequence[Any]]
    effects: Effect | None = None
    side_effects: SideEffect | None = None
