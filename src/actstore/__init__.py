"""actstore: action-driven state container with conflict policies and optimistic rollback."""

from importlib.metadata import version as _version

__version__ = _version("actstore")

from actstore.cancel import AbortController, AbortSignal
from actstore.compare import shallow_equal
from actstore.config import AsyncErrorInfo, StoreConfig
from actstore.definitions import (
    DEFAULT_INSTANCE,
    AdvancedSync,
    Async,
    ConflictPolicy,
    Context,
    DerivedField,
    EffectKind,
    PropsChange,
    Sync,
)
from actstore.errors import (
    AbortError,
    ConfigurationError,
    ConflictError,
    StoreError,
    UnknownActionError,
)
from actstore.graph import DependencyGraph
from actstore.helpers import (
    set_arg_in,
    set_array_item,
    set_false_in,
    set_map_item,
    set_res_in,
    set_true_in,
    toggle_prop,
)
from actstore.reaction import Reaction, autorun, reaction
from actstore.store import Store
# textual NOT auto-imported, opt-in only

__all__ = [
    "Store",
    "StoreConfig",
    "AsyncErrorInfo",
    "Sync",
    "AdvancedSync",
    "Async",
    "ConflictPolicy",
    "Context",
    "DerivedField",
    "EffectKind",
    "PropsChange",
    "DEFAULT_INSTANCE",
    "AbortController",
    "AbortSignal",
    "DependencyGraph",
    "StoreError",
    "ConfigurationError",
    "ConflictError",
    "AbortError",
    "UnknownActionError",
    "Reaction",
    "autorun",
    "reaction",
    "shallow_equal",
    "set_arg_in",
    "set_true_in",
    "set_false_in",
    "toggle_prop",
    "set_map_item",
    "set_array_item",
    "set_res_in",
]
