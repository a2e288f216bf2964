"""Derived state — memoized values computed from state, props and each other.

Each DerivedField caches its last value together with the dependency values
it was computed from. On every store change the fields are re-evaluated in
dependency order; a field whose dependencies are unchanged keeps its cached
value by reference, so consumers can compare with ``is``.

Fields that depend on other derived fields are ordered with a
DependencyGraph built once at construction; a cycle is a ConfigurationError.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping

from actstore.compare import shallow_equal
from actstore.definitions import Context, DerivedField
from actstore.errors import ConfigurationError
from actstore.graph import DependencyGraph

_UNSET = object()


class DerivedState:
    """Evaluates a fixed set of DerivedFields against successive snapshots."""

    def __init__(
        self,
        fields: Mapping[str, DerivedField],
        comparator: Callable[[Any, Any], bool] = shallow_equal,
    ) -> None:
        self._fields = dict(fields)
        self._compare = comparator
        self._deps: dict[str, tuple] = {}
        self._values: dict[str, Any] = {}
        self._order = self._evaluation_order()

    @property
    def values(self) -> Mapping[str, Any]:
        """Current derived values. A new dict per update; never mutated after."""
        return self._values

    @property
    def order(self) -> list[str]:
        return list(self._order)

    def _evaluation_order(self) -> list[str]:
        graph = DependencyGraph(self._fields)
        for name, definition in self._fields.items():
            if not isinstance(definition, DerivedField):
                raise ConfigurationError(f"Derived field {name!r} must be a DerivedField")
            unknown = [d for d in definition.derived_deps if d not in self._fields]
            if unknown:
                raise ConfigurationError(
                    f"Derived field {name!r} depends on unknown derived fields: {unknown}"
                )
            graph.set_edges(name, definition.derived_deps)
        if graph.is_cyclic():
            raise ConfigurationError("Circular dependency between derived fields")
        return graph.topological_order()

    def update(self, state: Mapping[str, Any], props: Any = None) -> bool:
        """Re-evaluate every field. Returns True if any field recomputed."""
        values: dict[str, Any] = {}
        recomputed: set[str] = set()

        for name in self._order:
            definition = self._fields[name]
            ctx = Context(state=state, props=props, derived=values)
            previous = self._values.get(name, _UNSET)

            compute = previous is _UNSET
            if definition.deps is not None:
                deps = tuple(definition.deps(ctx))
                if not compute:
                    compute = self._deps_changed(self._deps.get(name), deps)
                self._deps[name] = deps
            elif not definition.derived_deps:
                compute = True

            if not compute and any(d in recomputed for d in definition.derived_deps):
                compute = True

            if compute:
                values[name] = definition.get(ctx)
                recomputed.add(name)
            else:
                values[name] = previous

        self._values = values
        return bool(recomputed)

    def _deps_changed(self, previous: tuple | None, current: tuple) -> bool:
        if previous is None or len(previous) != len(current):
            return True
        return any(not self._compare(a, b) for a, b in zip(previous, current))

    def __repr__(self) -> str:
        return f"DerivedState({self._order})"
