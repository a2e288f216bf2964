"""Dependency graph over named nodes — cycle detection and evaluation order.

Edges point from a node to the nodes it depends on. The graph is built once,
when a store is constructed, to validate derived fields and order them.
"""

from __future__ import annotations

from typing import Iterable

from actstore.errors import ConfigurationError


class DependencyGraph:
    """Adjacency map of node name -> names it depends on."""

    def __init__(self, keys: Iterable[str]) -> None:
        self._keys: list[str] = list(keys)
        self._adj: dict[str, list[str]] = {}

    @property
    def keys(self) -> list[str]:
        return list(self._keys)

    def set_edges(self, node: str, successors: Iterable[str]) -> None:
        self._adj[node] = list(successors)

    def successors(self, node: str) -> list[str]:
        return self._adj.get(node, [])

    def is_cyclic(self) -> bool:
        """True if any node can reach itself by following edges.

        Iterative DFS with white/gray/black coloring: reaching a node that is
        still on the stack (gray) means a cycle. No recursion, so deep chains
        cannot overflow the interpreter stack.
        """
        return self._find_cycle() is not None

    def topological_order(self) -> list[str]:
        """Nodes with their dependencies first, declaration order otherwise.

        Raises ConfigurationError if the graph has a cycle.
        """
        cycle = self._find_cycle()
        if cycle is not None:
            raise ConfigurationError(f"Circular dependency: {' -> '.join(cycle)}")

        order: list[str] = []
        done: set[str] = set()
        for root in self._keys:
            if root in done:
                continue
            stack = [(root, iter(self.successors(root)))]
            while stack:
                node, children = stack[-1]
                child = next(children, None)
                if child is None:
                    stack.pop()
                    if node not in done:
                        done.add(node)
                        order.append(node)
                elif child not in done:
                    stack.append((child, iter(self.successors(child))))
        return order

    def _find_cycle(self) -> list[str] | None:
        visited: set[str] = set()
        on_stack: set[str] = set()
        for root in self._keys:
            if root in visited:
                continue
            path = [root]
            stack = [iter(self.successors(root))]
            visited.add(root)
            on_stack.add(root)
            while stack:
                child = next(stack[-1], None)
                if child is None:
                    stack.pop()
                    on_stack.discard(path.pop())
                elif child in on_stack:
                    return path[path.index(child):] + [child]
                elif child not in visited:
                    visited.add(child)
                    on_stack.add(child)
                    path.append(child)
                    stack.append(iter(self.successors(child)))
        return None

    def __repr__(self) -> str:
        return f"DependencyGraph({self._adj!r})"
