"""Tests for DependencyGraph."""

import pytest

from actstore import ConfigurationError, DependencyGraph


def _graph(edges):
    g = DependencyGraph(edges)
    for node, successors in edges.items():
        g.set_edges(node, successors)
    return g


class TestCycles:
    def test_acyclic(self):
        g = _graph({"a": ["b", "c"], "b": ["c"], "c": []})
        assert not g.is_cyclic()

    def test_two_node_cycle(self):
        g = _graph({"a": ["b"], "b": ["a"]})
        assert g.is_cyclic()

    def test_self_loop(self):
        g = _graph({"a": ["a"]})
        assert g.is_cyclic()

    def test_cycle_off_the_first_root(self):
        g = _graph({"a": [], "b": ["c"], "c": ["d"], "d": ["b"]})
        assert g.is_cyclic()

    def test_diamond_is_not_a_cycle(self):
        g = _graph({"a": ["b", "c"], "b": ["d"], "c": ["d"], "d": []})
        assert not g.is_cyclic()

    def test_long_chain_does_not_overflow(self):
        n = 20000
        edges = {f"n{i}": [f"n{i + 1}"] for i in range(n)}
        edges[f"n{n}"] = []
        assert not _graph(edges).is_cyclic()
        edges[f"n{n}"] = ["n0"]
        assert _graph(edges).is_cyclic()


class TestTopologicalOrder:
    def test_dependencies_first(self):
        g = _graph({"total": ["subtotal", "tax"], "tax": ["subtotal"], "subtotal": []})
        order = g.topological_order()
        assert order.index("subtotal") < order.index("tax") < order.index("total")

    def test_declaration_order_when_independent(self):
        g = _graph({"x": [], "y": [], "z": []})
        assert g.topological_order() == ["x", "y", "z"]

    def test_every_node_once(self):
        g = _graph({"a": ["b", "c"], "b": ["d"], "c": ["d"], "d": []})
        assert sorted(g.topological_order()) == ["a", "b", "c", "d"]

    def test_cycle_raises_with_path(self):
        g = _graph({"a": ["b"], "b": ["a"]})
        with pytest.raises(ConfigurationError, match="a -> b -> a"):
            g.topological_order()
