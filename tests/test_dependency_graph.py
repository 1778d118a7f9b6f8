import pytest

from models.object_node import ObjectNode
from services.dependency_graph import DependencyGraph, DuplicateNodeError, UnknownNodeError


def build(*specs):
    graph = DependencyGraph()
    for oid, kind in specs:
        graph.add_node(ObjectNode(oid, kind, f"obj_{oid}", "public"))
    return graph


def oids(nodes):
    return [node.oid for node in nodes]


def test_linear_chain_sorted_dependencies_first():
    graph = build(("3", "table"), ("2", "type"), ("1", "domain"))
    graph.add_edge("3", "2")
    graph.add_edge("2", "1")

    assert oids(graph.topological_sort()) == ["1", "2", "3"]
    assert not graph.has_circular_dependencies()


def test_function_before_table_that_uses_it():
    graph = build(("10", "table"), ("20", "function"))
    graph.add_edge("10", "20")

    order = oids(graph.topological_sort())
    assert order.index("20") < order.index("10")
    assert graph.get_position("20") == 0
    assert graph.get_position("10") == 1


def test_independent_nodes_keep_insertion_order():
    graph = build(("5", "table"), ("1", "table"), ("9", "function"))
    assert oids(graph.topological_sort()) == ["5", "1", "9"]


def test_ties_broken_by_insertion_order_after_release():
    graph = build(("a", "table"), ("b", "table"), ("c", "function"), ("d", "function"))
    graph.add_edge("a", "d")
    graph.add_edge("b", "c")

    # c가 풀리면 b가 d보다 먼저 온다 (등록 순번이 더 작음)
    assert oids(graph.topological_sort()) == ["c", "b", "d", "a"]


def test_every_edge_respected_in_complex_graph():
    graph = build(*[(str(i), "table") for i in range(1, 9)])
    edges = [("8", "1"), ("8", "2"), ("7", "8"), ("3", "7"), ("4", "2"), ("6", "5"), ("5", "4")]
    for a, b in edges:
        graph.add_edge(a, b)

    graph.topological_sort()
    for a, b in edges:
        assert graph.get_position(a) > graph.get_position(b)


def test_sort_is_deterministic():
    def make():
        graph = build(("t1", "table"), ("f1", "function"), ("t2", "table"), ("d1", "domain"))
        graph.add_edge("t1", "f1")
        graph.add_edge("t2", "d1")
        graph.add_edge("f1", "d1")
        return graph

    first = oids(make().topological_sort())
    second = oids(make().topological_sort())
    assert first == second

    graph = make()
    assert oids(graph.topological_sort()) == oids(graph.topological_sort())


def test_two_node_cycle_reported():
    graph = build(("1", "function"), ("2", "table"), ("3", "table"))
    graph.add_edge("1", "2")
    graph.add_edge("2", "1")

    order = oids(graph.topological_sort())
    assert graph.has_circular_dependencies()
    assert sorted(oids(graph.get_circular_nodes())) == ["1", "2"]
    assert order == ["3", "1", "2"]
    assert all(graph.get_position(oid) >= 0 for oid in ("1", "2", "3"))
    assert len(graph.find_cycles()) == 1


def test_self_edge_is_circular():
    graph = build(("1", "function"))
    graph.add_edge("1", "1")
    assert graph.has_circular_dependencies()
    assert oids(graph.get_circular_nodes()) == ["1"]


def test_should_defer_matches_positions():
    graph = build(("t", "table"), ("f", "function"), ("g", "function"))
    graph.add_edge("f", "t")
    graph.topological_sort()

    for x in ("t", "f", "g"):
        for y in ("t", "f", "g"):
            assert graph.should_defer(x, y) == (graph.get_position(y) > graph.get_position(x))
    assert graph.should_defer("t", "f")
    assert not graph.should_defer("f", "t")
    assert not graph.should_defer("t", "t")


def test_position_of_unknown_oid_is_minus_one():
    graph = build(("1", "table"))
    assert graph.get_position("999") == -1
    assert graph.get_node("999") is None


def test_edge_to_unknown_node_rejected():
    graph = build(("1", "table"))
    with pytest.raises(UnknownNodeError):
        graph.add_edge("1", "2")
    with pytest.raises(UnknownNodeError):
        graph.add_edge("2", "1")
    assert graph.get_node("1").dependencies == []


def test_duplicate_oid_rejected():
    graph = build(("1", "table"))
    with pytest.raises(DuplicateNodeError):
        graph.add_node(ObjectNode("1", "function", "f", "public"))
    assert len(graph) == 1


def test_adding_node_invalidates_previous_sort():
    graph = build(("1", "table"))
    graph.topological_sort()
    graph.add_node(ObjectNode("2", "function", "f", "public"))
    graph.add_edge("1", "2")
    assert graph.get_position("2") == 0
    assert graph.get_position("1") == 1


def test_object_node_str_and_dependency_dedupe():
    node = ObjectNode("16384", "table", "users", "public")
    node.add_dependency("1")
    node.add_dependency("1")
    assert node.dependencies == ["1"]
    assert str(node) == "Table public.users (OID: 16384, Position: -1)"
