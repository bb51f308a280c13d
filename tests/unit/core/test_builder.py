"""Unit tests for the graph builder."""

import pytest

from depsync.core.builder import GraphBuilder
from depsync.core.tree import RawTree
from depsync.core.types import Scope

from tests.conftest import tree_node


def edges(graph):
    return [(d.source.artifact_id, d.target.artifact_id, d.depth) for d in graph.dependencies]


class TestDepthBound:
    def test_direct_only(self, chain_tree):
        graph, stats = GraphBuilder(0).build(RawTree.from_dict(chain_tree))
        assert edges(graph) == [("root", "a", 0)]
        assert stats.max_depth_reached == 0

    def test_one_transitive_level(self, chain_tree):
        graph, _ = GraphBuilder(1).build(RawTree.from_dict(chain_tree))
        assert edges(graph) == [("root", "a", 0), ("a", "b", 1)]

    def test_unlimited(self, chain_tree):
        graph, stats = GraphBuilder(-1).build(RawTree.from_dict(chain_tree))
        assert edges(graph) == [("root", "a", 0), ("a", "b", 1), ("b", "c", 2)]
        assert stats.max_depth_reached == 2
        assert stats.modules == 4
        assert stats.dependencies == 3

    def test_invalid_depth(self):
        with pytest.raises(ValueError):
            GraphBuilder(-2)


class TestConflictMarking:
    def test_both_sides_of_conflict_are_nodes(self):
        tree = RawTree.from_dict(tree_node("com.acme:root:1.0", [
            tree_node("org.b:b:1.0", [tree_node("org.c:c:2.0", conflict_winner="org.c:c:3.0")]),
            tree_node("org.d:d:1.0", [tree_node("org.c:c:3.0")]),
        ]))
        graph, stats = GraphBuilder().build(tree)

        assert graph.has_module("org.c:c:2.0")
        assert graph.has_module("org.c:c:3.0")
        by_target = {d.target.gav: d for d in graph.dependencies}
        assert by_target["org.c:c:2.0"].is_resolved is False
        assert by_target["org.c:c:3.0"].is_resolved is True
        assert stats.conflicts == 1

    def test_traversal_continues_below_conflicted_node(self):
        tree = RawTree.from_dict(tree_node("com.acme:root:1.0", [
            tree_node("org.c:c:2.0", [tree_node("org.e:e:1.0")], conflict_winner="org.c:c:3.0"),
        ]))
        graph, _ = GraphBuilder().build(tree)
        assert graph.has_module("org.e:e:1.0")


class TestCycles:
    def test_cycle_back_to_root_is_skipped(self):
        tree = RawTree.from_dict(tree_node("com.acme:root:1.0", [
            tree_node("org.a:a:1.0", [tree_node("com.acme:root:1.0")]),
        ]))
        graph, stats = GraphBuilder().build(tree)
        assert edges(graph) == [("root", "a", 0)]
        assert stats.cycles_skipped == 1

    def test_cycle_on_path_is_skipped(self):
        tree = RawTree.from_dict(tree_node("g:root:1", [
            tree_node("g:a:1", [tree_node("g:b:1", [tree_node("g:a:1", [tree_node("g:z:1")])])]),
        ]))
        graph, stats = GraphBuilder().build(tree)
        assert edges(graph) == [("root", "a", 0), ("a", "b", 1)]
        assert not graph.has_module("g:z:1")
        assert stats.cycles_skipped == 1

    def test_visited_set_is_not_shared_across_siblings(self):
        # Same module under two siblings is a diamond, not a cycle
        tree = RawTree.from_dict(tree_node("g:root:1", [
            tree_node("g:a:1", [tree_node("g:shared:1")]),
            tree_node("g:b:1", [tree_node("g:shared:1")]),
        ]))
        graph, stats = GraphBuilder().build(tree)
        assert ("a", "shared", 1) in edges(graph)
        assert ("b", "shared", 1) in edges(graph)
        assert stats.cycles_skipped == 0
        assert graph.module_count == 4


class TestEdgeAttributes:
    def test_scope_optional_and_packaging(self):
        tree = RawTree.from_dict(tree_node("g:root:1", [
            tree_node("g:a:1", scope="TEST", optional=True, packaging="pom"),
            tree_node("g:b:1", scope="weird"),
        ]))
        graph, _ = GraphBuilder().build(tree)
        a, b = graph.dependencies
        assert a.scope is Scope.TEST
        assert a.optional is True
        assert a.target.packaging == "pom"
        assert b.scope is Scope.COMPILE

    def test_root_without_dependencies(self):
        graph, stats = GraphBuilder().build(RawTree.from_dict(tree_node("g:root:1")))
        assert graph.module_count == 1
        assert graph.dependency_count == 0
        assert stats.max_depth_reached == -1
