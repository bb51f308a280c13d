"""Shared fixtures for depsync tests."""

from typing import Any, Dict, List, Optional

import pytest

from depsync.core.graph import DependencyGraph
from depsync.core.types import Dependency, Module, Scope


def tree_node(
    gav: str,
    children: Optional[List[Dict[str, Any]]] = None,
    scope: str = "compile",
    conflict_winner: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """Build one level of an upstream tree document from a g:a:v string."""
    group_id, artifact_id, version = gav.split(":")
    node: Dict[str, Any] = {
        "groupId": group_id,
        "artifactId": artifact_id,
        "version": version,
        "scope": scope,
        "children": children or [],
    }
    if conflict_winner:
        node["conflictWinner"] = conflict_winner
    node.update(extra)
    return node


def module(gav: str) -> Module:
    group_id, artifact_id, version = gav.split(":")
    return Module(group_id=group_id, artifact_id=artifact_id, version=version)


def dependency(source: str, target: str, scope: Scope = Scope.COMPILE, depth: int = 0, **kwargs) -> Dependency:
    return Dependency(source=module(source), target=module(target), scope=scope, depth=depth, **kwargs)


@pytest.fixture
def chain_tree() -> Dict[str, Any]:
    """root -> A -> B -> C"""
    return tree_node("com.acme:root:1.0", [
        tree_node("org.a:a:1.0", [
            tree_node("org.b:b:1.0", [
                tree_node("org.c:c:1.0"),
            ]),
        ]),
    ])


@pytest.fixture
def small_graph() -> DependencyGraph:
    """root -> lib (compile), root -> junit (test), lib -> util (runtime, depth 1)"""
    graph = DependencyGraph(module("com.acme:app:1.0"))
    graph.add_dependency(dependency("com.acme:app:1.0", "com.acme:lib:2.0"))
    graph.add_dependency(dependency("com.acme:app:1.0", "junit:junit:4.13", scope=Scope.TEST))
    graph.add_dependency(dependency("com.acme:lib:2.0", "org.util:util:3.1", scope=Scope.RUNTIME, depth=1))
    return graph
