"""Tests for graph expansion from root nodes."""

import pytest

from buildspine.core.errors import DependencyResolutionError
from buildspine.graph.builder import GraphBuilder, Target
from buildspine.graph.models import Node
from tests._support.trees import platforms, single_version


class TestGraphBuilder:
    def test_multi_platform_expansion(self, platform_tree):
        builder = GraphBuilder(platform_tree.store)
        graph = builder.build_graph("gateway", "v1.0.0", "alpine")

        gateway = Node("gateway", "v1.0.0", "alpine")
        base = Node("revad-base", "v1.0.0", "alpine")
        tools = Node("tools", "v1.0.0")
        assert graph.nodes == [gateway, base, tools]
        assert graph.dependencies_of(gateway) == [base, tools]
        assert builder.roots == [gateway]

        links = builder.links[gateway]
        assert [(l.build_arg, l.tag_version) for l in links] == [
            ("BASE_IMAGE", "v1.0.0-alpine"),
            ("TOOLS_IMAGE", "v1.0.0"),
        ]
        assert builder.configs[base].config.build_args == {"LIBC": "musl"}

    def test_shared_dependency_deduplicated(self, tree):
        tree.service("base", versions=single_version())
        tree.service("left", versions=single_version(), dependencies={"base": {"build_arg": "BASE"}})
        tree.service("right", versions=single_version(), dependencies={"base": {"build_arg": "BASE"}})
        tree.service(
            "app",
            versions=single_version(),
            dependencies={"left": {"build_arg": "LEFT"}, "right": {"build_arg": "RIGHT"}},
        )
        graph = GraphBuilder(tree.store).build_graph("app")
        assert len(graph) == 4
        assert len(graph.edges) == 4
        assert graph.dependents_of(Node("base", "v1")) == [Node("left", "v1"), Node("right", "v1")]

    def test_union_of_targets_shares_nodes(self, platform_tree):
        builder = GraphBuilder(platform_tree.store)
        graph = builder.build_graphs([Target("gateway", platform="debian"), Target("gateway", platform="alpine")])
        # Both gateway variants reuse the single-platform tools node
        assert len(graph) == 5
        assert len(graph.dependents_of(Node("tools", "v1.0.0"))) == 2
        assert builder.roots == [Node("gateway", "v1.0.0", "debian"), Node("gateway", "v1.0.0", "alpine")]

    def test_deterministic(self, platform_tree):
        first = GraphBuilder(platform_tree.store).build_graph("gateway")
        second = GraphBuilder(platform_tree.store).build_graph("gateway")
        assert first.nodes == second.nodes
        assert first.edges == second.edges

    def test_cycle_terminates(self, tree):
        tree.service("a", versions=single_version(), dependencies={"b": {"build_arg": "B"}})
        tree.service("b", versions=single_version(), dependencies={"a": {"build_arg": "A"}})
        graph = GraphBuilder(tree.store).build_graph("a")
        assert graph.dependencies_of(Node("b", "v1")) == [Node("a", "v1")]

    def test_inherited_version_missing_from_dependency(self, tree):
        tree.service("base", versions=single_version("v1"))
        tree.service("app", versions=single_version("v2"), dependencies={"base": {"build_arg": "BASE"}})
        with pytest.raises(DependencyResolutionError, match="unknown version 'v2'"):
            GraphBuilder(tree.store).build_graph("app")

    def test_explicit_dependency_version(self, tree):
        tree.service("base", versions=[{"name": "v1", "latest": True}, {"name": "v0"}])
        tree.service(
            "app",
            versions=single_version("v2"),
            dependencies={"base": {"build_arg": "BASE", "version": "v0"}},
        )
        builder = GraphBuilder(tree.store)
        graph = builder.build_graph("app")
        assert Node("base", "v0") in graph
        assert builder.links[Node("app", "v2")][0].tag_version == "v0"

    def test_dependency_tag_resolves_to_canonical_node(self, tree):
        tree.service("base", versions=[{"name": "v1.2.3", "latest": True, "tags": ["lts"]}])
        tree.service(
            "app",
            versions=single_version(),
            dependencies={"base": {"build_arg": "BASE", "version": "lts"}},
        )
        builder = GraphBuilder(tree.store)
        graph = builder.build_graph("app")
        assert Node("base", "v1.2.3") in graph
        assert builder.links[Node("app", "v1")][0].tag_version == "v1.2.3"

    def test_suffixed_dependency_on_single_platform_parent(self, tree):
        tree.service("base", versions=single_version(), platforms=platforms("debian", "alpine"))
        tree.service(
            "app",
            versions=single_version(),
            dependencies={"base": {"build_arg": "BASE", "version": "v1-alpine"}},
        )
        builder = GraphBuilder(tree.store)
        builder.build_graph("app")
        assert builder.links[Node("app", "v1")][0].node == Node("base", "v1", "alpine")
        assert builder.links[Node("app", "v1")][0].tag_version == "v1-alpine"

    def test_single_platform_parent_uses_default_platform_unsuffixed(self, tree):
        tree.service("base", versions=single_version(), platforms=platforms("debian", "alpine"))
        tree.service("app", versions=single_version(), dependencies={"base": {"build_arg": "BASE"}})
        builder = GraphBuilder(tree.store)
        builder.build_graph("app")
        link = builder.links[Node("app", "v1")][0]
        assert link.node == Node("base", "v1", "debian")
        assert link.tag_version == "v1"
