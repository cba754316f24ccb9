"""
Graph Builder - expands root nodes into a full dependency graph.

Starting from a root ``(service, version, platform)``, each declared
dependency is resolved into a concrete node (Dependency Resolver for the
version/platform, Config Resolver for the canonical node and its
configuration), an edge is added from the dependent to the dependency, and
unvisited dependency nodes are queued. Visitation is keyed by the node
tuple, so expansion terminates even on cyclic descriptors (the cycle is
left in the graph for the sorter to report) and a dependency shared by two
branches is expanded once.

The builder keeps what later stages need alongside the graph:

    configs   Node -> EffectiveConfig
    links     Node -> [DependencyLink] in declared order (build arg + tag)
    roots     requested target nodes in request order
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, replace

from buildspine.core.errors import ConfigValidationError, DependencyResolutionError
from buildspine.core.logging import get_logger
from buildspine.descriptors.store import DescriptorStore
from buildspine.graph.config_resolver import ConfigResolver, EffectiveConfig
from buildspine.graph.dependency_resolver import DependencyResolver
from buildspine.graph.models import BuildGraph, DependencyDeclaration, Node

logger = get_logger(__name__)


@dataclass(frozen=True)
class DependencyLink:
    """A resolved dependency of one node."""

    declaration: DependencyDeclaration
    node: Node
    tag_version: str

    @property
    def build_arg(self) -> str:
        return self.declaration.build_arg


@dataclass(frozen=True)
class Target:
    """A requested root: service, version spec and optional platform."""

    service: str
    version: str | None = None
    platform: str | None = None


class GraphBuilder:
    """
    Builds version- and platform-aware dependency graphs.

    Example:
        builder = GraphBuilder(DescriptorStore("services"))
        graph = builder.build_graph("reva-gateway", "v1.0.0", "debian")
        builder.configs[graph.nodes[0]].config.dockerfile
    """

    def __init__(
        self,
        store: DescriptorStore,
        config_resolver: ConfigResolver | None = None,
        dependency_resolver: DependencyResolver | None = None,
    ):
        self.store = store
        self.config_resolver = config_resolver or ConfigResolver(store)
        self.dependency_resolver = dependency_resolver or DependencyResolver(store)
        self.configs: dict[Node, EffectiveConfig] = {}
        self.links: dict[Node, list[DependencyLink]] = {}
        self.roots: list[Node] = []

    def build_graph(
        self,
        root_service: str,
        root_version_spec: str | None = None,
        root_platform: str | None = None,
    ) -> BuildGraph:
        """
        Expand one root into a graph.

        Raises:
            ConfigValidationError: A node's layers are invalid
            DependencyResolutionError: A dependency's version/platform is undeterminable
        """
        root_cfg = self.config_resolver.resolve(root_service, root_version_spec, root_platform)
        root = root_cfg.node
        self.configs.setdefault(root, root_cfg)
        if root not in self.roots:
            self.roots.append(root)

        graph = BuildGraph()
        graph.add_node(root)

        queue: deque[Node] = deque([root])
        visited: set[Node] = {root}

        while queue:
            node = queue.popleft()
            cfg = self.configs[node]
            links: list[DependencyLink] = []

            for declaration in cfg.dependencies():
                resolved = self.dependency_resolver.resolve_dependency(
                    declaration,
                    parent_version=node.version,
                    parent_platform=node.platform,
                    parent_service=node.service,
                )
                dep_cfg = self._resolve_dependency_config(node, resolved.service, resolved.version, resolved.platform)
                dep_node = dep_cfg.node
                self.configs.setdefault(dep_node, dep_cfg)

                # Tag the canonical version name, never "latest" or an extra tag
                tag_version = replace(resolved, version=dep_node.version).tag_version
                links.append(DependencyLink(declaration, dep_node, tag_version))

                if graph.add_edge(node, dep_node):
                    logger.debug("graph.edge_added", source=node.key, target=dep_node.key)

                if dep_node not in visited:
                    visited.add(dep_node)
                    queue.append(dep_node)

            self.links[node] = links

        logger.info(
            "graph.built",
            root=root.key,
            node_count=len(graph),
            edge_count=len(graph.edges),
        )
        return graph

    def build_graphs(self, targets: Iterable[Target]) -> BuildGraph:
        """Build and union the graphs of several targets (structural dedup)."""
        graphs = [self.build_graph(t.service, t.version, t.platform) for t in targets]
        merged = BuildGraph.union(graphs)
        logger.debug("graph.merged", graph_count=len(graphs), node_count=len(merged))
        return merged

    def _resolve_dependency_config(
        self,
        parent: Node,
        service: str,
        version: str,
        platform: str,
    ) -> EffectiveConfig:
        try:
            return self.config_resolver.resolve(service, version, platform or None)
        except ConfigValidationError as e:
            if e.field in ("version", "platform"):
                raise DependencyResolutionError(
                    f"dependency '{service}' of '{parent.key}' cannot be resolved: {e.message}",
                    service=parent.service,
                    dependency=service,
                ) from e
            raise
