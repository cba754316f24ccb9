"""
Graph models - nodes, edges and the build graph.

Pure data structures with no file access. Nodes are frozen value keys;
equality is structural. The graph keeps insertion order for both nodes and
edges so that every traversal (and therefore the build order) is
deterministic for a fixed input.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field


@dataclass(frozen=True, order=True)
class Node:
    """
    A ``(service, version, platform)`` identity in the build graph.

    ``platform`` is empty for single-platform services; ``None`` is
    normalised to ``""`` so both spellings compare equal.
    """

    service: str
    version: str
    platform: str = ""

    def __post_init__(self):
        if self.platform is None:
            object.__setattr__(self, "platform", "")
        if not self.service:
            raise ValueError("node service must not be empty")
        if not self.version:
            raise ValueError(f"node version must not be empty for service '{self.service}'")

    @property
    def key(self) -> str:
        """Stable textual identifier: ``service:version[:platform]``."""
        if self.platform:
            return f"{self.service}:{self.version}:{self.platform}"
        return f"{self.service}:{self.version}"

    @property
    def is_multi_platform(self) -> bool:
        return bool(self.platform)

    @property
    def tag_version(self) -> str:
        """Version in tag form: ``version`` or ``version-platform``."""
        if self.platform:
            return f"{self.version}-{self.platform}"
        return self.version

    @classmethod
    def parse(cls, key: str) -> Node:
        """Inverse of :attr:`key`."""
        parts = key.split(":")
        if len(parts) == 2:
            return cls(parts[0], parts[1])
        if len(parts) == 3:
            return cls(parts[0], parts[1], parts[2])
        raise ValueError(f"invalid node key '{key}' (expected service:version[:platform])")

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class Edge:
    """``source`` depends on ``target``; ``target`` is built first."""

    source: Node
    target: Node

    def __str__(self) -> str:
        return f"{self.source.key} -> {self.target.key}"


@dataclass
class BuildGraph:
    """
    A node set and an edge set with insertion order preserved.

    Invariants:
        - no two nodes share a ``(service, version, platform)`` tuple
        - no duplicate ``(source, target)`` edge
        - both endpoints of every edge are nodes of the graph
    """

    _nodes: dict[Node, None] = field(default_factory=dict)
    _edges: dict[Edge, None] = field(default_factory=dict)
    _deps: dict[Node, list[Node]] = field(default_factory=dict)
    _dependents: dict[Node, list[Node]] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_node(self, node: Node) -> bool:
        """Add a node; returns False if it was already present."""
        if node in self._nodes:
            return False
        self._nodes[node] = None
        self._deps[node] = []
        self._dependents[node] = []
        return True

    def add_edge(self, source: Node, target: Node) -> bool:
        """Add ``source -> target``, adding missing endpoints; False if duplicate."""
        self.add_node(source)
        self.add_node(target)
        edge = Edge(source, target)
        if edge in self._edges:
            return False
        self._edges[edge] = None
        self._deps[source].append(target)
        self._dependents[target].append(source)
        return True

    def merge(self, other: BuildGraph) -> BuildGraph:
        """Union ``other`` into this graph in place and return self."""
        for node in other.nodes:
            self.add_node(node)
        for edge in other.edges:
            self.add_edge(edge.source, edge.target)
        return self

    @classmethod
    def union(cls, graphs: Iterable[BuildGraph]) -> BuildGraph:
        merged = cls()
        for graph in graphs:
            merged.merge(graph)
        return merged

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def nodes(self) -> list[Node]:
        return list(self._nodes)

    @property
    def edges(self) -> list[Edge]:
        return list(self._edges)

    def __contains__(self, node: object) -> bool:
        return node in self._nodes

    def __iter__(self) -> Iterator[Node]:
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def dependencies_of(self, node: Node) -> list[Node]:
        """Direct dependencies in declared order."""
        return list(self._deps.get(node, []))

    def dependents_of(self, node: Node) -> list[Node]:
        """Direct dependents in insertion order."""
        return list(self._dependents.get(node, []))

    def reachable_dependents(self, node: Node) -> list[Node]:
        """Every node that transitively depends on ``node`` (excluding itself)."""
        seen: dict[Node, None] = {}
        stack = list(reversed(self.dependents_of(node)))
        while stack:
            current = stack.pop()
            if current in seen or current == node:
                continue
            seen[current] = None
            stack.extend(reversed(self.dependents_of(current)))
        return list(seen)

    def to_dict(self) -> dict[str, list[str]]:
        """Adjacency mapping of node keys, for diagnostics and JSON output."""
        return {node.key: [dep.key for dep in self._deps[node]] for node in self._nodes}


@dataclass(frozen=True)
class DependencyDeclaration:
    """A dependency as declared in an effective configuration."""

    key: str
    service: str
    build_arg: str
    version: str | None = None
    single_platform: bool = False


@dataclass(frozen=True)
class ResolvedDependency:
    """Outcome of dependency resolution, before the version spec is canonicalised."""

    declaration: DependencyDeclaration
    service: str
    version: str
    platform: str = ""
    inherited: bool = False

    @property
    def tag_version(self) -> str:
        """Tag form used in the dependent's build arg; no platform means unsuffixed."""
        if self.platform:
            return f"{self.version}-{self.platform}"
        return self.version
