"""
Build graph engine.

    config_resolver       layered effective configuration per node
    dependency_resolver   version/platform rules for one dependency
    builder               root -> full graph expansion
    sorter                topological order and cycle reporting
    hashing               Service Definition Hash per node
"""

from buildspine.graph.builder import DependencyLink, GraphBuilder, Target
from buildspine.graph.config_resolver import ConfigResolver, EffectiveConfig, merge_layer, merge_sources
from buildspine.graph.dependency_resolver import DependencyResolver
from buildspine.graph.hashing import compute_graph_hashes, compute_service_hash
from buildspine.graph.models import BuildGraph, DependencyDeclaration, Edge, Node, ResolvedDependency
from buildspine.graph.sorter import find_cycles, topological_sort, validate_graph

__all__ = [
    "BuildGraph",
    "ConfigResolver",
    "DependencyDeclaration",
    "DependencyLink",
    "DependencyResolver",
    "Edge",
    "EffectiveConfig",
    "GraphBuilder",
    "Node",
    "ResolvedDependency",
    "Target",
    "compute_graph_hashes",
    "compute_service_hash",
    "find_cycles",
    "merge_layer",
    "merge_sources",
    "topological_sort",
    "validate_graph",
]
