"""
Cycle Detector / Topological Sorter.

Depth-first traversal from every node (in graph insertion order) along
dependency edges, with three-color marking:

    WHITE (0): unvisited
    GRAY  (1): on the current path
    BLACK (2): finished

Meeting a GRAY node is a back-edge; the cycle is the current path from
that node onwards. Traversal continues after a back-edge so every cycle in
the graph is reported by a single CycleError.

Because edges point from dependent to dependency, the DFS finishing order
already lists dependencies before their dependents. Ties between
independent subtrees follow insertion/discovery order, never names.

The traversal uses an explicit stack, so deep graphs do not hit the
interpreter recursion limit.
"""

from __future__ import annotations

from collections.abc import Iterator

from buildspine.core.errors import CycleError
from buildspine.core.logging import get_logger
from buildspine.graph.models import BuildGraph, Node

logger = get_logger(__name__)

WHITE, GRAY, BLACK = 0, 1, 2


def _traverse(graph: BuildGraph) -> tuple[list[Node], list[list[str]]]:
    """Return ``(finishing order, cycles)`` for the whole graph."""
    color = {node: WHITE for node in graph}
    order: list[Node] = []
    cycles: list[list[str]] = []

    for start in graph:
        if color[start] != WHITE:
            continue

        color[start] = GRAY
        path: list[Node] = [start]
        pending: list[Iterator[Node]] = [iter(graph.dependencies_of(start))]

        while pending:
            node = path[-1]
            for neighbor in pending[-1]:
                if color[neighbor] == GRAY:
                    cycle_start = path.index(neighbor)
                    cycles.append([n.key for n in path[cycle_start:]] + [neighbor.key])
                elif color[neighbor] == WHITE:
                    color[neighbor] = GRAY
                    path.append(neighbor)
                    pending.append(iter(graph.dependencies_of(neighbor)))
                    break
            else:
                color[node] = BLACK
                order.append(node)
                path.pop()
                pending.pop()

    return order, cycles


def find_cycles(graph: BuildGraph) -> list[list[str]]:
    """All cycles in the graph as lists of node keys (first key repeated at the end)."""
    _, cycles = _traverse(graph)
    return cycles


def topological_sort(graph: BuildGraph) -> list[Node]:
    """
    Linear build order, dependencies first.

    Raises:
        CycleError: With every detected cycle, if the graph is not a DAG
    """
    order, cycles = _traverse(graph)
    if cycles:
        logger.error("sorter.cycles_detected", cycle_count=len(cycles), cycles=[" -> ".join(c) for c in cycles])
        raise CycleError(cycles)

    logger.debug("sorter.sorted", order=[n.key for n in order])
    return order


def validate_graph(graph: BuildGraph) -> list[str]:
    """
    Validate a graph without raising.

    Returns list of error messages (empty if valid).
    """
    errors = []
    for edge in graph.edges:
        if edge.source not in graph or edge.target not in graph:
            errors.append(f"edge {edge} references a node outside the graph")
    for cycle in find_cycles(graph):
        errors.append(f"cycle: {' -> '.join(cycle)}")
    return errors
