"""
buildspine - dependency-aware container image builds.

Service descriptors declare how an image is built and what it depends on.
buildspine expands a requested ``service:version[:platform]`` into a graph
of concrete nodes, orders it dependencies-first, fingerprints every node
with a Service Definition Hash, and drives ``docker buildx`` over the
result, skipping dependencies whose stored hash is still current.

Layers::

    core/           errors, logging, settings, hashing primitives
    descriptors/    YAML descriptor models and the on-disk store
    graph/          config layering, dependency rules, graph, sort, hashes
    build/          image builder, tags, revisions, orchestrator
    cli/            typer application
"""

__version__ = "0.3.0"

from buildspine.core.errors import BuildSpineError
from buildspine.core.settings import BuildSettings, DepCacheMode, get_settings

__all__ = [
    "__version__",
    "BuildSpineError",
    "BuildSettings",
    "DepCacheMode",
    "get_settings",
]
