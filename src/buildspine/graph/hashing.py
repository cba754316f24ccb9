"""
Hash Engine - Service Definition Hash per graph node.

The hash is SHA-256 over, in this fixed order:

    1. node identity                 service:version[:platform]
    2. dockerfile digest             SHA-256 of the file bytes ("missing" if absent)
    3. sources                       sorted "key:ref_or_url" (local: "key:path")
    4. external images               sorted image references
    5. build args                    sorted "key=value"
    6. TLS                           enabled, cert_name, ca_name
    7. dependency hashes             declared order, already computed

Because (7) needs every dependency's hash, hashes are computed strictly in
topological order. A dependency whose hash is missing means the caller
walked the graph out of order; that is a HashComputationError, never a
silent default.

The result is stored on built images as ``<namespace>.service-def-hash``
and read back to decide whether a dependency can be skipped.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path

from buildspine.core.errors import HashComputationError
from buildspine.core.hashing import compute_hash, file_digest
from buildspine.core.logging import get_logger
from buildspine.graph.config_resolver import EffectiveConfig
from buildspine.graph.models import Node

logger = get_logger(__name__)

MISSING_DOCKERFILE = "missing"

#: ``(url, ref) -> resolved revision`` lookups supplied by the caller.
RevisionLookup = Mapping[tuple[str, str | None], str]


def source_fingerprints(config: EffectiveConfig, revisions: RevisionLookup | None = None) -> list[str]:
    """Sorted ``key:ref_or_url`` strings for a node's sources."""
    pairs = []
    for key, source in config.config.sources.items():
        if not source.is_git:
            pairs.append(f"{key}:{source.path}")
            continue
        resolved = revisions.get((source.url, source.ref)) if revisions else None
        pairs.append(f"{key}:{resolved or source.ref or source.url}")
    return sorted(pairs)


def compute_service_hash(
    node: Node,
    config: EffectiveConfig,
    dependency_hashes: Sequence[str],
    root: Path | str = ".",
    revisions: RevisionLookup | None = None,
) -> str:
    """
    Hash one node. Pure function of its inputs plus the dockerfile bytes.

    Args:
        node: Node being hashed
        config: Its effective configuration
        dependency_hashes: Hashes of its direct dependencies, declared order
        root: Repository root the dockerfile path is relative to
        revisions: Optional resolved git revisions

    Returns:
        64-character hex digest
    """
    cfg = config.config
    dockerfile = file_digest(Path(root) / cfg.dockerfile) or MISSING_DOCKERFILE
    images = sorted(image.reference for image in cfg.external_images.values())
    build_args = sorted(f"{k}={v}" for k, v in cfg.build_args.items())
    tls = cfg.tls

    return compute_hash(
        f"node={node.key}",
        f"dockerfile={dockerfile}",
        f"sources={','.join(source_fingerprints(config, revisions))}",
        f"images={','.join(images)}",
        f"build_args={','.join(build_args)}",
        f"tls={str(tls.enabled).lower()},{tls.cert_name or ''},{tls.ca_name or ''}",
        f"deps={','.join(dependency_hashes)}",
    )


def compute_graph_hashes(
    order: Sequence[Node],
    configs: Mapping[Node, EffectiveConfig],
    dependencies: Mapping[Node, Sequence[Node]],
    root: Path | str = ".",
    revisions: RevisionLookup | None = None,
) -> dict[Node, str]:
    """
    Hash every node in build order.

    Args:
        order: Topological order (dependencies first)
        configs: Effective configuration per node
        dependencies: Direct dependency nodes per node, declared order
        root: Repository root
        revisions: Optional resolved git revisions

    Raises:
        HashComputationError: A dependency was not hashed before its dependent
    """
    hashes: dict[Node, str] = {}
    for node in order:
        dep_hashes = []
        for dep in dependencies.get(node, ()):
            if dep not in hashes:
                raise HashComputationError(node.key, dep.key)
            dep_hashes.append(hashes[dep])
        hashes[node] = compute_service_hash(node, configs[node], dep_hashes, root, revisions)
        logger.debug("hash.computed", node=node.key, hash=hashes[node][:12])
    return hashes
