"""
Build Orchestrator - plans and executes a multi-service build.

Planning (no side effects besides descriptor reads and, optionally,
``git ls-remote``):

    targets -> GraphBuilder -> topological_sort -> compute_graph_hashes -> BuildPlan

Execution walks ``plan.order`` once. Every node ends in exactly one state:

    Pending -> Built | Skipped(reason) | Failed

1. A dependency (a node that was not requested) is checked against the
   stored service hash unless dep-cache mode is ``off``. A match skips it as
   ``fresh``. A miss builds it with a warning (``soft``) or aborts the run
   with StaleDependencyError before the builder is invoked (``strict``).
2. Otherwise the image builder is invoked with the effective build args,
   dependency image references, and the hash label.
3. A failed node skips every transitive dependent (``dependency_failed``),
   regardless of fail-fast. Pending nodes that no longer serve any
   remaining target are skipped as ``not_needed``, so the dependencies of a
   single target always fail fast.
4. ``fail_fast`` stops the outer loop after the first failure; the rest are
   skipped as ``fail_fast``.

The walk is an explicit loop over the precomputed order; skip bookkeeping
is a dictionary update, never exception unwinding.
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from buildspine.build import tags as image_tags
from buildspine.build.builder import DockerBuildxBuilder, ImageBuilder
from buildspine.build.revisions import RevisionCache
from buildspine.core.errors import DescriptorNotFoundError, ExternalBuildError, StaleDependencyError
from buildspine.core.hashing import is_digest
from buildspine.core.logging import LogContext, get_logger
from buildspine.core.settings import BuildSettings, DepCacheMode
from buildspine.descriptors.store import DescriptorStore
from buildspine.graph.builder import DependencyLink, GraphBuilder, Target
from buildspine.graph.config_resolver import EffectiveConfig
from buildspine.graph.hashing import compute_graph_hashes
from buildspine.graph.models import BuildGraph, Node
from buildspine.graph.sorter import topological_sort

logger = get_logger(__name__)


class NodeStatus(str, Enum):
    """Per-node state."""

    PENDING = "pending"
    BUILT = "built"
    SKIPPED = "skipped"
    FAILED = "failed"


class SkipReason(str, Enum):
    """Why a node was not built."""

    FRESH = "fresh"  # Stored hash matches
    DEPENDENCY_FAILED = "dependency_failed"  # A dependency failed
    NOT_NEEDED = "not_needed"  # Every target needing it is already lost
    FAIL_FAST = "fail_fast"  # Run stopped after the first failure


class RunStatus(str, Enum):
    """Overall status of a build run."""

    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL = "partial"  # Some targets succeeded, some nodes failed


# =============================================================================
# Plan / result models
# =============================================================================


@dataclass
class BuildPlan:
    """Everything needed to execute a build, computed before any build starts."""

    graph: BuildGraph
    order: list[Node]
    configs: dict[Node, EffectiveConfig]
    links: dict[Node, list[DependencyLink]]
    hashes: dict[Node, str]
    targets: list[Node]

    @property
    def build_order(self) -> list[str]:
        return [node.key for node in self.order]

    def is_target(self, node: Node) -> bool:
        return node in self.targets

    def to_dict(self) -> dict[str, Any]:
        return {
            "targets": [node.key for node in self.targets],
            "order": [
                {
                    "node": node.key,
                    "target": self.is_target(node),
                    "hash": self.hashes[node],
                    "dependencies": [link.node.key for link in self.links.get(node, [])],
                }
                for node in self.order
            ],
        }


@dataclass
class NodeOutcome:
    """Result of one node."""

    node: Node
    status: NodeStatus
    reason: SkipReason | None = None
    hash: str | None = None
    tags: list[str] = field(default_factory=list)
    error: str | None = None
    caused_by: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "node": self.node.key,
            "status": self.status.value,
            "reason": self.reason.value if self.reason else None,
            "hash": self.hash,
            "tags": self.tags,
            "error": self.error,
            "caused_by": self.caused_by,
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class BuildSummary:
    """Terminal state of a build run."""

    run_id: str
    status: RunStatus
    outcomes: list[NodeOutcome]
    started_at: datetime
    completed_at: datetime | None = None

    def _keys(self, status: NodeStatus) -> list[str]:
        return [o.node.key for o in self.outcomes if o.status == status]

    @property
    def built(self) -> list[str]:
        return self._keys(NodeStatus.BUILT)

    @property
    def skipped(self) -> list[str]:
        return self._keys(NodeStatus.SKIPPED)

    @property
    def failed(self) -> list[str]:
        return self._keys(NodeStatus.FAILED)

    @property
    def exit_code(self) -> int:
        """Non-zero whenever any node failed, even if others succeeded."""
        return 1 if self.failed else 0

    def outcome(self, node: Node | str) -> NodeOutcome | None:
        key = node.key if isinstance(node, Node) else node
        for o in self.outcomes:
            if o.node.key == key:
                return o
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "built": self.built,
            "skipped": self.skipped,
            "failed": self.failed,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


# =============================================================================
# Orchestrator
# =============================================================================


def _source_arg(key: str) -> str:
    return re.sub(r"[^A-Za-z0-9]", "_", key).upper()


class BuildOrchestrator:
    """
    Plans and runs builds against an :class:`ImageBuilder`.

    Example:
        orchestrator = BuildOrchestrator(settings, DockerBuildxBuilder())
        targets = orchestrator.expand_targets(service="reva-gateway")
        plan = orchestrator.plan(targets)
        summary = orchestrator.run(plan)
        raise SystemExit(summary.exit_code)
    """

    def __init__(
        self,
        settings: BuildSettings,
        builder: ImageBuilder | None = None,
        store: DescriptorStore | None = None,
        revisions: RevisionCache | None = None,
        extra_tags: Sequence[str] = (),
    ):
        self.settings = settings
        self._builder = builder
        self.store = store or DescriptorStore(settings.services_path)
        self.revisions = revisions or RevisionCache()
        self.extra_tags = list(extra_tags)

    @property
    def builder(self) -> ImageBuilder:
        """The image builder; ``docker buildx`` unless one was injected."""
        if self._builder is None:
            self._builder = DockerBuildxBuilder()
        return self._builder

    # ------------------------------------------------------------------
    # Targets
    # ------------------------------------------------------------------

    def expand_targets(
        self,
        service: str | None = None,
        versions: Sequence[str] | None = None,
        all_versions: bool = False,
        platform: str | None = None,
    ) -> list[Target]:
        """
        Turn CLI-style selectors into concrete targets.

        Defaults: every service, its latest version, every platform. A
        platform filter drops services that do not provide that platform
        unless the service was named explicitly.
        """
        if service is not None:
            if not self.store.service_exists(service):
                raise DescriptorNotFoundError(service)
            services = [service]
        else:
            services = self.store.list_services()

        targets: list[Target] = []
        for name in services:
            manifest = self.store.load_version_manifest(name)
            if versions:
                specs: list[str | None] = list(versions)
            elif all_versions and manifest is not None:
                specs = list(manifest.names)
            else:
                specs = [None]

            platforms = self.store.load_platform_manifest(name)
            if platforms is None:
                if platform and service is None:
                    continue
                platform_names: list[str | None] = [platform]
            elif platform:
                if platforms.get(platform) is None and service is None:
                    continue
                platform_names = [platform]
            else:
                platform_names = list(platforms.names)

            for spec in specs:
                for platform_name in platform_names:
                    targets.append(Target(name, spec, platform_name))

        logger.debug("orchestrator.targets", count=len(targets))
        return targets

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def plan(self, targets: Iterable[Target]) -> BuildPlan:
        """
        Resolve, sort and hash. Raises before any build on an invalid plan.

        Raises:
            ConfigValidationError, DependencyResolutionError, CycleError,
            HashComputationError, DescriptorError
        """
        graph_builder = GraphBuilder(self.store)
        graph = graph_builder.build_graphs(targets)
        order = topological_sort(graph)

        revisions = None
        if self.settings.resolve_git_refs:
            revisions = self.revisions.resolve_configs(graph_builder.configs[n] for n in order)

        dependencies = {node: [link.node for link in graph_builder.links.get(node, [])] for node in order}
        hashes = compute_graph_hashes(order, graph_builder.configs, dependencies, self.settings.root, revisions)

        plan = BuildPlan(
            graph=graph,
            order=order,
            configs={node: graph_builder.configs[node] for node in order},
            links={node: graph_builder.links.get(node, []) for node in order},
            hashes=hashes,
            targets=list(graph_builder.roots),
        )
        logger.info(
            "orchestrator.planned",
            targets=[n.key for n in plan.targets],
            node_count=len(order),
        )
        return plan

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def build(self, targets: Iterable[Target]) -> BuildSummary:
        """Plan and run."""
        return self.run(self.plan(targets))

    def run(self, plan: BuildPlan) -> BuildSummary:
        """
        Execute a plan.

        Raises:
            StaleDependencyError: In strict dep-cache mode, before building a stale dependency
        """
        run_id = uuid.uuid4().hex[:12]
        started_at = datetime.now(UTC)
        outcomes: dict[Node, NodeOutcome] = {}
        stopped = False

        with LogContext(run_id=run_id):
            logger.info(
                "orchestrator.run_started",
                node_count=len(plan.order),
                dep_cache=self.settings.dep_cache.value,
                fail_fast=self.settings.fail_fast,
            )

            for node in plan.order:
                if node in outcomes:
                    continue
                if stopped:
                    outcomes[node] = NodeOutcome(node, NodeStatus.SKIPPED, SkipReason.FAIL_FAST, plan.hashes[node])
                    continue

                if not plan.is_target(node) and self.settings.dep_cache != DepCacheMode.OFF:
                    if self._is_fresh(plan, node):
                        outcomes[node] = NodeOutcome(node, NodeStatus.SKIPPED, SkipReason.FRESH, plan.hashes[node])
                        continue

                outcome = self._build_node(plan, node)
                outcomes[node] = outcome

                if outcome.status == NodeStatus.FAILED:
                    self._cascade(plan, node, outcomes)
                    self._prune(plan, outcomes)
                    if self.settings.fail_fast:
                        stopped = True

            completed_at = datetime.now(UTC)
            ordered = [outcomes[node] for node in plan.order]
            status = self._status(plan, ordered)

            logger.info(
                "orchestrator.run_completed",
                status=status.value,
                built=sum(o.status == NodeStatus.BUILT for o in ordered),
                skipped=sum(o.status == NodeStatus.SKIPPED for o in ordered),
                failed=sum(o.status == NodeStatus.FAILED for o in ordered),
                duration_seconds=(completed_at - started_at).total_seconds(),
            )

        return BuildSummary(
            run_id=run_id,
            status=status,
            outcomes=ordered,
            started_at=started_at,
            completed_at=completed_at,
        )

    # ------------------------------------------------------------------
    # Build arguments
    # ------------------------------------------------------------------

    def build_args(self, plan: BuildPlan, node: Node) -> dict[str, str]:
        """Build args for one node: descriptor args, images, sources, TLS, dependencies."""
        cfg = plan.configs[node].config
        args = dict(cfg.build_args)

        for image in cfg.external_images.values():
            if image.build_arg:
                args[image.build_arg] = image.reference

        for key, source in cfg.sources.items():
            prefix = _source_arg(key)
            if source.is_git:
                args[f"{prefix}_URL"] = source.url
                if source.ref:
                    args[f"{prefix}_REF"] = source.ref
            else:
                args[f"{prefix}_PATH"] = source.path

        if cfg.tls.enabled:
            args["TLS_ENABLED"] = "true"
            if cfg.tls.cert_name:
                args["TLS_CERT_NAME"] = cfg.tls.cert_name
            if cfg.tls.ca_name:
                args["TLS_CA_NAME"] = cfg.tls.ca_name

        for link in plan.links.get(node, []):
            dep_cfg = plan.configs[link.node]
            args[link.build_arg] = image_tags.reference(dep_cfg, link.tag_version, self.settings.registry)

        return args

    def labels(self, plan: BuildPlan, node: Node) -> dict[str, str]:
        cfg = plan.configs[node]
        labels = dict(cfg.config.labels)
        labels.setdefault("org.opencontainers.image.title", cfg.image_name)
        labels["org.opencontainers.image.version"] = node.tag_version
        labels[self.settings.hash_label] = plan.hashes[node]
        return labels

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _is_fresh(self, plan: BuildPlan, node: Node) -> bool:
        expected = plan.hashes[node]
        ref = image_tags.primary_reference(plan.configs[node], self.settings.registry)

        actual = None
        if self.builder.image_exists_locally(ref):
            actual = self.builder.read_label(ref, self.settings.hash_label)
        elif self.settings.ci and self.builder.inspect_remote_manifest(ref):
            actual = self.builder.read_label(ref, self.settings.hash_label)

        if actual is not None and not is_digest(actual):
            logger.warning("orchestrator.malformed_hash_label", node=node.key, image=ref, label=actual[:64])
            actual = None

        if actual == expected:
            logger.info("orchestrator.dependency_fresh", node=node.key, image=ref)
            return True

        if self.settings.dep_cache == DepCacheMode.STRICT:
            logger.error(
                "orchestrator.dependency_stale",
                node=node.key,
                image=ref,
                expected=expected[:12],
                actual=actual[:12] if actual else None,
            )
            raise StaleDependencyError(node.key, expected, actual, image=ref)

        logger.warning(
            "orchestrator.dependency_stale",
            node=node.key,
            image=ref,
            expected=expected[:12],
            actual=actual[:12] if actual else None,
            action="auto_build",
        )
        return False

    def _build_node(self, plan: BuildPlan, node: Node) -> NodeOutcome:
        cfg = plan.configs[node]
        settings = self.settings
        extra = self.extra_tags if plan.is_target(node) else ()
        refs = image_tags.image_references(cfg, settings.registry, latest=settings.latest, extra_tags=extra)

        started_at = datetime.now(UTC)
        logger.info("orchestrator.node_build_started", node=node.key, tags=refs)
        try:
            exit_code = self.builder.build(
                context=settings.root / cfg.config.context,
                dockerfile=settings.root / cfg.config.dockerfile,
                platforms=settings.target_platforms,
                tags=refs,
                build_args=self.build_args(plan, node),
                labels=self.labels(plan, node),
                progress_mode=settings.progress.value,
                push=settings.push,
                provenance=settings.provenance,
                is_local=settings.is_local,
            )
            if exit_code != 0:
                raise ExternalBuildError(
                    f"image build failed for {node.key} (exit {exit_code})",
                    node=node.key,
                    exit_code=exit_code,
                )
        except ExternalBuildError as e:
            logger.error("orchestrator.node_failed", node=node.key, error=e.message, exit_code=e.exit_code)
            return NodeOutcome(
                node,
                NodeStatus.FAILED,
                hash=plan.hashes[node],
                tags=refs,
                error=e.message,
                started_at=started_at,
                completed_at=datetime.now(UTC),
            )

        logger.info("orchestrator.node_built", node=node.key)
        return NodeOutcome(
            node,
            NodeStatus.BUILT,
            hash=plan.hashes[node],
            tags=refs,
            started_at=started_at,
            completed_at=datetime.now(UTC),
        )

    @staticmethod
    def _cascade(plan: BuildPlan, failed: Node, outcomes: dict[Node, NodeOutcome]) -> None:
        """Skip every transitive dependent of a failed node."""
        for dependent in plan.graph.reachable_dependents(failed):
            if dependent in outcomes:
                continue
            outcomes[dependent] = NodeOutcome(
                dependent,
                NodeStatus.SKIPPED,
                SkipReason.DEPENDENCY_FAILED,
                plan.hashes[dependent],
                caused_by=failed.key,
            )
            logger.warning(
                "orchestrator.node_skipped",
                node=dependent.key,
                reason="dependency_failed",
                failed=failed.key,
            )

    @staticmethod
    def _prune(plan: BuildPlan, outcomes: dict[Node, NodeOutcome]) -> None:
        """Skip pending nodes that no remaining target needs."""
        open_targets = {t for t in plan.targets if t not in outcomes}
        for node in plan.order:
            if node in outcomes or node in open_targets:
                continue
            if not any(d in open_targets for d in plan.graph.reachable_dependents(node)):
                outcomes[node] = NodeOutcome(node, NodeStatus.SKIPPED, SkipReason.NOT_NEEDED, plan.hashes[node])
                logger.info("orchestrator.node_skipped", node=node.key, reason="not_needed")

    @staticmethod
    def _status(plan: BuildPlan, outcomes: list[NodeOutcome]) -> RunStatus:
        if not any(o.status == NodeStatus.FAILED for o in outcomes):
            return RunStatus.COMPLETED
        succeeded = {
            o.node
            for o in outcomes
            if o.status == NodeStatus.BUILT or (o.status == NodeStatus.SKIPPED and o.reason == SkipReason.FRESH)
        }
        if any(t in succeeded for t in plan.targets):
            return RunStatus.PARTIAL
        return RunStatus.FAILED
