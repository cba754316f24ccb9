"""Build execution: image builder, tags, git revisions and the orchestrator."""

from buildspine.build.builder import DockerBuildxBuilder, ImageBuilder
from buildspine.build.orchestrator import (
    BuildOrchestrator,
    BuildPlan,
    BuildSummary,
    NodeOutcome,
    NodeStatus,
    RunStatus,
    SkipReason,
)
from buildspine.build.revisions import RevisionCache, git_ls_remote

__all__ = [
    "BuildOrchestrator",
    "BuildPlan",
    "BuildSummary",
    "DockerBuildxBuilder",
    "ImageBuilder",
    "NodeOutcome",
    "NodeStatus",
    "RevisionCache",
    "RunStatus",
    "SkipReason",
    "git_ls_remote",
]
