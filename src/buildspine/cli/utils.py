"""
CLI utility helpers: output formatting and error exits.
"""

from __future__ import annotations

import json
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from buildspine.build.orchestrator import BuildPlan, BuildSummary, NodeStatus, RunStatus
from buildspine.core.errors import BuildSpineError

console = Console()
err_console = Console(stderr=True)

#: Exit code for an invalid plan (descriptor, config, dependency, cycle).
EXIT_PLAN_ERROR = 2
EXIT_FAILURE = 1

_STATUS_STYLES = {
    NodeStatus.BUILT: "green",
    NodeStatus.SKIPPED: "yellow",
    NodeStatus.FAILED: "bold red",
    NodeStatus.PENDING: "dim",
}

_RUN_STYLES = {
    RunStatus.COMPLETED: "bold green",
    RunStatus.PARTIAL: "bold yellow",
    RunStatus.FAILED: "bold red",
}


# ── Output helpers ───────────────────────────────────────────────────────


def output_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def exit_with_error(error: BuildSpineError, *, as_json: bool = False) -> None:
    """Report a buildspine error and exit (2 for plan errors, 1 otherwise)."""
    code = EXIT_PLAN_ERROR if error.aborts_plan else EXIT_FAILURE
    if as_json:
        output_json({"error": error.to_dict()})
    else:
        err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error.message}")
    raise typer.Exit(code=code)


def print_plan(plan: BuildPlan) -> None:
    """Render the build order as a Rich table."""
    table = Table(title="Build order", show_lines=False, pad_edge=False)
    table.add_column("#", justify="right")
    table.add_column("node", overflow="fold")
    table.add_column("target")
    table.add_column("hash")
    table.add_column("dependencies", overflow="fold")
    for index, node in enumerate(plan.order, start=1):
        deps = ", ".join(link.node.key for link in plan.links.get(node, []))
        table.add_row(
            str(index),
            node.key,
            "✓" if plan.is_target(node) else "",
            plan.hashes[node][:12],
            deps or "-",
        )
    console.print(table)


def print_summary(summary: BuildSummary) -> None:
    """Render per-node outcomes plus a one-line status."""
    table = Table(title=f"Build {summary.run_id}", show_lines=False, pad_edge=False)
    table.add_column("node", overflow="fold")
    table.add_column("status")
    table.add_column("detail", overflow="fold")
    for outcome in summary.outcomes:
        style = _STATUS_STYLES[outcome.status]
        if outcome.status == NodeStatus.FAILED:
            detail = outcome.error or ""
        elif outcome.reason is not None:
            detail = outcome.reason.value
            if outcome.caused_by:
                detail += f" ({outcome.caused_by})"
        else:
            detail = ", ".join(outcome.tags)
        table.add_row(outcome.node.key, f"[{style}]{outcome.status.value}[/{style}]", detail)
    console.print(table)

    style = _RUN_STYLES[summary.status]
    console.print(
        f"[{style}]{summary.status.value.upper()}[/{style}]"
        f"  built={len(summary.built)} skipped={len(summary.skipped)} failed={len(summary.failed)}"
    )
