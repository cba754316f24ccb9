"""
Root Typer application for the buildspine CLI.

Commands:

    build           plan and build images (or only show the build order)
    list-services   services with their versions and platforms
    validate        resolve every version/platform of one or all services
    hash            print Service Definition Hashes for a node's graph
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError
from typer import Typer

from buildspine.build.builder import DockerBuildxBuilder
from buildspine.build.orchestrator import BuildOrchestrator
from buildspine.cli.utils import (
    EXIT_FAILURE,
    EXIT_PLAN_ERROR,
    console,
    err_console,
    exit_with_error,
    output_json,
    print_plan,
    print_summary,
)
from buildspine.core.errors import BuildSpineError, ConfigValidationError
from buildspine.core.logging import configure_logging, get_logger
from buildspine.core.settings import BuildSettings, DepCacheMode, get_settings
from buildspine.descriptors.store import DescriptorStore
from buildspine.graph.builder import Target

logger = get_logger(__name__)

app = Typer(
    name="buildspine",
    help="buildspine: dependency-aware container image builds.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from buildspine import __version__

        typer.echo(f"buildspine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    root: Path | None = typer.Option(None, "--root", "-r", help="Repository root (default: BUILDSPINE_ROOT or .)."),
    services_dir: str | None = typer.Option(None, "--services-dir", help="Descriptor directory relative to root."),
    log_level: str | None = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR."),
    log_format: str | None = typer.Option(None, "--log-format", help="console or json."),
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Plan, hash and build service images."""
    ctx.obj = {
        "root": root,
        "services_dir": services_dir,
        "log_level": log_level,
        "log_format": log_format,
    }


# ── Helpers ──────────────────────────────────────────────────────────────


def _settings(ctx: typer.Context, as_json: bool = False, **overrides: Any) -> BuildSettings:
    """Settings from env/.env with global options and command flags layered on top."""
    options = dict(ctx.obj or {})
    options.update(overrides)
    try:
        settings = get_settings(**{k: v for k, v in options.items() if v is not None})
    except ValidationError as e:
        exit_with_error(
            ConfigValidationError(f"invalid buildspine settings: {e}", layer="settings"),
            as_json=as_json,
        )
    configure_logging(settings.log_level, settings.log_format, force=True)
    return settings


# ── Commands ─────────────────────────────────────────────────────────────


@app.command("build")
def build(
    ctx: typer.Context,
    service: str | None = typer.Option(None, "--service", "-s", help="Service to build (default: all)."),
    versions: list[str] = typer.Option([], "--version", "-v", help="Version, 'latest' or tag (repeatable)."),
    all_versions: bool = typer.Option(False, "--all-versions", help="Build every version in versions.yaml."),
    platform: str | None = typer.Option(None, "--platform", "-p", help="Only this platform variant."),
    dep_cache: DepCacheMode | None = typer.Option(None, "--dep-cache", help="off, soft or strict."),
    fail_fast: bool | None = typer.Option(None, "--fail-fast/--no-fail-fast", help="Stop after the first failure."),
    show_build_order: bool = typer.Option(False, "--show-build-order", help="Print the plan and exit."),
    push: bool = typer.Option(False, "--push", help="Push images instead of loading them."),
    provenance: bool = typer.Option(False, "--provenance", help="Attach provenance and SBOM."),
    latest: bool | None = typer.Option(None, "--latest/--no-latest", help="Tag the latest version as latest."),
    extra_tags: list[str] = typer.Option([], "--extra-tag", help="Additional tag for every target (repeatable)."),
    json_out: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Build images for the selected services, dependencies first."""
    settings = _settings(
        ctx,
        as_json=json_out,
        dep_cache=dep_cache,
        fail_fast=fail_fast,
        push=push or None,
        provenance=provenance or None,
        latest=latest,
    )

    try:
        builder = None if show_build_order else DockerBuildxBuilder()
        orchestrator = BuildOrchestrator(settings, builder, extra_tags=extra_tags)
        targets = orchestrator.expand_targets(
            service=service,
            versions=versions,
            all_versions=all_versions,
            platform=platform,
        )
        if not targets:
            err_console.print("[yellow]No targets matched.[/yellow]")
            raise typer.Exit(code=EXIT_FAILURE)

        plan = orchestrator.plan(targets)
        if show_build_order:
            if json_out:
                output_json(plan.to_dict())
            else:
                print_plan(plan)
            return

        summary = orchestrator.run(plan)
    except BuildSpineError as e:
        logger.error("cli.build_failed", **e.to_dict())
        exit_with_error(e, as_json=json_out)
        return

    if json_out:
        output_json(summary.to_dict())
    else:
        print_summary(summary)
    if summary.exit_code:
        raise typer.Exit(code=summary.exit_code)


@app.command("list-services")
def list_services(
    ctx: typer.Context,
    json_out: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """List services with their versions and platforms."""
    from rich.table import Table

    settings = _settings(ctx, as_json=json_out)
    store = DescriptorStore(settings.services_path)

    rows = []
    try:
        for name in store.list_services():
            manifest = store.load_version_manifest(name)
            platforms = store.load_platform_manifest(name)
            latest = manifest.latest_entry() if manifest else None
            rows.append(
                {
                    "service": name,
                    "versions": manifest.names if manifest else [],
                    "latest": latest.name if latest else None,
                    "platforms": platforms.names if platforms else [],
                    "default_platform": platforms.default if platforms else None,
                }
            )
    except BuildSpineError as e:
        exit_with_error(e, as_json=json_out)
        return

    if json_out:
        output_json(rows)
        return
    if not rows:
        console.print("[dim]No services.[/dim]")
        return

    table = Table(title="Services", pad_edge=False)
    for column in ("service", "versions", "latest", "platforms"):
        table.add_column(column, overflow="fold")
    for row in rows:
        platforms = [f"{p}*" if p == row["default_platform"] else p for p in row["platforms"]]
        table.add_row(
            row["service"],
            ", ".join(row["versions"]) or "-",
            row["latest"] or "-",
            ", ".join(platforms) or "-",
        )
    console.print(table)


@app.command("validate")
def validate(
    ctx: typer.Context,
    service: str | None = typer.Argument(None, help="Service to validate (default: all)."),
    json_out: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Resolve, sort and hash every version/platform of one or all services."""
    settings = _settings(ctx, as_json=json_out)
    orchestrator = BuildOrchestrator(settings)

    try:
        targets = orchestrator.expand_targets(service=service, all_versions=True)
    except BuildSpineError as e:
        exit_with_error(e, as_json=json_out)
        return

    results = []
    for target in targets:
        label = ":".join(p for p in (target.service, target.version, target.platform) if p)
        try:
            plan = orchestrator.plan([target])
        except BuildSpineError as e:
            results.append({"target": label, "valid": False, "error": e.to_dict()})
            continue
        results.append({"target": label, "valid": True, "nodes": len(plan.order)})

    invalid = [r for r in results if not r["valid"]]
    if json_out:
        output_json({"valid": not invalid, "results": results})
    else:
        for r in results:
            if r["valid"]:
                console.print(f"[green]✓[/green] {r['target']} ({r['nodes']} nodes)")
            else:
                console.print(f"[red]✗[/red] {r['target']}: {r['error']['message']}")
        if not invalid:
            console.print(f"[bold green]{len(results)} target(s) valid[/bold green]")
    if invalid:
        raise typer.Exit(code=EXIT_PLAN_ERROR)


@app.command("hash")
def hash_service(
    ctx: typer.Context,
    service: str = typer.Argument(..., help="Service name."),
    version: str | None = typer.Option(None, "--version", "-v", help="Version, 'latest' or tag."),
    platform: str | None = typer.Option(None, "--platform", "-p", help="Platform variant."),
    json_out: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Print the Service Definition Hash of a node and its dependencies."""
    settings = _settings(ctx, as_json=json_out)
    orchestrator = BuildOrchestrator(settings)

    try:
        plan = orchestrator.plan([Target(service, version, platform)])
    except BuildSpineError as e:
        exit_with_error(e, as_json=json_out)
        return

    hashes = {node.key: plan.hashes[node] for node in plan.order}
    if json_out:
        output_json(hashes)
        return
    for key, digest in hashes.items():
        console.print(f"{digest}  {key}")
