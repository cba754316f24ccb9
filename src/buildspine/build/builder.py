"""
Image builder - the external collaborator that actually builds images.

The orchestrator only talks to the :class:`ImageBuilder` protocol. The
shipped implementation, :class:`DockerBuildxBuilder`, drives the ``docker``
CLI via subprocess (``docker buildx build``, ``docker image inspect``,
``docker buildx imagetools inspect``). No docker SDK: any runtime exposing
a ``docker`` CLI works.

Build output is streamed straight to the terminal; only inspection
commands are captured.
"""

from __future__ import annotations

import json
import shutil
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable

from buildspine.core.errors import DockerNotFoundError, ExternalBuildError
from buildspine.core.logging import get_logger

logger = get_logger(__name__)

_NO_VALUE = "<no value>"


@runtime_checkable
class ImageBuilder(Protocol):
    """Operations the orchestrator needs from an image build tool."""

    def build(
        self,
        context: Path | str,
        dockerfile: Path | str,
        platforms: Sequence[str],
        tags: Sequence[str],
        build_args: Mapping[str, str],
        labels: Mapping[str, str],
        progress_mode: str = "auto",
        push: bool = False,
        provenance: bool = False,
        is_local: bool = True,
    ) -> int:
        """Build (and optionally push) an image; returns the exit status."""
        ...

    def image_exists_locally(self, ref: str) -> bool: ...

    def read_label(self, ref: str, key: str) -> str | None: ...

    def inspect_remote_manifest(self, ref: str) -> bool: ...


class DockerBuildxBuilder:
    """
    :class:`ImageBuilder` backed by ``docker buildx``.

    Parameters
    ----------
    builder
        Optional buildx builder instance name (``--builder``).
    timeout
        Timeout in seconds for inspection commands. Builds are not timed out.

    Example::

        builder = DockerBuildxBuilder()
        code = builder.build(
            context=".",
            dockerfile="dockerfiles/revad-base.Dockerfile",
            platforms=["linux/amd64"],
            tags=["revad-base:v1.0.0"],
            build_args={},
            labels={"io.buildspine.service-def-hash": "ab12..."},
        )
    """

    def __init__(self, builder: str | None = None, timeout: int = 60) -> None:
        self.builder = builder
        self.timeout = timeout
        self._docker_cmd = self._find_docker()

    # ------------------------------------------------------------------
    # Docker CLI discovery
    # ------------------------------------------------------------------

    @staticmethod
    def _find_docker() -> str:
        """Find the docker CLI binary."""
        docker = shutil.which("docker")
        if docker is None:
            raise DockerNotFoundError(
                "Docker CLI not found on PATH. Install Docker (with the buildx plugin) or add it to PATH."
            )
        return docker

    # ------------------------------------------------------------------
    # ImageBuilder
    # ------------------------------------------------------------------

    def build(
        self,
        context: Path | str,
        dockerfile: Path | str,
        platforms: Sequence[str],
        tags: Sequence[str],
        build_args: Mapping[str, str],
        labels: Mapping[str, str],
        progress_mode: str = "auto",
        push: bool = False,
        provenance: bool = False,
        is_local: bool = True,
    ) -> int:
        cmd = self.build_command(
            context,
            dockerfile,
            platforms,
            tags,
            build_args,
            labels,
            progress_mode=progress_mode,
            push=push,
            provenance=provenance,
            is_local=is_local,
        )
        logger.debug("docker.exec", cmd=" ".join(cmd))
        try:
            result = subprocess.run(cmd)
        except OSError as exc:
            raise ExternalBuildError(f"could not start docker buildx: {exc}", cause=exc) from exc
        return result.returncode

    def build_command(
        self,
        context: Path | str,
        dockerfile: Path | str,
        platforms: Sequence[str],
        tags: Sequence[str],
        build_args: Mapping[str, str],
        labels: Mapping[str, str],
        *,
        progress_mode: str = "auto",
        push: bool = False,
        provenance: bool = False,
        is_local: bool = True,
    ) -> list[str]:
        """The ``docker buildx build`` argv for the given options."""
        cmd = [self._docker_cmd, "buildx", "build"]
        if self.builder:
            cmd.extend(["--builder", self.builder])
        cmd.extend(["--file", str(dockerfile)])
        if platforms:
            cmd.extend(["--platform", ",".join(platforms)])
        for tag in tags:
            cmd.extend(["--tag", tag])
        for key, value in build_args.items():
            cmd.extend(["--build-arg", f"{key}={value}"])
        for key, value in labels.items():
            cmd.extend(["--label", f"{key}={value}"])
        cmd.extend(["--progress", progress_mode])
        cmd.append(f"--provenance={'true' if provenance else 'false'}")
        if provenance:
            cmd.append("--sbom=true")
        if push:
            cmd.append("--push")
        elif is_local:
            cmd.append("--load")
        cmd.append(str(context))
        return cmd

    def image_exists_locally(self, ref: str) -> bool:
        result = self._run_docker(["image", "inspect", ref])
        return result.returncode == 0

    def read_label(self, ref: str, key: str) -> str | None:
        """Read a label from the local image, falling back to the remote manifest."""
        if self.image_exists_locally(ref):
            result = self._run_docker(
                ["image", "inspect", "--format", f'{{{{ index .Config.Labels "{key}" }}}}', ref]
            )
            value = result.stdout.strip()
            if result.returncode != 0 or not value or value == _NO_VALUE:
                return None
            return value

        result = self._run_docker(["buildx", "imagetools", "inspect", ref, "--format", "{{json .Image}}"])
        if result.returncode != 0 or not result.stdout.strip():
            return None
        try:
            image = json.loads(result.stdout)
        except json.JSONDecodeError:
            logger.warning("docker.unparsable_manifest", ref=ref)
            return None
        # Multi-arch indexes map platform -> image config
        configs = image.values() if "config" not in image else [image]
        for config in configs:
            labels = (config or {}).get("config", {}).get("Labels") or {}
            if key in labels:
                return labels[key]
        return None

    def inspect_remote_manifest(self, ref: str) -> bool:
        result = self._run_docker(["buildx", "imagetools", "inspect", ref])
        return result.returncode == 0

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _run_docker(self, args: list[str]) -> subprocess.CompletedProcess[str]:
        """Run an inspection command; failures are reported through returncode."""
        cmd = [self._docker_cmd, *args]
        logger.debug("docker.exec", cmd=" ".join(cmd))
        try:
            return subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            logger.warning("docker.timeout", cmd=" ".join(args), timeout=self.timeout)
            return subprocess.CompletedProcess(cmd, 124, "", "timeout")
