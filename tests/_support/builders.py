"""In-memory ImageBuilder for orchestrator and CLI tests."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any


class RecordingBuilder:
    """
    ImageBuilder double.

    ``fail`` holds primary references (first tag) whose build returns 1.
    Successful builds store their labels under every tag in ``images``;
    ``remote`` simulates registry manifests for CI lookups.
    """

    def __init__(self, fail: Sequence[str] = ()):
        self.fail = set(fail)
        self.builds: list[dict[str, Any]] = []
        self.images: dict[str, dict[str, str]] = {}
        self.remote: dict[str, dict[str, str]] = {}

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
        self.builds.append(
            {
                "context": Path(context),
                "dockerfile": Path(dockerfile),
                "platforms": list(platforms),
                "tags": list(tags),
                "build_args": dict(build_args),
                "labels": dict(labels),
                "progress_mode": progress_mode,
                "push": push,
                "provenance": provenance,
                "is_local": is_local,
            }
        )
        if tags[0] in self.fail:
            return 1
        for tag in tags:
            self.images[tag] = dict(labels)
        return 0

    def image_exists_locally(self, ref: str) -> bool:
        return ref in self.images

    def read_label(self, ref: str, key: str) -> str | None:
        labels = self.images.get(ref) or self.remote.get(ref) or {}
        return labels.get(key)

    def inspect_remote_manifest(self, ref: str) -> bool:
        return ref in self.remote

    @property
    def built(self) -> list[str]:
        """Primary reference of every build, in call order."""
        return [b["tags"][0] for b in self.builds]

    def build_for(self, ref: str) -> dict[str, Any]:
        for b in self.builds:
            if b["tags"][0] == ref:
                return b
        raise KeyError(ref)
