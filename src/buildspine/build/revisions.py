"""
Git revision cache - ``(url, ref) -> resolved revision``.

Resolving a branch or tag to a commit makes the Service Definition Hash
change when the branch moves, even though the descriptor is untouched.

The cache is owned by one orchestrator run and passed explicitly to
whatever needs it; nothing is module-global and nothing is persisted. The
run is single-threaded, so a lookup followed by a store needs no locking.
"""

from __future__ import annotations

import re
import shutil
import subprocess
from collections.abc import Callable, Iterable, Iterator, Mapping

from buildspine.core.logging import get_logger
from buildspine.graph.config_resolver import EffectiveConfig

logger = get_logger(__name__)

_SHA_PATTERN = re.compile(r"^[0-9a-f]{40}$")

#: Resolves ``(url, ref)`` to a revision, or None if it cannot.
RevisionResolver = Callable[[str, str | None], str | None]


class RevisionCache(Mapping[tuple[str, str | None], str]):
    """Lazily populated revision lookups for one run."""

    def __init__(self, resolver: RevisionResolver | None = None):
        self._resolver = resolver or git_ls_remote
        self._entries: dict[tuple[str, str | None], str] = {}
        self._unresolved: set[tuple[str, str | None]] = set()
        self.misses = 0

    def resolve(self, url: str, ref: str | None) -> str | None:
        """Return the cached revision, resolving it on first use."""
        key = (url, ref)
        if key in self._entries:
            return self._entries[key]
        # A failed lookup is not retried within the run
        if key in self._unresolved:
            return None

        self.misses += 1
        revision = self._resolver(url, ref)
        if revision:
            self._entries[key] = revision
            logger.debug("revisions.resolved", url=url, ref=ref, revision=revision[:12])
        else:
            self._unresolved.add(key)
            logger.warning("revisions.unresolved", url=url, ref=ref)
        return revision

    def resolve_configs(self, configs: Iterable[EffectiveConfig]) -> RevisionCache:
        """Resolve every git source of the given configurations; returns self."""
        for cfg in configs:
            for source in cfg.config.sources.values():
                if source.is_git and source.url:
                    self.resolve(source.url, source.ref)
        return self

    def __getitem__(self, key: tuple[str, str | None]) -> str:
        return self._entries[key]

    def __iter__(self) -> Iterator[tuple[str, str | None]]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


def git_ls_remote(url: str, ref: str | None, timeout: int = 30) -> str | None:
    """Resolve a ref with ``git ls-remote``; a full SHA is returned as is."""
    if ref and _SHA_PATTERN.match(ref):
        return ref

    git = shutil.which("git")
    if git is None:
        logger.warning("revisions.git_not_found")
        return None

    try:
        result = subprocess.run(
            [git, "ls-remote", url, ref or "HEAD"],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (subprocess.TimeoutExpired, OSError) as exc:
        logger.warning("revisions.ls_remote_failed", url=url, ref=ref, error=str(exc))
        return None

    if result.returncode != 0:
        logger.warning("revisions.ls_remote_failed", url=url, ref=ref, error=result.stderr.strip())
        return None

    lines = [line.split() for line in result.stdout.strip().splitlines() if line.strip()]
    if not lines:
        return None
    # Prefer the peeled commit of an annotated tag
    for sha, name in lines:
        if name.endswith("^{}"):
            return sha
    return lines[0][0]
