"""
Centralized settings for buildspine.

:class:`BuildSettings` is the single validated source of truth for
everything the engine does not read from descriptors: where the service
tree lives, how images are labelled and tagged, and the dep-cache and
failure policies. Values resolve as: explicit keyword > ``BUILDSPINE_*``
environment variable > ``.env`` file > field default. The CLI passes its
flags as keywords.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DepCacheMode(str, Enum):
    """Policy for dependency hash-freshness checks."""

    OFF = "off"  # Always rebuild dependencies, never consult hashes
    SOFT = "soft"  # Consult hashes, auto-build with a warning on miss
    STRICT = "strict"  # Consult hashes, hard error on miss


class ProgressMode(str, Enum):
    """``docker buildx build --progress`` values."""

    AUTO = "auto"
    PLAIN = "plain"
    TTY = "tty"
    QUIET = "quiet"


class BuildSettings(BaseSettings):
    """buildspine configuration.

    All fields can be set via ``BUILDSPINE_*`` environment variables (e.g.
    ``BUILDSPINE_DEP_CACHE=strict``) or a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="BUILDSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Paths ────────────────────────────────────────────────────
    root: Path = Field(default=Path("."), description="Repository root (build contexts are relative to it)")
    services_dir: str = Field(default="services", description="Descriptor directory, relative to root")

    # ── Images ───────────────────────────────────────────────────
    label_namespace: str = Field(default="io.buildspine", description="Prefix of the service hash label")
    registry: str = Field(default="", description="Registry/namespace prefix for image references")
    target_platforms: list[str] = Field(default=["linux/amd64"], description="docker --platform values")

    # ── Policies ─────────────────────────────────────────────────
    dep_cache: DepCacheMode = Field(default=DepCacheMode.SOFT)
    fail_fast: bool = Field(default=False)

    # ── Build flags ──────────────────────────────────────────────
    push: bool = Field(default=False)
    provenance: bool = Field(default=False)
    latest: bool = Field(default=True, description="Add latest tags to the latest version")
    progress: ProgressMode = Field(default=ProgressMode.AUTO)
    ci: bool = Field(default=False, description="Consult remote manifests for dependency freshness")
    resolve_git_refs: bool = Field(default=False, description="Resolve git refs to revisions for hashing")

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    @field_validator("label_namespace")
    @classmethod
    def _strip_namespace(cls, value: str) -> str:
        value = value.strip().strip(".")
        if not value:
            raise ValueError("label_namespace must not be empty")
        return value

    @field_validator("registry")
    @classmethod
    def _strip_registry(cls, value: str) -> str:
        return value.strip().rstrip("/")

    # ── Derived properties ───────────────────────────────────────

    @property
    def services_path(self) -> Path:
        return self.root / self.services_dir

    @property
    def hash_label(self) -> str:
        """Label key under which the service definition hash is stored."""
        return f"{self.label_namespace}.service-def-hash"

    @property
    def is_local(self) -> bool:
        """True when images are loaded into the local store rather than pushed."""
        return not self.push


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, BuildSettings] = {}


def get_settings(*, _force_reload: bool = False, **overrides: Any) -> BuildSettings:
    """
    Load, validate, and cache a :class:`BuildSettings` instance.

    Keyword overrides (CLI flags) take precedence over ``BUILDSPINE_*``
    variables; each distinct set of overrides is cached separately.
    """
    key_values = {k: v.resolve() if isinstance(v, Path) else v for k, v in overrides.items()}
    cache_key = repr(sorted((k, str(v)) for k, v in key_values.items()))

    if not _force_reload and cache_key in _settings_cache:
        return _settings_cache[cache_key]

    settings = BuildSettings(**overrides)
    _settings_cache[cache_key] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()
