"""
Descriptor models - pydantic schemas for service documents.

Three documents describe a service on disk:

    services/<name>.yaml              ServiceDescriptor (base layer)
    services/<name>/versions.yaml     VersionManifest
    services/<name>/platforms.yaml    PlatformManifest (optional)

The base descriptor and the override fragments stay plain mappings because
the Config Resolver merges them layer by layer. Only after merging is the
result parsed into :class:`ServiceConfig`, which gives typed access to
sources, dependencies, external images and TLS settings.

Manifest-level invariants (unique names, single latest, globally unique
tags, platform name pattern, default platform present) are enforced by the
manifest models' validators.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

PLATFORM_NAME_PATTERN = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")

#: Version override key holding per-platform override fragments.
PLATFORM_OVERRIDES_KEY = "platforms"


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# =============================================================================
# Base descriptor
# =============================================================================


class ServiceDescriptor(BaseModel):
    """A loaded base descriptor: the service name plus its raw mapping."""

    model_config = ConfigDict(frozen=True)

    name: str
    path: Path | None = None
    data: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Version manifest
# =============================================================================


class VersionEntry(BaseModel):
    """One buildable version of a service."""

    model_config = ConfigDict(extra="forbid")

    name: str
    latest: bool = False
    tags: list[str] = Field(default_factory=list)
    overrides: dict[str, Any] = Field(default_factory=dict)

    @field_validator("name", mode="before")
    @classmethod
    def _name_not_empty(cls, value: Any) -> Any:
        # Unquoted YAML versions such as 1.0 load as numbers
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if isinstance(value, str):
            value = value.strip()
            if not value:
                raise ValueError("version name must not be empty")
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return [str(tag) for tag in value]

    @property
    def global_overrides(self) -> dict[str, Any]:
        """Overrides applied to every platform."""
        return {k: v for k, v in self.overrides.items() if k != PLATFORM_OVERRIDES_KEY}

    @property
    def platform_overrides(self) -> dict[str, dict[str, Any]]:
        """Overrides keyed by platform name."""
        return dict(self.overrides.get(PLATFORM_OVERRIDES_KEY) or {})


class VersionManifest(BaseModel):
    """Per-service list of buildable versions."""

    model_config = ConfigDict(extra="forbid")

    versions: list[VersionEntry] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_invariants(self) -> VersionManifest:
        names = [v.name for v in self.versions]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate version names: {duplicates}")

        latest = [v.name for v in self.versions if v.latest]
        if len(latest) > 1:
            raise ValueError(f"more than one version marked latest: {latest}")

        seen: dict[str, str] = {}
        for entry in self.versions:
            for tag in entry.tags:
                if tag in seen:
                    raise ValueError(f"tag '{tag}' used by both {seen[tag]} and {entry.name}")
                if tag in names:
                    raise ValueError(f"tag '{tag}' of {entry.name} collides with a version name")
                seen[tag] = entry.name
        return self

    @property
    def names(self) -> list[str]:
        return [v.name for v in self.versions]

    def get(self, name: str) -> VersionEntry | None:
        for entry in self.versions:
            if entry.name == name:
                return entry
        return None

    def latest_entry(self) -> VersionEntry | None:
        """The entry flagged latest, else the first entry."""
        for entry in self.versions:
            if entry.latest:
                return entry
        return self.versions[0] if self.versions else None

    def find(self, spec: str) -> VersionEntry | None:
        """Look up a version by name, ``latest``, or extra tag."""
        entry = self.get(spec)
        if entry is not None:
            return entry
        if spec == "latest":
            return self.latest_entry()
        for candidate in self.versions:
            if spec in candidate.tags:
                return candidate
        return None


# =============================================================================
# Platform manifest
# =============================================================================


class PlatformEntry(BaseModel):
    """A platform variant; everything except ``name`` is a descriptor fragment."""

    model_config = ConfigDict(extra="allow")

    name: str

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not PLATFORM_NAME_PATTERN.match(value):
            raise ValueError(f"invalid platform name '{value}' (expected {PLATFORM_NAME_PATTERN.pattern})")
        return value

    @property
    def fragment(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class PlatformManifest(BaseModel):
    """Per-service list of platform variants with one default."""

    model_config = ConfigDict(extra="forbid")

    default: str
    platforms: list[PlatformEntry]

    @model_validator(mode="after")
    def _check_invariants(self) -> PlatformManifest:
        if not self.platforms:
            raise ValueError("platform manifest lists no platforms")
        names = [p.name for p in self.platforms]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate platform names: {duplicates}")
        if self.default not in names:
            raise ValueError(f"default platform '{self.default}' is not listed in platforms {names}")
        return self

    @property
    def names(self) -> list[str]:
        return [p.name for p in self.platforms]

    def get(self, name: str) -> PlatformEntry | None:
        for entry in self.platforms:
            if entry.name == name:
                return entry
        return None

    def split_suffix(self, version: str) -> tuple[str, str] | None:
        """Split ``v1.0.0-debian`` into ``("v1.0.0", "debian")`` for a known platform.

        The longest matching platform name wins so ``-alpine-slim`` is not
        mistaken for ``-slim``.
        """
        for name in sorted(self.names, key=len, reverse=True):
            suffix = f"-{name}"
            if version.endswith(suffix) and len(version) > len(suffix):
                return version[: -len(suffix)], name
        return None


# =============================================================================
# Effective configuration schema
# =============================================================================


class SourceSpec(BaseModel):
    """A git source (``url`` + ``ref``) or a local source (``path``)."""

    model_config = ConfigDict(extra="forbid")

    url: str | None = None
    ref: str | None = None
    path: str | None = None

    @model_validator(mode="after")
    def _check_family(self) -> SourceSpec:
        if self.path is not None and (self.url is not None or self.ref is not None):
            raise ValueError("source mixes 'path' with 'url'/'ref'")
        if self.path is None and self.url is None:
            raise ValueError("source needs either 'url' or 'path'")
        return self

    @property
    def is_git(self) -> bool:
        return self.path is None


class DependencySpec(BaseModel):
    """A declared dependency on another service."""

    model_config = ConfigDict(extra="forbid")

    service: str | None = None
    version: str | None = None
    build_arg: str
    single_platform: bool = False

    @field_validator("version", mode="before")
    @classmethod
    def _coerce_version(cls, value: Any) -> Any:
        return None if value is None else str(value)


class ExternalImage(BaseModel):
    """A third-party base/builder image used by the Dockerfile."""

    model_config = ConfigDict(extra="forbid")

    image: str
    tag: str | None = None
    build_arg: str | None = None

    @field_validator("tag", mode="before")
    @classmethod
    def _coerce_tag(cls, value: Any) -> Any:
        return None if value is None else str(value)

    @property
    def reference(self) -> str:
        if self.tag and "@" not in self.image:
            return f"{self.image}:{self.tag}"
        return self.image


class TlsConfig(BaseModel):
    """TLS metadata; only ``enabled``, ``cert_name`` and ``ca_name`` affect the hash."""

    model_config = ConfigDict(extra="allow")

    enabled: bool = False
    cert_name: str | None = None
    ca_name: str | None = None


class ServiceConfig(BaseModel):
    """Typed view of a merged configuration."""

    model_config = ConfigDict(extra="allow")

    name: str
    context: str
    dockerfile: str
    image_name: str | None = None
    sources: dict[str, SourceSpec] = Field(default_factory=dict)
    external_images: dict[str, ExternalImage] = Field(default_factory=dict)
    dependencies: dict[str, DependencySpec] = Field(default_factory=dict)
    build_args: dict[str, str] = Field(default_factory=dict)
    labels: dict[str, str] = Field(default_factory=dict)
    tls: TlsConfig = Field(default_factory=TlsConfig)

    @field_validator("build_args", "labels", mode="before")
    @classmethod
    def _stringify_values(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {str(k): _stringify(v) for k, v in value.items()}
        return value

    @field_validator("sources", "external_images", "dependencies", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return {} if value is None else value
