"""
Config Resolver - merges descriptor layers into one effective configuration.

Merge order, each layer overriding the previous:

    1. base descriptor                  services/<name>.yaml
    2. platform fragment                services/<name>/platforms.yaml (entry)
    3. version global overrides         versions.yaml -> overrides
    4. version platform overrides       versions.yaml -> overrides.platforms.<p>

Merge rules:
    - scalars and lists are replaced by the more specific layer
    - mappings (build_args, labels, external_images, dependencies, tls, ...)
      are deep-merged; keys absent from the override survive
    - ``sources`` use a type-aware merge: a git source (url + ref) and a local
      source (path) are mutually exclusive. An override carrying only one of
      url/ref inherits the other from the base entry of the same key; an
      override carrying both, or switching family, replaces the entry.

Design Principles:
    - Pure: the only side effect is reading descriptor files
    - Fresh: every call reloads and deep-copies, no state is shared between nodes
    - Strict: forbidden or missing fields raise ConfigValidationError before use
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from buildspine.core.errors import ConfigValidationError
from buildspine.core.logging import get_logger
from buildspine.descriptors.models import (
    PLATFORM_OVERRIDES_KEY,
    PlatformManifest,
    ServiceConfig,
    VersionEntry,
    VersionManifest,
)
from buildspine.descriptors.store import DescriptorStore
from buildspine.graph.models import DependencyDeclaration, Node

logger = get_logger(__name__)

SOURCES_KEY = "sources"
GIT_FIELDS = frozenset({"url", "ref"})
LOCAL_FIELDS = frozenset({"path"})

# Fields each layer may not define
FORBIDDEN_FIELDS = {
    "base": frozenset({"version", "versions", "platforms"}),
    "platform": frozenset({"version", "versions", "platforms"}),
    "version": frozenset({"name", "version", "versions"}),
    "version-platform": frozenset({"name", "version", "versions", PLATFORM_OVERRIDES_KEY}),
}


# =============================================================================
# Merge primitives
# =============================================================================


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` onto ``base``; neither input is mutated."""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _check_source_entry(key: str, entry: Any, layer: str) -> None:
    if not isinstance(entry, dict):
        raise ConfigValidationError(
            f"source '{key}' must be a mapping in {layer} layer, got {type(entry).__name__}",
            layer=layer,
            field=f"{SOURCES_KEY}.{key}",
        )
    fields = set(entry)
    if fields & LOCAL_FIELDS and fields & GIT_FIELDS:
        raise ConfigValidationError(
            f"source '{key}' mixes 'path' with 'url'/'ref' in {layer} layer",
            layer=layer,
            field=f"{SOURCES_KEY}.{key}",
        )


def merge_sources(
    base: dict[str, Any],
    override: dict[str, Any],
    layer: str = "override",
) -> dict[str, Any]:
    """
    Type-aware merge of source entries keyed by source name.

    Examples:
        >>> merge_sources({"reva": {"url": "U", "ref": "R1"}}, {"reva": {"ref": "R2"}})
        {'reva': {'url': 'U', 'ref': 'R2'}}
        >>> merge_sources({"reva": {"url": "U", "ref": "R1"}}, {"reva": {"path": "P"}})
        {'reva': {'path': 'P'}}
    """
    result = copy.deepcopy(base)
    for key, entry in override.items():
        if entry is None:
            result.pop(key, None)
            continue
        _check_source_entry(key, entry, layer)

        current = result.get(key)
        fields = set(entry)
        if not isinstance(current, dict):
            result[key] = copy.deepcopy(entry)
        elif fields & LOCAL_FIELDS or set(current) & LOCAL_FIELDS:
            # Type switch (or local -> local): whole entry replaced
            result[key] = copy.deepcopy(entry)
        elif GIT_FIELDS <= fields:
            # Complete override
            result[key] = copy.deepcopy(entry)
        else:
            # Partial override: missing url/ref inherited from the base entry
            merged = dict(current)
            merged.update(copy.deepcopy(entry))
            result[key] = merged
    return result


def merge_layer(base: dict[str, Any], override: dict[str, Any], layer: str) -> dict[str, Any]:
    """Apply one override layer onto a merged mapping."""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if key == SOURCES_KEY:
            if value is None:
                value = {}
            if not isinstance(value, dict):
                raise ConfigValidationError(
                    f"'{SOURCES_KEY}' must be a mapping in {layer} layer", layer=layer, field=SOURCES_KEY
                )
            result[key] = merge_sources(result.get(key) or {}, value, layer)
        elif isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _check_forbidden(layer: str, data: dict[str, Any], service: str) -> None:
    for key in sorted(FORBIDDEN_FIELDS[layer] & set(data)):
        raise ConfigValidationError(
            f"field '{key}' is not allowed in the {layer} layer of service '{service}'",
            layer=layer,
            field=key,
        )


# =============================================================================
# Effective configuration
# =============================================================================


@dataclass
class EffectiveConfig:
    """Fully merged configuration for one node."""

    node: Node
    data: dict[str, Any]
    config: ServiceConfig
    version_entry: VersionEntry | None = None
    default_platform: str | None = None

    @property
    def service(self) -> str:
        return self.node.service

    @property
    def version(self) -> str:
        return self.node.version

    @property
    def platform(self) -> str:
        return self.node.platform

    @property
    def is_default_platform(self) -> bool:
        return not self.node.platform or self.node.platform == self.default_platform

    @property
    def is_latest(self) -> bool:
        return bool(self.version_entry and self.version_entry.latest)

    @property
    def extra_tags(self) -> list[str]:
        return list(self.version_entry.tags) if self.version_entry else []

    @property
    def image_name(self) -> str:
        return self.config.image_name or self.node.service

    def dependencies(self) -> list[DependencyDeclaration]:
        """Declared dependencies in declaration order."""
        return [
            DependencyDeclaration(
                key=key,
                service=spec.service or key,
                build_arg=spec.build_arg,
                version=spec.version,
                single_platform=spec.single_platform,
            )
            for key, spec in self.config.dependencies.items()
        ]


# =============================================================================
# Resolver
# =============================================================================


class ConfigResolver:
    """
    Produces an :class:`EffectiveConfig` per ``(service, version, platform)``.

    Example:
        resolver = ConfigResolver(DescriptorStore("services"))
        cfg = resolver.resolve("reva-gateway", "v1.0.0", "debian")
        cfg.config.sources["reva"].ref
    """

    def __init__(self, store: DescriptorStore):
        self.store = store

    def resolve(
        self,
        service: str,
        version_spec: str | None = None,
        platform: str | None = None,
    ) -> EffectiveConfig:
        """
        Merge all layers for one node.

        Args:
            service: Service name
            version_spec: Version name, ``latest``, an extra tag, or a
                platform-suffixed version (``v1.0.0-debian``). Defaults to latest.
            platform: Platform variant; defaults to the manifest default for
                multi-platform services.

        Raises:
            ConfigValidationError: Forbidden/missing field, unknown version or platform
            DescriptorNotFoundError / DescriptorParseError: from the store
        """
        descriptor = self.store.load_service_descriptor(service)
        platforms = self.store.load_platform_manifest(service)
        versions = self.store.load_version_manifest(service)

        base = copy.deepcopy(descriptor.data)
        _check_forbidden("base", base, service)
        if base.get("name") not in (None, service):
            raise ConfigValidationError(
                f"descriptor name '{base['name']}' does not match service '{service}'",
                layer="base",
                field="name",
            )
        if versions is not None and platforms is not None:
            self._check_version_names(service, versions, platforms)

        version, entry, platform = self._resolve_version(service, version_spec, platform, versions, platforms)
        platform = self._resolve_platform(service, platform, platforms)
        node = Node(service, version, platform)

        merged = merge_layer({}, base, "base")
        if platforms is not None:
            fragment = platforms.get(platform).fragment
            _check_forbidden("platform", fragment, service)
            merged = merge_layer(merged, fragment, "platform")

        if entry is not None:
            global_overrides = entry.global_overrides
            _check_forbidden("version", global_overrides, service)
            merged = merge_layer(merged, global_overrides, "version")

            platform_overrides = entry.platform_overrides
            if platform_overrides:
                self._check_platform_overrides(service, entry, platform_overrides, platforms)
                fragment = platform_overrides.get(platform) or {}
                _check_forbidden("version-platform", fragment, service)
                merged = merge_layer(merged, fragment, "version-platform")

        merged["name"] = service
        config = self._validate_effective(service, merged)

        logger.debug(
            "config.resolved",
            node=node.key,
            layers=1 + (platforms is not None) + (entry is not None),
            dependencies=len(config.dependencies),
        )

        return EffectiveConfig(
            node=node,
            data=merged,
            config=config,
            version_entry=entry,
            default_platform=platforms.default if platforms else None,
        )

    # ------------------------------------------------------------------
    # Version / platform selection
    # ------------------------------------------------------------------

    def _resolve_version(
        self,
        service: str,
        version_spec: str | None,
        platform: str | None,
        versions: VersionManifest | None,
        platforms: PlatformManifest | None,
    ) -> tuple[str, VersionEntry | None, str | None]:
        spec = (version_spec or "latest").strip()

        if versions is not None and versions.find(spec) is None and platforms is not None:
            split = platforms.split_suffix(spec)
            if split is not None:
                spec, suffix = split
                if platform and platform != suffix:
                    raise ConfigValidationError(
                        f"version '{version_spec}' names platform '{suffix}' but platform '{platform}' was requested",
                        layer="version",
                        field="platform",
                    )
                platform = suffix

        if versions is None:
            if platforms is not None and platforms.split_suffix(spec) is not None:
                spec, suffix = platforms.split_suffix(spec)
                platform = platform or suffix
            if spec == "latest":
                raise ConfigValidationError(
                    f"service '{service}' has no version manifest; an explicit version is required",
                    layer="version",
                    field="version",
                )
            return spec, None, platform

        entry = versions.find(spec)
        if entry is None:
            raise ConfigValidationError(
                f"unknown version '{spec}' for service '{service}' (known: {', '.join(versions.names) or 'none'})",
                layer="version",
                field="version",
            )
        return entry.name, entry, platform

    @staticmethod
    def _resolve_platform(service: str, platform: str | None, platforms: PlatformManifest | None) -> str:
        if platforms is None:
            if platform:
                raise ConfigValidationError(
                    f"service '{service}' is single-platform; platform '{platform}' is not valid",
                    layer="platform",
                    field="platform",
                )
            return ""
        if not platform:
            return platforms.default
        if platforms.get(platform) is None:
            raise ConfigValidationError(
                f"unknown platform '{platform}' for service '{service}' (known: {', '.join(platforms.names)})",
                layer="platform",
                field="platform",
            )
        return platform

    @staticmethod
    def _check_version_names(service: str, versions: VersionManifest, platforms: PlatformManifest) -> None:
        for name in versions.names:
            if platforms.split_suffix(name) is not None:
                raise ConfigValidationError(
                    f"version '{name}' of service '{service}' carries a platform suffix",
                    layer="version",
                    field="name",
                )

    @staticmethod
    def _check_platform_overrides(
        service: str,
        entry: VersionEntry,
        overrides: dict[str, Any],
        platforms: PlatformManifest | None,
    ) -> None:
        if platforms is None:
            raise ConfigValidationError(
                f"version '{entry.name}' of single-platform service '{service}' defines platform overrides",
                layer="version",
                field=PLATFORM_OVERRIDES_KEY,
            )
        unknown = [name for name in overrides if platforms.get(name) is None]
        if unknown:
            raise ConfigValidationError(
                f"version '{entry.name}' of service '{service}' overrides unknown platforms {unknown}",
                layer="version",
                field=PLATFORM_OVERRIDES_KEY,
            )

    # ------------------------------------------------------------------
    # Final validation
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_effective(service: str, merged: dict[str, Any]) -> ServiceConfig:
        for required in ("context", "dockerfile"):
            if not merged.get(required):
                raise ConfigValidationError(
                    f"service '{service}' has no '{required}' after merging all layers",
                    layer="effective",
                    field=required,
                )

        for record in ("dependencies", "external_images"):
            if not isinstance(merged.get(record) or {}, dict):
                raise ConfigValidationError(
                    f"'{record}' of service '{service}' must be a mapping, got {type(merged[record]).__name__}",
                    layer="effective",
                    field=record,
                )

        for key, dep in (merged.get("dependencies") or {}).items():
            if not isinstance(dep, dict) or not dep.get("build_arg"):
                raise ConfigValidationError(
                    f"dependency '{key}' of service '{service}' is missing build_arg",
                    layer="effective",
                    field=f"dependencies.{key}.build_arg",
                )

        try:
            return ServiceConfig.model_validate(merged)
        except ValidationError as e:
            raise ConfigValidationError(
                f"invalid configuration for service '{service}': {e}",
                layer="effective",
            ) from e
