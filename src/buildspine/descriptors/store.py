"""
Descriptor Store - loads service descriptors and manifests from YAML.

Layout (relative to the services directory)::

    <service>.yaml               base descriptor (required)
    <service>/versions.yaml      version manifest
    <service>/platforms.yaml     platform manifest (multi-platform services)

Every load re-reads the file so callers never share mutable state between
resolutions. Failures raise DescriptorNotFoundError or DescriptorParseError;
partial data is never returned.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from buildspine.core.errors import DescriptorNotFoundError, DescriptorParseError
from buildspine.core.logging import get_logger
from buildspine.descriptors.models import (
    PlatformManifest,
    ServiceDescriptor,
    VersionManifest,
)

logger = get_logger(__name__)

_EXTENSIONS = (".yaml", ".yml")


class DescriptorStore:
    """
    Read-only provider of service documents.

    Example:
        store = DescriptorStore(Path("services"))
        descriptor = store.load_service_descriptor("revad-base")
        versions = store.load_version_manifest("revad-base")
    """

    def __init__(self, services_dir: Path | str):
        self.services_dir = Path(services_dir)

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def list_services(self) -> list[str]:
        """Service names with a base descriptor, sorted."""
        if not self.services_dir.is_dir():
            return []
        names = {
            p.stem
            for p in self.services_dir.iterdir()
            if p.is_file() and p.suffix in _EXTENSIONS
        }
        return sorted(names)

    def service_exists(self, service: str) -> bool:
        return self._find(self.services_dir, service) is not None

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_service_descriptor(self, service: str) -> ServiceDescriptor:
        """Load the base descriptor for a service."""
        path = self._find(self.services_dir, service)
        if path is None:
            raise DescriptorNotFoundError(service, kind="service", path=str(self.services_dir / f"{service}.yaml"))
        data = self._read_mapping(path)
        return ServiceDescriptor(name=service, path=path, data=data)

    def load_version_manifest(self, service: str) -> VersionManifest | None:
        """Load the version manifest, or None if the service has none."""
        path = self._find(self.services_dir / service, "versions")
        if path is None:
            return None
        data = self._read_mapping(path)
        return self._validate(VersionManifest, data, path)

    def load_platform_manifest(self, service: str) -> PlatformManifest | None:
        """Load the platform manifest, or None for single-platform services."""
        path = self._find(self.services_dir / service, "platforms")
        if path is None:
            return None
        data = self._read_mapping(path)
        return self._validate(PlatformManifest, data, path)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _find(directory: Path, stem: str) -> Path | None:
        for ext in _EXTENSIONS:
            candidate = directory / f"{stem}{ext}"
            if candidate.is_file():
                return candidate
        return None

    @staticmethod
    def _read_mapping(path: Path) -> dict[str, Any]:
        logger.debug("descriptors.load", path=str(path))
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except UnicodeDecodeError as e:
            raise DescriptorParseError(f"{path} is not valid UTF-8: {e}", path=str(path), cause=e)
        except yaml.YAMLError as e:
            raise DescriptorParseError(f"Invalid YAML in {path}: {e}", path=str(path), cause=e)

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise DescriptorParseError(
                f"Expected a mapping in {path}, got {type(data).__name__}", path=str(path)
            )
        return data

    @staticmethod
    def _validate(model: type, data: dict[str, Any], path: Path):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise DescriptorParseError(f"Invalid {model.__name__} in {path}: {e}", path=str(path), cause=e)
