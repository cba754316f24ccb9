"""Service descriptor models and the filesystem store that loads them."""

from buildspine.descriptors.models import (
    DependencySpec,
    ExternalImage,
    PlatformEntry,
    PlatformManifest,
    ServiceConfig,
    ServiceDescriptor,
    SourceSpec,
    TlsConfig,
    VersionEntry,
    VersionManifest,
)
from buildspine.descriptors.store import DescriptorStore

__all__ = [
    "DependencySpec",
    "DescriptorStore",
    "ExternalImage",
    "PlatformEntry",
    "PlatformManifest",
    "ServiceConfig",
    "ServiceDescriptor",
    "SourceSpec",
    "TlsConfig",
    "VersionEntry",
    "VersionManifest",
]
