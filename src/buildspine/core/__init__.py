"""Core primitives: structured errors, logging, settings and hashing."""

from buildspine.core.errors import (
    PLAN_CATEGORIES,
    BuildSpineError,
    ConfigValidationError,
    CycleError,
    DependencyResolutionError,
    DescriptorError,
    DescriptorNotFoundError,
    DescriptorParseError,
    DockerNotFoundError,
    ErrorCategory,
    ErrorContext,
    ExternalBuildError,
    HashComputationError,
    StaleDependencyError,
)
from buildspine.core.hashing import compute_hash, file_digest
from buildspine.core.logging import LogContext, configure_logging, get_logger
from buildspine.core.settings import BuildSettings, DepCacheMode, ProgressMode, get_settings

__all__ = [
    # errors
    "PLAN_CATEGORIES",
    "BuildSpineError",
    "ConfigValidationError",
    "CycleError",
    "DependencyResolutionError",
    "DescriptorError",
    "DescriptorNotFoundError",
    "DescriptorParseError",
    "DockerNotFoundError",
    "ErrorCategory",
    "ErrorContext",
    "ExternalBuildError",
    "HashComputationError",
    "StaleDependencyError",
    # hashing
    "compute_hash",
    "file_digest",
    # logging
    "LogContext",
    "configure_logging",
    "get_logger",
    # settings
    "BuildSettings",
    "DepCacheMode",
    "ProgressMode",
    "get_settings",
]
