"""
Structured error types for buildspine.

Every failure the build engine can report is a subclass of
:class:`BuildSpineError`. Each error carries a category (used to decide
whether the whole run aborts or only a node is marked failed), structured
context for logging, and an optional chained cause.

Hierarchy::

    BuildSpineError
      ├── DescriptorError
      │     ├── DescriptorNotFoundError   ── service/manifest file missing
      │     └── DescriptorParseError      ── YAML or schema invalid
      ├── ConfigValidationError           ── forbidden/missing field in a layer
      ├── DependencyResolutionError       ── no determinable dependency version
      ├── CycleError                      ── dependency graph is not a DAG
      ├── HashComputationError            ── dependency hash missing (ordering bug)
      ├── ExternalBuildError              ── image build invocation failed
      ├── StaleDependencyError            ── strict dep-cache found a stale image
      └── DockerNotFoundError             ── docker CLI not on PATH

Plan errors (``DESCRIPTOR``, ``CONFIG``, ``DEPENDENCY``, ``CYCLE``,
``INTERNAL``) are raised before any build starts and abort the run.
``BUILD`` errors are recorded per node and cascade to dependents.

Usage:
    from buildspine.core.errors import ConfigValidationError

    raise ConfigValidationError(
        "dependency 'revad-base' is missing build_arg",
        layer="base",
        field="dependencies.revad-base.build_arg",
    ).with_context(service="reva-gateway")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    DESCRIPTOR = "DESCRIPTOR"  # Missing or unparsable descriptor files
    CONFIG = "CONFIG"  # Layer validation failures
    DEPENDENCY = "DEPENDENCY"  # Dependency version/platform resolution
    CYCLE = "CYCLE"  # Dependency graph cycles
    BUILD = "BUILD"  # External image builder failures
    CACHE = "CACHE"  # Dep-cache freshness failures
    ENVIRONMENT = "ENVIRONMENT"  # Missing tools on the host
    INTERNAL = "INTERNAL"  # Bugs, unexpected state


#: Categories that invalidate the plan itself.
PLAN_CATEGORIES = frozenset(
    {
        ErrorCategory.DESCRIPTOR,
        ErrorCategory.CONFIG,
        ErrorCategory.DEPENDENCY,
        ErrorCategory.CYCLE,
        ErrorCategory.INTERNAL,
    }
)


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        service: Service whose resolution or build failed
        version: Version spec being resolved
        platform: Platform variant, if any
        node: Textual node key (``service:version[:platform]``)
        path: Descriptor file involved
        metadata: Additional key-value pairs
    """

    service: str | None = None
    version: str | None = None
    platform: str | None = None
    node: str | None = None
    path: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["service", "version", "platform", "node", "path"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class BuildSpineError(Exception):
    """
    Base exception for all buildspine errors.

    Subclasses set ``default_category`` so callers can route on category
    without knowing the concrete type.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    @property
    def aborts_plan(self) -> bool:
        """True when the error invalidates the whole build plan."""
        return self.category in PLAN_CATEGORIES

    def with_context(self, **kwargs: Any) -> BuildSpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise DescriptorParseError("bad yaml").with_context(path="services/a.yaml")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# DESCRIPTOR ERRORS
# =============================================================================


class DescriptorError(BuildSpineError):
    """Base class for descriptor store failures."""

    default_category = ErrorCategory.DESCRIPTOR


class DescriptorNotFoundError(DescriptorError):
    """A service descriptor or manifest file does not exist."""

    def __init__(self, service: str, kind: str = "service", path: str | None = None):
        self.service = service
        self.kind = kind
        super().__init__(
            f"{kind} descriptor not found for service '{service}'",
            context=ErrorContext(service=service, path=path),
        )


class DescriptorParseError(DescriptorError):
    """A descriptor file could not be parsed or failed schema validation."""

    def __init__(self, message: str, path: str | None = None, cause: Exception | None = None):
        self.path = path
        super().__init__(message, context=ErrorContext(path=path), cause=cause)


# =============================================================================
# PLAN ERRORS
# =============================================================================


class ConfigValidationError(BuildSpineError):
    """A field is forbidden or missing in a configuration layer."""

    default_category = ErrorCategory.CONFIG

    def __init__(self, message: str, *, layer: str | None = None, field: str | None = None):
        self.layer = layer
        self.field = field
        super().__init__(message)


class DependencyResolutionError(BuildSpineError):
    """A dependency's version or platform cannot be determined."""

    default_category = ErrorCategory.DEPENDENCY

    def __init__(self, message: str, *, service: str | None = None, dependency: str | None = None):
        self.service = service
        self.dependency = dependency
        super().__init__(message, context=ErrorContext(service=service))


class CycleError(BuildSpineError):
    """The dependency graph contains one or more cycles."""

    default_category = ErrorCategory.CYCLE

    def __init__(self, cycles: list[list[str]]):
        self.cycles = cycles
        rendered = "; ".join(" -> ".join(cycle) for cycle in cycles)
        super().__init__(f"{len(cycles)} cycle(s) detected in dependency graph: {rendered}")


class HashComputationError(BuildSpineError):
    """A dependency hash was not available when hashing a node."""

    default_category = ErrorCategory.INTERNAL

    def __init__(self, node: str, missing: str):
        self.node = node
        self.missing = missing
        super().__init__(
            f"cannot hash {node}: dependency {missing} has no computed hash",
            context=ErrorContext(node=node),
        )


# =============================================================================
# EXECUTION ERRORS
# =============================================================================


class ExternalBuildError(BuildSpineError):
    """The external image build invocation failed."""

    default_category = ErrorCategory.BUILD

    def __init__(
        self,
        message: str,
        *,
        node: str | None = None,
        exit_code: int | None = None,
        cause: Exception | None = None,
    ):
        self.node = node
        self.exit_code = exit_code
        super().__init__(message, context=ErrorContext(node=node), cause=cause)


class StaleDependencyError(BuildSpineError):
    """Strict dep-cache mode found a missing or mismatched service hash."""

    default_category = ErrorCategory.CACHE

    def __init__(self, node: str, expected: str, actual: str | None, image: str | None = None):
        self.node = node
        self.expected = expected
        self.actual = actual
        self.image = image
        found = actual if actual else "no stored hash"
        super().__init__(
            f"dependency {node} is stale: expected {expected[:12]}, found {found}",
            context=ErrorContext(node=node, metadata={"image": image} if image else {}),
        )


class DockerNotFoundError(BuildSpineError):
    """Raised when the docker CLI is not available."""

    default_category = ErrorCategory.ENVIRONMENT


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "PLAN_CATEGORIES",
    "BuildSpineError",
    "DescriptorError",
    "DescriptorNotFoundError",
    "DescriptorParseError",
    "ConfigValidationError",
    "DependencyResolutionError",
    "CycleError",
    "HashComputationError",
    "ExternalBuildError",
    "StaleDependencyError",
    "DockerNotFoundError",
]
