"""
Dependency Resolver - decides the version and platform of each dependency.

Resolution order for one declaration under a parent node:

    1. explicit version already carrying a platform suffix known to the
       dependency's platform manifest   -> used verbatim
    2. ``single_platform: true``        -> explicit-or-inherited version, no suffix
    3. multi-platform parent and multi-platform dependency
                                        -> explicit-or-inherited version + parent platform
    4. dependency without platform manifest
                                        -> explicit-or-inherited version, no suffix,
                                           reused by every parent platform
    5. neither explicit nor parent version -> DependencyResolutionError

A version is never taken from the dependency's own manifest (its latest or
default entry). Pinning is explicit or strictly inherited so builds stay
reproducible. Platform applicability is advisory: a single-platform
dependency under a multi-platform parent is reused and logged at info.
"""

from __future__ import annotations

from buildspine.core.errors import DependencyResolutionError
from buildspine.core.logging import get_logger
from buildspine.descriptors.store import DescriptorStore
from buildspine.graph.models import DependencyDeclaration, ResolvedDependency

logger = get_logger(__name__)


class DependencyResolver:
    """
    Resolves a dependency declaration against its parent node.

    Example:
        resolver = DependencyResolver(store)
        dep = resolver.resolve_dependency(declaration, "v1.0.0", "debian")
        dep.tag_version  # "v1.0.0-debian"
    """

    def __init__(self, store: DescriptorStore):
        self.store = store

    def resolve_dependency(
        self,
        declaration: DependencyDeclaration,
        parent_version: str | None,
        parent_platform: str | None = None,
        parent_service: str | None = None,
    ) -> ResolvedDependency:
        """
        Resolve one declaration.

        Args:
            declaration: The dependency as declared by the parent
            parent_version: The parent's version (without platform suffix)
            parent_platform: The parent's platform, empty for single-platform parents
            parent_service: Parent name, used in error messages and logs

        Raises:
            DependencyResolutionError: Unknown dependency service, no
                determinable version, or a parent platform the dependency
                does not provide
        """
        service = declaration.service
        if not self.store.service_exists(service):
            raise DependencyResolutionError(
                f"service '{parent_service or '?'}' depends on unknown service '{service}'",
                service=parent_service,
                dependency=service,
            )

        platforms = self.store.load_platform_manifest(service)
        explicit = declaration.version

        # (1) explicit, already platform-suffixed
        if explicit and platforms is not None:
            split = platforms.split_suffix(explicit)
            if split is not None:
                version, platform = split
                logger.debug("dependency.explicit_platform", dependency=service, version=explicit)
                return ResolvedDependency(declaration, service, version, platform)

        # (5) version is explicit or inherited, never defaulted
        version = explicit or parent_version
        if not version:
            raise DependencyResolutionError(
                f"cannot determine version of dependency '{service}' for '{parent_service or '?'}': "
                "no explicit version and nothing to inherit",
                service=parent_service,
                dependency=service,
            )
        inherited = not explicit

        # (2) pinned to a single platform
        if declaration.single_platform:
            return ResolvedDependency(declaration, service, version, "", inherited)

        # (3) platform inheritance
        if parent_platform and platforms is not None:
            if platforms.get(parent_platform) is None:
                raise DependencyResolutionError(
                    f"dependency '{service}' has no platform '{parent_platform}' required by "
                    f"'{parent_service or '?'}' (available: {', '.join(platforms.names)}); "
                    "pin a suffixed version or mark it single_platform",
                    service=parent_service,
                    dependency=service,
                )
            return ResolvedDependency(declaration, service, version, parent_platform, inherited)

        # (4) single-platform dependency reused across parent platforms
        if platforms is None:
            if parent_platform:
                logger.info(
                    "dependency.cross_platform_reuse",
                    dependency=f"{service}:{version}",
                    parent=parent_service,
                    parent_platform=parent_platform,
                )
            return ResolvedDependency(declaration, service, version, "", inherited)

        # Single-platform parent, multi-platform dependency: default platform, unsuffixed tag
        return ResolvedDependency(declaration, service, version, "", inherited)
