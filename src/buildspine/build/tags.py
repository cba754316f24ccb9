"""
Image references and tags.

Tag scheme for a node ``service:version[:platform]``:

    primary             version[-platform]
    default platform    also the bare ``version``
    latest entry        latest[-platform] (bare ``latest`` on the default platform)
    extra tags          tag[-platform] (bare ``tag`` on the default platform)

A single-platform node has no suffixes at all. Dependencies are referenced
by the tag form chosen during dependency resolution, which is always one of
the tags the dependency's own build produces.
"""

from __future__ import annotations

from collections.abc import Iterable

from buildspine.graph.config_resolver import EffectiveConfig


def repository(config: EffectiveConfig, registry: str = "") -> str:
    """Image repository, prefixed with the registry when one is configured."""
    if registry:
        return f"{registry}/{config.image_name}"
    return config.image_name


def reference(config: EffectiveConfig, tag: str, registry: str = "") -> str:
    return f"{repository(config, registry)}:{tag}"


def primary_reference(config: EffectiveConfig, registry: str = "") -> str:
    """The reference the service hash label is read from."""
    return reference(config, config.node.tag_version, registry)


def _variants(config: EffectiveConfig, name: str) -> list[str]:
    if not config.platform:
        return [name]
    variants = [f"{name}-{config.platform}"]
    if config.is_default_platform:
        variants.append(name)
    return variants


def image_tags(
    config: EffectiveConfig,
    *,
    latest: bool = True,
    extra_tags: Iterable[str] = (),
) -> list[str]:
    """Every tag (without repository) a node's image receives, primary first."""
    tags: list[str] = []
    names = [config.version]
    if latest and config.is_latest:
        names.append("latest")
    names.extend(config.extra_tags)
    names.extend(extra_tags)

    for name in names:
        for tag in _variants(config, name):
            if tag not in tags:
                tags.append(tag)
    return tags


def image_references(
    config: EffectiveConfig,
    registry: str = "",
    *,
    latest: bool = True,
    extra_tags: Iterable[str] = (),
) -> list[str]:
    """Full references for every tag of a node's image."""
    return [reference(config, tag, registry) for tag in image_tags(config, latest=latest, extra_tags=extra_tags)]
