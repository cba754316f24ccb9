"""
Shared pytest fixtures for buildspine tests.

This module provides:
- Settings cache and ``BUILDSPINE_*`` environment cleanup for test isolation
- ``tree``: a descriptor tree rooted at ``tmp_path``
- ``fake_builder``: a recording in-memory image builder
- Sample service trees (linear chain, multi-platform)

Usage:
    def test_something(chain_tree, fake_builder):
        orchestrator = BuildOrchestrator(chain_tree.settings(), fake_builder)
"""

from __future__ import annotations

import os
from collections.abc import Generator
from pathlib import Path

import pytest

from buildspine.core.settings import clear_settings_cache
from tests._support.builders import RecordingBuilder
from tests._support.trees import DescriptorTree, platforms, single_version


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clean_settings_cache() -> Generator[None, None, None]:
    """Clear the settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop ``BUILDSPINE_*`` variables inherited from the developer shell."""
    for key in list(os.environ):
        if key.startswith("BUILDSPINE_"):
            monkeypatch.delenv(key, raising=False)


# =============================================================================
# Descriptor Tree Fixtures
# =============================================================================


@pytest.fixture
def tree(tmp_path: Path) -> DescriptorTree:
    return DescriptorTree(tmp_path)


@pytest.fixture
def fake_builder() -> RecordingBuilder:
    return RecordingBuilder()


@pytest.fixture
def chain_tree(tree: DescriptorTree) -> DescriptorTree:
    """
    Linear chain: app -> lib -> base, single-platform, version v1.

    Useful for skip-cascade and dep-cache tests.
    """
    tree.service("base", versions=single_version())
    tree.service("lib", versions=single_version(), dependencies={"base": {"build_arg": "BASE_IMAGE"}})
    tree.service("app", versions=single_version(), dependencies={"lib": {"build_arg": "LIB_IMAGE"}})
    return tree


@pytest.fixture
def platform_tree(tree: DescriptorTree) -> DescriptorTree:
    """
    Multi-platform gateway on a multi-platform base plus a single-platform tool:

        gateway (debian*, alpine) -> revad-base (debian*, alpine)
                                  -> tools (single-platform)
    """
    tree.service(
        "revad-base",
        versions=[{"name": "v1.0.0", "latest": True}, {"name": "v0.9.0"}],
        platforms=platforms("debian", "alpine", alpine={"build_args": {"LIBC": "musl"}}),
        build_args={"LIBC": "glibc"},
    )
    tree.service("tools", versions=[{"name": "v1.0.0", "latest": True}])
    tree.service(
        "gateway",
        versions=[{"name": "v1.0.0", "latest": True, "tags": ["stable"]}],
        platforms=platforms("debian", "alpine"),
        image_name="reva-gateway",
        dependencies={
            "revad-base": {"build_arg": "BASE_IMAGE"},
            "tools": {"build_arg": "TOOLS_IMAGE"},
        },
    )
    return tree
