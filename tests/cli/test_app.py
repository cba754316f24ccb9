"""Tests for the buildspine CLI via typer's CliRunner.

The docker builder is replaced with the in-memory RecordingBuilder, so no
docker daemon is needed.
"""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from buildspine import __version__
from buildspine.cli.app import app
from tests._support.builders import RecordingBuilder
from tests._support.trees import single_version

runner = CliRunner()


def invoke(root, *args):
    return runner.invoke(app, ["--root", str(root), "--log-level", "CRITICAL", *args])


@pytest.fixture
def docker():
    """Patch the CLI's docker builder with a recording double."""
    builder = RecordingBuilder()
    with patch("buildspine.cli.app.DockerBuildxBuilder", return_value=builder):
        yield builder


# ─── Global options ──────────────────────────────────────────────────────


class TestGlobalOptions:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert "build" in result.output


# ─── build ───────────────────────────────────────────────────────────────


class TestBuildCommand:
    def test_show_build_order_json(self, chain_tree, docker):
        result = invoke(chain_tree.root, "build", "--service", "app", "--show-build-order", "--json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert [entry["node"] for entry in data["order"]] == ["base:v1", "lib:v1", "app:v1"]
        assert data["targets"] == ["app:v1"]
        assert docker.builds == []

    def test_show_build_order_table(self, chain_tree, docker):
        result = invoke(chain_tree.root, "build", "-s", "app", "--show-build-order")

        assert result.exit_code == 0
        assert "Build order" in result.stdout
        assert "base:v1" in result.stdout

    def test_build_success(self, chain_tree, docker):
        result = invoke(chain_tree.root, "build", "-s", "app", "--json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["status"] == "completed"
        assert data["built"] == ["base:v1", "lib:v1", "app:v1"]
        assert docker.built == ["base:v1", "lib:v1", "app:v1"]

    def test_build_failure_exit_code(self, chain_tree, docker):
        docker.fail.add("base:v1")
        result = invoke(chain_tree.root, "build", "-s", "app", "--json")

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["status"] == "failed"
        assert data["skipped"] == ["lib:v1", "app:v1"]

    def test_build_table_output(self, chain_tree, docker):
        result = invoke(chain_tree.root, "build", "-s", "base")

        assert result.exit_code == 0
        assert "COMPLETED" in result.stdout

    def test_dep_cache_flag(self, chain_tree, docker):
        invoke(chain_tree.root, "build", "-s", "app")
        result = invoke(chain_tree.root, "build", "-s", "app", "--dep-cache", "off", "--json")

        assert result.exit_code == 0
        assert len(docker.builds) == 6

    def test_strict_stale_dependency_exit_code(self, chain_tree, docker):
        result = invoke(chain_tree.root, "build", "-s", "app", "--dep-cache", "strict")

        assert result.exit_code == 1
        assert docker.builds == []

    def test_cycle_is_plan_error(self, tree, docker):
        tree.service("a", versions=single_version(), dependencies={"b": {"build_arg": "B"}})
        tree.service("b", versions=single_version(), dependencies={"a": {"build_arg": "A"}})

        result = invoke(tree.root, "build", "-s", "a")

        assert result.exit_code == 2
        assert docker.builds == []

    def test_unknown_service_is_plan_error(self, chain_tree, docker):
        result = invoke(chain_tree.root, "build", "-s", "nope")
        assert result.exit_code == 2

    def test_push_and_extra_tags(self, chain_tree, docker):
        result = invoke(chain_tree.root, "build", "-s", "base", "--push", "--extra-tag", "ci-7", "--no-latest")

        assert result.exit_code == 0
        build = docker.build_for("base:v1")
        assert build["push"] is True
        assert build["tags"] == ["base:v1", "base:ci-7"]

    def test_platform_filter(self, platform_tree, docker):
        result = invoke(platform_tree.root, "build", "--platform", "alpine", "--dep-cache", "off", "--json")

        assert result.exit_code == 0
        assert "reva-gateway:v1.0.0-alpine" in docker.built
        assert all("debian" not in ref for ref in docker.built)


# ─── list-services / validate / hash ─────────────────────────────────────


class TestInspectionCommands:
    def test_list_services_json(self, platform_tree):
        result = invoke(platform_tree.root, "list-services", "--json")

        assert result.exit_code == 0
        rows = {row["service"]: row for row in json.loads(result.stdout)}
        assert list(rows) == ["gateway", "revad-base", "tools"]
        assert rows["revad-base"]["versions"] == ["v1.0.0", "v0.9.0"]
        assert rows["revad-base"]["default_platform"] == "debian"
        assert rows["tools"]["platforms"] == []

    def test_list_services_table(self, platform_tree):
        result = invoke(platform_tree.root, "list-services")

        assert result.exit_code == 0
        assert "debian*" in result.stdout

    def test_validate_all(self, platform_tree):
        result = invoke(platform_tree.root, "validate", "--json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["valid"] is True
        # gateway x2, revad-base 2 versions x2, tools
        assert len(data["results"]) == 7

    def test_validate_reports_invalid_target(self, tree):
        tree.service("app", versions=single_version(), dependencies={"missing": {"build_arg": "M"}})

        result = invoke(tree.root, "validate", "app", "--json")

        assert result.exit_code == 2
        data = json.loads(result.stdout)
        assert data["valid"] is False
        assert data["results"][0]["error"]["category"] == "DEPENDENCY"

    def test_hash_json(self, chain_tree):
        result = invoke(chain_tree.root, "hash", "app", "--json")

        assert result.exit_code == 0
        hashes = json.loads(result.stdout)
        assert list(hashes) == ["base:v1", "lib:v1", "app:v1"]
        assert all(len(h) == 64 for h in hashes.values())

    def test_hash_text(self, chain_tree):
        result = invoke(chain_tree.root, "hash", "lib", "-v", "v1")

        assert result.exit_code == 0
        lines = result.stdout.strip().splitlines()
        assert [line.split()[1] for line in lines] == ["base:v1", "lib:v1"]


# ─── settings errors ─────────────────────────────────────────────────────


class TestSettingsErrors:
    def test_invalid_env_value_reported(self, chain_tree, docker):
        result = runner.invoke(
            app,
            ["--root", str(chain_tree.root), "list-services", "--json"],
            env={"BUILDSPINE_DEP_CACHE": "sometimes"},
        )

        assert result.exit_code == 2
        error = json.loads(result.stdout)["error"]
        assert error["category"] == "CONFIG"
        assert "dep_cache" in error["message"]

    def test_invalid_env_value_plain_output(self, chain_tree, docker):
        result = runner.invoke(
            app,
            ["--root", str(chain_tree.root), "build", "-s", "app"],
            env={"BUILDSPINE_DEP_CACHE": "sometimes"},
        )

        assert result.exit_code == 2
        assert docker.builds == []
