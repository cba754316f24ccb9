"""Tests for buildspine.core.errors module."""

import pytest

from buildspine.core.errors import (
    PLAN_CATEGORIES,
    BuildSpineError,
    ConfigValidationError,
    CycleError,
    DependencyResolutionError,
    DescriptorNotFoundError,
    DescriptorParseError,
    DockerNotFoundError,
    ErrorCategory,
    ErrorContext,
    ExternalBuildError,
    HashComputationError,
    StaleDependencyError,
)


class TestErrorContext:
    """Test ErrorContext dataclass."""

    def test_create_empty_context(self):
        ctx = ErrorContext()
        assert ctx.service is None
        assert ctx.node is None
        assert ctx.metadata == {}

    def test_to_dict_includes_set_fields(self):
        """to_dict includes only non-None fields."""
        ctx = ErrorContext(service="gateway", node="gateway:v1:debian", metadata={"image": "gw:v1"})
        assert ctx.to_dict() == {"service": "gateway", "node": "gateway:v1:debian", "image": "gw:v1"}


class TestBuildSpineError:
    """Test the base error."""

    def test_defaults(self):
        error = BuildSpineError("boom")
        assert error.message == "boom"
        assert str(error) == "boom"
        assert error.category == ErrorCategory.INTERNAL
        assert error.cause is None

    def test_cause_is_chained(self):
        cause = ValueError("bad")
        error = BuildSpineError("wrapped", cause=cause)
        assert error.__cause__ is cause
        assert error.to_dict()["cause"] == "bad"

    def test_with_context_fluent(self):
        error = BuildSpineError("boom").with_context(service="base", attempt=2)
        assert error.context.service == "base"
        assert error.context.metadata == {"attempt": 2}

    def test_to_dict(self):
        error = ConfigValidationError("missing dockerfile", layer="effective", field="dockerfile")
        data = error.to_dict()
        assert data["error_type"] == "ConfigValidationError"
        assert data["category"] == "CONFIG"
        assert data["message"] == "missing dockerfile"

    def test_repr(self):
        assert repr(CycleError([["a:v1", "a:v1"]])).startswith("CycleError(")


class TestPlanCategories:
    """Errors that abort the plan versus errors recorded per node."""

    @pytest.mark.parametrize(
        "error",
        [
            DescriptorNotFoundError("svc"),
            DescriptorParseError("bad yaml"),
            ConfigValidationError("bad"),
            DependencyResolutionError("bad"),
            CycleError([["a:v1", "b:v1", "a:v1"]]),
            HashComputationError("a:v1", "b:v1"),
        ],
    )
    def test_plan_errors_abort(self, error):
        assert error.aborts_plan
        assert error.category in PLAN_CATEGORIES

    @pytest.mark.parametrize(
        "error",
        [
            ExternalBuildError("failed", node="a:v1", exit_code=1),
            StaleDependencyError("a:v1", "0" * 64, None),
            DockerNotFoundError("no docker"),
        ],
    )
    def test_execution_errors_do_not_abort_plan(self, error):
        assert not error.aborts_plan


class TestSpecificErrors:
    """Constructor signatures and messages."""

    def test_descriptor_not_found(self):
        error = DescriptorNotFoundError("gateway", path="services/gateway.yaml")
        assert error.service == "gateway"
        assert "gateway" in error.message
        assert error.context.path == "services/gateway.yaml"

    def test_cycle_error_lists_every_cycle(self):
        error = CycleError([["a:v1", "b:v1", "a:v1"], ["c:v1", "d:v1", "c:v1"]])
        assert error.cycles == [["a:v1", "b:v1", "a:v1"], ["c:v1", "d:v1", "c:v1"]]
        assert error.message.startswith("2 cycle(s)")
        assert "a:v1 -> b:v1 -> a:v1" in error.message
        assert "c:v1 -> d:v1 -> c:v1" in error.message

    def test_stale_dependency_error(self):
        error = StaleDependencyError("base:v1", "ab" * 32, None, image="base:v1")
        assert error.category == ErrorCategory.CACHE
        assert "no stored hash" in error.message
        assert error.context.metadata == {"image": "base:v1"}

    def test_external_build_error(self):
        error = ExternalBuildError("exit 2", node="app:v1", exit_code=2)
        assert error.exit_code == 2
        assert error.context.node == "app:v1"
        assert error.category == ErrorCategory.BUILD

    def test_dependency_resolution_error(self):
        error = DependencyResolutionError("no version", service="app", dependency="lib")
        assert error.service == "app"
        assert error.dependency == "lib"
