"""
Test support utilities for buildspine tests.

Helpers that don't fit as pytest fixtures but are useful across multiple
test files: descriptor tree writers (``trees``), an in-memory image builder
(``builders``), and build-order assertions.
"""

from __future__ import annotations

from collections.abc import Iterable


class OrderValidator:
    """
    Validates a build order given as node keys (or nodes).

    Usage:
        validator = OrderValidator(plan.order)
        validator.assert_before("base:v1", "app:v1")
        validator.assert_order(["base:v1", "lib:v1", "app:v1"])
    """

    def __init__(self, order: Iterable) -> None:
        self.keys = [getattr(n, "key", n) for n in order]
        self._index = {key: i for i, key in enumerate(self.keys)}

    def get_index(self, key: str) -> int:
        if key not in self._index:
            raise ValueError(f"Node '{key}' not found in order {self.keys}")
        return self._index[key]

    def assert_before(self, first: str, second: str) -> None:
        """Assert that ``first`` is built before ``second``."""
        first_idx = self.get_index(first)
        second_idx = self.get_index(second)
        assert first_idx < second_idx, (
            f"Expected '{first}' (index {first_idx}) before "
            f"'{second}' (index {second_idx}), order: {self.keys}"
        )

    def assert_order(self, expected: list[str]) -> None:
        """Assert that nodes appear in the expected relative order."""
        indices = [self.get_index(key) for key in expected]
        assert indices == sorted(indices), (
            f"Nodes not in expected order: expected {expected}, "
            f"but indices are {indices}, full order: {self.keys}"
        )
