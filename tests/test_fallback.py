"""
Tests for ordered fallback strategies.
"""

import pytest

from flightwx.errors import ComputationError, NotFoundError, ValidationError
from flightwx.fallback import FallbackChain


def boom():
    raise RuntimeError("boom")


class TestFallbackChain:

    def test_first_result_wins(self):
        chain = FallbackChain("t", [("a", lambda: 1), ("b", lambda: 2)])
        assert chain.run() == 1
        assert chain.last_strategy == "a"

    def test_none_moves_to_next(self):
        chain = FallbackChain("t", [("a", lambda: None), ("b", lambda: 2)])
        assert chain.run() == 2
        assert chain.last_strategy == "b"

    def test_failure_moves_to_next(self):
        chain = FallbackChain("t", [("a", boom), ("b", lambda: "ok")])
        assert chain.run() == "ok"

    def test_falsy_results_are_kept(self):
        chain = FallbackChain("t", [("a", lambda: []), ("b", lambda: [1])])
        assert chain.run() == []

    def test_passthrough_errors_propagate(self):
        def missing():
            raise NotFoundError("no such point")

        chain = FallbackChain("t", [("a", missing), ("b", lambda: 1)])
        with pytest.raises(NotFoundError):
            chain.run()

    def test_validation_error_propagates_by_default(self):
        def invalid():
            raise ValidationError("bad bounds")

        with pytest.raises(ValidationError):
            FallbackChain("t", [("a", invalid), ("b", lambda: 1)]).run()

    def test_empty_passthrough_absorbs_everything(self):
        def missing():
            raise NotFoundError("no such point")

        chain = FallbackChain("t", [("a", missing), ("b", lambda: 1)], passthrough=())
        assert chain.run() == 1

    def test_all_failing_raises_computation_error(self):
        with pytest.raises(ComputationError, match="boom"):
            FallbackChain("t", [("a", boom), ("b", boom)]).run()

    def test_all_none_raises_computation_error(self):
        with pytest.raises(ComputationError):
            FallbackChain("t", [("a", lambda: None)]).run()

    def test_requires_strategies(self):
        with pytest.raises(ValueError):
            FallbackChain("t", [])
