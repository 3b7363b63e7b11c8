"""
Tests for the decision engine runner, solver registry and async wrapper
Run with: pytest tests/test_decision_engine.py -v
"""

import asyncio
import time

import pytest

from abe.core.decision_interface import (
    BaseOptimizer,
    CandidateBet,
    DecisionEngineConstraints,
    DecisionEngineMetrics,
    DecisionEngineResult,
)
from abe.core.errors import InvalidInputError, SolverError, SolverTimeoutError
from abe.services import decision_engine
from abe.services.decision_engine import (
    available_optimizers,
    benchmark_optimizer,
    get_optimizer,
    register_optimizer,
    run_decision_engine,
    run_decision_engine_async,
)
from abe.services.greedy_optimizer import GreedyOptimizer


CANDIDATES = [
    CandidateBet(id="a", source="kalshi", label="A", win_prob=0.6, price=0.5),
    CandidateBet(id="b", source="kalshi", label="B", win_prob=0.4, price=0.5),
]
CONSTRAINTS = DecisionEngineConstraints(bankroll_usd=1000.0)


class _CrashingOptimizer(BaseOptimizer):
    name = "crashing"

    def solve(self, candidates, constraints, *, correlations=None, time_limit_ms=None):
        raise ZeroDivisionError("boom")


class _SlowOptimizer(BaseOptimizer):
    name = "slow"

    def solve(self, candidates, constraints, *, correlations=None, time_limit_ms=None):
        time.sleep(0.3)
        return DecisionEngineResult([], 0.0, DecisionEngineMetrics(), {}, self.name, 300.0)


@pytest.fixture
def isolated_registry(monkeypatch):
    monkeypatch.setattr(decision_engine, "_REGISTRY", dict(decision_engine._REGISTRY))


class TestRegistry:
    """Solver lookup by name"""

    def test_greedy_is_default(self):
        assert isinstance(get_optimizer(), GreedyOptimizer)
        assert "classical-greedy" in available_optimizers()

    def test_unknown_solver(self):
        with pytest.raises(InvalidInputError, match="Unknown solver"):
            get_optimizer("quantum-annealer")

    def test_register_and_select_by_name(self, isolated_registry):
        register_optimizer(_SlowOptimizer())

        assert "slow" in available_optimizers()
        assert isinstance(get_optimizer("slow"), _SlowOptimizer)

    def test_register_rejects_non_optimizer(self, isolated_registry):
        with pytest.raises(InvalidInputError):
            register_optimizer(object())


class TestRunDecisionEngine:
    """Synchronous runner"""

    def test_default_solver(self):
        result = run_decision_engine(CANDIDATES, CONSTRAINTS)

        assert result.solver == "classical-greedy"
        assert [p.candidate_id for p in result.positions] == ["a"]
        assert result.excluded_reasons == {"b": "No edge"}

    def test_solver_by_name(self):
        result = run_decision_engine(CANDIDATES, CONSTRAINTS, "classical-greedy")
        assert result.solver == "classical-greedy"

    def test_invalid_constraints_raise_before_solving(self):
        with pytest.raises(InvalidInputError):
            run_decision_engine(CANDIDATES, DecisionEngineConstraints(bankroll_usd=0), _CrashingOptimizer())

    def test_solver_crash_is_solver_error(self):
        with pytest.raises(SolverError) as exc_info:
            run_decision_engine(CANDIDATES, CONSTRAINTS, _CrashingOptimizer())

        assert exc_info.value.solver == "crashing"
        assert isinstance(exc_info.value.__cause__, ZeroDivisionError)

    def test_solver_error_is_not_invalid_input(self):
        assert not issubclass(SolverError, InvalidInputError)


class TestAsyncRunner:
    """Async wrapper with a time limit"""

    def test_returns_result(self):
        result = asyncio.run(
            run_decision_engine_async(CANDIDATES, CONSTRAINTS, time_limit_ms=5000)
        )
        assert [p.candidate_id for p in result.positions] == ["a"]

    def test_timeout_is_explicit_failure(self):
        with pytest.raises(SolverTimeoutError) as exc_info:
            asyncio.run(
                run_decision_engine_async(CANDIDATES, CONSTRAINTS, _SlowOptimizer(), time_limit_ms=20)
            )

        assert isinstance(exc_info.value, SolverError)
        assert exc_info.value.time_limit_ms == 20


class TestBenchmark:
    """Fixed-fixture benchmark"""

    def test_summary_shape(self):
        summary = benchmark_optimizer(runs=3)

        assert summary["solver"] == "classical-greedy"
        assert summary["runs"] == 3
        assert summary["candidatesCount"] == 25
        assert summary["positionsSelected"] == 12
        # Deterministic solver: objective never varies between runs.
        assert summary["objectiveValue"]["std"] == 0.0
        assert summary["solveTimeMs"]["mean"] >= 0.0

    def test_runs_must_be_positive(self):
        with pytest.raises(InvalidInputError):
            benchmark_optimizer(runs=0)
