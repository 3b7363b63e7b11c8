"""
Decision engine runner — the single entry point for "build my slate".

Public API:
  run_decision_engine(candidates, constraints, optimizer=None, ...)        → DecisionEngineResult
  run_decision_engine_async(candidates, constraints, optimizer=None, ...)  → DecisionEngineResult
  register_optimizer(optimizer) / get_optimizer(name) / available_optimizers()
  benchmark_optimizer(optimizer, runs)                                     → dict

The runner is stateless: it validates input, picks a solver (the caller's,
or the registered default) and turns anything unexpected escaping the
solver into :class:`~abe.core.errors.SolverError` so that a crashed solver
can never be mistaken for an infeasible slate.
"""

import asyncio
import logging
import statistics
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Union

from abe.core.decision_interface import (
    BaseOptimizer,
    CandidateBet,
    CandidateCorrelation,
    DecisionEngineConstraints,
    DecisionEngineResult,
    validate_candidates,
)
from abe.core.errors import InvalidInputError, SolverError, SolverTimeoutError
from abe.services.greedy_optimizer import GREEDY_OPTIMIZER_NAME, GreedyOptimizer

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Solver registry
# ---------------------------------------------------------------------------

_REGISTRY: Dict[str, BaseOptimizer] = {GREEDY_OPTIMIZER_NAME: GreedyOptimizer()}


def register_optimizer(optimizer: BaseOptimizer) -> None:
    """Make ``optimizer`` selectable by name.  Re-registering a name replaces it."""
    if not isinstance(optimizer, BaseOptimizer):
        raise InvalidInputError(
            f"Optimizers must subclass BaseOptimizer, got {type(optimizer).__name__}."
        )
    _REGISTRY[optimizer.name] = optimizer


def get_optimizer(name: Optional[str] = None) -> BaseOptimizer:
    """Look up a registered optimizer; ``None`` returns the greedy default."""
    key = name or GREEDY_OPTIMIZER_NAME
    try:
        return _REGISTRY[key]
    except KeyError:
        raise InvalidInputError(
            f"Unknown solver {key!r}. Available: {', '.join(available_optimizers())}"
        ) from None


def available_optimizers() -> List[str]:
    return sorted(_REGISTRY)


def _resolve(optimizer: Union[BaseOptimizer, str, None]) -> BaseOptimizer:
    if optimizer is None or isinstance(optimizer, str):
        return get_optimizer(optimizer)
    return optimizer


# ---------------------------------------------------------------------------
# Runners
# ---------------------------------------------------------------------------


def run_decision_engine(
    candidates: Sequence[CandidateBet],
    constraints: DecisionEngineConstraints,
    optimizer: Union[BaseOptimizer, str, None] = None,
    *,
    correlations: Optional[Sequence[CandidateCorrelation]] = None,
    time_limit_ms: Optional[float] = None,
) -> DecisionEngineResult:
    """Select positions and stakes from ``candidates`` under ``constraints``.

    Args:
        candidates: Opportunities produced by upstream adapters.
        constraints: Bankroll and caps.
        optimizer: Solver instance or registry name; defaults to greedy.
        correlations: Optional pairwise correlations.
        time_limit_ms: Passed through to the solver as an advisory budget.

    Raises:
        InvalidInputError: Malformed constraints or candidates.
        SolverError: The solver raised anything other than
            ``InvalidInputError``.
    """
    constraints.validate()
    validate_candidates(candidates)
    solver = _resolve(optimizer)

    try:
        return solver.solve(
            candidates,
            constraints,
            correlations=correlations,
            time_limit_ms=time_limit_ms,
        )
    except (InvalidInputError, SolverError):
        raise
    except Exception as exc:
        logger.error("Solver %s failed: %s", solver.name, exc, exc_info=True)
        raise SolverError(f"Solver {solver.name!r} failed: {exc}", solver=solver.name) from exc


async def run_decision_engine_async(
    candidates: Sequence[CandidateBet],
    constraints: DecisionEngineConstraints,
    optimizer: Union[BaseOptimizer, str, None] = None,
    *,
    correlations: Optional[Sequence[CandidateCorrelation]] = None,
    time_limit_ms: Optional[float] = None,
) -> DecisionEngineResult:
    """Run the solver in a worker thread so an async web layer stays responsive.

    When ``time_limit_ms`` elapses first, :class:`SolverTimeoutError` is
    raised; no partial result is ever returned.
    """
    solver = _resolve(optimizer)
    call = asyncio.to_thread(
        run_decision_engine,
        candidates,
        constraints,
        solver,
        correlations=correlations,
        time_limit_ms=time_limit_ms,
    )
    if time_limit_ms is None:
        return await call
    try:
        return await asyncio.wait_for(call, timeout=time_limit_ms / 1000.0)
    except asyncio.TimeoutError:
        logger.warning("Solver %s timed out after %.0f ms", solver.name, time_limit_ms)
        raise SolverTimeoutError(solver.name, time_limit_ms) from None


# ---------------------------------------------------------------------------
# Benchmark fixture
# ---------------------------------------------------------------------------

_BENCHMARK_LABELS = (
    "Team A ML", "Team B +3.5", "Team C -2", "Over 142.5", "Under 138",
    "Team D ML", "Team E +1.5", "Team F -5", "Over 155", "Under 148",
    "Team G ML", "Team H +7", "Team I -3.5", "Over 160", "Under 152",
    "Team J ML", "Team K +4", "Team L -1", "Over 145", "Under 141",
    "Team M ML", "Team N +2.5", "Team O -4", "Over 150", "Under 144",
)


def build_benchmark_candidates() -> List[CandidateBet]:
    """25 deterministic sportsbook candidates in 5 game groups of 5.

    Prices cycle through 0.40–0.65 and edges through 0.010–0.030.
    """
    candidates = []
    for i, label in enumerate(_BENCHMARK_LABELS):
        price = round(0.40 + (i % 6) * 0.05, 2)
        edge = round(0.01 + (i % 5) * 0.005, 3)
        candidates.append(
            CandidateBet(
                id=f"fixed-{i}",
                source="sportsbook",
                label=label,
                win_prob=min(0.98, price + edge),
                price=price,
                edge=edge,
                factor_ids=[f"game-{i // 5}"],
            )
        )
    return candidates


def build_benchmark_constraints() -> DecisionEngineConstraints:
    return DecisionEngineConstraints(
        bankroll_usd=2000.0,
        kelly_fraction=0.25,
        max_fraction_per_position=0.02,
        max_positions=12,
        max_factor_fraction=0.4,
    )


def benchmark_optimizer(
    optimizer: Union[BaseOptimizer, str, None] = None,
    runs: int = 10,
) -> Dict:
    """Solve the fixed fixture ``runs`` times; report mean/std of time and objective."""
    if runs < 1:
        raise InvalidInputError(f"runs must be >= 1, got {runs!r}.")
    solver = _resolve(optimizer)
    candidates = build_benchmark_candidates()
    constraints = build_benchmark_constraints()

    times: List[float] = []
    objectives: List[float] = []
    positions_selected = 0
    for r in range(runs):
        result = run_decision_engine(candidates, constraints, solver)
        times.append(result.solve_time_ms)
        objectives.append(result.objective_value)
        if r == 0:
            positions_selected = len(result.positions)

    def _std(values: List[float]) -> float:
        return statistics.stdev(values) if len(values) > 1 else 0.0

    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "solver": solver.name,
        "runs": runs,
        "candidatesCount": len(candidates),
        "positionsSelected": positions_selected,
        "solveTimeMs": {
            "mean": round(statistics.fmean(times), 4),
            "std": round(_std(times), 4),
        },
        "objectiveValue": {
            "mean": round(statistics.fmean(objectives), 4),
            "std": round(_std(objectives), 4),
        },
    }
