"""
Strategy-level Monte Carlo simulator.

Replays a fixed, ordered sequence of binary bets many times under different
sizing policies and reports the distribution of terminal bankroll and of
max drawdown.  This is an offline / benchmarking tool, never on the live
selection path.

Per path:
    - stake per strategy (flat USD, flat fraction of *initial* bankroll, or
      fractional Kelly against the *current* bankroll), clamped to
      ``[0, bankroll]``
    - a stake of 0 ends the path (ruin, or no edge left to size)
    - ``won ~ Bernoulli(win_prob)``; win pays ``stake × (1/price − 1)``,
      a loss costs ``stake``
    - drawdown is ``(peak − bankroll) / peak`` against the running peak

Paths are simulated in vectorised chunks with one ``numpy.random.Generator``
per strategy, so each path and each bet draws independently and a seeded
run is exactly reproducible.

Usage::

    bets = generate_random_bets(100, seed=7)
    result = run_strategy_comparison(1000.0, bets, num_runs=10_000, seed=7)
    for stats in result.strategies:
        print(stats.strategy.label, stats.median_terminal_bankroll_usd)
"""

import logging
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Sequence, Tuple

import numpy as np

from abe.core.errors import InvalidInputError
from abe.core.kelly import full_kelly_binary

logger = logging.getLogger(__name__)

DEFAULT_NUM_RUNS = 10_000

# Paths simulated per vectorised block; the time budget is checked between blocks.
_CHUNK_SIZE = 2_000

_PERCENTILES: Tuple[Tuple[str, float], ...] = (
    ("p5", 0.05),
    ("p25", 0.25),
    ("p75", 0.75),
    ("p95", 0.95),
)


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SimulatedBet:
    win_prob: float
    price: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SimulatedBet":
        return cls(win_prob=float(data["winProb"]), price=float(data["price"]))


class Strategy(ABC):
    """A sizing policy.  ``stakes`` works on a whole vector of path bankrolls."""

    type: ClassVar[str] = "base"

    @abstractmethod
    def stakes(self, bankroll: np.ndarray, initial_bankroll_usd: float,
               bet: SimulatedBet) -> np.ndarray:
        """Unclamped stake for every path."""

    @abstractmethod
    def validate(self) -> None:
        ...

    @property
    @abstractmethod
    def label(self) -> str:
        ...

    @abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        ...


@dataclass(frozen=True)
class FlatStrategy(Strategy):
    """Fixed dollar stake on every bet."""

    stake_usd: float
    type: ClassVar[str] = "flat"

    def stakes(self, bankroll, initial_bankroll_usd, bet):
        return np.full(bankroll.shape, self.stake_usd, dtype=float)

    def validate(self) -> None:
        if not self.stake_usd > 0:
            raise InvalidInputError(f"flat stake_usd must be > 0, got {self.stake_usd!r}.")

    @property
    def label(self) -> str:
        return f"Flat ${self.stake_usd:.0f}"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "stakeUsd": self.stake_usd}


@dataclass(frozen=True)
class FlatFractionStrategy(Strategy):
    """Fixed fraction of the *initial* bankroll on every bet."""

    fraction_of_initial: float
    type: ClassVar[str] = "flat_fraction"

    def stakes(self, bankroll, initial_bankroll_usd, bet):
        return np.full(bankroll.shape, initial_bankroll_usd * self.fraction_of_initial,
                       dtype=float)

    def validate(self) -> None:
        if not 0.0 < self.fraction_of_initial <= 1.0:
            raise InvalidInputError(
                f"fraction_of_initial must be in (0, 1], got {self.fraction_of_initial!r}."
            )

    @property
    def label(self) -> str:
        return f"Flat {self.fraction_of_initial * 100:g}% of initial"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "fractionOfInitial": self.fraction_of_initial}


@dataclass(frozen=True)
class KellyStrategy(Strategy):
    """Fractional Kelly against the *current* bankroll of each path."""

    kelly_fraction: float
    type: ClassVar[str] = "kelly"

    def stakes(self, bankroll, initial_bankroll_usd, bet):
        # Same sizing as kelly_stake_usd, applied to every path at once.
        fraction = self.kelly_fraction * full_kelly_binary(bet.win_prob, bet.price)
        return np.where(bankroll > 0, bankroll * fraction, 0.0)

    def validate(self) -> None:
        if not 0.0 < self.kelly_fraction <= 1.0:
            raise InvalidInputError(
                f"kelly_fraction must be in (0, 1], got {self.kelly_fraction!r}."
            )

    @property
    def label(self) -> str:
        return f"Kelly {self.kelly_fraction:g}×"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "kellyFraction": self.kelly_fraction}


def strategy_from_dict(data: Dict[str, Any]) -> Strategy:
    """``{"type": "kelly", "kellyFraction": 0.5}`` → :class:`KellyStrategy`."""
    kind = data.get("type")
    try:
        if kind == FlatStrategy.type:
            return FlatStrategy(float(data["stakeUsd"]))
        if kind == FlatFractionStrategy.type:
            return FlatFractionStrategy(float(data["fractionOfInitial"]))
        if kind == KellyStrategy.type:
            return KellyStrategy(float(data["kellyFraction"]))
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidInputError(f"Malformed {kind!r} strategy: {data!r}") from exc
    raise InvalidInputError(f"Unknown strategy type {kind!r}.")


def default_strategies() -> List[Strategy]:
    """Flat 2% of initial, quarter Kelly, half Kelly."""
    return [
        FlatFractionStrategy(0.02),
        KellyStrategy(0.25),
        KellyStrategy(0.5),
    ]


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


@dataclass
class StrategyStats:
    strategy: Strategy
    num_runs: int
    num_bets_per_run: int
    median_terminal_bankroll_usd: float
    terminal_bankroll_percentiles: Dict[str, float]
    median_max_drawdown: float
    max_drawdown_percentiles: Dict[str, float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy.to_dict(),
            "label": self.strategy.label,
            "numRuns": self.num_runs,
            "numBetsPerRun": self.num_bets_per_run,
            "medianTerminalBankrollUsd": self.median_terminal_bankroll_usd,
            "terminalBankrollPercentiles": dict(self.terminal_bankroll_percentiles),
            "medianMaxDrawdown": self.median_max_drawdown,
            "maxDrawdownPercentiles": dict(self.max_drawdown_percentiles),
        }


@dataclass
class StrategyComparisonResult:
    initial_bankroll_usd: float
    strategies: List[StrategyStats] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "initialBankrollUsd": self.initial_bankroll_usd,
            "strategies": [s.to_dict() for s in self.strategies],
        }


# ---------------------------------------------------------------------------
# Simulation
# ---------------------------------------------------------------------------


def percentile(sorted_values: np.ndarray, p: float) -> float:
    """Nearest-rank percentile: element ``floor(p · n)``, clamped to the last."""
    n = len(sorted_values)
    if n == 0:
        return 0.0
    return float(sorted_values[min(int(math.floor(p * n)), n - 1)])


def _simulate_chunk(
    initial_bankroll_usd: float,
    bets: Sequence[SimulatedBet],
    strategy: Strategy,
    n_paths: int,
    rng: np.random.Generator,
) -> Tuple[np.ndarray, np.ndarray]:
    """Simulate ``n_paths`` paths; return (terminal bankroll, max drawdown)."""
    bankroll = np.full(n_paths, initial_bankroll_usd, dtype=float)
    peak = bankroll.copy()
    max_drawdown = np.zeros(n_paths)
    active = np.ones(n_paths, dtype=bool)

    for bet in bets:
        stake = np.clip(strategy.stakes(bankroll, initial_bankroll_usd, bet), 0.0, None)
        stake = np.minimum(stake, np.maximum(bankroll, 0.0))
        active &= stake > 0
        if not active.any():
            break

        won = rng.random(n_paths) < bet.win_prob
        if 0.0 < bet.price < 1.0:
            pnl = np.where(won, stake * (1.0 / bet.price - 1.0), -stake)
        else:
            pnl = np.zeros(n_paths)
        bankroll = np.where(active, bankroll + pnl, bankroll)

        peak = np.maximum(peak, bankroll)
        with np.errstate(divide="ignore", invalid="ignore"):
            drawdown = np.where(peak > 0, (peak - bankroll) / peak, 0.0)
        max_drawdown = np.maximum(max_drawdown, drawdown)

    return np.maximum(bankroll, 0.0), max_drawdown


def run_strategy(
    initial_bankroll_usd: float,
    bets: Sequence[SimulatedBet],
    strategy: Strategy,
    num_runs: int = DEFAULT_NUM_RUNS,
    *,
    rng: Optional[np.random.Generator] = None,
    deadline: Optional[float] = None,
) -> StrategyStats:
    """Monte Carlo for one strategy over the same bet sequence.

    ``deadline`` is a ``time.perf_counter()`` value; once passed, no further
    chunks start and ``num_runs`` on the result reports the paths actually
    simulated (always at least one chunk).
    """
    rng = rng or np.random.default_rng()
    terminals: List[np.ndarray] = []
    drawdowns: List[np.ndarray] = []
    done = 0
    while done < num_runs:
        n = min(_CHUNK_SIZE, num_runs - done)
        terminal, drawdown = _simulate_chunk(initial_bankroll_usd, bets, strategy, n, rng)
        terminals.append(terminal)
        drawdowns.append(drawdown)
        done += n
        if deadline is not None and done < num_runs and time.perf_counter() > deadline:
            logger.warning(
                "Simulation of %s truncated by time budget: %d of %d runs",
                strategy.label, done, num_runs,
            )
            break

    terminal_sorted = np.sort(np.concatenate(terminals))
    drawdown_sorted = np.sort(np.concatenate(drawdowns))
    return StrategyStats(
        strategy=strategy,
        num_runs=done,
        num_bets_per_run=len(bets),
        median_terminal_bankroll_usd=percentile(terminal_sorted, 0.5),
        terminal_bankroll_percentiles={k: percentile(terminal_sorted, p) for k, p in _PERCENTILES},
        median_max_drawdown=percentile(drawdown_sorted, 0.5),
        max_drawdown_percentiles={k: percentile(drawdown_sorted, p) for k, p in _PERCENTILES},
    )


def run_strategy_comparison(
    initial_bankroll_usd: float,
    bets: Sequence[SimulatedBet],
    strategies: Optional[Sequence[Strategy]] = None,
    num_runs: int = DEFAULT_NUM_RUNS,
    *,
    seed: Optional[int] = None,
    time_budget_ms: Optional[float] = None,
) -> StrategyComparisonResult:
    """Compare sizing strategies on the same bet sequence.

    Args:
        initial_bankroll_usd: Starting bankroll for every path; must be > 0.
        bets: Ordered bet sequence replayed on every path.
        strategies: Defaults to :func:`default_strategies`.
        num_runs: Paths per strategy; must be >= 1.
        seed: Makes the whole comparison reproducible.  Each strategy gets
            its own child generator.
        time_budget_ms: Optional wall-clock budget for the whole comparison.

    Raises:
        InvalidInputError: Non-positive bankroll, ``num_runs < 1``, a bad
            strategy or a ``win_prob`` outside ``[0, 1]``.
    """
    if not initial_bankroll_usd > 0:
        raise InvalidInputError(
            f"initial_bankroll_usd must be > 0, got {initial_bankroll_usd!r}."
        )
    if num_runs < 1:
        raise InvalidInputError(f"num_runs must be >= 1, got {num_runs!r}.")
    for bet in bets:
        if not 0.0 <= bet.win_prob <= 1.0:
            raise InvalidInputError(f"win_prob must be in [0, 1], got {bet.win_prob!r}.")

    to_run = list(strategies) if strategies is not None else default_strategies()
    for strategy in to_run:
        strategy.validate()

    start = time.perf_counter()
    deadline = start + time_budget_ms / 1000.0 if time_budget_ms is not None else None
    generators = [np.random.default_rng(s) for s in np.random.SeedSequence(seed).spawn(len(to_run))]

    stats = [
        run_strategy(initial_bankroll_usd, bets, strategy, num_runs, rng=rng, deadline=deadline)
        for strategy, rng in zip(to_run, generators)
    ]

    logger.info(
        "Simulated %d strategies × %d runs × %d bets in %.0f ms",
        len(to_run), num_runs, len(bets), (time.perf_counter() - start) * 1000.0,
    )
    return StrategyComparisonResult(initial_bankroll_usd=initial_bankroll_usd, strategies=stats)


def generate_random_bets(
    num_bets: int,
    mean_edge: float = 0.02,
    price_range: Tuple[float, float] = (0.3, 0.7),
    seed: Optional[int] = None,
) -> List[SimulatedBet]:
    """Random bet sequence with a slight positive edge on average.

    Price is uniform in ``price_range``; edge is ``mean_edge ± 0.02``;
    ``win_prob`` is clamped to ``[0.05, 0.95]``.
    """
    rng = np.random.default_rng(seed)
    low, high = price_range
    prices = low + rng.random(num_bets) * (high - low)
    edges = mean_edge + (rng.random(num_bets) - 0.5) * 0.04
    win_probs = np.clip(prices + edges, 0.05, 0.95)
    return [SimulatedBet(float(w), float(p)) for w, p in zip(win_probs, prices)]
