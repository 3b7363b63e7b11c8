"""Contracts for swappable portfolio-construction solvers.

Every optimizer — today's greedy baseline, a future exact knapsack / MIP
backend, a local-search heuristic — consumes the same inputs and produces
the same :class:`DecisionEngineResult`.  The runner in
:mod:`abe.services.decision_engine` only ever talks to
:class:`BaseOptimizer`.

Design choices
--------------
* :class:`BaseOptimizer` is an ABC rather than a ``typing.Protocol`` so
  that the solver registry can ``isinstance``-check what it is handed and
  so solver authors have to read the contract below.
* Infeasibility is a *result*, not an exception: a solver that cannot place
  anything returns no positions and a reason for every candidate.
  Only malformed input (:class:`~abe.core.errors.InvalidInputError`) and
  genuine solver failure (:class:`~abe.core.errors.SolverError`) raise.
* ``reason`` strings are for humans.  Nothing may branch on them.

Constraint semantics every solver must honour
---------------------------------------------
* ``len(positions) <= max_positions``
* ``stake_usd <= bankroll_usd × max_fraction_per_position`` and
  ``stake_usd <= candidate.max_size`` when set
* ``Σ stake_usd <= max_total_notional`` when set
* no selected pair (or selected/held pair) with ``|rho| > max_pairwise_correlation``
* no selected candidate with ``edge <= 0``
* identical input ⇒ identical output
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from abe.core.errors import InvalidInputError

# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass
class CandidateBet:
    """One opportunity to stake money.

    Attributes:
        id: Unique id (contract id, or book + market + side).
        source: ``"sportsbook"``, ``"kalshi"``, ``"polymarket"``, ...
        label: Display string.
        win_prob: Caller's estimated probability of winning, in ``[0, 1]``.
        price: Cost per $1 of payoff (binary) or implied probability
            (sportsbook).  Outside ``(0, 1)`` the bet is unsizeable.
        edge: ``win_prob − price`` unless the caller supplies it.  Drives
            ranking; only ``edge > 0`` is eligible.
        variance_per_dollar: P&L variance per $1; defaults to
            ``price × (1 − price)``.
        max_size: Liquidity cap in USD.  Ignored unless ``> 0``.
        factor_ids: Correlation / concentration groups.  The first id is the
            factor-cap key; empty means the candidate is its own group.
        contract_id: Link to a contract that may already be held.
        resolution_time: ISO timestamp, for lock-up.
    """

    id: str
    source: str
    label: str
    win_prob: float
    price: float
    edge: Optional[float] = None
    variance_per_dollar: Optional[float] = None
    max_size: Optional[float] = None
    factor_ids: List[str] = field(default_factory=list)
    contract_id: Optional[str] = None
    resolution_time: Optional[str] = None

    def __post_init__(self) -> None:
        if self.edge is None:
            self.edge = self.win_prob - self.price
        if self.variance_per_dollar is None:
            self.variance_per_dollar = self.price * (1.0 - self.price)

    @property
    def factor_key(self) -> str:
        """Group used by the factor cap: first factor id, else the bet's own id."""
        return self.factor_ids[0] if self.factor_ids else self.id

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CandidateBet":
        return cls(
            id=data["id"],
            source=data.get("source", "sportsbook"),
            label=data.get("label", data["id"]),
            win_prob=float(data["winProb"]),
            price=float(data["price"]),
            edge=data.get("edge"),
            variance_per_dollar=data.get("variancePerDollar"),
            max_size=data.get("maxSize"),
            factor_ids=list(data.get("factorIds") or []),
            contract_id=data.get("contractId"),
            resolution_time=data.get("resolutionTime"),
        )


@dataclass(frozen=True)
class CandidateCorrelation:
    """Correlation between two candidates, or a candidate and a held contract."""

    id_a: str
    id_b: str
    correlation: float
    reason: str = ""


@dataclass
class DecisionEngineConstraints:
    """Caller-supplied budget and risk limits.

    Only ``bankroll_usd`` is required.  ``None`` on an optional limit means
    "unconstrained".
    """

    bankroll_usd: float
    kelly_fraction: float = 0.25
    max_fraction_per_position: float = 0.02
    max_positions: int = 12
    min_positions: Optional[int] = None
    max_total_notional: Optional[float] = None
    max_pairwise_correlation: Optional[float] = None
    max_factor_fraction: Optional[float] = None
    min_liquidity: Optional[float] = None
    existing_contract_ids: List[str] = field(default_factory=list)

    def validate(self) -> None:
        """Fail fast on malformed limits.

        Raises:
            InvalidInputError: On the first violated bound.  Values are never
                clipped into range.
        """
        if not self.bankroll_usd > 0:
            raise InvalidInputError(f"bankroll_usd must be > 0, got {self.bankroll_usd!r}.")
        if not 0.0 < self.kelly_fraction <= 1.0:
            raise InvalidInputError(
                f"kelly_fraction must be in (0, 1], got {self.kelly_fraction!r}."
            )
        if not 0.0 < self.max_fraction_per_position <= 1.0:
            raise InvalidInputError(
                "max_fraction_per_position must be in (0, 1], "
                f"got {self.max_fraction_per_position!r}."
            )
        if isinstance(self.max_positions, bool) or not isinstance(self.max_positions, int) \
                or self.max_positions < 1:
            raise InvalidInputError(
                f"max_positions must be an integer >= 1, got {self.max_positions!r}."
            )
        if self.min_positions is not None and not 0 <= self.min_positions <= self.max_positions:
            raise InvalidInputError(
                f"min_positions ({self.min_positions!r}) must be in "
                f"[0, max_positions={self.max_positions}]."
            )
        if self.max_total_notional is not None and self.max_total_notional < 0:
            raise InvalidInputError(
                f"max_total_notional must be >= 0, got {self.max_total_notional!r}."
            )
        if self.max_pairwise_correlation is not None \
                and not 0.0 <= self.max_pairwise_correlation <= 1.0:
            raise InvalidInputError(
                "max_pairwise_correlation must be in [0, 1], "
                f"got {self.max_pairwise_correlation!r}."
            )
        if self.max_factor_fraction is not None and not 0.0 < self.max_factor_fraction <= 1.0:
            raise InvalidInputError(
                f"max_factor_fraction must be in (0, 1], got {self.max_factor_fraction!r}."
            )
        if self.min_liquidity is not None and self.min_liquidity < 0:
            raise InvalidInputError(f"min_liquidity must be >= 0, got {self.min_liquidity!r}.")

    @property
    def max_stake_per_position(self) -> float:
        return self.bankroll_usd * self.max_fraction_per_position

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DecisionEngineConstraints":
        kwargs: Dict[str, Any] = {"bankroll_usd": data["bankrollUsd"]}
        mapping = {
            "kellyFraction": "kelly_fraction",
            "maxFractionPerPosition": "max_fraction_per_position",
            "maxPositions": "max_positions",
            "minPositions": "min_positions",
            "maxTotalNotional": "max_total_notional",
            "maxPairwiseCorrelation": "max_pairwise_correlation",
            "maxFactorFraction": "max_factor_fraction",
            "minLiquidity": "min_liquidity",
            "existingContractIds": "existing_contract_ids",
        }
        for key, attr in mapping.items():
            if data.get(key) is not None:
                kwargs[attr] = data[key]
        return cls(**kwargs)


def validate_candidates(candidates: Sequence[CandidateBet]) -> None:
    """Reject duplicate ids and probabilities outside ``[0, 1]``.

    Prices are *not* checked here: an out-of-range price makes a candidate
    unsizeable, which solvers report as an exclusion.
    """
    seen = set()
    for c in candidates:
        if c.id in seen:
            raise InvalidInputError(f"Duplicate candidate id {c.id!r}.")
        seen.add(c.id)
        if not 0.0 <= c.win_prob <= 1.0:
            raise InvalidInputError(
                f"Candidate {c.id!r}: win_prob must be in [0, 1], got {c.win_prob!r}."
            )


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


@dataclass
class SelectedPosition:
    candidate_id: str
    stake_usd: float
    shares: Optional[float] = None
    reason: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "candidateId": self.candidate_id,
            "stakeUsd": self.stake_usd,
            "shares": self.shares,
            "reason": self.reason,
        }


@dataclass
class DecisionEngineMetrics:
    expected_return: float = 0.0
    num_correlated_pairs: int = 0
    total_stake_usd: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "expectedReturn": self.expected_return,
            "numCorrelatedPairs": self.num_correlated_pairs,
            "totalStakeUsd": self.total_stake_usd,
        }


@dataclass
class DecisionEngineResult:
    """Output of a solve.

    ``positions`` empty with a populated ``excluded_reasons`` is the
    infeasible-but-valid outcome.  Every candidate that was not selected has
    exactly one entry in ``excluded_reasons``.
    """

    positions: List[SelectedPosition]
    objective_value: float
    metrics: DecisionEngineMetrics
    excluded_reasons: Dict[str, str]
    solver: str
    solve_time_ms: float

    @property
    def is_empty(self) -> bool:
        return not self.positions

    def to_dict(self) -> Dict[str, Any]:
        return {
            "positions": [p.to_dict() for p in self.positions],
            "objectiveValue": self.objective_value,
            "metrics": self.metrics.to_dict(),
            "excludedReasons": dict(self.excluded_reasons),
            "solver": self.solver,
            "solveTimeMs": self.solve_time_ms,
        }


# ---------------------------------------------------------------------------
# Abstract optimizer
# ---------------------------------------------------------------------------


class BaseOptimizer(ABC):
    """Contract that every portfolio-construction solver must satisfy.

    Solvers are stateless between calls and must not touch global random
    state, the network or the clock (other than to report
    ``solve_time_ms``).  A solver instance may be shared across requests.
    """

    #: Registry key and the ``solver`` field of every result.
    name: str = "base"

    @abstractmethod
    def solve(
        self,
        candidates: Sequence[CandidateBet],
        constraints: DecisionEngineConstraints,
        *,
        correlations: Optional[Sequence[CandidateCorrelation]] = None,
        time_limit_ms: Optional[float] = None,
    ) -> DecisionEngineResult:
        """Select positions and stakes from ``candidates``.

        Args:
            candidates: Opportunities to choose from.
            constraints: Already validated by the runner; solvers may call
                ``validate()`` again when used directly.
            correlations: Optional pairwise correlations between candidate
                ids, or between a candidate and a held contract id.
            time_limit_ms: Advisory budget for solvers with unbounded search.

        Returns:
            :class:`DecisionEngineResult`.

        Raises:
            InvalidInputError: Malformed input.
            SolverError: Internal failure.
        """
