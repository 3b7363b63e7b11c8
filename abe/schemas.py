"""
Pydantic request schemas for the decision engine API.

The wire format is camelCase (``winProb``, ``bankrollUsd``); fields are
declared snake_case with a camel alias generator, so either spelling is
accepted on input.  Each request model converts itself to the core
dataclasses via ``to_core()``; responses are the core ``to_dict()`` shapes.

Bounds enforced here are the boundary checks: ``bankrollUsd > 0``,
candidate ``price`` in (0, 1), contract ``price`` in [0, 1],
``kellyFraction`` in (0, 1], ``resolutionTime`` parseable as ISO-8601.
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from abe.core.decision_interface import (
    CandidateBet,
    CandidateCorrelation,
    DecisionEngineConstraints,
)
from abe.core.engine_config import EngineConfig
from abe.core.portfolio_types import Contract, Portfolio, Position, parse_iso_timestamp
from abe.services.bankroll import BankrollSettings, RiskProfile
from abe.services.strategy_simulator import SimulatedBet, Strategy, strategy_from_dict

MAX_SIMULATED_BETS = 500
MIN_SIM_RUNS, MAX_SIM_RUNS = 100, 20_000
MIN_SIM_BETS = 10


class _CamelModel(BaseModel):
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
    }


def _clamp(value: Any, low: float, high: float, default: float) -> float:
    """Clamp ``value`` into ``[low, high]``; non-numeric or NaN becomes ``default``."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return max(low, min(high, number))


def _check_timestamp(value: Optional[str]) -> Optional[str]:
    if value and parse_iso_timestamp(value) is None:
        raise ValueError(f"resolutionTime must be an ISO-8601 timestamp, got {value!r}")
    return value


# ---------------------------------------------------------------------------
# Decision engine
# ---------------------------------------------------------------------------

class CandidateBetIn(_CamelModel):
    id: str = Field(..., min_length=1)
    source: str = Field("sportsbook", description='"sportsbook", "kalshi", "polymarket", ...')
    label: Optional[str] = None
    win_prob: float = Field(..., ge=0.0, le=1.0)
    price: float = Field(..., gt=0.0, lt=1.0)
    edge: Optional[float] = Field(None, description="Defaults to winProb - price")
    variance_per_dollar: Optional[float] = Field(None, ge=0.0)
    max_size: Optional[float] = Field(None, ge=0.0, description="Liquidity cap in USD")
    factor_ids: List[str] = Field(default_factory=list)
    contract_id: Optional[str] = None
    resolution_time: Optional[str] = None

    @field_validator("resolution_time")
    @classmethod
    def check_resolution_time(cls, v: Optional[str]) -> Optional[str]:
        return _check_timestamp(v)

    def to_core(self) -> CandidateBet:
        return CandidateBet(
            id=self.id,
            source=self.source,
            label=self.label or self.id,
            win_prob=self.win_prob,
            price=self.price,
            edge=self.edge,
            variance_per_dollar=self.variance_per_dollar,
            max_size=self.max_size,
            factor_ids=list(self.factor_ids),
            contract_id=self.contract_id,
            resolution_time=self.resolution_time,
        )


class CandidateCorrelationIn(_CamelModel):
    id_a: str
    id_b: str
    correlation: float = Field(..., ge=-1.0, le=1.0)
    reason: str = ""

    def to_core(self) -> CandidateCorrelation:
        return CandidateCorrelation(self.id_a, self.id_b, self.correlation, self.reason)


class ConstraintsIn(_CamelModel):
    """Every field is optional; unset fields fall back to the engine config."""

    bankroll_usd: Optional[float] = Field(None, gt=0)
    kelly_fraction: Optional[float] = Field(None, gt=0.0, le=1.0)
    max_fraction_per_position: Optional[float] = Field(None, gt=0.0, le=1.0)
    max_positions: Optional[int] = Field(None, ge=1)
    min_positions: Optional[int] = Field(None, ge=0)
    max_total_notional: Optional[float] = Field(None, ge=0)
    max_pairwise_correlation: Optional[float] = Field(None, ge=0.0, le=1.0)
    max_factor_fraction: Optional[float] = Field(None, gt=0.0, le=1.0)
    min_liquidity: Optional[float] = Field(None, ge=0)
    existing_contract_ids: List[str] = Field(default_factory=list)

    def to_core(self, config: EngineConfig) -> DecisionEngineConstraints:
        def pick(value, default):
            return default if value is None else value

        return DecisionEngineConstraints(
            bankroll_usd=pick(self.bankroll_usd, config.bankroll_usd),
            kelly_fraction=pick(self.kelly_fraction, config.kelly_fraction),
            max_fraction_per_position=pick(
                self.max_fraction_per_position, config.max_fraction_per_position
            ),
            max_positions=pick(self.max_positions, config.max_positions),
            min_positions=self.min_positions,
            max_total_notional=self.max_total_notional,
            max_pairwise_correlation=self.max_pairwise_correlation,
            max_factor_fraction=pick(self.max_factor_fraction, config.max_factor_fraction),
            min_liquidity=self.min_liquidity,
            existing_contract_ids=list(self.existing_contract_ids),
        )


class DecisionEngineRequest(_CamelModel):
    """Payload for POST /api/decision-engine."""

    candidates: List[CandidateBetIn] = Field(default_factory=list)
    constraints: ConstraintsIn = Field(default_factory=ConstraintsIn)
    correlations: List[CandidateCorrelationIn] = Field(default_factory=list)
    solver: Optional[str] = Field(None, description='Registry name, e.g. "classical-greedy"')

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "json_schema_extra": {
            "example": {
                "candidates": [
                    {"id": "kalshi:KXFED-25DEC:yes", "source": "kalshi",
                     "label": "Fed cuts in December", "winProb": 0.62, "price": 0.55,
                     "factorIds": ["fed_policy"]},
                ],
                "constraints": {"bankrollUsd": 1000, "kellyFraction": 0.25},
            }
        },
    }


# ---------------------------------------------------------------------------
# Portfolio risk
# ---------------------------------------------------------------------------

class ContractIn(_CamelModel):
    id: str = Field(..., min_length=1)
    source: str = "unknown"
    price: float = Field(0.0, ge=0.0, le=1.0)
    title: str = ""
    bid: Optional[float] = Field(None, ge=0.0, le=1.0)
    ask: Optional[float] = Field(None, ge=0.0, le=1.0)
    resolution_time: Optional[str] = None
    factor_ids: List[str] = Field(default_factory=list)

    @field_validator("resolution_time")
    @classmethod
    def check_resolution_time(cls, v: Optional[str]) -> Optional[str]:
        return _check_timestamp(v)

    def to_core(self) -> Contract:
        return Contract(
            id=self.id,
            source=self.source,
            price=self.price,
            title=self.title,
            bid=self.bid,
            ask=self.ask,
            resolution_time=self.resolution_time,
            factor_ids=list(self.factor_ids),
        )


class PositionIn(_CamelModel):
    contract_id: str = Field(..., min_length=1)
    side: Literal["yes", "no"] = "yes"
    size: float = Field(..., ge=0)
    cost_per_share: float = Field(..., ge=0.0, le=1.0)

    def to_core(self) -> Position:
        return Position(self.contract_id, self.side, self.size, self.cost_per_share)


class PortfolioAnalysisRequest(_CamelModel):
    """Payload for POST /api/portfolio-analysis."""

    positions: List[PositionIn] = Field(default_factory=list)
    contracts: List[ContractIn] = Field(default_factory=list)

    def to_core(self) -> Portfolio:
        return Portfolio(
            positions=[p.to_core() for p in self.positions],
            contracts=[c.to_core() for c in self.contracts],
        )


# ---------------------------------------------------------------------------
# Strategy simulator
# ---------------------------------------------------------------------------

class SimulatedBetIn(_CamelModel):
    """Out-of-range values are clamped rather than rejected."""

    win_prob: float = 0.5
    price: float = 0.5

    @field_validator("win_prob", mode="before")
    @classmethod
    def clamp_win_prob(cls, v: Any) -> float:
        return _clamp(v, 0.0, 1.0, 0.5)

    @field_validator("price", mode="before")
    @classmethod
    def clamp_price(cls, v: Any) -> float:
        return _clamp(v, 0.01, 0.99, 0.5)

    def to_core(self) -> SimulatedBet:
        return SimulatedBet(self.win_prob, self.price)


class StrategyIn(_CamelModel):
    type: Literal["flat", "flat_fraction", "kelly"]
    stake_usd: Optional[float] = Field(None, gt=0)
    fraction_of_initial: Optional[float] = Field(None, gt=0.0, le=1.0)
    kelly_fraction: Optional[float] = Field(None, gt=0.0, le=1.0)

    def to_core(self) -> Strategy:
        return strategy_from_dict(self.model_dump(by_alias=True, exclude_none=True))


class SimulatorRequest(_CamelModel):
    """Payload for POST /api/simulator.

    When ``bets`` is empty a random sequence of ``numBets`` bets is generated.
    An omitted ``numRuns`` falls back to the engine config.
    """

    initial_bankroll_usd: float = Field(1000.0, gt=0)
    num_bets: int = 100
    num_runs: Optional[int] = None
    bets: List[SimulatedBetIn] = Field(default_factory=list)
    strategies: Optional[List[StrategyIn]] = None
    seed: Optional[int] = None

    @field_validator("num_bets", mode="before")
    @classmethod
    def clamp_num_bets(cls, v: Any) -> int:
        return int(_clamp(v, MIN_SIM_BETS, MAX_SIMULATED_BETS, 100))

    @field_validator("num_runs", mode="before")
    @classmethod
    def clamp_num_runs(cls, v: Any) -> Optional[int]:
        if v is None:
            return None
        return int(_clamp(v, MIN_SIM_RUNS, MAX_SIM_RUNS, MIN_SIM_RUNS))

    @field_validator("bets")
    @classmethod
    def truncate_bets(cls, v: List[SimulatedBetIn]) -> List[SimulatedBetIn]:
        return v[:MAX_SIMULATED_BETS]

    def resolved_num_runs(self, config: EngineConfig) -> int:
        if self.num_runs is not None:
            return self.num_runs
        return int(_clamp(config.simulator_runs, MIN_SIM_RUNS, MAX_SIM_RUNS, MIN_SIM_RUNS))


# ---------------------------------------------------------------------------
# Bankroll
# ---------------------------------------------------------------------------

class BankrollSummaryRequest(_CamelModel):
    """Payload for POST /api/bankroll/summary."""

    bankroll_usd: Optional[float] = Field(None, ge=0)
    kelly_fraction: Optional[float] = Field(None, gt=0.0, le=1.0)
    risk_profile: Optional[RiskProfile] = None
    positions: List[PositionIn] = Field(default_factory=list)
    contracts: List[ContractIn] = Field(default_factory=list)
    is_demo: bool = False

    def settings(self) -> BankrollSettings:
        return BankrollSettings(
            bankroll_usd=self.bankroll_usd,
            kelly_fraction=self.kelly_fraction,
            risk_profile=self.risk_profile,
        )


def labels_by_id(request: DecisionEngineRequest) -> Dict[str, str]:
    return {c.id: c.label or c.id for c in request.candidates}
