"""Data-transfer objects for held contracts and portfolio risk reports.

These are the inputs and outputs of the portfolio risk engine and are
deliberately distinct from :class:`~abe.core.decision_interface.CandidateBet`:
a candidate is an *opportunity*, a position is something already *held*.

Every DTO offers ``to_dict()`` producing the camelCase, JSON-safe shape used
at the HTTP boundary, and inputs offer ``from_dict()`` for the reverse.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

Side = Literal["yes", "no"]

#: Catch-all factor id for contracts with no thematic tag.
OTHER_FACTOR: str = "other"


def parse_iso_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into an aware UTC ``datetime``.

    A trailing ``Z`` is accepted.  Naive timestamps are assumed to be UTC.
    Returns ``None`` for empty or unparsable input, so a bad date counts as
    "no resolution data" rather than failing the whole report.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass
class Contract:
    """A single tradeable binary outcome (e.g. "Yes" on a Kalshi market).

    Attributes:
        id: Unique id, e.g. ``"kalshi:KXFED-25DEC:yes"``.
        source: Adapter identifier (``"kalshi"``, ``"polymarket"``,
            ``"sportsbook"``).
        price: Mid / implied probability in ``[0, 1]``.  Pays $1 on win.
        title: Human-readable title.
        bid: Optional best bid.
        ask: Optional best ask.
        resolution_time: ISO timestamp at which the contract settles.
        factor_ids: Thematic factor tags; empty means ``["other"]``.
    """

    id: str
    source: str
    price: float
    title: str = ""
    bid: Optional[float] = None
    ask: Optional[float] = None
    resolution_time: Optional[str] = None
    factor_ids: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Contract":
        return cls(
            id=data["id"],
            source=data.get("source", "unknown"),
            price=float(data.get("price", 0.0)),
            title=data.get("title", ""),
            bid=data.get("bid"),
            ask=data.get("ask"),
            resolution_time=data.get("resolutionTime"),
            factor_ids=list(data.get("factorIds") or []),
        )


@dataclass
class Position:
    """A held position: ``size`` shares bought at ``cost_per_share``."""

    contract_id: str
    side: Side
    size: float
    cost_per_share: float

    @property
    def notional(self) -> float:
        """Dollars at risk: ``size × cost_per_share``."""
        return self.size * self.cost_per_share

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Position":
        return cls(
            contract_id=data["contractId"],
            side=data.get("side", "yes"),
            size=float(data["size"]),
            cost_per_share=float(data["costPerShare"]),
        )


@dataclass
class Portfolio:
    """Held positions plus whatever contract metadata the caller has."""

    positions: List[Position] = field(default_factory=list)
    contracts: List[Contract] = field(default_factory=list)

    def contract_map(self) -> Dict[str, Contract]:
        return {c.id: c for c in self.contracts}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Portfolio":
        return cls(
            positions=[Position.from_dict(p) for p in data.get("positions") or []],
            contracts=[Contract.from_dict(c) for c in data.get("contracts") or []],
        )


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


@dataclass
class FactorExposure:
    factor_id: str
    factor_name: str
    notional: float
    fraction: float
    contract_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "factorId": self.factor_id,
            "factorName": self.factor_name,
            "notional": self.notional,
            "fraction": self.fraction,
            "contractIds": list(self.contract_ids),
        }


@dataclass
class ContractCorrelation:
    contract_id_a: str
    contract_id_b: str
    correlation: float
    reason: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contractIdA": self.contract_id_a,
            "contractIdB": self.contract_id_b,
            "correlation": self.correlation,
            "reason": self.reason,
        }


@dataclass
class VarianceCurve:
    """Normal-approximation P&L band for the whole portfolio.

    ``p5_pnl_usd`` / ``p95_pnl_usd`` are ``∓1.65 σ``.  Binary payoffs are not
    normal, so treat the band as indicative only.
    """

    volatility_usd: float
    p5_pnl_usd: float
    p95_pnl_usd: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "volatilityUsd": self.volatility_usd,
            "p5PnlUsd": self.p5_pnl_usd,
            "p95PnlUsd": self.p95_pnl_usd,
        }


@dataclass
class PortfolioRiskReport:
    total_notional: float
    factor_exposures: List[FactorExposure]
    correlations: List[ContractCorrelation]
    concentration_risk: float
    warnings: List[str]
    suggested_factor_cap: float
    variance_curve: Optional[VarianceCurve] = None
    avg_lockup_days: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalNotional": self.total_notional,
            "factorExposures": [e.to_dict() for e in self.factor_exposures],
            "correlations": [c.to_dict() for c in self.correlations],
            "concentrationRisk": self.concentration_risk,
            "warnings": list(self.warnings),
            "suggestedFactorCap": self.suggested_factor_cap,
            "varianceCurve": self.variance_curve.to_dict() if self.variance_curve else None,
            "avgLockupDays": self.avg_lockup_days,
        }
