"""
Bankroll summary — sizing and heuristic risk figures for a user's holdings.

Combines the user's bankroll settings (bankroll, Kelly fraction, risk
profile) with their held positions into a :class:`BankrollSummary`.  All
numbers come from :mod:`abe.core.kelly`; the drawdown figures are the
uncalibrated heuristics documented there.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Sequence

from abe.core.engine_config import EngineConfig
from abe.core.errors import InvalidInputError
from abe.core.kelly import (
    avg_lockup_days,
    heuristic_p20_drawdown,
    heuristic_p30_drawdown_45_days,
    heuristic_risk_of_ruin,
    recommended_max_position_usd,
    total_notional,
)
from abe.core.portfolio_types import Contract, Position

logger = logging.getLogger(__name__)


class RiskProfile(str, Enum):
    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"

    @property
    def kelly_fraction(self) -> float:
        return RISK_PROFILE_KELLY[self]


RISK_PROFILE_KELLY: Dict[RiskProfile, float] = {
    RiskProfile.CONSERVATIVE: 0.25,
    RiskProfile.MODERATE: 0.5,
    RiskProfile.AGGRESSIVE: 0.75,
}


@dataclass
class BankrollSettings:
    """Saved user settings.  Any field may be unset."""

    bankroll_usd: Optional[float] = None
    kelly_fraction: Optional[float] = None
    risk_profile: Optional[RiskProfile] = None

    def validate(self) -> None:
        if self.bankroll_usd is not None and self.bankroll_usd < 0:
            raise InvalidInputError(f"bankroll_usd must be >= 0, got {self.bankroll_usd!r}.")
        if self.kelly_fraction is not None and not 0.0 < self.kelly_fraction <= 1.0:
            raise InvalidInputError(
                f"kelly_fraction must be in (0, 1], got {self.kelly_fraction!r}."
            )


@dataclass
class BankrollSummary:
    bankroll_usd: float
    kelly_fraction: float
    total_notional: float
    recommended_max_position_usd: float
    p_drawdown_20: Optional[float]
    p_drawdown_30_in_45_days: Optional[float]
    risk_of_ruin: Optional[float]
    risk_message: str
    avg_lockup_days: Optional[float] = None
    risk_profile: Optional[RiskProfile] = None
    is_demo: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bankrollUsd": self.bankroll_usd,
            "kellyFraction": self.kelly_fraction,
            "totalNotional": self.total_notional,
            "recommendedMaxPositionUsd": self.recommended_max_position_usd,
            "pDrawdown20": self.p_drawdown_20,
            "pDrawdown30In45Days": self.p_drawdown_30_in_45_days,
            "riskOfRuin": self.risk_of_ruin,
            "riskMessage": self.risk_message,
            "avgLockupDays": self.avg_lockup_days,
            "riskProfile": self.risk_profile.value if self.risk_profile else None,
            "isDemo": self.is_demo,
        }


def resolve_kelly_fraction(settings: Optional[BankrollSettings],
                           config: Optional[EngineConfig] = None) -> float:
    """Explicit Kelly setting, then the risk profile's, then the engine default."""
    config = config or EngineConfig()
    if settings is not None:
        if settings.kelly_fraction is not None:
            return settings.kelly_fraction
        if settings.risk_profile is not None:
            return settings.risk_profile.kelly_fraction
    return config.kelly_fraction


def _risk_message(bankroll_usd: float, has_positions: bool,
                  p30: Optional[float], max_position_usd: float) -> str:
    if bankroll_usd <= 0:
        return "Set your risk capital to see sizing and risk metrics."
    if not has_positions:
        return "No positions. Add positions or use a demo portfolio to see risk."
    p30_text = f"{p30 * 100:.0f}%" if p30 is not None else "n/a"
    return (
        f"P(30% drawdown in 45 days) ≈ {p30_text}. "
        f"Max single position: ${max_position_usd:.0f}."
    )


def build_bankroll_summary(
    settings: Optional[BankrollSettings],
    positions: Sequence[Position],
    contracts: Optional[Sequence[Contract]] = None,
    *,
    is_demo: bool = False,
    config: Optional[EngineConfig] = None,
    now: Optional[datetime] = None,
) -> BankrollSummary:
    """Summarise sizing and heuristic risk for ``positions``.

    Missing settings fall back to the engine defaults (bankroll, Kelly
    fraction).  A zero bankroll is allowed and produces ``None`` heuristics
    and a prompt to set one.
    """
    config = config or EngineConfig()
    if settings is not None:
        settings.validate()

    bankroll = (
        settings.bankroll_usd
        if settings is not None and settings.bankroll_usd is not None
        else config.bankroll_usd
    )
    kelly_fraction = resolve_kelly_fraction(settings, config)
    notional = total_notional(positions)
    max_position = recommended_max_position_usd(bankroll, kelly_fraction)
    p30 = heuristic_p30_drawdown_45_days(bankroll, notional)

    summary = BankrollSummary(
        bankroll_usd=bankroll,
        kelly_fraction=kelly_fraction,
        total_notional=notional,
        recommended_max_position_usd=max_position,
        p_drawdown_20=heuristic_p20_drawdown(bankroll, notional),
        p_drawdown_30_in_45_days=p30,
        risk_of_ruin=heuristic_risk_of_ruin(bankroll, notional, kelly_fraction),
        risk_message=_risk_message(bankroll, bool(positions), p30, max_position),
        avg_lockup_days=avg_lockup_days(positions, contracts or [], now=now),
        risk_profile=settings.risk_profile if settings is not None else None,
        is_demo=is_demo,
    )
    logger.info(
        "Bankroll summary: $%.2f bankroll, Kelly %.2f, $%.2f notional across %d positions",
        bankroll, kelly_fraction, notional, len(positions),
    )
    return summary
