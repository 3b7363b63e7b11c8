"""Bankroll / Kelly engine — the single source of truth for stake sizing.

All functions here are **pure**: no I/O, no logging, no randomness.
Import from this module; never reimplement Kelly locally in services.

The module covers three concerns:

1. :func:`full_kelly_binary` / :func:`kelly_stake_usd` — Kelly sizing for a
   binary contract that pays $1 on a win and costs ``price``.
2. Drawdown heuristics — :func:`heuristic_p20_drawdown`,
   :func:`heuristic_p30_drawdown_45_days`, :func:`heuristic_risk_of_ruin`.
3. Capital lock-up — :func:`avg_lockup_days`.

Heuristics disclaimer
---------------------
The drawdown and risk-of-ruin functions are **not** a stochastic risk model.
They are monotone curves in the exposure ratio ``total_notional / bankroll``
whose constants were chosen for readability, not fitted to data.  Whether
they were ever calibrated against settled history is unknown.  Callers must
not present them as calibrated probabilities; use
:mod:`abe.services.strategy_simulator` when a real distribution is needed.

Run tests with::

    pytest tests/test_kelly.py -v
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Final, Iterable, Optional, Sequence

from abe.core.portfolio_types import Contract, Position, parse_iso_timestamp

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Ceiling on both drawdown heuristics.  The curves never claim certainty.
_MAX_DRAWDOWN_PROB: Final[float] = 0.95

#: Decay rate of the 20%-drawdown curve ``1 − exp(−k · ratio)``.
_P20_RATE: Final[float] = 0.4

#: Decay rate of the 30%-in-45-days curve.  Steeper than the 20% curve.
_P30_RATE: Final[float] = 0.5

#: Ceiling on the risk-of-ruin heuristic.
_MAX_RISK_OF_RUIN: Final[float] = 0.5

#: Risk-of-ruin slope at full Kelly; a further 0.15 is added as the Kelly
#: fraction falls toward zero.
_RUIN_BASE_SLOPE: Final[float] = 0.15
_RUIN_KELLY_SLOPE: Final[float] = 0.15

_SECONDS_PER_DAY: Final[float] = 24 * 60 * 60


# ---------------------------------------------------------------------------
# Kelly sizing
# ---------------------------------------------------------------------------


def full_kelly_binary(win_prob: float, price: float) -> float:
    """Full Kelly fraction for a binary contract paying $1 at cost ``price``.

    Buying one share at ``price`` returns a profit of ``b = (1 − p) / p`` per
    dollar staked on a win and loses the stake otherwise.  Substituting into
    the classic ``f* = (q_win · b − q_loss) / b`` collapses to::

        f*  =  (win_prob − price) / (1 − price)  =  edge / (1 − price)

    Args:
        win_prob: Estimated probability the contract pays out.
        price: Cost per $1 of payoff.  Must lie strictly inside ``(0, 1)``.

    Returns:
        Fraction of bankroll in ``[0, 1]``.  ``0.0`` when ``edge <= 0`` or when
        ``price`` is outside ``(0, 1)`` (the bet is unsizeable).

    Examples::

        full_kelly_binary(0.60, 0.50)  →  0.20
        full_kelly_binary(0.40, 0.50)  →  0.00   (negative edge)
        full_kelly_binary(0.99, 1.00)  →  0.00   (invalid price)
    """
    if price <= 0.0 or price >= 1.0:
        return 0.0
    edge = win_prob - price
    if edge <= 0.0:
        return 0.0
    return max(0.0, min(1.0, edge / (1.0 - price)))


def kelly_stake_usd(
    bankroll_usd: float,
    kelly_fraction: float,
    win_prob: float,
    price: float,
) -> float:
    """Fractional Kelly stake in dollars.

    ``bankroll_usd × kelly_fraction × full_kelly_binary(win_prob, price)``.
    Non-decreasing in both ``bankroll_usd`` and ``kelly_fraction``.

    Returns:
        Stake in USD, ``0.0`` when ``bankroll_usd <= 0``.

    Examples::

        kelly_stake_usd(1000, 0.25, 0.60, 0.50)  →  50.0
    """
    if bankroll_usd <= 0.0:
        return 0.0
    return bankroll_usd * kelly_fraction * full_kelly_binary(win_prob, price)


def recommended_max_position_usd(
    bankroll_usd: float,
    kelly_fraction: float,
    max_fraction_of_bankroll: float = 0.10,
    reference_kelly_fraction: float = 0.25,
) -> float:
    """Edge-free position ceiling: 10% of bankroll at quarter Kelly, scaled
    linearly with the user's Kelly fraction."""
    if bankroll_usd <= 0.0:
        return 0.0
    return bankroll_usd * kelly_fraction * (max_fraction_of_bankroll / reference_kelly_fraction)


# ---------------------------------------------------------------------------
# Exposure
# ---------------------------------------------------------------------------


def total_notional(positions: Iterable[Position]) -> float:
    """Sum of ``size × cost_per_share`` over ``positions``."""
    return sum(p.notional for p in positions)


def _exposure_ratio(bankroll_usd: float, notional_usd: float) -> Optional[float]:
    if bankroll_usd <= 0.0:
        return None
    return notional_usd / bankroll_usd


# ---------------------------------------------------------------------------
# Drawdown heuristics (NOT calibrated, see module docstring)
# ---------------------------------------------------------------------------


def heuristic_p20_drawdown(bankroll_usd: float, notional_usd: float) -> Optional[float]:
    """Heuristic P(20% drawdown): ``min(0.95, 1 − exp(−0.4 · ratio))``.

    Returns ``None`` when the bankroll is not positive.
    """
    ratio = _exposure_ratio(bankroll_usd, notional_usd)
    if ratio is None:
        return None
    p = min(_MAX_DRAWDOWN_PROB, 1.0 - math.exp(-_P20_RATE * ratio))
    return round(p, 2)


def heuristic_p30_drawdown_45_days(bankroll_usd: float, notional_usd: float) -> Optional[float]:
    """Heuristic P(30% drawdown within 45 days): ``min(0.95, 1 − exp(−0.5 · ratio))``."""
    ratio = _exposure_ratio(bankroll_usd, notional_usd)
    if ratio is None:
        return None
    p = min(_MAX_DRAWDOWN_PROB, 1.0 - math.exp(-_P30_RATE * ratio))
    return round(p, 2)


def heuristic_risk_of_ruin(
    bankroll_usd: float,
    notional_usd: float,
    kelly_fraction: float,
) -> Optional[float]:
    """Heuristic risk-of-ruin score in ``[0, 0.5]``.

    ``ratio × (0.15 + (1 − kelly_fraction) × 0.15)`` capped at 0.5.  Rises
    with exposure and, for a fixed exposure, with a *smaller* Kelly fraction:
    the same notional at a low Kelly setting means the user is over-deployed
    relative to their stated tolerance.
    """
    ratio = _exposure_ratio(bankroll_usd, notional_usd)
    if ratio is None:
        return None
    scaled = ratio * (_RUIN_BASE_SLOPE + (1.0 - kelly_fraction) * _RUIN_KELLY_SLOPE)
    return round(min(_MAX_RISK_OF_RUIN, max(0.0, scaled)), 2)


# ---------------------------------------------------------------------------
# Lock-up
# ---------------------------------------------------------------------------


def avg_lockup_days(
    positions: Sequence[Position],
    contracts: Sequence[Contract],
    *,
    now: Optional[datetime] = None,
) -> Optional[float]:
    """Notional-weighted average days until resolution.

    Only positions whose contract has a ``resolution_time`` in the future
    contribute.  Returns ``None`` (not 0) when no contributing position
    exists, so callers can tell "no data" from "resolves today".

    Args:
        positions: Held positions.
        contracts: Contract metadata; positions with no matching contract are
            skipped.
        now: Reference time; defaults to the current UTC time.

    Returns:
        Days rounded to one decimal, or ``None``.
    """
    if not contracts:
        return None
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    by_id = {c.id: c for c in contracts}
    total_weight = 0.0
    weighted_days = 0.0
    for pos in positions:
        contract = by_id.get(pos.contract_id)
        if contract is None:
            continue
        resolves_at = parse_iso_timestamp(contract.resolution_time)
        if resolves_at is None or resolves_at <= now:
            continue
        days = (resolves_at - now).total_seconds() / _SECONDS_PER_DAY
        weight = pos.notional
        weighted_days += weight * days
        total_weight += weight

    if total_weight <= 0.0:
        return None
    return round(weighted_days / total_weight, 1)
