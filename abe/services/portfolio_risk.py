"""
Portfolio risk engine — exposure, correlation and concentration on holdings.

Given a :class:`~abe.core.portfolio_types.Portfolio` of *existing* positions
this produces a :class:`~abe.core.portfolio_types.PortfolioRiskReport`:

    1. Notional per contract and in total (``size × cost_per_share``).
    2. Factor exposures — notional bucketed by each contract's factor ids.
    3. Pairwise correlations between held contracts (|rho| ≥ 0.2 only).
    4. Concentration risk — the largest single-factor fraction.
    5. Warnings — concentration, overexposure, no notional.
    6. Variance curve — ``σ_p² = Σσ_i² + 2 Σ_{i<j} ρ_ij σ_i σ_j`` with a
       ±1.65σ band (normal approximation, indicative only).
    7. Average lock-up days, delegated to :mod:`abe.core.kelly`.

Correlation is supplied by a :class:`CorrelationEstimator`.  The default
:class:`HeuristicCorrelationEstimator` is a placeholder, not an empirical
model: inject a better estimator rather than editing the id parsing.

An empty portfolio is not an error; it yields a zero report with a warning.
"""

import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Tuple

import numpy as np

from abe.core.engine_config import EngineConfig
from abe.core.factors import factor_name
from abe.core.kelly import avg_lockup_days
from abe.core.portfolio_types import (
    OTHER_FACTOR,
    Contract,
    ContractCorrelation,
    FactorExposure,
    Portfolio,
    PortfolioRiskReport,
    VarianceCurve,
)

logger = logging.getLogger(__name__)

CONCENTRATION_WARNING_THRESHOLD = 0.5
OVEREXPOSURE_WARNING_THRESHOLD = 0.6

# Two-sided normal quantile used for the P&L band.
BAND_Z = 1.65

REASON_OPPOSITE_SIDE = "same_event_opposite_side"
REASON_SAME_CONTRACT = "same_contract"
REASON_SAME_FACTOR = "same_factor"


# ---------------------------------------------------------------------------
# Correlation estimation
# ---------------------------------------------------------------------------


class CorrelationEstimator(ABC):
    """Estimates the outcome correlation of two held contracts."""

    @abstractmethod
    def estimate(
        self,
        contract_id_a: str,
        contract_id_b: str,
        contracts: Mapping[str, Contract],
    ) -> Tuple[float, str]:
        """Return ``(rho, reason)`` with ``rho`` in ``[-1, 1]``."""


_BINARY_ID = re.compile(r"^(kalshi|polymarket):(.+):(yes|no)$")


def split_binary_contract_id(contract_id: str) -> Optional[Tuple[str, str, str]]:
    """``"kalshi:KXFED-25DEC:yes"`` → ``("kalshi", "KXFED-25DEC", "yes")``; else ``None``."""
    match = _BINARY_ID.match(contract_id)
    if not match:
        return None
    return match.group(1), match.group(2), match.group(3)


class HeuristicCorrelationEstimator(CorrelationEstimator):
    """Id-pattern and factor-overlap heuristic.

    * identical id → 1
    * opposite sides of the same Kalshi ticker / Polymarket condition → -1
    * both contracts tagged, neither "other", sharing k factors →
      ``0.3 + 0.5 · min(1, k / 2)`` (0.55 for one shared factor, 0.8 for two+)
    * otherwise 0
    """

    def estimate(
        self,
        contract_id_a: str,
        contract_id_b: str,
        contracts: Mapping[str, Contract],
    ) -> Tuple[float, str]:
        if contract_id_a == contract_id_b:
            return 1.0, REASON_SAME_CONTRACT

        parsed_a = split_binary_contract_id(contract_id_a)
        parsed_b = split_binary_contract_id(contract_id_b)
        if parsed_a and parsed_b and parsed_a[:2] == parsed_b[:2] and parsed_a[2] != parsed_b[2]:
            return -1.0, REASON_OPPOSITE_SIDE

        factors_a = set(_factor_ids(contracts.get(contract_id_a)))
        factors_b = set(_factor_ids(contracts.get(contract_id_b)))
        if OTHER_FACTOR in factors_a or OTHER_FACTOR in factors_b:
            return 0.0, ""
        overlap = len(factors_a & factors_b)
        if overlap > 0:
            return 0.3 + 0.5 * min(1.0, overlap / 2.0), REASON_SAME_FACTOR
        return 0.0, ""


def _factor_ids(contract: Optional[Contract]) -> List[str]:
    if contract is None or not contract.factor_ids:
        return [OTHER_FACTOR]
    return list(contract.factor_ids)


# ---------------------------------------------------------------------------
# Report pieces
# ---------------------------------------------------------------------------


def _notionals(portfolio: Portfolio) -> Tuple[float, Dict[str, float]]:
    by_contract: Dict[str, float] = {}
    for pos in portfolio.positions:
        by_contract[pos.contract_id] = by_contract.get(pos.contract_id, 0.0) + pos.notional
    return sum(by_contract.values()), by_contract


def _factor_exposures(
    by_contract: Dict[str, float],
    contracts: Mapping[str, Contract],
    total: float,
) -> List[FactorExposure]:
    buckets: Dict[str, FactorExposure] = {}
    for contract_id, notional in by_contract.items():
        for fid in _factor_ids(contracts.get(contract_id)):
            exposure = buckets.get(fid)
            if exposure is None:
                exposure = buckets[fid] = FactorExposure(
                    factor_id=fid, factor_name=factor_name(fid), notional=0.0, fraction=0.0
                )
            exposure.notional += notional
            if contract_id not in exposure.contract_ids:
                exposure.contract_ids.append(contract_id)

    exposures = list(buckets.values())
    for exposure in exposures:
        exposure.fraction = exposure.notional / total if total > 0 else 0.0
    exposures.sort(key=lambda e: e.notional, reverse=True)
    return exposures


def _correlations(
    contract_ids: List[str],
    contracts: Mapping[str, Contract],
    estimator: CorrelationEstimator,
    threshold: float,
) -> List[ContractCorrelation]:
    pairs: List[ContractCorrelation] = []
    for i, id_a in enumerate(contract_ids):
        for id_b in contract_ids[i + 1:]:
            rho, reason = estimator.estimate(id_a, id_b, contracts)
            rho = max(-1.0, min(1.0, rho))
            if abs(rho) >= threshold:
                pairs.append(ContractCorrelation(id_a, id_b, rho, reason))
    pairs.sort(key=lambda p: abs(p.correlation), reverse=True)
    return pairs


def _warnings(exposures: List[FactorExposure], concentration: float, total: float) -> List[str]:
    warnings: List[str] = []
    if total <= 0:
        warnings.append("Portfolio has no notional; add positions to see risk metrics.")
        return warnings

    if concentration >= CONCENTRATION_WARNING_THRESHOLD and exposures:
        top = max(exposures, key=lambda e: e.fraction)
        warnings.append(
            f'High concentration in "{top.factor_name}": {top.fraction * 100:.0f}% of '
            "portfolio notional. Consider diversifying."
        )
    for exposure in exposures:
        if exposure.factor_id != OTHER_FACTOR and exposure.fraction >= OVEREXPOSURE_WARNING_THRESHOLD:
            warnings.append(
                f'Overexposure to "{exposure.factor_name}": {exposure.fraction * 100:.0f}% '
                f"of notional (${exposure.notional:.0f})."
            )
    return warnings


def _variance_curve(
    portfolio: Portfolio,
    contracts: Mapping[str, Contract],
    estimator: CorrelationEstimator,
) -> Optional[VarianceCurve]:
    positions = portfolio.positions
    if not positions:
        return None

    p = np.array([pos.cost_per_share for pos in positions], dtype=float)
    size = np.array([pos.size for pos in positions], dtype=float)
    sigmas = size * np.sqrt(np.clip(p * (1.0 - p), 0.0, None))

    n = len(positions)
    rho = np.eye(n)
    for i in range(n):
        for j in range(i + 1, n):
            a, b = positions[i], positions[j]
            if a.contract_id == b.contract_id:
                value = 1.0 if a.side == b.side else -1.0
            else:
                value, _ = estimator.estimate(a.contract_id, b.contract_id, contracts)
            rho[i, j] = rho[j, i] = max(-1.0, min(1.0, value))

    variance = float(sigmas @ rho @ sigmas)
    if variance <= 0:
        return None
    volatility = float(np.sqrt(variance))
    return VarianceCurve(
        volatility_usd=volatility,
        p5_pnl_usd=-BAND_Z * volatility,
        p95_pnl_usd=BAND_Z * volatility,
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def run_portfolio_risk_analysis(
    portfolio: Portfolio,
    *,
    estimator: Optional[CorrelationEstimator] = None,
    config: Optional[EngineConfig] = None,
    now: Optional[datetime] = None,
) -> PortfolioRiskReport:
    """Build the risk report for ``portfolio``.

    Args:
        portfolio: Held positions and any known contract metadata.
        estimator: Correlation model; defaults to the id/factor heuristic.
        config: Supplies the report threshold and suggested factor cap.
        now: Reference time for lock-up; defaults to current UTC.
    """
    estimator = estimator or HeuristicCorrelationEstimator()
    config = config or EngineConfig()
    contracts = portfolio.contract_map()

    total, by_contract = _notionals(portfolio)
    exposures = _factor_exposures(by_contract, contracts, total)
    correlations = _correlations(
        list(by_contract), contracts, estimator, config.correlation_report_threshold
    )
    concentration = max((e.fraction for e in exposures), default=0.0)
    concentration = max(0.0, min(1.0, concentration))
    warnings = _warnings(exposures, concentration, total)

    report = PortfolioRiskReport(
        total_notional=total,
        factor_exposures=exposures,
        correlations=correlations,
        concentration_risk=concentration,
        warnings=warnings,
        suggested_factor_cap=config.suggested_factor_cap,
        variance_curve=_variance_curve(portfolio, contracts, estimator),
        avg_lockup_days=avg_lockup_days(portfolio.positions, portfolio.contracts, now=now),
    )

    logger.info(
        "Portfolio risk: %d positions, $%.2f notional, concentration %.2f, %d warnings",
        len(portfolio.positions), total, concentration, len(warnings),
    )
    return report
