"""
Greedy classical optimizer — the baseline portfolio-construction solver.

Ranks candidates by edge and admits them one at a time with fractional
Kelly sizing, enforcing the hard caps in this order:

    1. position count        ("Max positions reached")
    2. factor-group notional ("Factor cap reached")
    3. pairwise correlation  ("Correlation limit")
    4. Kelly stake > 0       ("Kelly stake is 0")
    5. total notional        ("Would exceed max notional")

If ``min_positions`` is still unmet afterwards, a backfill pass re-scans the
same ranking at half the Kelly fraction (floored at 0.5% of bankroll) with
the factor cap relaxed.  Backfilled positions say so in their ``reason``.

Cost is ``O(N log N + N·M)`` for N candidates and M correlation pairs.
Every alternative solver is benchmarked against this one.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from abe.core.decision_interface import (
    BaseOptimizer,
    CandidateBet,
    CandidateCorrelation,
    DecisionEngineConstraints,
    DecisionEngineMetrics,
    DecisionEngineResult,
    SelectedPosition,
    validate_candidates,
)
from abe.core.kelly import kelly_stake_usd

logger = logging.getLogger(__name__)

GREEDY_OPTIMIZER_NAME = "classical-greedy"

# Backfill sizing: half the configured Kelly, never below 0.5% of bankroll.
BACKFILL_KELLY_MULTIPLIER = 0.5
BACKFILL_MIN_STAKE_FRACTION = 0.005

REASON_NO_EDGE = "No edge"
REASON_LOW_LIQUIDITY = "Insufficient liquidity"
REASON_MAX_POSITIONS = "Max positions reached"
REASON_FACTOR_CAP = "Factor cap reached"
REASON_CORRELATION = "Correlation limit"
REASON_ZERO_STAKE = "Kelly stake is 0"
REASON_MAX_NOTIONAL = "Would exceed max notional"


@dataclass
class _Slate:
    """Running totals while positions are admitted."""

    positions: List[SelectedPosition] = field(default_factory=list)
    selected: Set[str] = field(default_factory=set)
    factor_notional: Dict[str, float] = field(default_factory=dict)
    total_notional: float = 0.0

    def admit(self, candidate: CandidateBet, stake: float, reason: str) -> None:
        self.positions.append(
            SelectedPosition(
                candidate_id=candidate.id,
                stake_usd=stake,
                shares=stake / candidate.price if candidate.price > 0 else None,
                reason=reason,
            )
        )
        self.selected.add(candidate.id)
        key = candidate.factor_key
        self.factor_notional[key] = self.factor_notional.get(key, 0.0) + stake
        self.total_notional += stake


def _correlation_index(
    correlations: Sequence[CandidateCorrelation],
) -> Dict[str, List[Tuple[str, float]]]:
    """id → [(other id, |rho|)] for both endpoints of every pair."""
    index: Dict[str, List[Tuple[str, float]]] = {}
    for pair in correlations:
        magnitude = abs(pair.correlation)
        index.setdefault(pair.id_a, []).append((pair.id_b, magnitude))
        index.setdefault(pair.id_b, []).append((pair.id_a, magnitude))
    return index


def _edge_label(candidate: CandidateBet) -> str:
    return f"Edge {candidate.edge * 100:.1f}%"


class GreedyOptimizer(BaseOptimizer):
    """Edge-first selection with Kelly sizing and hard caps."""

    name = GREEDY_OPTIMIZER_NAME

    def solve(
        self,
        candidates: Sequence[CandidateBet],
        constraints: DecisionEngineConstraints,
        *,
        correlations: Optional[Sequence[CandidateCorrelation]] = None,
        time_limit_ms: Optional[float] = None,
    ) -> DecisionEngineResult:
        start = time.perf_counter()
        constraints.validate()
        validate_candidates(candidates)
        correlations = list(correlations or [])

        excluded: Dict[str, str] = {}
        eligible: List[CandidateBet] = []
        for c in candidates:
            if c.edge is None or c.edge <= 0:
                excluded[c.id] = REASON_NO_EDGE
            elif (
                constraints.min_liquidity is not None
                and c.max_size is not None
                and c.max_size < constraints.min_liquidity
            ):
                excluded[c.id] = REASON_LOW_LIQUIDITY
            else:
                eligible.append(c)

        # Ties broken on id so identical input always ranks identically.
        ranked = sorted(eligible, key=lambda c: (-c.edge, c.id))

        corr_index = _correlation_index(correlations)
        held = set(constraints.existing_contract_ids)
        slate = _Slate()

        def too_correlated(c: CandidateBet) -> bool:
            limit = constraints.max_pairwise_correlation
            if limit is None or limit >= 1.0:
                return False
            own_ids = {c.id}
            if c.contract_id:
                own_ids.add(c.contract_id)
            for own in own_ids:
                for other, magnitude in corr_index.get(own, ()):
                    if magnitude <= limit or other in own_ids:
                        continue
                    if other in slate.selected or other in held:
                        return True
            return False

        def capped_stake(c: CandidateBet, stake: float) -> float:
            stake = min(stake, constraints.max_stake_per_position)
            if c.max_size is not None and c.max_size > 0:
                stake = min(stake, c.max_size)
            return stake

        def exceeds_notional(stake: float) -> bool:
            cap = constraints.max_total_notional
            return cap is not None and slate.total_notional + stake > cap

        factor_cap = (
            constraints.bankroll_usd * constraints.max_factor_fraction
            if constraints.max_factor_fraction
            else None
        )

        for c in ranked:
            if len(slate.positions) >= constraints.max_positions:
                reason = REASON_MAX_POSITIONS
            elif factor_cap is not None and slate.factor_notional.get(c.factor_key, 0.0) >= factor_cap:
                reason = REASON_FACTOR_CAP
            elif too_correlated(c):
                reason = REASON_CORRELATION
            else:
                stake = capped_stake(
                    c,
                    kelly_stake_usd(
                        constraints.bankroll_usd, constraints.kelly_fraction, c.win_prob, c.price
                    ),
                )
                if stake <= 0:
                    reason = REASON_ZERO_STAKE
                elif exceeds_notional(stake):
                    reason = REASON_MAX_NOTIONAL
                else:
                    slate.admit(c, stake, _edge_label(c))
                    continue
            excluded[c.id] = reason
            logger.debug("Excluded %s: %s", c.id, reason)

        min_positions = constraints.min_positions
        if min_positions and len(slate.positions) < min_positions:
            self._backfill(ranked, constraints, slate, excluded, too_correlated,
                           capped_stake, exceeds_notional)

        by_id = {c.id: c for c in candidates}
        expected_return = sum(
            p.stake_usd * by_id[p.candidate_id].edge * (1.0 / by_id[p.candidate_id].price - 1.0)
            for p in slate.positions
        )
        num_correlated_pairs = sum(
            1 for pair in correlations
            if pair.id_a in slate.selected and pair.id_b in slate.selected
        )
        solve_time_ms = (time.perf_counter() - start) * 1000.0

        logger.info(
            "Greedy solve: %d candidates → %d positions ($%.2f staked, EV $%.2f) in %.2f ms",
            len(candidates), len(slate.positions), slate.total_notional,
            expected_return, solve_time_ms,
        )

        return DecisionEngineResult(
            positions=slate.positions,
            objective_value=expected_return,
            metrics=DecisionEngineMetrics(
                expected_return=expected_return,
                num_correlated_pairs=num_correlated_pairs,
                total_stake_usd=slate.total_notional,
            ),
            excluded_reasons=excluded,
            solver=self.name,
            solve_time_ms=solve_time_ms,
        )

    @staticmethod
    def _backfill(ranked, constraints, slate, excluded, too_correlated,
                  capped_stake, exceeds_notional) -> None:
        """Top up to ``min_positions`` with smaller, lower-conviction stakes."""
        added = 0
        for c in ranked:
            if (
                len(slate.positions) >= constraints.min_positions
                or len(slate.positions) >= constraints.max_positions
            ):
                break
            if c.id in slate.selected or too_correlated(c):
                continue

            base = kelly_stake_usd(
                constraints.bankroll_usd,
                constraints.kelly_fraction * BACKFILL_KELLY_MULTIPLIER,
                c.win_prob,
                c.price,
            )
            if base <= 0:
                continue
            stake = capped_stake(
                c, max(base, constraints.bankroll_usd * BACKFILL_MIN_STAKE_FRACTION)
            )
            if stake <= 0 or exceeds_notional(stake):
                continue

            slate.admit(c, stake, f"{_edge_label(c)} (min-positions pass)")
            excluded.pop(c.id, None)
            added += 1

        if len(slate.positions) < constraints.min_positions:
            logger.warning(
                "min_positions=%d unmet: only %d positions after backfill",
                constraints.min_positions, len(slate.positions),
            )
        elif added:
            logger.info("Backfill added %d positions to reach min_positions", added)
