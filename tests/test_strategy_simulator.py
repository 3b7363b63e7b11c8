"""
Tests for the Monte Carlo strategy simulator
Run with: pytest tests/test_strategy_simulator.py -v
"""

import numpy as np
import pytest

from abe.core.errors import InvalidInputError
from abe.services.strategy_simulator import (
    FlatFractionStrategy,
    FlatStrategy,
    KellyStrategy,
    SimulatedBet,
    default_strategies,
    generate_random_bets,
    percentile,
    run_strategy_comparison,
    strategy_from_dict,
)


class TestDeterministicPaths:
    """Bet sequences whose outcome is certain"""

    def test_certain_wins(self):
        bets = [SimulatedBet(1.0, 0.5)] * 10
        result = run_strategy_comparison(1000.0, bets, [FlatStrategy(100.0)], num_runs=50, seed=1)
        stats = result.strategies[0]

        # +100 × (1/0.5 − 1) per bet
        assert stats.median_terminal_bankroll_usd == pytest.approx(2000.0)
        assert stats.median_max_drawdown == 0.0
        assert stats.num_bets_per_run == 10

    def test_certain_losses_ruin(self):
        bets = [SimulatedBet(0.0, 0.5)] * 5
        result = run_strategy_comparison(1000.0, bets, [FlatStrategy(400.0)], num_runs=50, seed=1)
        stats = result.strategies[0]

        # 1000 → 600 → 200 → 0 (stake clamped to bankroll), then the path stops
        assert stats.terminal_bankroll_percentiles["p95"] == 0.0
        assert stats.max_drawdown_percentiles["p5"] == pytest.approx(1.0)

    def test_kelly_without_edge_never_bets(self):
        bets = [SimulatedBet(0.4, 0.5)] * 20
        result = run_strategy_comparison(1000.0, bets, [KellyStrategy(0.5)], num_runs=100, seed=3)
        stats = result.strategies[0]

        assert stats.median_terminal_bankroll_usd == pytest.approx(1000.0)
        assert stats.max_drawdown_percentiles["p95"] == 0.0

    def test_flat_fraction_uses_initial_bankroll(self):
        bets = [SimulatedBet(1.0, 0.8)] * 4
        result = run_strategy_comparison(
            1000.0, bets, [FlatFractionStrategy(0.1)], num_runs=10, seed=0
        )
        # 4 × 100 × (1/0.8 − 1) = 100, stake does not grow with the bankroll
        assert result.strategies[0].median_terminal_bankroll_usd == pytest.approx(1100.0)


class TestStrategyComparison:
    """Distributional properties"""

    def test_half_kelly_vs_flat_fraction(self):
        """Higher median growth, but deeper drawdowns."""
        bets = [SimulatedBet(0.55, 0.45)] * 100
        result = run_strategy_comparison(
            1000.0,
            bets,
            [FlatFractionStrategy(0.02), KellyStrategy(0.5)],
            num_runs=10_000,
            seed=42,
        )
        flat, kelly = result.strategies

        assert kelly.median_terminal_bankroll_usd > flat.median_terminal_bankroll_usd
        assert kelly.max_drawdown_percentiles["p95"] > flat.max_drawdown_percentiles["p95"]
        assert flat.num_runs == kelly.num_runs == 10_000

    def test_percentiles_are_ordered(self):
        bets = generate_random_bets(50, seed=5)
        result = run_strategy_comparison(1000.0, bets, num_runs=2_000, seed=5)

        for stats in result.strategies:
            tb = stats.terminal_bankroll_percentiles
            dd = stats.max_drawdown_percentiles
            assert tb["p5"] <= tb["p25"] <= stats.median_terminal_bankroll_usd <= tb["p75"] <= tb["p95"]
            assert dd["p5"] <= dd["p25"] <= stats.median_max_drawdown <= dd["p75"] <= dd["p95"]
            assert 0.0 <= dd["p5"] and dd["p95"] <= 1.0
            assert tb["p5"] >= 0.0

    def test_seed_reproducible(self):
        bets = generate_random_bets(30, seed=9)
        first = run_strategy_comparison(1000.0, bets, num_runs=500, seed=11).to_dict()
        second = run_strategy_comparison(1000.0, bets, num_runs=500, seed=11).to_dict()

        assert first == second

    def test_default_strategies(self):
        result = run_strategy_comparison(1000.0, [SimulatedBet(0.6, 0.5)], num_runs=10, seed=0)

        assert [s.strategy for s in result.strategies] == default_strategies()
        assert result.to_dict()["strategies"][1]["strategy"] == {"type": "kelly", "kellyFraction": 0.25}

    def test_time_budget_truncates(self):
        bets = [SimulatedBet(0.55, 0.45)] * 20
        result = run_strategy_comparison(
            1000.0, bets, [KellyStrategy(0.25)], num_runs=10_000, seed=0, time_budget_ms=0
        )
        stats = result.strategies[0]

        assert 1 <= stats.num_runs < 10_000

    def test_empty_bet_sequence(self):
        result = run_strategy_comparison(1000.0, [], [FlatStrategy(10.0)], num_runs=10, seed=0)
        assert result.strategies[0].median_terminal_bankroll_usd == 1000.0


class TestValidation:
    """Bad simulator input"""

    def test_non_positive_bankroll(self):
        with pytest.raises(InvalidInputError):
            run_strategy_comparison(0.0, [SimulatedBet(0.6, 0.5)])

    def test_num_runs(self):
        with pytest.raises(InvalidInputError):
            run_strategy_comparison(1000.0, [SimulatedBet(0.6, 0.5)], num_runs=0)

    def test_bad_strategy(self):
        with pytest.raises(InvalidInputError):
            run_strategy_comparison(1000.0, [SimulatedBet(0.6, 0.5)], [KellyStrategy(1.5)])

    def test_bad_win_prob(self):
        with pytest.raises(InvalidInputError):
            run_strategy_comparison(1000.0, [SimulatedBet(1.5, 0.5)])

    def test_strategy_from_dict(self):
        assert strategy_from_dict({"type": "flat", "stakeUsd": 25}) == FlatStrategy(25.0)
        assert strategy_from_dict({"type": "flat_fraction", "fractionOfInitial": 0.02}) == \
            FlatFractionStrategy(0.02)
        assert strategy_from_dict({"type": "kelly", "kellyFraction": 0.5}) == KellyStrategy(0.5)

    @pytest.mark.parametrize("data", [
        {"type": "martingale"},
        {"type": "kelly"},
        {"type": "flat", "stakeUsd": "lots"},
    ])
    def test_strategy_from_dict_rejects(self, data):
        with pytest.raises(InvalidInputError):
            strategy_from_dict(data)


class TestHelpers:
    """Percentiles and random bet sequences"""

    def test_percentile_nearest_rank(self):
        values = np.arange(1, 11, dtype=float)
        assert percentile(values, 0.5) == 6.0
        assert percentile(values, 0.05) == 1.0
        assert percentile(values, 0.95) == 10.0
        assert percentile(values, 1.0) == 10.0
        assert percentile(np.array([]), 0.5) == 0.0

    def test_simulated_bet_from_camel_case(self):
        assert SimulatedBet.from_dict({"winProb": 0.55, "price": "0.5"}) == SimulatedBet(0.55, 0.5)

    def test_generate_random_bets(self):
        bets = generate_random_bets(200, mean_edge=0.02, price_range=(0.3, 0.7), seed=1)

        assert len(bets) == 200
        assert all(0.3 <= b.price <= 0.7 for b in bets)
        assert all(0.05 <= b.win_prob <= 0.95 for b in bets)
        edges = [b.win_prob - b.price for b in bets]
        assert all(-0.0001 <= e <= 0.0401 for e in edges)
        assert np.mean(edges) == pytest.approx(0.02, abs=0.005)

    def test_generate_random_bets_seeded(self):
        assert generate_random_bets(10, seed=3) == generate_random_bets(10, seed=3)
