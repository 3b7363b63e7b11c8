"""
Tests for the bankroll summary and risk profiles
Run with: pytest tests/test_bankroll.py -v
"""

from datetime import datetime, timedelta, timezone

import pytest

from abe.core.engine_config import EngineConfig
from abe.core.errors import InvalidInputError
from abe.core.kelly import heuristic_risk_of_ruin
from abe.core.portfolio_types import Contract, Position
from abe.services.bankroll import (
    BankrollSettings,
    RiskProfile,
    build_bankroll_summary,
    resolve_kelly_fraction,
)


NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


class TestKellyPrecedence:
    """Explicit setting → risk profile → default"""

    def test_explicit_wins(self):
        settings = BankrollSettings(kelly_fraction=0.1, risk_profile=RiskProfile.AGGRESSIVE)
        assert resolve_kelly_fraction(settings) == 0.1

    def test_profile(self):
        settings = BankrollSettings(risk_profile=RiskProfile.MODERATE)
        assert resolve_kelly_fraction(settings) == 0.5

    def test_default(self):
        assert resolve_kelly_fraction(None) == 0.25
        assert resolve_kelly_fraction(BankrollSettings(), EngineConfig(kelly_fraction=0.3)) == 0.3

    def test_profile_values(self):
        assert RiskProfile.CONSERVATIVE.kelly_fraction == 0.25
        assert RiskProfile("aggressive").kelly_fraction == 0.75


class TestBankrollSummary:
    """Summary figures and messages"""

    def test_defaults_without_settings(self):
        summary = build_bankroll_summary(None, [])

        assert summary.bankroll_usd == 1000.0
        assert summary.kelly_fraction == 0.25
        assert summary.total_notional == 0
        assert summary.recommended_max_position_usd == pytest.approx(100.0)
        assert summary.p_drawdown_20 == 0.0
        assert summary.risk_message.startswith("No positions.")

    def test_with_positions(self):
        positions = [Position("kalshi:A:yes", "yes", 1000, 0.5), Position("kalshi:B:no", "no", 1000, 0.5)]
        contracts = [
            Contract("kalshi:A:yes", "kalshi", 0.5,
                     resolution_time=(NOW + timedelta(days=10)).isoformat()),
        ]
        summary = build_bankroll_summary(
            BankrollSettings(bankroll_usd=1000.0, risk_profile=RiskProfile.MODERATE),
            positions,
            contracts,
            now=NOW,
        )

        assert summary.total_notional == pytest.approx(1000.0)
        assert summary.kelly_fraction == 0.5
        assert summary.recommended_max_position_usd == pytest.approx(200.0)
        assert summary.p_drawdown_20 == 0.33
        assert summary.p_drawdown_30_in_45_days == 0.39
        assert summary.risk_of_ruin == heuristic_risk_of_ruin(1000.0, 1000.0, 0.5)
        assert summary.avg_lockup_days == pytest.approx(10.0)
        assert summary.risk_message == "P(30% drawdown in 45 days) ≈ 39%. Max single position: $200."

    def test_zero_bankroll(self):
        summary = build_bankroll_summary(
            BankrollSettings(bankroll_usd=0.0), [Position("a", "yes", 10, 0.5)]
        )

        assert summary.p_drawdown_20 is None
        assert summary.risk_of_ruin is None
        assert summary.recommended_max_position_usd == 0.0
        assert summary.risk_message.startswith("Set your risk capital")

    def test_to_dict(self):
        body = build_bankroll_summary(
            BankrollSettings(risk_profile=RiskProfile.CONSERVATIVE), [], is_demo=True
        ).to_dict()

        assert body["riskProfile"] == "conservative"
        assert body["isDemo"] is True
        assert body["avgLockupDays"] is None
        assert set(body) >= {"bankrollUsd", "pDrawdown30In45Days", "riskOfRuin", "riskMessage"}

    def test_invalid_settings(self):
        with pytest.raises(InvalidInputError):
            build_bankroll_summary(BankrollSettings(kelly_fraction=0.0), [])
        with pytest.raises(InvalidInputError):
            build_bankroll_summary(BankrollSettings(bankroll_usd=-5.0), [])
