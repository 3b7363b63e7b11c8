"""
Tests for the FastAPI surface
Run with: pytest tests/test_api.py -v
"""

from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

import abe.main
from abe.core.engine_config import EngineConfig
from abe.main import app
from abe.schemas import SimulatorRequest


@pytest.fixture
def client():
    return TestClient(app)


class TestHealth:
    """Liveness"""

    def test_health(self, client):
        resp = client.get("/health")

        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"
        assert "classical-greedy" in resp.json()["solvers"]


class TestDecisionEngineEndpoint:
    """POST /api/decision-engine"""

    def test_selects_and_labels(self, client):
        resp = client.post("/api/decision-engine", json={
            "candidates": [
                {"id": "a", "label": "Fed cuts", "winProb": 0.6, "price": 0.5},
                {"id": "b", "winProb": 0.4, "price": 0.5},
            ],
            "constraints": {"bankrollUsd": 1000, "maxFractionPerPosition": 0.1},
        })

        assert resp.status_code == 200
        body = resp.json()
        assert body["solver"] == "classical-greedy"
        assert body["positions"][0]["candidateId"] == "a"
        assert body["positions"][0]["stakeUsd"] == pytest.approx(50.0)
        assert body["excludedReasons"] == {"b": "No edge"}
        assert body["labels"] == {"a": "Fed cuts", "b": "b"}

    def test_empty_candidates_is_valid(self, client):
        resp = client.post("/api/decision-engine", json={"candidates": []})

        assert resp.status_code == 200
        assert resp.json()["positions"] == []

    @pytest.mark.parametrize("candidate", [
        {"id": "a", "winProb": 0.6, "price": 1.0},
        {"id": "a", "winProb": 0.6, "price": 0.0},
        {"id": "a", "winProb": 1.2, "price": 0.5},
    ])
    def test_boundary_validation(self, client, candidate):
        resp = client.post("/api/decision-engine", json={"candidates": [candidate]})
        assert resp.status_code == 422

    def test_non_positive_bankroll(self, client):
        resp = client.post("/api/decision-engine", json={
            "candidates": [], "constraints": {"bankrollUsd": 0},
        })
        assert resp.status_code == 422

    def test_unknown_solver(self, client):
        resp = client.post("/api/decision-engine", json={"candidates": [], "solver": "mip"})

        assert resp.status_code == 400
        assert "Unknown solver" in resp.json()["detail"]

    def test_inconsistent_constraints(self, client):
        resp = client.post("/api/decision-engine", json={
            "candidates": [],
            "constraints": {"maxPositions": 2, "minPositions": 5},
        })
        assert resp.status_code == 400

    def test_duplicate_ids(self, client):
        bet = {"id": "a", "winProb": 0.6, "price": 0.5}
        resp = client.post("/api/decision-engine", json={"candidates": [bet, bet]})
        assert resp.status_code == 400


class TestPortfolioAnalysisEndpoint:
    """POST /api/portfolio-analysis"""

    def test_opposite_sides(self, client):
        resp = client.post("/api/portfolio-analysis", json={
            "positions": [
                {"contractId": "kalshi:KXFED:yes", "side": "yes", "size": 100, "costPerShare": 0.6},
                {"contractId": "kalshi:KXFED:no", "side": "no", "size": 100, "costPerShare": 0.4},
            ],
        })

        assert resp.status_code == 200
        body = resp.json()
        assert body["totalNotional"] == pytest.approx(100.0)
        assert body["correlations"][0]["correlation"] == -1.0
        assert body["suggestedFactorCap"] == 0.4

    def test_empty_portfolio(self, client):
        resp = client.post("/api/portfolio-analysis", json={})

        assert resp.status_code == 200
        assert resp.json()["totalNotional"] == 0
        assert resp.json()["warnings"] == [
            "Portfolio has no notional; add positions to see risk metrics."
        ]

    @pytest.mark.parametrize("resolution_time", ["2025-13-45", "next friday"])
    def test_bad_resolution_time(self, client, resolution_time):
        resp = client.post("/api/portfolio-analysis", json={
            "positions": [{"contractId": "x", "side": "yes", "size": 1, "costPerShare": 0.5}],
            "contracts": [{"id": "x", "price": 0.5, "resolutionTime": resolution_time}],
        })

        assert resp.status_code == 422
        assert "ISO-8601" in resp.text

    def test_zulu_resolution_time_accepted(self, client):
        resp = client.post("/api/portfolio-analysis", json={
            "positions": [{"contractId": "x", "side": "yes", "size": 1, "costPerShare": 0.5}],
            "contracts": [{"id": "x", "price": 0.5, "resolutionTime": "2099-01-01T00:00:00Z"}],
        })
        assert resp.status_code == 200

    def test_bad_side(self, client):
        resp = client.post("/api/portfolio-analysis", json={
            "positions": [{"contractId": "x", "side": "maybe", "size": 1, "costPerShare": 0.5}],
        })
        assert resp.status_code == 422


class TestSimulatorEndpoint:
    """POST /api/simulator"""

    def test_clamps_inputs(self, client):
        resp = client.post("/api/simulator", json={
            "initialBankrollUsd": 500,
            "numRuns": 5,
            "bets": [
                {"winProb": 1.7, "price": 0.0},
                {"winProb": 0.6, "price": 0.5},
                {"winProb": -1, "price": 2},
            ],
            "strategies": [{"type": "kelly", "kellyFraction": 0.5}],
            "seed": 1,
        })

        assert resp.status_code == 200
        stats = resp.json()["strategies"]
        assert len(stats) == 1
        assert stats[0]["numRuns"] == 100
        assert stats[0]["numBetsPerRun"] == 3
        assert stats[0]["strategy"] == {"type": "kelly", "kellyFraction": 0.5}

    def test_generates_bets(self, client):
        resp = client.post("/api/simulator", json={"numBets": 3, "numRuns": 100, "seed": 2})

        assert resp.status_code == 200
        body = resp.json()
        assert body["initialBankrollUsd"] == 1000.0
        assert len(body["strategies"]) == 3
        assert body["strategies"][0]["numBetsPerRun"] == 10

    def test_num_runs_defaults_to_config(self, client, monkeypatch):
        monkeypatch.setattr(abe.main, "config", replace(abe.main.config, simulator_runs=200))

        resp = client.post("/api/simulator", json={
            "numBets": 10, "seed": 3, "strategies": [{"type": "flat", "stakeUsd": 10}],
        })

        assert resp.status_code == 200
        assert resp.json()["strategies"][0]["numRuns"] == 200

    def test_resolved_num_runs(self):
        cfg = EngineConfig(simulator_runs=50_000)
        assert SimulatorRequest().resolved_num_runs(cfg) == 20_000
        assert SimulatorRequest(numRuns=300).resolved_num_runs(cfg) == 300

    def test_unknown_strategy(self, client):
        resp = client.post("/api/simulator", json={"strategies": [{"type": "martingale"}]})
        assert resp.status_code == 422

    def test_strategy_missing_parameter(self, client):
        resp = client.post("/api/simulator", json={
            "numRuns": 100, "strategies": [{"type": "flat"}],
        })
        assert resp.status_code == 400


class TestBankrollEndpoint:
    """POST /api/bankroll/summary"""

    def test_risk_profile(self, client):
        resp = client.post("/api/bankroll/summary", json={
            "bankrollUsd": 2000,
            "riskProfile": "moderate",
            "positions": [{"contractId": "x", "side": "yes", "size": 100, "costPerShare": 0.5}],
        })

        assert resp.status_code == 200
        body = resp.json()
        assert body["kellyFraction"] == 0.5
        assert body["totalNotional"] == pytest.approx(50.0)
        assert body["recommendedMaxPositionUsd"] == pytest.approx(400.0)
        assert body["riskProfile"] == "moderate"

    def test_bad_risk_profile(self, client):
        resp = client.post("/api/bankroll/summary", json={"riskProfile": "yolo"})
        assert resp.status_code == 422
