"""
FastAPI application for the Adaptive Betting Engine.

A thin HTTP surface over the three engine entry points plus the bankroll
summary.  No persistence and no candidate fetching happen here: callers
post everything the engines need.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
import os

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from abe.core.engine_config import EngineConfig
from abe.core.errors import InvalidInputError, SolverError
from abe.schemas import (
    BankrollSummaryRequest,
    DecisionEngineRequest,
    PortfolioAnalysisRequest,
    SimulatorRequest,
    labels_by_id,
)
from abe.services.bankroll import build_bankroll_summary
from abe.services.decision_engine import available_optimizers, run_decision_engine_async
from abe.services.portfolio_risk import run_portfolio_risk_analysis
from abe.services.strategy_simulator import generate_random_bets, run_strategy_comparison

# Logging setup
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

config = EngineConfig.from_env()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info(
        "Starting Adaptive Betting Engine (solvers: %s, default bankroll $%.0f, Kelly %.2f)",
        ", ".join(available_optimizers()), config.bankroll_usd, config.kelly_fraction,
    )
    yield
    logger.info("Shutting down Adaptive Betting Engine")


app = FastAPI(
    title="Adaptive Betting Engine",
    description="Portfolio construction, risk analysis and strategy simulation for binary bets",
    version="1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("ABE_ALLOWED_ORIGINS", "http://localhost:3000").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "solvers": available_optimizers(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.post("/api/decision-engine")
async def decision_engine(payload: DecisionEngineRequest):
    """Select and size positions from the posted candidates."""
    candidates = [c.to_core() for c in payload.candidates]
    constraints = payload.constraints.to_core(config)
    correlations = [c.to_core() for c in payload.correlations]

    try:
        result = await run_decision_engine_async(
            candidates,
            constraints,
            payload.solver or config.default_solver,
            correlations=correlations,
            time_limit_ms=config.solver_time_limit_ms,
        )
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except SolverError as exc:
        raise HTTPException(status_code=503, detail=str(exc))

    body = result.to_dict()
    body["labels"] = labels_by_id(payload)
    return body


@app.post("/api/portfolio-analysis")
async def portfolio_analysis(payload: PortfolioAnalysisRequest):
    """Exposure, correlation and concentration report for held positions."""
    report = run_portfolio_risk_analysis(payload.to_core(), config=config)
    return report.to_dict()


@app.post("/api/simulator")
def simulator(payload: SimulatorRequest):
    """Compare sizing strategies by Monte Carlo on a bet sequence.

    Declared sync so FastAPI runs the CPU-bound simulation in its threadpool.
    """
    if payload.bets:
        bets = [b.to_core() for b in payload.bets]
    else:
        bets = generate_random_bets(payload.num_bets, mean_edge=0.02, seed=payload.seed)

    try:
        strategies = (
            [s.to_core() for s in payload.strategies]
            if payload.strategies is not None
            else None
        )
        result = run_strategy_comparison(
            payload.initial_bankroll_usd,
            bets,
            strategies,
            payload.resolved_num_runs(config),
            seed=payload.seed,
            time_budget_ms=config.simulator_time_budget_ms,
        )
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return result.to_dict()


@app.post("/api/bankroll/summary")
async def bankroll_summary(payload: BankrollSummaryRequest):
    """Sizing guidance and heuristic drawdown figures for the posted positions."""
    try:
        summary = build_bankroll_summary(
            payload.settings(),
            [p.to_core() for p in payload.positions],
            [c.to_core() for c in payload.contracts],
            is_demo=payload.is_demo,
            config=config,
        )
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return summary.to_dict()


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Catch-all exception handler"""
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
