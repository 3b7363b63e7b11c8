"""Engine-level configuration — default limits in one place.

Every default the decision engine, risk engine and simulator fall back to
lives on :class:`EngineConfig`.  Nowhere else should the 0.25 Kelly fraction
or the 12-position cap be hard-coded as a *user-facing* default.

Typical usage::

    from abe.core.engine_config import EngineConfig

    cfg = EngineConfig.from_env()

    # Override a single default for an experiment:
    from dataclasses import replace
    aggressive = replace(cfg, kelly_fraction=0.5)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Final, Optional

from dotenv import load_dotenv

#: Prefix shared by every environment variable read by :meth:`EngineConfig.from_env`.
ENV_PREFIX: Final[str] = "ABE_"


@dataclass(frozen=True)
class EngineConfig:
    """Immutable bundle of engine defaults.

    Attributes:
        bankroll_usd: Bankroll assumed when the caller has no saved settings.
        kelly_fraction: Fraction of full Kelly applied to every stake.
        max_fraction_per_position: Per-position cap as a fraction of bankroll.
        max_positions: Maximum number of positions the optimizer may select.
        max_factor_fraction: Cap on USD assigned into one factor group, as a
            fraction of bankroll.  ``None`` disables the cap.
        suggested_factor_cap: Factor cap echoed back in risk reports.
        correlation_report_threshold: Pairs with ``|rho|`` below this are not
            reported by the portfolio risk engine.
        simulator_runs: Default Monte Carlo path count per strategy.
        simulator_time_budget_ms: Wall-clock budget for one simulator request;
            no new block of paths starts once it is spent.
        solver_time_limit_ms: Wall-clock limit for the async solver wrapper.
        default_solver: Registry name of the optimizer used when none is given.
    """

    bankroll_usd: float = 1000.0
    kelly_fraction: float = 0.25
    max_fraction_per_position: float = 0.02
    max_positions: int = 12
    max_factor_fraction: Optional[float] = 0.4
    suggested_factor_cap: float = 0.4
    correlation_report_threshold: float = 0.2
    simulator_runs: int = 10_000
    simulator_time_budget_ms: float = 25_000.0
    solver_time_limit_ms: float = 5_000.0
    default_solver: str = "classical-greedy"

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from ``ABE_*`` environment variables (``.env`` aware).

        Unset variables keep the dataclass default.  ``ABE_MAX_FACTOR_FRACTION``
        may be set to an empty string to disable the factor cap.
        """
        load_dotenv()
        base = cls()

        def _float(name: str, default: float) -> float:
            return float(os.getenv(ENV_PREFIX + name, str(default)))

        raw_factor = os.getenv(ENV_PREFIX + "MAX_FACTOR_FRACTION")
        if raw_factor is None:
            max_factor_fraction = base.max_factor_fraction
        elif raw_factor.strip() == "":
            max_factor_fraction = None
        else:
            max_factor_fraction = float(raw_factor)

        return cls(
            bankroll_usd=_float("BANKROLL_USD", base.bankroll_usd),
            kelly_fraction=_float("KELLY_FRACTION", base.kelly_fraction),
            max_fraction_per_position=_float(
                "MAX_FRACTION_PER_POSITION", base.max_fraction_per_position
            ),
            max_positions=int(os.getenv(ENV_PREFIX + "MAX_POSITIONS", str(base.max_positions))),
            max_factor_fraction=max_factor_fraction,
            suggested_factor_cap=_float("SUGGESTED_FACTOR_CAP", base.suggested_factor_cap),
            correlation_report_threshold=_float(
                "CORRELATION_REPORT_THRESHOLD", base.correlation_report_threshold
            ),
            simulator_runs=int(os.getenv(ENV_PREFIX + "SIMULATOR_RUNS", str(base.simulator_runs))),
            simulator_time_budget_ms=_float(
                "SIMULATOR_TIME_BUDGET_MS", base.simulator_time_budget_ms
            ),
            solver_time_limit_ms=_float("SOLVER_TIME_LIMIT_MS", base.solver_time_limit_ms),
            default_solver=os.getenv(ENV_PREFIX + "DEFAULT_SOLVER", base.default_solver),
        )
