"""Exception hierarchy shared by every engine.

Three failure kinds are distinguished:

* :class:`InvalidInputError` — malformed caller input.  Raised immediately;
  nothing is coerced.
* Infeasibility — *not* an exception.  Optimizers return a result with no
  positions and a reason for every candidate.
* :class:`SolverError` — the optimizer itself failed (crash, timeout).
  Never returned as a partial result.
"""

from __future__ import annotations


class InvalidInputError(ValueError):
    """Caller supplied constraints, candidates or simulator inputs that
    cannot be interpreted (e.g. ``bankroll_usd <= 0``)."""


class SolverError(RuntimeError):
    """An optimizer failed internally.

    Attributes:
        solver: Name of the optimizer that failed.
    """

    def __init__(self, message: str, solver: str = "unknown") -> None:
        super().__init__(message)
        self.solver = solver


class SolverTimeoutError(SolverError):
    """The optimizer did not finish inside the caller's time limit."""

    def __init__(self, solver: str, time_limit_ms: float) -> None:
        super().__init__(
            f"Solver {solver!r} exceeded time limit of {time_limit_ms:.0f} ms",
            solver=solver,
        )
        self.time_limit_ms = time_limit_ms
