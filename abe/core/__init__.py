"""Core mathematics and contracts for the Adaptive Betting Engine (ABE).

This package contains pure, source-agnostic building blocks:

- ``errors``             — the engine's exception hierarchy
- ``engine_config``      — default limits and environment overrides
- ``kelly``              — binary Kelly sizing, drawdown heuristics, lockup
- ``factors``            — keyword factor taxonomy for correlation grouping
- ``portfolio_types``    — contracts, positions and risk-report DTOs
- ``decision_interface`` — candidate/constraint DTOs and the optimizer ABC

Nothing in this package imports from ``abe.services``.
All modules are side-effect-free and unit-testable in isolation.
"""
