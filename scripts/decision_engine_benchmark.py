"""
decision_engine_benchmark.py — Time a solver on the fixed 25-candidate fixture.

The fixture (5 factor groups × 5 candidates, prices 0.40–0.65, edges
0.010–0.030) and constraints (bankroll $2000, quarter Kelly, 2% per
position, 12 positions, 40% per factor) never change, so numbers from
different solvers and different commits are directly comparable.

Usage
-----
  python scripts/decision_engine_benchmark.py
  python scripts/decision_engine_benchmark.py --runs 50
  python scripts/decision_engine_benchmark.py --solver classical-greedy --output bench.json
"""

import argparse
import json
import sys
from pathlib import Path

# Ensure the project root (one level up from scripts/) is on sys.path so that
# `from abe.xxx import ...` resolves when the script is run directly.
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Benchmark a decision-engine solver on a fixed fixture."
    )
    parser.add_argument(
        "--runs",
        type=int,
        default=10,
        help="Number of solves to time (default 10).",
    )
    parser.add_argument(
        "--solver",
        default=None,
        help="Registered solver name (default: classical-greedy).",
    )
    parser.add_argument(
        "--output",
        default="decision-engine-benchmark.json",
        help="Where to write the JSON summary.",
    )
    args = parser.parse_args()

    from abe.core.errors import InvalidInputError
    from abe.services.decision_engine import available_optimizers, benchmark_optimizer

    try:
        summary = benchmark_optimizer(args.solver, runs=args.runs)
    except InvalidInputError as exc:
        print(f"ERROR: {exc}")
        print(f"Available solvers: {', '.join(available_optimizers())}")
        sys.exit(1)

    out_path = Path(args.output)
    out_path.write_text(json.dumps(summary, indent=2) + "\n")

    time_stats = summary["solveTimeMs"]
    obj_stats = summary["objectiveValue"]
    print(f"Solver:     {summary['solver']}")
    print(f"Runs:       {summary['runs']}")
    print(f"Positions:  {summary['positionsSelected']} of {summary['candidatesCount']} candidates")
    print(f"Solve time: {time_stats['mean']:.4f} ms (std {time_stats['std']:.4f})")
    print(f"Objective:  {obj_stats['mean']:.4f} (std {obj_stats['std']:.4f})")
    print(f"\nWrote {out_path}")


if __name__ == "__main__":
    main()
