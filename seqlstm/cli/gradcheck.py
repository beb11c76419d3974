from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from ..config import LSTMPOptions
from ..gradcheck import check_lstmp_gradients, random_lstmp_problem

ACT_CHOICES = ["sigmoid", "tanh", "relu", "identity"]


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Finite-difference gradient check of the LSTMP operator")
    ap.add_argument("--lengths", type=str, default="3,1,2", help="comma separated sequence lengths")
    ap.add_argument("--cell", type=int, default=4)
    ap.add_argument("--proj", type=int, default=3)
    ap.add_argument("--no-peepholes", action="store_true")
    ap.add_argument("--reverse", action="store_true")
    ap.add_argument("--initial-state", action="store_true")
    ap.add_argument("--gate-activation", type=str, default="sigmoid", choices=ACT_CHOICES)
    ap.add_argument("--cell-activation", type=str, default="tanh", choices=ACT_CHOICES)
    ap.add_argument("--candidate-activation", type=str, default="tanh", choices=ACT_CHOICES)
    ap.add_argument("--proj-activation", type=str, default="tanh", choices=ACT_CHOICES)
    ap.add_argument("--eps", type=float, default=1e-6)
    ap.add_argument("--samples", type=int, default=10)
    ap.add_argument("--tol", type=float, default=1e-4)
    ap.add_argument("--seed", type=int, default=0)
    ap.add_argument("--log-level", type=str, default="WARNING")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    lengths = [int(v) for v in args.lengths.split(",") if v]
    options = LSTMPOptions(
        use_peepholes=not args.no_peepholes,
        is_reverse=args.reverse,
        gate_activation=args.gate_activation,
        cell_activation=args.cell_activation,
        candidate_activation=args.candidate_activation,
        proj_activation=args.proj_activation,
    )
    problem = random_lstmp_problem(
        lengths,
        args.cell,
        args.proj,
        options=options,
        with_initial_state=args.initial_state,
        seed=args.seed,
    )
    report = check_lstmp_gradients(problem, eps=args.eps, samples=args.samples, seed=args.seed)
    for line in report.lines():
        print(line)
    ok = report.passed(args.tol)
    print(f"{'PASS' if ok else 'FAIL'} worst={report.worst():.3e} tol={args.tol:.1e}")
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
