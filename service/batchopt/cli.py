"""Command line front end: check or run a batch, or serve the HTTP API."""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional, Sequence

from loguru import logger

from .config import get_settings
from .core.driver import build_batch_driver
from .core.loaders import BatchFileError, load_batch_file, parse_plan_argument
from .models.plan import PlanRequest

EXIT_OK = 0
EXIT_PLAN_FAILED = 1
EXIT_FATAL = 2


def _collect_plans(args: argparse.Namespace) -> List[PlanRequest]:
    plans: List[PlanRequest] = []
    if args.batch_file:
        plans.extend(load_batch_file(args.batch_file))
    for text in args.plan or []:
        plans.append(parse_plan_argument(text))
    if not plans:
        raise BatchFileError("No plan added to list.")
    return plans


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="batchopt", description="Batch plan optimization and dose calculation")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_plan_args(p: argparse.ArgumentParser):
        p.add_argument("batch_file", nargs="?", help="patient;course;plan;runs file with a header row")
        p.add_argument("--plan", action="append", metavar="PATIENT/COURSE/PLAN[/RUNS]",
                       help="add a plan interactively (repeatable)")

    check = sub.add_parser("check", help="check plans for optimization readiness")
    add_plan_args(check)

    run = sub.add_parser("run", help="optimize and compute dose for each plan")
    add_plan_args(run)
    run.add_argument("--dose-only", action="store_true", help="compute dose only, no optimization")
    run.add_argument("--check-first", action="store_true", help="check each plan before optimizing it")

    serve = sub.add_parser("serve", help="run the HTTP API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "serve":
        import uvicorn

        uvicorn.run("batchopt.app:create_app", host=args.host, port=args.port, factory=True, reload=args.reload)
        return EXIT_OK

    try:
        plans = _collect_plans(args)
    except BatchFileError as exc:
        logger.error("Input file format is incorrect: {}", exc)
        return EXIT_FATAL

    driver = build_batch_driver(get_settings())
    try:
        if args.command == "check":
            report = driver.check(plans)
        else:
            report = driver.run(plans, dose_calc_only=args.dose_only, check_first=args.check_first)
    finally:
        driver.session.exit()

    print(report.render())
    if report.fatal_error:
        return EXIT_FATAL
    return EXIT_OK if report.succeeded else EXIT_PLAN_FAILED


if __name__ == "__main__":
    sys.exit(main())
