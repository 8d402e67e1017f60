"""
Command-line entry point.

Usage::

    crocload run scenarios/crocodiles_spike.yml --base-url http://localhost:5000
    crocload validate scenarios/crocodiles_spike.yml

Exit codes follow a three-state convention so that CI can distinguish
"thresholds breached" from "the run could not even start":

- ``0``: every threshold passed
- ``1``: at least one threshold was breached
- ``2``: fatal setup or script error (bad options, bad fixture, crashed
  executor)
"""

from __future__ import annotations

import argparse
import importlib
import logging
import signal
import sys
from pathlib import Path
from typing import Sequence

from . import workloads  # noqa: F401  (registers the built-in workloads)
from .config import load_settings
from .errors import CrocloadError
from .options import load_options
from .report import print_summary, write_summary_json
from .runner import LoadTestRun

logger = logging.getLogger(__name__)

EXIT_PASS = 0
EXIT_THRESHOLD_BREACH = 1
EXIT_SCRIPT_ERROR = 2

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def build_parser() -> argparse.ArgumentParser:
    """Build the ``crocload`` argument parser."""
    parser = argparse.ArgumentParser(
        prog="crocload",
        description="Scenario-driven load generator for the Crocodiles API.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("options", type=Path, help="Path to the run options YAML file")
    common.add_argument(
        "--env",
        default=None,
        help="Configuration environment (development, testing, production)",
    )
    common.add_argument("--base-url", default=None, help="Override the target base URL")
    common.add_argument("--fixture", default=None, help="Override the credentials CSV path")
    common.add_argument(
        "--workload-module",
        action="append",
        default=[],
        metavar="MODULE",
        help="Import MODULE to register extra workloads (repeatable)",
    )
    common.add_argument("--log-level", default=None, help="Override the log level")

    run = subparsers.add_parser("run", parents=[common], help="Execute a load test")
    run.add_argument(
        "--summary-json",
        type=Path,
        default=None,
        help="Also write the end-of-test summary to this JSON file",
    )
    subparsers.add_parser(
        "validate",
        parents=[common],
        help="Check options, workloads, thresholds and fixture without sending traffic",
    )
    return parser


def _configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def _install_signal_handlers(run: LoadTestRun) -> dict:
    """Route SIGINT/SIGTERM to :meth:`LoadTestRun.abort`; returns the previous handlers."""

    def handle(signum, frame):
        logger.warning("Received %s", signal.Signals(signum).name)
        run.abort()

    return {signum: signal.signal(signum, handle) for signum in (signal.SIGINT, signal.SIGTERM)}


def _prepare(args: argparse.Namespace) -> LoadTestRun:
    for module in args.workload_module:
        importlib.import_module(module)

    settings = load_settings(
        args.env,
        BASE_URL=args.base_url,
        FIXTURE_PATH=args.fixture,
        LOG_LEVEL=args.log_level,
    )
    _configure_logging(str(settings["LOG_LEVEL"]))
    run = LoadTestRun(load_options(args.options), settings)
    run.prepare()
    return run


def main(argv: Sequence[str] | None = None) -> int:
    """
    Entry point for ``crocload``.

    Returns:
        ``EXIT_PASS``, ``EXIT_THRESHOLD_BREACH`` or ``EXIT_SCRIPT_ERROR``.
    """
    args = build_parser().parse_args(argv)

    try:
        run = _prepare(args)
    except (CrocloadError, ImportError) as exc:
        print(f"Setup failed: {exc}", file=sys.stderr)
        return EXIT_SCRIPT_ERROR

    if args.command == "validate":
        print(f"{args.options}: OK ({len(run.executors)} scenario(s), {len(run.rules)} threshold(s))")
        return EXIT_PASS

    previous_handlers = _install_signal_handlers(run)
    try:
        result = run.run()
    finally:
        for signum, handler in previous_handlers.items():
            signal.signal(signum, handler)

    print_summary(result)
    if args.summary_json is not None:
        try:
            write_summary_json(result, args.summary_json)
        except OSError as exc:
            print(f"Could not write summary: {exc}", file=sys.stderr)
            return EXIT_SCRIPT_ERROR

    if result.errors:
        return EXIT_SCRIPT_ERROR
    return EXIT_PASS if result.thresholds.passed else EXIT_THRESHOLD_BREACH


if __name__ == "__main__":
    raise SystemExit(main())
