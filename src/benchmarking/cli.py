"""Compatibility harness CLI — run the check pack and print the report.

Usage::

    python -m src.benchmarking [options]

Options::

    --adapter MODULE:FACTORY  Subject adapter factory (default: in-memory mock)
    --config PATH             JSON configuration file
    --quick                   Test mode: tiny batches, no waiting
    --only NAME               Run only checks with this name or tag (repeatable)
    --skip NAME               Skip checks with this name or tag (repeatable)
    --weight NAME=W           Override a check's weight (repeatable)
    --output-dir DIR          Also write last_run_summary.md to DIR
    --json-output             Write last_run_summary.json alongside the markdown
    --verbose / -v            Enable verbose logging

Exit status is 0 whenever the run completes, whatever the checks' outcomes.
"""

import argparse
import importlib
import logging
import sys
from dataclasses import replace
from typing import Optional

from src.core.adapter import SUTAdapter, create_adapter
from src.core.errors import DriverFault
from src.verification.event_logger import HarnessLogger

from .driver import HarnessConfig, run_suite
from .reporter import render_report, write_report


def load_adapter(target: str) -> SUTAdapter:
    """Instantiate an adapter from a ``module:factory`` string."""
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"adapter must look like module:factory, got {target!r}")
    module = importlib.import_module(module_name)
    factory = getattr(module, attr)
    return factory()


def _parse_weight(text: str) -> tuple[str, int]:
    name, sep, value = text.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"expected NAME=WEIGHT, got {text!r}")
    try:
        weight = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"weight must be an integer, got {value!r}")
    if weight <= 0:
        raise argparse.ArgumentTypeError(f"weight must be > 0, got {weight}")
    return name, weight


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="compat-harness",
        description=(
            "Run weighted compatibility checks against a subject under test "
            "and print a tiered report."
        ),
    )
    parser.add_argument("--adapter", help="Adapter factory as module:callable")
    parser.add_argument("--config", help="JSON configuration file")
    parser.add_argument("--quick", action="store_true", help="Test mode: tiny batches, no waiting")
    parser.add_argument("--iterations", type=int, help="Benchmark iterations per batch")
    parser.add_argument("--stress-seconds", type=float, help="Throughput wall-clock budget")
    parser.add_argument("--memory-samples", type=int, help="Number of memory samples")
    parser.add_argument("--memory-interval", type=float, help="Seconds between memory samples")
    parser.add_argument("--leak-cycles", type=int, help="Create+dispose cycles for the leak check")
    parser.add_argument("--leak-tolerance", type=float, help="Allowed memory growth fraction")
    parser.add_argument("--delta-warning", type=float, help="Memory delta warning threshold")
    parser.add_argument("--only", action="append", default=[], metavar="NAME",
                        help="Run only checks with this name or tag")
    parser.add_argument("--skip", action="append", default=[], metavar="NAME",
                        help="Skip checks with this name or tag")
    parser.add_argument("--weight", action="append", default=[], type=_parse_weight,
                        metavar="NAME=W", help="Override a check's weight")
    parser.add_argument("--output-dir", help="Directory for last_run_summary.md")
    parser.add_argument("--json-output", action="store_true", help="Also write JSON summary")
    parser.add_argument("--log-file", help="Append structured events to this JSONL file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    return parser


def config_from_args(args: argparse.Namespace) -> HarnessConfig:
    """Merge file config, test mode and flags; flags win."""
    if args.config:
        config = HarnessConfig.from_file(args.config)
    else:
        config = HarnessConfig()
    if args.quick:
        config = replace(config, **{
            k: v for k, v in vars(HarnessConfig.quick()).items()
            if k in ("iterations", "stress_seconds", "memory_interval", "leak_cycles", "bulk_count")
        })

    overrides = {
        "iterations": args.iterations,
        "stress_seconds": args.stress_seconds,
        "memory_samples": args.memory_samples,
        "memory_interval": args.memory_interval,
        "leak_cycles": args.leak_cycles,
        "leak_tolerance": args.leak_tolerance,
        "memory_delta_warning": args.delta_warning,
        "output_dir": args.output_dir,
        "log_path": args.log_file,
    }
    config = replace(config, **{k: v for k, v in overrides.items() if v is not None})
    if args.only:
        config = replace(config, only=list(args.only))
    if args.skip:
        config = replace(config, skip=[*config.skip, *args.skip])
    if args.weight:
        config = replace(config, weights={**config.weights, **dict(args.weight)})
    if args.json_output:
        config = replace(config, json_output=True)
    return config


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point. Returns the process exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        config = config_from_args(args)
        adapter = load_adapter(args.adapter) if args.adapter else create_adapter("mock")
    except (OSError, ValueError, ImportError, AttributeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    logger = HarnessLogger("driver", output_path=config.log_path, console_output=args.verbose)
    try:
        report = run_suite(adapter, config, logger=logger)
    except DriverFault as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    sys.stdout.write(render_report(report))
    if config.output_dir:
        path = write_report(report, config.output_dir, json_output=config.json_output)
        print(f"Report saved to: {path}", file=sys.stderr)
    return 0
