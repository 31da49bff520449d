"""Command-line interface for the benchmark suite.

Provides the `fibwasm-benchmark` command with subcommands for:
- Running benchmarks
- Showing available runtimes
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from fibwasm.benchmark.runner import (
    RUNTIME_ORDER,
    BenchmarkProgress,
    BenchmarkRunner,
    find_mismatches,
    format_results_table,
    load_suite_config,
)
from fibwasm.benchmark.runtimes import detect_runtimes

DEFAULT_SUITE_PATH = (
    Path(__file__).parent.parent.parent.parent
    / "programs"
    / "benchmarks"
    / "suite.yaml"
)


def cmd_run(args: argparse.Namespace) -> int:
    """Run benchmarks."""
    suite_path = Path(args.suite) if args.suite else DEFAULT_SUITE_PATH

    if not suite_path.exists():
        print(f"Error: Suite configuration not found: {suite_path}")
        print("Create suite.yaml or specify --suite path")
        return 1

    try:
        suite = load_suite_config(suite_path)
    except Exception as e:
        print(f"Error loading suite configuration: {e}")
        return 1

    if args.runtime:
        requested = [r.strip() for r in args.runtime.split(",")]
        unknown = [r for r in requested if r not in RUNTIME_ORDER]
        if unknown:
            print(f"Error: Unknown runtime(s): {', '.join(unknown)}")
            return 1
    else:
        requested = list(RUNTIME_ORDER)

    available = detect_runtimes()
    if "wasm-nodejs" in requested and not (
        available["nodejs"].available and available["wasm-tools"].available
    ):
        print("Note: wasm-nodejs skipped (needs node and wasm-tools)")

    def progress(p: BenchmarkProgress) -> None:
        print(f"  [{p.benchmark}/{p.runtime}] {p.phase}...", end="\r", flush=True)

    runner = BenchmarkRunner(
        suite=suite,
        runtimes=requested,
        target_cv=args.cv_target,
        min_runs=args.min_runs,
        max_runs=args.max_runs,
        warmup=args.warmup,
        timeout=args.timeout,
        progress_callback=progress if not args.quiet else None,
    )

    print(f"fibwasm benchmark suite: {suite.name}")
    print(f"  Runtimes: {', '.join(requested)}")
    print(f"  Target CV: {runner.target_cv * 100:.1f}%")
    print()

    results = runner.run_all(benchmark_filter=args.benchmark, available=available)

    print(" " * 60, end="\r")
    if not results:
        print("No benchmarks matched.")
        return 1

    print(format_results_table(results))

    mismatches = find_mismatches(results)
    if mismatches:
        print(f"\nError: runtimes disagree on: {', '.join(mismatches)}")
        return 1

    return 0


def cmd_runtimes(args: argparse.Namespace) -> int:
    """Show available runtimes."""
    runtimes = detect_runtimes()

    print("Available Runtimes")
    print("=" * 70)
    print(f"{'Name':<12} {'Version':<15} {'Status':<12} Path")
    print("-" * 70)

    for name, info in runtimes.items():
        status = "available" if info.available else "not found"
        version = info.version if info.available else "-"
        path = info.path or "-"
        print(f"{name:<12} {version:<15} {status:<12} {path}")

    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="fibwasm-benchmark",
        description="Benchmark fib_dispatch in Python and as a WASM export",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # run command
    run_parser = subparsers.add_parser("run", help="Run benchmarks")
    run_parser.add_argument(
        "--suite",
        help="Path to suite.yaml configuration",
    )
    run_parser.add_argument(
        "--benchmark",
        help="Run only the specified benchmark",
    )
    run_parser.add_argument(
        "--runtime",
        help="Comma-separated list of runtimes (python,wasm-nodejs)",
    )
    run_parser.add_argument(
        "--cv-target",
        type=float,
        help="Target coefficient of variation (default: from suite, 0.01 = 1%%)",
    )
    run_parser.add_argument(
        "--min-runs",
        type=int,
        help="Minimum number of timed runs (default: from suite)",
    )
    run_parser.add_argument(
        "--max-runs",
        type=int,
        help="Maximum number of timed runs (default: from suite)",
    )
    run_parser.add_argument(
        "--warmup",
        type=int,
        help="Number of warmup runs (default: from suite)",
    )
    run_parser.add_argument(
        "--timeout",
        type=float,
        default=120.0,
        help="Timeout per Node.js process in seconds (default: 120)",
    )
    run_parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress progress output",
    )
    run_parser.set_defaults(func=cmd_run)

    # runtimes command
    runtimes_parser = subparsers.add_parser("runtimes", help="Show available runtimes")
    runtimes_parser.set_defaults(func=cmd_runtimes)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
