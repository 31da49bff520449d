"""Command-line harness timing a single ``fib_dispatch`` call.

Usage:
    fibwasm-harness 90

Prints the result and the elapsed timer ticks. The tick count comes from
``time.perf_counter_ns``, so it is only comparable between runs on the same
machine.
"""

from __future__ import annotations

import argparse
import sys
import time
from collections.abc import Callable

from fibwasm.core import fib_dispatch, to_u64


def measure(
    fib_index: int, timer: Callable[[], int] = time.perf_counter_ns
) -> tuple[int, int]:
    """Call ``fib_dispatch`` between two timer reads.

    Returns:
        Tuple of (result, elapsed_ticks).
    """
    start = timer()
    result = fib_dispatch(fib_index)
    stop = timer()
    return result, to_u64(stop - start)


def format_report(result: int, ticks: int) -> str:
    return f"Result: {result}\n In {ticks} cycles"


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="fibwasm-harness",
        description="Time one fib_dispatch call",
    )
    parser.add_argument("index", type=int, help="Fibonacci index to compute")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = create_parser().parse_args(argv)
    result, ticks = measure(args.index)
    print(format_report(result, ticks))
    return 0


if __name__ == "__main__":
    sys.exit(main())
