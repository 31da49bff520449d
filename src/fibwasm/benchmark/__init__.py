"""Multi-runtime benchmark suite for fibwasm.

Times fib_dispatch in-process and through the WASM export with:
- Adaptive run counts targeting a coefficient of variation
- YAML suite configuration
- Cross-runtime result checking
"""

from __future__ import annotations

from fibwasm.benchmark.runner import (
    BenchmarkConfig,
    BenchmarkRunner,
    BenchmarkRunResult,
    BenchmarkSuite,
    load_suite_config,
)
from fibwasm.benchmark.runtimes import RuntimeInfo, detect_runtimes
from fibwasm.benchmark.stats import BenchmarkStats, run_until_stable

__all__ = [
    "BenchmarkConfig",
    "BenchmarkRunResult",
    "BenchmarkRunner",
    "BenchmarkStats",
    "BenchmarkSuite",
    "RuntimeInfo",
    "detect_runtimes",
    "load_suite_config",
    "run_until_stable",
]
