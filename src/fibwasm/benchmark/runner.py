"""Benchmark orchestration and execution.

Provides the runner that coordinates:
- Loading suite configurations from YAML
- Assembling the Fibonacci WASM module once per session
- Timing each benchmark on every requested runtime
- Checking that runtimes agree on the computed value
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from fibwasm.benchmark.runtimes import (
    RuntimeInfo,
    detect_runtimes,
    run_python_adaptive,
    run_wasm_nodejs_adaptive,
)
from fibwasm.benchmark.stats import EMPTY_STATS, BenchmarkStats
from fibwasm.module import compile_fib_module
from fibwasm.runner import wat_to_wasm

RUNTIME_ORDER = ("python", "wasm-nodejs")


@dataclass
class BenchmarkConfig:
    """Configuration for a single benchmark.

    Attributes:
        name: Benchmark identifier.
        index: Fibonacci index passed to fib_dispatch.
        enabled: Whether benchmark is enabled.
    """

    name: str
    index: int
    enabled: bool = True


@dataclass
class BenchmarkSuite:
    """Collection of benchmark configurations and sampling defaults."""

    name: str
    benchmarks: list[BenchmarkConfig]
    warmup: int = 3
    min_runs: int = 5
    max_runs: int = 50
    target_cv: float = 0.01


@dataclass
class BenchmarkRunResult:
    """Result of running a single benchmark on a single runtime.

    Attributes:
        benchmark: Benchmark name.
        runtime: Runtime name.
        index: Fibonacci index that was computed.
        value: Computed Fibonacci value (None if failed).
        stats: Timing statistics.
        error: Error message if failed.
    """

    benchmark: str
    runtime: str
    index: int
    value: int | None
    stats: BenchmarkStats
    error: str | None = None


@dataclass
class BenchmarkProgress:
    """Progress callback information."""

    benchmark: str
    runtime: str
    phase: str


ProgressCallback = Callable[[BenchmarkProgress], None]


def load_suite_config(config_path: Path | str) -> BenchmarkSuite:
    """Load benchmark suite configuration from YAML.

    Entries that are not mappings, or lack a string name, an integer index
    or a boolean `enabled` (when given), are skipped.

    Args:
        config_path: Path to suite.yaml file.

    Returns:
        BenchmarkSuite configuration.

    Raises:
        ValueError: If the file is not a YAML mapping.
    """
    with Path(config_path).open() as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict):
        raise ValueError(f"{config_path}: expected a mapping at top level")

    benchmarks = []
    for bench_data in data.get("benchmarks") or []:
        if not isinstance(bench_data, dict):
            continue
        name = bench_data.get("name")
        index = bench_data.get("index")
        enabled = bench_data.get("enabled", True)
        # YAML 1.1 reads bare off/no/yes as booleans; such names must be quoted
        if not isinstance(name, str) or not name:
            continue
        if not isinstance(index, int) or isinstance(index, bool):
            continue
        if not isinstance(enabled, bool):
            continue
        benchmarks.append(BenchmarkConfig(name=name, index=index, enabled=enabled))

    defaults = data.get("defaults") or {}
    return BenchmarkSuite(
        name=data.get("name", "benchmarks"),
        benchmarks=benchmarks,
        warmup=int(defaults.get("warmup", 3)),
        min_runs=int(defaults.get("min_runs", 5)),
        max_runs=int(defaults.get("max_runs", 50)),
        target_cv=float(defaults.get("target_cv", 0.01)),
    )


@dataclass
class BenchmarkRunner:
    """Main benchmark runner.

    Sampling settings left as None fall back to the suite's defaults.

    Attributes:
        suite: Benchmark suite configuration.
        runtimes: Runtimes to benchmark, from RUNTIME_ORDER.
        target_cv: Target coefficient of variation.
        min_runs: Minimum number of runs.
        max_runs: Maximum number of runs.
        warmup: Number of warmup runs.
        timeout: Timeout per Node.js process in seconds.
        progress_callback: Optional callback for progress updates.
    """

    suite: BenchmarkSuite
    runtimes: list[str] = field(default_factory=lambda: list(RUNTIME_ORDER))
    target_cv: float | None = None
    min_runs: int | None = None
    max_runs: int | None = None
    warmup: int | None = None
    timeout: float = 120.0
    progress_callback: ProgressCallback | None = None
    _wasm_bytes: bytes | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.target_cv is None:
            self.target_cv = self.suite.target_cv
        if self.min_runs is None:
            self.min_runs = self.suite.min_runs
        if self.max_runs is None:
            self.max_runs = self.suite.max_runs
        if self.warmup is None:
            self.warmup = self.suite.warmup

    def _progress(self, config: BenchmarkConfig, runtime: str, phase: str) -> None:
        if self.progress_callback:
            self.progress_callback(BenchmarkProgress(config.name, runtime, phase))

    def _failed(
        self, config: BenchmarkConfig, runtime: str, error: str
    ) -> BenchmarkRunResult:
        return BenchmarkRunResult(
            benchmark=config.name,
            runtime=runtime,
            index=config.index,
            value=None,
            stats=EMPTY_STATS,
            error=error,
        )

    def _run_python_benchmark(self, config: BenchmarkConfig) -> BenchmarkRunResult:
        """Time the in-process implementation."""
        self._progress(config, "python", "timing")
        value, stats = run_python_adaptive(
            config.index,
            min_runs=self.min_runs,
            max_runs=self.max_runs,
            target_cv=self.target_cv,
            warmup=self.warmup,
        )
        return BenchmarkRunResult(
            benchmark=config.name,
            runtime="python",
            index=config.index,
            value=value,
            stats=stats,
        )

    def _run_wasm_benchmark(
        self, config: BenchmarkConfig, available: dict[str, RuntimeInfo]
    ) -> BenchmarkRunResult | None:
        """Time the exported WASM function under Node.js."""
        if not (available["nodejs"].available and available["wasm-tools"].available):
            return None

        try:
            if self._wasm_bytes is None:
                self._progress(config, "wasm-nodejs", "compiling")
                self._wasm_bytes = wat_to_wasm(compile_fib_module())

            self._progress(config, "wasm-nodejs", "timing")
            value, stats = run_wasm_nodejs_adaptive(
                self._wasm_bytes,
                config.index,
                min_runs=self.min_runs,
                max_runs=self.max_runs,
                target_cv=self.target_cv,
                warmup=self.warmup,
                timeout=self.timeout,
            )
        except Exception as e:
            return self._failed(config, "wasm-nodejs", str(e))

        return BenchmarkRunResult(
            benchmark=config.name,
            runtime="wasm-nodejs",
            index=config.index,
            value=value,
            stats=stats,
        )

    def run_benchmark(
        self,
        config: BenchmarkConfig,
        available: dict[str, RuntimeInfo],
    ) -> list[BenchmarkRunResult]:
        """Run a single benchmark on all requested runtimes.

        Runtimes that are not installed are skipped silently.
        """
        results: list[BenchmarkRunResult] = []

        if "python" in self.runtimes:
            results.append(self._run_python_benchmark(config))

        if "wasm-nodejs" in self.runtimes:
            result = self._run_wasm_benchmark(config, available)
            if result:
                results.append(result)

        return results

    def run_all(
        self,
        benchmark_filter: str | None = None,
        available: dict[str, RuntimeInfo] | None = None,
    ) -> list[BenchmarkRunResult]:
        """Run all enabled benchmarks in the suite.

        Args:
            benchmark_filter: If provided, only run this benchmark.
            available: Detected runtimes; detected here when omitted.

        Returns:
            Results in suite order, runtimes in RUNTIME_ORDER.
        """
        if available is None:
            available = detect_runtimes()

        results: list[BenchmarkRunResult] = []
        for config in self.suite.benchmarks:
            if not config.enabled:
                continue
            if benchmark_filter and config.name != benchmark_filter:
                continue
            results.extend(self.run_benchmark(config, available))
        return results


def find_mismatches(results: list[BenchmarkRunResult]) -> list[str]:
    """Return names of benchmarks whose runtimes computed different values."""
    values: dict[str, set[int]] = {}
    for result in results:
        if result.error is None and result.value is not None:
            values.setdefault(result.benchmark, set()).add(result.value)
    return sorted(name for name, seen in values.items() if len(seen) > 1)


def format_results_table(results: list[BenchmarkRunResult]) -> str:
    """Format benchmark results as a table.

    Means are shown in microseconds; the ratio column is python time over
    WASM time when both ran.
    """
    by_benchmark: dict[str, dict[str, BenchmarkRunResult]] = {}
    for result in results:
        by_benchmark.setdefault(result.benchmark, {})[result.runtime] = result

    present = {r.runtime for r in results}
    runtimes = [r for r in RUNTIME_ORDER if r in present]
    show_ratio = "python" in present and "wasm-nodejs" in present

    width = 15 + 8 + 22 + 14 * len(runtimes) + (10 if show_ratio else 0)
    lines = ["=" * width, "BENCHMARK RESULTS", "=" * width]

    header = f"{'Benchmark':<15}{'Index':>8}{'Result':>22}"
    for runtime in runtimes:
        header += f" {runtime + ' us':>13}"
    if show_ratio:
        header += f" {'ratio':>9}"
    lines.append(header)
    lines.append("-" * width)

    for bench_name, by_runtime in by_benchmark.items():
        first = next(iter(by_runtime.values()))
        value = next(
            (str(r.value) for r in by_runtime.values() if r.value is not None), "-"
        )
        row = f"{bench_name:<15}{first.index:>8}{value:>22}"
        for runtime in runtimes:
            result = by_runtime.get(runtime)
            if result is None:
                row += f" {'-':>13}"
            elif result.error:
                row += f" {'ERROR':>13}"
            else:
                row += f" {result.stats.mean * 1e6:>13.3f}"
        if show_ratio:
            py = by_runtime.get("python")
            wasm = by_runtime.get("wasm-nodejs")
            if py and wasm and not wasm.error and wasm.stats.mean > 0:
                row += f" {py.stats.mean / wasm.stats.mean:>8.2f}x"
            else:
                row += f" {'-':>9}"
        lines.append(row)

    errors = [r for r in results if r.error]
    if errors:
        lines.append("")
        lines.append("Errors:")
        for r in errors:
            lines.append(f"  {r.benchmark} [{r.runtime}]: {r.error}")

    return "\n".join(lines)
