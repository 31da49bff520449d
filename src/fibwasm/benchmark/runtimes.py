"""Runtime detection and execution for benchmarks.

Two runtimes time ``fib_dispatch``:
- python: the in-process implementation in ``fibwasm.core``
- wasm-nodejs: the exported WASM function, called from one Node.js process
"""

from __future__ import annotations

import json
import platform
import shutil
import subprocess
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path

from fibwasm.benchmark.stats import BenchmarkStats, compute_stats, run_until_stable
from fibwasm.core import fib_dispatch, to_u64
from fibwasm.module import EXPORT_NAME


@dataclass(frozen=True)
class RuntimeInfo:
    """Information about a detected runtime or tool.

    Attributes:
        name: Identifier ("python", "nodejs", "wasm-tools").
        version: Version string (e.g., "3.12.0", "22.1.0").
        available: Whether the runtime is available.
        path: Path to the executable, or None if unavailable.
    """

    name: str
    version: str
    available: bool
    path: str | None


def _get_version(command: list[str]) -> str | None:
    try:
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def detect_python() -> RuntimeInfo:
    """Describe the interpreter running this process."""
    return RuntimeInfo(
        name="python",
        version=platform.python_version(),
        available=True,
        path=shutil.which("python3") or shutil.which("python"),
    )


def detect_nodejs() -> RuntimeInfo:
    """Detect Node.js availability and version."""
    path = shutil.which("node")
    if path:
        version = _get_version(["node", "--version"])
        if version:
            # Output is like "v22.1.0"
            return RuntimeInfo("nodejs", version.lstrip("v"), True, path)
    return RuntimeInfo("nodejs", "", False, None)


def detect_wasm_tools() -> RuntimeInfo:
    """Detect the wasm-tools assembler."""
    path = shutil.which("wasm-tools")
    if path:
        version = _get_version(["wasm-tools", "--version"])
        if version:
            # Output is like "wasm-tools 1.219.1 (...)"
            parts = version.split()
            return RuntimeInfo(
                "wasm-tools", parts[1] if len(parts) > 1 else version, True, path
            )
    return RuntimeInfo("wasm-tools", "", False, None)


def detect_runtimes() -> dict[str, RuntimeInfo]:
    """Detect every runtime and tool the benchmarks can use."""
    return {
        "python": detect_python(),
        "nodejs": detect_nodejs(),
        "wasm-tools": detect_wasm_tools(),
    }


def run_python_adaptive(
    fib_index: int,
    min_runs: int = 5,
    max_runs: int = 50,
    target_cv: float = 0.01,
    warmup: int = 3,
) -> tuple[int, BenchmarkStats]:
    """Time the in-process ``fib_dispatch`` until the CV target is reached.

    Returns:
        Tuple of (result, BenchmarkStats).
    """
    result = fib_dispatch(fib_index)

    def one_run() -> float:
        start = time.perf_counter()
        fib_dispatch(fib_index)
        return time.perf_counter() - start

    stats = run_until_stable(
        one_run,
        min_runs=min_runs,
        max_runs=max_runs,
        target_cv=target_cv,
        warmup=warmup,
    )
    return result, stats


# Node.js runner template for multi-run timing in a single process.
# Times are reported in nanoseconds from process.hrtime.bigint().
_WASM_RUNNER_TEMPLATE = """\
import {{ readFileSync }} from 'fs';

const wasmBuffer = readFileSync({wasm_path});
const {{ instance }} = await WebAssembly.instantiate(wasmBuffer, {{}});
const fn = instance.exports[{export}];
const index = {index}n;

const WARMUP = {warmup};
const RUNS = {runs};
const times = [];
let value = 0n;

for (let iter = 0; iter < WARMUP + RUNS; iter++) {{
  const start = process.hrtime.bigint();
  value = fn(index);
  const elapsed = process.hrtime.bigint() - start;
  if (iter >= WARMUP) {{
    times.push(Number(elapsed));
  }}
}}

console.log(JSON.stringify({{
  result: BigInt.asUintN(64, value).toString(),
  times: times
}}));
"""


def build_wasm_runner_script(
    wasm_path: Path | str, fib_index: int, warmup: int, runs: int
) -> str:
    """Render the Node.js timing script for one module file.

    The path and export name are embedded as JSON string literals, so any
    quotes or backslashes in them survive.
    """
    return _WASM_RUNNER_TEMPLATE.format(
        wasm_path=json.dumps(str(wasm_path)),
        export=json.dumps(EXPORT_NAME),
        index=to_u64(fib_index),
        warmup=warmup,
        runs=runs,
    )


def run_wasm_nodejs(
    wasm_bytes: bytes,
    fib_index: int,
    warmup: int = 3,
    runs: int = 5,
    timeout: float = 120.0,
) -> tuple[int, list[float]]:
    """Call the WASM export repeatedly inside one Node.js process.

    Staying in one process keeps V8's JIT warm and leaves Node.js startup
    out of the measurement.

    Args:
        wasm_bytes: Assembled Fibonacci module.
        fib_index: Index passed to every call.
        warmup: Number of warmup calls (discarded).
        runs: Number of timed calls.
        timeout: Timeout in seconds for the whole process.

    Returns:
        Tuple of (result, per-call times in seconds).

    Raises:
        ValueError: If Node.js is not available.
        subprocess.CalledProcessError: If the runner script fails.
        subprocess.TimeoutExpired: If the runner exceeds ``timeout``.
    """
    if not detect_nodejs().available:
        raise ValueError("Node.js is not available")

    with tempfile.NamedTemporaryFile(suffix=".wasm", delete=False) as wasm_file:
        wasm_file.write(wasm_bytes)
        wasm_path = Path(wasm_file.name)

    runner_script = build_wasm_runner_script(wasm_path, fib_index, warmup, runs)

    with tempfile.NamedTemporaryFile(mode="w", suffix=".mjs", delete=False) as js_file:
        js_file.write(runner_script)
        js_path = Path(js_file.name)

    try:
        result = subprocess.run(
            ["node", str(js_path)],
            check=True,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        data = json.loads(result.stdout)
        return int(data["result"]), [t / 1e9 for t in data["times"]]
    finally:
        wasm_path.unlink(missing_ok=True)
        js_path.unlink(missing_ok=True)


def run_wasm_nodejs_adaptive(
    wasm_bytes: bytes,
    fib_index: int,
    min_runs: int = 5,
    max_runs: int = 50,
    target_cv: float = 0.01,
    warmup: int = 3,
    timeout: float = 120.0,
) -> tuple[int, BenchmarkStats]:
    """Run the WASM export in batches until the CV target is reached.

    Returns:
        Tuple of (result, BenchmarkStats).
    """
    result, times = run_wasm_nodejs(
        wasm_bytes,
        fib_index,
        warmup=warmup,
        runs=min(min_runs, max_runs),
        timeout=timeout,
    )
    stats = compute_stats(times)
    batch_size = 5

    while stats.cv > target_cv and len(times) < max_runs:
        more = min(batch_size, max_runs - len(times))
        # Every batch is a fresh process, so it warms up again.
        result, new_times = run_wasm_nodejs(
            wasm_bytes, fib_index, warmup=warmup, runs=more, timeout=timeout
        )
        times.extend(new_times)
        stats = compute_stats(times)

    return result, stats
