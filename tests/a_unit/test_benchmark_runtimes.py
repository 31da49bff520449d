"""Unit tests for WASM timing helpers (fibwasm.benchmark.runtimes).

Node.js is replaced by a stub, so these run anywhere.
"""

from __future__ import annotations

import json
import re

import pytest

from fibwasm.benchmark import runtimes
from fibwasm.benchmark.runtimes import build_wasm_runner_script, run_wasm_nodejs_adaptive


class TestBuildWasmRunnerScript:
    """Tests for build_wasm_runner_script function."""

    def test_path_is_json_literal(self) -> None:
        path = "/tmp/it's here/fib.wasm"
        script = build_wasm_runner_script(path, 10, warmup=3, runs=5)
        assert f"readFileSync({json.dumps(path)});" in script

    def test_backslashes_escaped(self) -> None:
        path = "C:\\Users\\bench\\fib.wasm"
        script = build_wasm_runner_script(path, 10, warmup=3, runs=5)
        match = re.search(r"readFileSync\((.*)\);", script)
        assert match is not None
        assert json.loads(match.group(1)) == path

    def test_export_and_index(self) -> None:
        script = build_wasm_runner_script("fib.wasm", -1, warmup=2, runs=7)
        assert 'instance.exports["fib_dispatch"]' in script
        assert f"const index = {2**64 - 1}n;" in script
        assert "const WARMUP = 2;" in script
        assert "const RUNS = 7;" in script


class TestRunWasmNodejsAdaptive:
    """Tests for run_wasm_nodejs_adaptive batching."""

    @pytest.fixture
    def calls(self, monkeypatch: pytest.MonkeyPatch) -> list[int]:
        recorded: list[int] = []

        def fake_run(wasm_bytes, fib_index, warmup=3, runs=5, timeout=120.0):
            recorded.append(runs)
            return 55, [0.001] * runs

        monkeypatch.setattr(runtimes, "run_wasm_nodejs", fake_run)
        return recorded

    def test_first_batch_capped_by_max_runs(self, calls: list[int]) -> None:
        result, stats = run_wasm_nodejs_adaptive(b"", 10, min_runs=10, max_runs=3)
        assert result == 55
        assert calls == [3]
        assert stats.runs == 3

    def test_first_batch_is_min_runs(self, calls: list[int]) -> None:
        _, stats = run_wasm_nodejs_adaptive(b"", 10, min_runs=4, max_runs=50)
        assert calls == [4]
        assert stats.runs == 4

    def test_unstable_times_extend_to_max_runs(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        recorded: list[int] = []

        def noisy_run(wasm_bytes, fib_index, warmup=3, runs=5, timeout=120.0):
            recorded.append(runs)
            return 55, [0.001 * (i % 3 + 1) for i in range(runs)]

        monkeypatch.setattr(runtimes, "run_wasm_nodejs", noisy_run)
        _, stats = run_wasm_nodejs_adaptive(b"", 10, min_runs=5, max_runs=12)
        assert recorded == [5, 5, 2]
        assert stats.runs == 12
