"""Tests for the performance benchmarks (PERF-001..PERF-005)."""

from __future__ import annotations

import pytest

from tpudoc.checks import performance
from tpudoc.errors import CommandError
from tpudoc.models import FailResult, PassResult, SkipResult, WarnResult
from tpudoc.probes import accel, system


@pytest.fixture
def on_tpu(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    monkeypatch.setattr(accel, "is_accelerator_vm", lambda: True)
    monkeypatch.setattr(accel, "device_type", lambda: accel.TpuType.V5E)
    monkeypatch.setattr(accel, "chip_count", lambda: 8)
    return monkeypatch


def _benchmark_prints(monkeypatch: pytest.MonkeyPatch, stdout: str) -> None:
    monkeypatch.setattr(
        system,
        "run_command",
        lambda args, *, timeout_s=30.0: system.CommandOutput(0, stdout, ""),
    )


class TestRunBenchmark:
    def test_strips_output(self, monkeypatch: pytest.MonkeyPatch) -> None:
        _benchmark_prints(monkeypatch, "  81.5\n")
        assert performance.run_benchmark("print(1)") == "81.5"

    def test_jax_missing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            system,
            "run_command",
            lambda args, *, timeout_s=30.0: system.CommandOutput(
                1, "", "ModuleNotFoundError: No module named 'jax'\n"
            ),
        )
        with pytest.raises(CommandError, match="JAX not installed"):
            performance.run_benchmark("import jax")

    def test_script_failure_reports_first_stderr_line(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            system,
            "run_command",
            lambda args, *, timeout_s=30.0: system.CommandOutput(1, "", "RuntimeError: boom\nmore\n"),
        )
        with pytest.raises(CommandError, match="Benchmark failed: RuntimeError: boom"):
            performance.run_benchmark("raise RuntimeError")


class TestOffTpu:
    @pytest.mark.parametrize(
        "probe",
        [
            performance.check_mxu_utilization,
            performance.check_hbm_bandwidth,
            performance.check_chip_latency,
            performance.check_compilation_latency,
            performance.check_memory_pressure,
        ],
    )
    def test_skips(self, monkeypatch: pytest.MonkeyPatch, probe) -> None:  # noqa: ANN001
        monkeypatch.setattr(accel, "is_accelerator_vm", lambda: False)
        assert probe() == SkipResult(reason="Not running on a TPU VM")


class TestMxuUtilization:
    @pytest.mark.parametrize(
        ("output", "expected"),
        [("92.0", PassResult), ("75.0", WarnResult), ("40.0", FailResult)],
    )
    def test_thresholds(self, on_tpu: pytest.MonkeyPatch, output: str, expected: type) -> None:
        _benchmark_prints(on_tpu, output)
        assert isinstance(performance.check_mxu_utilization(), expected)

    def test_script_uses_generation_peak(self, on_tpu: pytest.MonkeyPatch) -> None:
        scripts: list[str] = []

        def run_command(args: list[str], *, timeout_s: float = 30.0) -> system.CommandOutput:
            scripts.append(args[-1])
            return system.CommandOutput(0, "90.0", "")

        on_tpu.setattr(system, "run_command", run_command)
        performance.check_mxu_utilization()
        assert "/ 197e12" in scripts[0]

    def test_unparseable_skips(self, on_tpu: pytest.MonkeyPatch) -> None:
        _benchmark_prints(on_tpu, "n/a")
        assert isinstance(performance.check_mxu_utilization(), SkipResult)


class TestHbmBandwidth:
    @pytest.mark.parametrize(
        ("measured", "expected"),
        [("760.0", PassResult), ("600.0", WarnResult), ("300.0", FailResult)],
    )
    def test_ratio_to_rated_bandwidth(self, on_tpu: pytest.MonkeyPatch, measured: str, expected: type) -> None:
        _benchmark_prints(on_tpu, measured)
        assert isinstance(performance.check_hbm_bandwidth(), expected)


class TestChipLatency:
    def test_single_chip_skips(self, on_tpu: pytest.MonkeyPatch) -> None:
        on_tpu.setattr(accel, "chip_count", lambda: 1)
        assert isinstance(performance.check_chip_latency(), SkipResult)

    def test_single_device_reported_by_script(self, on_tpu: pytest.MonkeyPatch) -> None:
        _benchmark_prints(on_tpu, "SINGLE")
        assert isinstance(performance.check_chip_latency(), SkipResult)

    @pytest.mark.parametrize(("output", "expected"), [("8.5", PassResult), ("35.0", WarnResult)])
    def test_thresholds(self, on_tpu: pytest.MonkeyPatch, output: str, expected: type) -> None:
        _benchmark_prints(on_tpu, output)
        assert isinstance(performance.check_chip_latency(), expected)


class TestCompilationLatency:
    @pytest.mark.parametrize(("output", "expected"), [("4.20", PassResult), ("75.00", WarnResult)])
    def test_thresholds(self, on_tpu: pytest.MonkeyPatch, output: str, expected: type) -> None:
        _benchmark_prints(on_tpu, output)
        assert isinstance(performance.check_compilation_latency(), expected)


class TestMemoryPressure:
    def test_ok(self, on_tpu: pytest.MonkeyPatch) -> None:
        _benchmark_prints(on_tpu, "OK\n")
        assert isinstance(performance.check_memory_pressure(), PassResult)

    def test_oom(self, on_tpu: pytest.MonkeyPatch) -> None:
        _benchmark_prints(on_tpu, "FAIL:RESOURCE_EXHAUSTED: Out of memory")
        result = performance.check_memory_pressure()
        assert isinstance(result, FailResult)
        assert result.details == "RESOURCE_EXHAUSTED: Out of memory"

    def test_unexpected_output_skips(self, on_tpu: pytest.MonkeyPatch) -> None:
        _benchmark_prints(on_tpu, "???")
        assert isinstance(performance.check_memory_pressure(), SkipResult)
