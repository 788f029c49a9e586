"""Performance baseline checks.

Each benchmark is a short JAX program run by the host's ``python3`` in a
subprocess; the program prints a single figure on stdout.
"""

from __future__ import annotations

import time

from tpudoc.checks.base import NOT_ON_TPU, RegisteredCheck, elapsed_ms
from tpudoc.errors import CommandError, ProbeParseError, TpuDocError
from tpudoc.models import CheckCategory, CheckResult, FailResult, PassResult, SkipResult, WarnResult
from tpudoc.probes import accel, system

BENCHMARK_TIMEOUT_S = 300.0

MXU_FAIL_PCT = 70.0
MXU_WARN_PCT = 80.0
HBM_BW_FAIL_RATIO = 0.70
HBM_BW_WARN_RATIO = 0.85
LATENCY_WARN_US = 20.0
COMPILE_WARN_S = 60.0

MXU_SCRIPT = """
import time
import jax
import jax.numpy as jnp

x = jnp.ones((4096, 4096))
jnp.dot(x, x).block_until_ready()

start = time.time()
for _ in range(10):
    jnp.dot(x, x).block_until_ready()
elapsed = time.time() - start

flops = (4096 ** 3) * 2 * 10 / elapsed
print(f"{flops / {peak_tflops}e12 * 100:.1f}")
"""

HBM_BANDWIDTH_SCRIPT = """
import time
import jax.numpy as jnp

size_gb = 1.0
x = jnp.ones(int(size_gb * 1024 ** 3) // 4, dtype=jnp.float32)
(x + 1).block_until_ready()

start = time.time()
for _ in range(10):
    (x + 1).block_until_ready()
elapsed = time.time() - start

print(f"{size_gb * 2 * 10 / elapsed:.1f}")
"""

LATENCY_SCRIPT = """
import time
import jax
import jax.numpy as jnp

devices = jax.devices()
if len(devices) < 2:
    print("SINGLE")
    raise SystemExit(0)

x = jax.device_put(jnp.ones(1024), devices[0])
start = time.time()
for _ in range(100):
    jax.device_put(x, devices[1]).block_until_ready()
elapsed = time.time() - start

print(f"{elapsed / 100 * 1e6:.1f}")
"""

COMPILE_SCRIPT = """
import time
import jax
import jax.numpy as jnp

@jax.jit
def model(x):
    for _ in range(10):
        x = jnp.tanh(jnp.dot(x, x.T))
    return x

jax.clear_caches()
x = jnp.ones((512, 512))

start = time.time()
model(x).block_until_ready()
print(f"{time.time() - start:.2f}")
"""

MEMORY_PRESSURE_SCRIPT = """
import jax.numpy as jnp

try:
    arrays = []
    for size_mb in (100, 500, 1000, 2000):
        arr = jnp.ones(size_mb * 1024 * 1024 // 4, dtype=jnp.float32)
        arr.block_until_ready()
        arrays.append(arr)
    del arrays
    jnp.ones(500 * 1024 * 1024 // 4, dtype=jnp.float32).block_until_ready()
    print("OK")
except Exception as exc:
    print(f"FAIL:{exc}")
"""


def run_benchmark(script: str) -> str:
    """Run *script* with the host's python3 and return its trimmed stdout.

    Raises
    ------
    CommandError
        If python3 is missing, JAX is not installed, or the script fails.
    ProbeTimeoutError
        If the script runs longer than :data:`BENCHMARK_TIMEOUT_S`.
    """
    output = system.run_command(["python3", "-c", script], timeout_s=BENCHMARK_TIMEOUT_S)
    if output.ok:
        return output.stdout.strip()
    if "No module named 'jax'" in output.stderr:
        raise CommandError("python3", "JAX not installed")
    first_line = next(iter(output.stderr.strip().splitlines()), "unknown error")
    raise CommandError("python3", f"Benchmark failed: {first_line}")


def _benchmark_float(script: str, what: str) -> float:
    raw = run_benchmark(script)
    try:
        return float(raw)
    except ValueError as exc:
        raise ProbeParseError(what, f"Could not parse output {raw!r}") from exc


def _device_type_or_unknown() -> accel.TpuType:
    try:
        return accel.device_type()
    except TpuDocError:
        return accel.TpuType.UNKNOWN


def check_mxu_utilization() -> CheckResult:
    """PERF-001: matrix-unit utilization from a matmul benchmark."""
    start = time.monotonic()
    if not accel.is_accelerator_vm():
        return SkipResult(reason=NOT_ON_TPU)

    peak = accel.TPU_SPECS[_device_type_or_unknown()].peak_tflops
    try:
        utilization = _benchmark_float(MXU_SCRIPT.replace("{peak_tflops}", str(peak)), "mxu_benchmark")
    except TpuDocError as exc:
        return SkipResult(reason=f"MXU benchmark unavailable: {exc}")

    duration_ms = elapsed_ms(start)
    if utilization < MXU_FAIL_PCT:
        return FailResult(
            message=f"MXU utilization too low: {utilization:.1f}%",
            details="Expected at least 70% utilization",
            duration_ms=duration_ms,
        )
    if utilization < MXU_WARN_PCT:
        return WarnResult(
            message=f"MXU utilization below optimal: {utilization:.1f}%",
            details="Expected at least 80% utilization",
            duration_ms=duration_ms,
        )
    return PassResult(message=f"MXU utilization: {utilization:.1f}%", duration_ms=duration_ms)


def check_hbm_bandwidth() -> CheckResult:
    """PERF-002: measured HBM bandwidth against the generation's rating."""
    start = time.monotonic()
    if not accel.is_accelerator_vm():
        return SkipResult(reason=NOT_ON_TPU)

    expected = float(accel.TPU_SPECS[_device_type_or_unknown()].hbm_bandwidth_gbps)
    try:
        measured = _benchmark_float(HBM_BANDWIDTH_SCRIPT, "hbm_bandwidth")
    except TpuDocError as exc:
        return SkipResult(reason=f"HBM bandwidth test unavailable: {exc}")

    duration_ms = elapsed_ms(start)
    pct = measured / expected * 100.0
    summary = f"{measured:.1f} GB/s ({pct:.1f}% of expected)"
    if pct < HBM_BW_FAIL_RATIO * 100:
        return FailResult(
            message=f"HBM bandwidth too low: {summary}",
            details=f"Expected at least {expected * HBM_BW_FAIL_RATIO:.1f} GB/s",
            duration_ms=duration_ms,
        )
    if pct < HBM_BW_WARN_RATIO * 100:
        return WarnResult(
            message=f"HBM bandwidth below optimal: {summary}",
            details=f"Expected at least {expected * HBM_BW_WARN_RATIO:.1f} GB/s",
            duration_ms=duration_ms,
        )
    return PassResult(message=f"HBM bandwidth: {summary}", duration_ms=duration_ms)


def check_chip_latency() -> CheckResult:
    """PERF-003: device-to-device transfer latency."""
    start = time.monotonic()
    if not accel.is_accelerator_vm():
        return SkipResult(reason=NOT_ON_TPU)

    try:
        chips = accel.chip_count()
    except TpuDocError as exc:
        return SkipResult(reason=f"Could not determine chip count: {exc}")
    if chips <= 1:
        return SkipResult(reason="Single-chip configuration - chip-to-chip latency not applicable")

    try:
        raw = run_benchmark(LATENCY_SCRIPT)
    except TpuDocError as exc:
        return SkipResult(reason=f"Latency test unavailable: {exc}")
    if raw == "SINGLE":
        return SkipResult(reason="Latency test unavailable: Single device - latency test not applicable")
    try:
        latency_us = float(raw)
    except ValueError:
        return SkipResult(reason="Latency test unavailable: Could not parse latency output")

    duration_ms = elapsed_ms(start)
    if latency_us > LATENCY_WARN_US:
        return WarnResult(
            message=f"Chip-to-chip latency elevated: {latency_us:.1f}us",
            details="Expected less than 10us for adjacent chips",
            duration_ms=duration_ms,
        )
    return PassResult(message=f"Chip-to-chip latency: {latency_us:.1f}us", duration_ms=duration_ms)


def check_compilation_latency() -> CheckResult:
    """PERF-004: time to JIT-compile a small reference graph."""
    start = time.monotonic()
    if not accel.is_accelerator_vm():
        return SkipResult(reason=NOT_ON_TPU)

    try:
        seconds = _benchmark_float(COMPILE_SCRIPT, "compilation_test")
    except TpuDocError as exc:
        return SkipResult(reason=f"Compilation test unavailable: {exc}")

    duration_ms = elapsed_ms(start)
    if seconds > COMPILE_WARN_S:
        return WarnResult(
            message=f"XLA compilation unusually slow: {seconds:.1f}s",
            details="Compilation took longer than 60 seconds",
            duration_ms=duration_ms,
        )
    return PassResult(message=f"XLA compilation time: {seconds:.1f}s", duration_ms=duration_ms)


def check_memory_pressure() -> CheckResult:
    """PERF-005: allocate, free and reallocate HBM."""
    start = time.monotonic()
    if not accel.is_accelerator_vm():
        return SkipResult(reason=NOT_ON_TPU)

    try:
        raw = run_benchmark(MEMORY_PRESSURE_SCRIPT)
    except TpuDocError as exc:
        return SkipResult(reason=f"Memory pressure test unavailable: {exc}")

    duration_ms = elapsed_ms(start)
    if raw == "OK":
        return PassResult(message="Memory allocation/deallocation successful", duration_ms=duration_ms)
    if raw.startswith("FAIL:"):
        return FailResult(
            message="Memory pressure test failed",
            details=raw.removeprefix("FAIL:") or "OOM or fragmentation issues detected",
            duration_ms=duration_ms,
        )
    return SkipResult(reason="Memory pressure test unavailable: Unexpected output from memory test")


CHECKS: tuple[RegisteredCheck, ...] = (
    RegisteredCheck(
        id="PERF-001",
        name="MXU Utilization Test",
        category=CheckCategory.PERFORMANCE,
        description="Run standardized matrix multiplication and measure MXU utilization",
        probe=check_mxu_utilization,
        dependencies=("HW-001", "STK-001"),
        estimated_duration_ms=10000,
    ),
    RegisteredCheck(
        id="PERF-002",
        name="HBM Bandwidth Test",
        category=CheckCategory.PERFORMANCE,
        description="Measure HBM memory bandwidth",
        probe=check_hbm_bandwidth,
        dependencies=("HW-001", "HW-002"),
        estimated_duration_ms=5000,
    ),
    RegisteredCheck(
        id="PERF-003",
        name="Chip-to-Chip Latency",
        category=CheckCategory.PERFORMANCE,
        description="Measure latency between TPU chips",
        probe=check_chip_latency,
        dependencies=("HW-001", "HW-005"),
        estimated_duration_ms=3000,
    ),
    RegisteredCheck(
        id="PERF-004",
        name="Compilation Latency",
        category=CheckCategory.PERFORMANCE,
        description="Measure XLA compilation time for standard graph",
        probe=check_compilation_latency,
        dependencies=("STK-001", "STK-003"),
        estimated_duration_ms=60000,
    ),
    RegisteredCheck(
        id="PERF-005",
        name="Memory Pressure Test",
        category=CheckCategory.PERFORMANCE,
        description="Allocate and free HBM to verify no fragmentation issues",
        probe=check_memory_pressure,
        dependencies=("HW-002",),
        estimated_duration_ms=5000,
    ),
)
