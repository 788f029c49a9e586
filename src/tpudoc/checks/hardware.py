"""Hardware health checks: chips, HBM, thermals, errors, interconnect, driver."""

from __future__ import annotations

import time

from tpudoc.checks.base import GIB, NOT_ON_TPU, RegisteredCheck, elapsed_ms
from tpudoc.errors import TpuDocError
from tpudoc.models import CheckCategory, CheckResult, FailResult, PassResult, SkipResult, WarnResult
from tpudoc.probes import accel

HBM_FAIL_PCT = 50.0
HBM_WARN_PCT = 90.0
TEMP_FAIL_C = 85.0
TEMP_WARN_C = 75.0


def check_device_detection() -> CheckResult:
    """HW-001: compare detected chips against the expected count."""
    start = time.monotonic()
    if not accel.is_accelerator_vm():
        return SkipResult(reason=NOT_ON_TPU)

    try:
        count = accel.chip_count()
        expected = accel.expected_chip_count()
    except TpuDocError as exc:
        return FailResult(
            message="Failed to detect TPU chips",
            details=str(exc),
            duration_ms=elapsed_ms(start),
        )

    duration_ms = elapsed_ms(start)
    if count == 0:
        return FailResult(
            message="No TPU chips detected",
            details="Expected at least one TPU chip but found none",
            duration_ms=duration_ms,
        )
    if count < expected:
        return FailResult(
            message=f"Fewer TPU chips than expected: {count} found, {expected} expected",
            details="Some TPU chips may be offline or malfunctioning",
            duration_ms=duration_ms,
        )
    if count > expected:
        return WarnResult(
            message=f"More TPU chips than expected: {count} found, {expected} expected",
            details="This is unusual but not necessarily an error",
            duration_ms=duration_ms,
        )
    return PassResult(message=f"{count} chips detected", duration_ms=duration_ms)


def check_hbm_availability() -> CheckResult:
    """HW-002: HBM availability as a share of total capacity."""
    start = time.monotonic()
    if not accel.is_accelerator_vm():
        return SkipResult(reason=NOT_ON_TPU)

    try:
        hbm = accel.memory_info()
    except TpuDocError as exc:
        return SkipResult(reason=f"HBM info unavailable: {exc}")

    duration_ms = elapsed_ms(start)
    pct = hbm.available_bytes / hbm.total_bytes * 100.0 if hbm.total_bytes > 0 else 0.0
    total_gb = hbm.total_bytes / GIB
    available_gb = hbm.available_bytes / GIB
    details = f"{available_gb:.1f}GB available of {total_gb:.1f}GB total"

    if pct < HBM_FAIL_PCT:
        return FailResult(
            message=f"HBM availability critically low: {pct:.1f}%",
            details=details,
            duration_ms=duration_ms,
        )
    if pct < HBM_WARN_PCT:
        return WarnResult(
            message=f"HBM availability below threshold: {pct:.1f}%",
            details=details,
            duration_ms=duration_ms,
        )
    return PassResult(message=f"{available_gb:.1f}GB available ({pct:.1f}%)", duration_ms=duration_ms)


def check_thermal_status() -> CheckResult:
    """HW-003: hottest chip temperature."""
    start = time.monotonic()
    if not accel.is_accelerator_vm():
        return SkipResult(reason=NOT_ON_TPU)

    try:
        thermal = accel.thermal_info()
    except TpuDocError as exc:
        return SkipResult(reason=f"Thermal info unavailable: {exc}")

    duration_ms = elapsed_ms(start)
    max_temp = thermal.max_temperature
    if max_temp >= TEMP_FAIL_C:
        return FailResult(
            message=f"TPU temperature critical: {max_temp:.1f}C",
            details="One or more chips above 85C threshold",
            duration_ms=duration_ms,
        )
    if max_temp >= TEMP_WARN_C:
        return WarnResult(
            message=f"TPU temperature elevated: {max_temp:.1f}C",
            details="One or more chips above 75C warning threshold",
            duration_ms=duration_ms,
        )
    return PassResult(message=f"Max temperature: {max_temp:.1f}C", duration_ms=duration_ms)


def check_error_counters() -> CheckResult:
    """HW-004: accumulated correctable and uncorrectable errors."""
    start = time.monotonic()
    if not accel.is_accelerator_vm():
        return SkipResult(reason=NOT_ON_TPU)

    try:
        errors = accel.error_counters()
    except TpuDocError as exc:
        return SkipResult(reason=f"Error counters unavailable: {exc}")

    duration_ms = elapsed_ms(start)
    if errors.uncorrectable > 0:
        return FailResult(
            message=f"{errors.uncorrectable} uncorrectable errors detected",
            details="Uncorrectable errors indicate hardware issues",
            duration_ms=duration_ms,
        )
    if errors.correctable > 0:
        return WarnResult(
            message=f"{errors.correctable} correctable errors detected",
            details="Correctable errors are handled but may indicate degradation",
            duration_ms=duration_ms,
        )
    return PassResult(message="No hardware errors", duration_ms=duration_ms)


def check_interconnect() -> CheckResult:
    """HW-005: inter-chip interconnect health on multi-chip hosts."""
    start = time.monotonic()
    if not accel.is_accelerator_vm():
        return SkipResult(reason=NOT_ON_TPU)

    try:
        chips = accel.chip_count()
    except TpuDocError as exc:
        return SkipResult(reason=f"Could not determine chip count: {exc}")
    if chips <= 1:
        return SkipResult(reason="Single-chip configuration - ICI not applicable")

    try:
        status = accel.interconnect_status()
    except TpuDocError as exc:
        return SkipResult(reason=f"ICI status unavailable: {exc}")

    duration_ms = elapsed_ms(start)
    if not status.healthy:
        return FailResult(
            message="ICI interconnect errors detected",
            details=status.details,
            duration_ms=duration_ms,
        )
    return PassResult(
        message=f"ICI healthy, bandwidth: {status.bandwidth_gbps:.1f} GB/s",
        duration_ms=duration_ms,
    )


def check_driver_status() -> CheckResult:
    """HW-006: TPU kernel driver presence and version."""
    start = time.monotonic()
    if not accel.is_accelerator_vm():
        return SkipResult(reason=NOT_ON_TPU)

    if not accel.driver_loaded():
        return FailResult(
            message="TPU driver not loaded",
            details="The TPU kernel module is not loaded",
            duration_ms=elapsed_ms(start),
        )

    try:
        version = accel.driver_version()
    except TpuDocError as exc:
        return WarnResult(
            message="Driver loaded but version unknown",
            details=str(exc),
            duration_ms=elapsed_ms(start),
        )
    return PassResult(message=f"Driver version: {version}", duration_ms=elapsed_ms(start))


CHECKS: tuple[RegisteredCheck, ...] = (
    RegisteredCheck(
        id="HW-001",
        name="TPU Device Detection",
        category=CheckCategory.HARDWARE,
        description="Verify expected number of TPU chips are present",
        probe=check_device_detection,
        estimated_duration_ms=1000,
    ),
    RegisteredCheck(
        id="HW-002",
        name="HBM Memory Availability",
        category=CheckCategory.HARDWARE,
        description="Check total HBM capacity and availability",
        probe=check_hbm_availability,
        dependencies=("HW-001",),
        estimated_duration_ms=1000,
    ),
    RegisteredCheck(
        id="HW-003",
        name="TPU Thermal Status",
        category=CheckCategory.HARDWARE,
        description="Check temperature of each TPU chip",
        probe=check_thermal_status,
        dependencies=("HW-001",),
        estimated_duration_ms=500,
    ),
    RegisteredCheck(
        id="HW-004",
        name="TPU Error Counters",
        category=CheckCategory.HARDWARE,
        description="Check for accumulated hardware errors",
        probe=check_error_counters,
        dependencies=("HW-001",),
        estimated_duration_ms=500,
    ),
    RegisteredCheck(
        id="HW-005",
        name="ICI Interconnect Status",
        category=CheckCategory.HARDWARE,
        description="Verify inter-chip interconnect is functional",
        probe=check_interconnect,
        dependencies=("HW-001",),
        estimated_duration_ms=1000,
    ),
    RegisteredCheck(
        id="HW-006",
        name="Driver Status",
        category=CheckCategory.HARDWARE,
        description="Verify TPU driver kernel module is loaded",
        probe=check_driver_status,
        estimated_duration_ms=500,
    ),
)
