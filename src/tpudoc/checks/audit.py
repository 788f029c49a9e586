"""Configuration audit checks over XLA and JAX environment settings."""

from __future__ import annotations

import time

from tpudoc.checks.base import RegisteredCheck, elapsed_ms
from tpudoc.models import CheckCategory, CheckResult, FailResult, PassResult, SkipResult, WarnResult
from tpudoc.probes import system

DEBUG_XLA_FLAGS = ("--xla_dump_to", "--xla_dump_hlo", "--xla_log_all")
MAX_MEM_FRACTION = 0.95


def check_xla_flags() -> CheckResult:
    """CFG-001: debug or optimisation-disabling flags in ``XLA_FLAGS``."""
    start = time.monotonic()
    flags = system.env("XLA_FLAGS")
    if flags is None:
        return PassResult(message="XLA_FLAGS not set (using defaults)", duration_ms=elapsed_ms(start))

    issues = [f"Debug flag {flag} is set" for flag in DEBUG_XLA_FLAGS if flag in flags]
    if "--xla_disable_hlo_passes" in flags:
        issues.append("HLO passes are disabled")

    duration_ms = elapsed_ms(start)
    if issues:
        return WarnResult(
            message=f"XLA_FLAGS has {len(issues)} potential issues",
            details="; ".join(issues),
            duration_ms=duration_ms,
        )
    return PassResult(message="XLA_FLAGS configuration is optimal", duration_ms=duration_ms)


def check_jax_config() -> CheckResult:
    """CFG-002: ``JAX_PLATFORMS`` must allow the TPU backend."""
    start = time.monotonic()
    platforms = system.env("JAX_PLATFORMS")
    duration_ms = elapsed_ms(start)
    if platforms is not None and "tpu" not in platforms:
        return WarnResult(
            message="JAX configuration has potential issues",
            details="JAX_PLATFORMS does not include 'tpu'",
            duration_ms=duration_ms,
        )
    return PassResult(message="JAX configuration appears correct", duration_ms=duration_ms)


def check_memory_config() -> CheckResult:
    """CFG-003: client memory fraction leaves headroom and preallocation is on."""
    start = time.monotonic()
    issues: list[str] = []
    raw = system.env("XLA_PYTHON_CLIENT_MEM_FRACTION")
    if raw is not None:
        try:
            fraction = float(raw)
        except ValueError:
            issues.append(f"XLA_PYTHON_CLIENT_MEM_FRACTION is not a number: {raw!r}")
        else:
            if fraction > MAX_MEM_FRACTION:
                issues.append(f"High memory fraction: {fraction} (risk of OOM)")
    if (system.env("XLA_PYTHON_CLIENT_PREALLOCATE") or "").lower() == "false":
        issues.append("Memory preallocation disabled (may cause fragmentation)")

    duration_ms = elapsed_ms(start)
    if issues:
        return WarnResult(
            message="Memory configuration may cause issues",
            details="; ".join(issues),
            duration_ms=duration_ms,
        )
    return PassResult(message="Memory configuration is appropriate", duration_ms=duration_ms)


def check_distributed_config() -> CheckResult:
    """CFG-004: multi-host runs need a JAX coordinator address."""
    start = time.monotonic()
    coordinator = system.env("JAX_COORDINATOR_ADDRESS")
    worker_hostnames = system.env("TPU_WORKER_HOSTNAMES") or ""
    multi_host = coordinator is not None or "," in worker_hostnames

    if not multi_host:
        return SkipResult(reason="Single-host configuration")
    if coordinator is None:
        return FailResult(
            message="Multi-host detected but JAX_COORDINATOR_ADDRESS not set",
            details="Set JAX_COORDINATOR_ADDRESS for distributed training",
            duration_ms=elapsed_ms(start),
        )
    return PassResult(message="Distributed configuration is correct", duration_ms=elapsed_ms(start))


def check_logging_config() -> CheckResult:
    """CFG-005: verbose or debug logging left enabled."""
    start = time.monotonic()
    issues: list[str] = []
    if system.env("TF_CPP_MIN_LOG_LEVEL") == "0":
        issues.append("TF_CPP_MIN_LOG_LEVEL=0 (verbose logging)")
    if system.env("JAX_DEBUG_NANS") in ("True", "true", "1"):
        issues.append("JAX_DEBUG_NANS is enabled (performance impact)")

    duration_ms = elapsed_ms(start)
    if issues:
        return WarnResult(
            message="Debug logging may impact performance",
            details="; ".join(issues),
            duration_ms=duration_ms,
        )
    return PassResult(message="Logging configuration is production-appropriate", duration_ms=duration_ms)


CHECKS: tuple[RegisteredCheck, ...] = (
    RegisteredCheck(
        id="CFG-001",
        name="XLA Flags Audit",
        category=CheckCategory.CONFIG,
        description="Check XLA_FLAGS for potential issues",
        probe=check_xla_flags,
        estimated_duration_ms=100,
    ),
    RegisteredCheck(
        id="CFG-002",
        name="JAX Configuration Audit",
        category=CheckCategory.CONFIG,
        description="Check JAX configuration values",
        probe=check_jax_config,
        dependencies=("STK-001",),
        estimated_duration_ms=100,
    ),
    RegisteredCheck(
        id="CFG-003",
        name="Memory Preallocation Check",
        category=CheckCategory.CONFIG,
        description="Check memory preallocation settings",
        probe=check_memory_config,
        estimated_duration_ms=100,
    ),
    RegisteredCheck(
        id="CFG-004",
        name="Distributed Configuration Check",
        category=CheckCategory.CONFIG,
        description="Check multi-host configuration",
        probe=check_distributed_config,
        dependencies=("HW-001",),
        estimated_duration_ms=100,
    ),
    RegisteredCheck(
        id="CFG-005",
        name="Logging Configuration Check",
        category=CheckCategory.CONFIG,
        description="Check logging and debug settings",
        probe=check_logging_config,
        estimated_duration_ms=100,
    ),
)
