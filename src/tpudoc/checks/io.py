"""Storage and network I/O checks."""

from __future__ import annotations

import os
import tempfile
import time
from pathlib import Path

from tpudoc.checks.base import GIB, NOT_ON_GCP, RegisteredCheck, elapsed_ms
from tpudoc.errors import TpuDocError
from tpudoc.models import CheckCategory, CheckResult, FailResult, PassResult, SkipResult, WarnResult
from tpudoc.probes import metadata, net, system

GCS_HOST = "storage.googleapis.com"
GCS_TEST_URL_VAR = "TPU_DOC_GCS_TEST_URL"
CONNECT_TIMEOUT_MS = 5000
THROUGHPUT_TIMEOUT_MS = 10000

GCS_WARN_MBPS = 100.0
DISK_WARN_GBPS = 0.5
DISK_TEST_BYTES = 100 * 1024 * 1024
DISK_BLOCK_BYTES = 1024 * 1024
CHECKPOINT_WARN_GB = 100.0
LATENCY_WARN_MS = 10

GCP_SERVICES = (
    ("metadata.google.internal", 80),
    ("storage.googleapis.com", 443),
    ("compute.googleapis.com", 443),
)
GCP_HOSTNAMES = (
    "storage.googleapis.com",
    "metadata.google.internal",
    "compute.googleapis.com",
)


def check_gcs_throughput() -> CheckResult:
    """IO-001: download throughput from a configured GCS object."""
    start = time.monotonic()
    url = system.env(GCS_TEST_URL_VAR)
    if not url:
        return SkipResult(reason="GCS throughput test requires configured test bucket")
    if not metadata.reachable():
        return SkipResult(reason=NOT_ON_GCP)

    try:
        result = net.bandwidth(url, THROUGHPUT_TIMEOUT_MS)
    except TpuDocError as exc:
        return FailResult(
            message="GCS read throughput test failed",
            details=str(exc),
            duration_ms=elapsed_ms(start),
        )

    duration_ms = elapsed_ms(start)
    mbps = result.bytes_per_second / (1024 * 1024)
    if mbps < GCS_WARN_MBPS:
        return WarnResult(
            message=f"GCS read throughput low: {mbps:.1f} MB/s",
            details=f"Expected at least {GCS_WARN_MBPS:.0f} MB/s",
            duration_ms=duration_ms,
        )
    return PassResult(message=f"GCS read throughput: {mbps:.1f} MB/s", duration_ms=duration_ms)


def measure_disk_write(directory: str | None = None, size_bytes: int = DISK_TEST_BYTES) -> float:
    """Write *size_bytes* to a temporary file, sync it, and return GB/s."""
    block = b"\0" * DISK_BLOCK_BYTES
    start = time.monotonic()
    with tempfile.NamedTemporaryFile(dir=directory, prefix="tpu-doc-disk-") as handle:
        written = 0
        while written < size_bytes:
            chunk = block[: min(DISK_BLOCK_BYTES, size_bytes - written)]
            handle.write(chunk)
            written += len(chunk)
        handle.flush()
        os.fsync(handle.fileno())
    seconds = max(time.monotonic() - start, 1e-6)
    return written / seconds / GIB


def check_disk_throughput() -> CheckResult:
    """IO-002: sequential write throughput of the local disk."""
    start = time.monotonic()
    try:
        throughput = measure_disk_write()
    except OSError as exc:
        return SkipResult(reason=f"Disk throughput test failed: {exc}")

    duration_ms = elapsed_ms(start)
    if throughput < DISK_WARN_GBPS:
        return WarnResult(
            message=f"Local disk throughput low: {throughput:.2f} GB/s",
            details="Expected at least 1 GB/s for NVMe SSD",
            duration_ms=duration_ms,
        )
    return PassResult(message=f"Local disk throughput: {throughput:.2f} GB/s", duration_ms=duration_ms)


def check_gcs_connectivity() -> CheckResult:
    """IO-003: TCP reachability of Cloud Storage."""
    start = time.monotonic()
    try:
        result = net.tcp_connect(GCS_HOST, 443, CONNECT_TIMEOUT_MS)
    except TpuDocError as exc:
        return FailResult(
            message="GCS connectivity check failed",
            details=str(exc),
            duration_ms=elapsed_ms(start),
        )

    duration_ms = elapsed_ms(start)
    if not result.success:
        return FailResult(
            message=f"Cannot connect to {GCS_HOST}",
            details="TCP connection to port 443 failed",
            duration_ms=duration_ms,
        )
    return PassResult(message=f"GCS connectivity OK, latency: {result.latency_ms}ms", duration_ms=duration_ms)


def check_checkpoint_directory() -> CheckResult:
    """IO-004: ``CHECKPOINT_DIR`` exists, is writable and has space."""
    start = time.monotonic()
    checkpoint_dir = system.env("CHECKPOINT_DIR")
    if not checkpoint_dir:
        return SkipResult(reason="CHECKPOINT_DIR environment variable not set")

    path = Path(checkpoint_dir)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return FailResult(
            message="Cannot create checkpoint directory",
            details=f"Path: {checkpoint_dir}",
            duration_ms=elapsed_ms(start),
        )

    probe_file = path / ".tpu-doc-write-test"
    try:
        probe_file.write_text("test", encoding="utf-8")
        probe_file.unlink()
    except OSError:
        return FailResult(
            message="No write permission for checkpoint directory",
            details=f"Path: {checkpoint_dir}",
            duration_ms=elapsed_ms(start),
        )

    try:
        disk = system.disk_info(path)
    except TpuDocError as exc:
        return WarnResult(
            message="Could not check checkpoint directory space",
            details=str(exc),
            duration_ms=elapsed_ms(start),
        )

    duration_ms = elapsed_ms(start)
    available_gb = disk.available_bytes / GIB
    if available_gb < CHECKPOINT_WARN_GB:
        return WarnResult(
            message=f"Checkpoint directory space low: {available_gb:.1f} GB available",
            details="Recommended at least 100GB for checkpoints",
            duration_ms=duration_ms,
        )
    return PassResult(
        message=f"Checkpoint directory OK, {available_gb:.1f} GB available",
        duration_ms=duration_ms,
    )


def check_service_latency() -> CheckResult:
    """IO-005: TCP connect latency to core GCP endpoints."""
    start = time.monotonic()
    latencies: list[tuple[str, int]] = []
    failures: list[str] = []

    for host, port in GCP_SERVICES:
        try:
            result = net.tcp_connect(host, port, CONNECT_TIMEOUT_MS)
        except TpuDocError as exc:
            failures.append(f"{host}:{port} - {exc}")
            continue
        if result.success:
            latencies.append((host, result.latency_ms))
        else:
            failures.append(f"{host}:{port} - connection failed")

    duration_ms = elapsed_ms(start)
    if failures:
        return WarnResult(
            message=f"{len(failures)} service(s) unreachable",
            details="; ".join(failures),
            duration_ms=duration_ms,
        )

    max_latency = max((latency for _, latency in latencies), default=0)
    if max_latency > LATENCY_WARN_MS:
        return WarnResult(
            message=f"Network latency elevated: max {max_latency}ms",
            details=", ".join(f"{host}: {latency}ms" for host, latency in latencies),
            duration_ms=duration_ms,
        )
    return PassResult(message=f"Network latency OK, max {max_latency}ms", duration_ms=duration_ms)


def check_dns_resolution() -> CheckResult:
    """IO-006: resolution of the GCP hostnames the workload depends on."""
    start = time.monotonic()
    failures: list[str] = []
    slowest = 0

    for hostname in GCP_HOSTNAMES:
        try:
            result = net.resolve(hostname)
        except TpuDocError as exc:
            failures.append(f"{hostname}: {exc}")
            continue
        slowest = max(slowest, result.resolution_time_ms)

    duration_ms = elapsed_ms(start)
    if failures:
        return FailResult(
            message="DNS resolution failed",
            details="; ".join(failures),
            duration_ms=duration_ms,
        )
    return PassResult(message=f"DNS resolution OK, max {slowest}ms", duration_ms=duration_ms)


CHECKS: tuple[RegisteredCheck, ...] = (
    RegisteredCheck(
        id="IO-001",
        name="GCS Read Throughput",
        category=CheckCategory.IO,
        description="Measure read throughput from Google Cloud Storage",
        probe=check_gcs_throughput,
        dependencies=("IO-003",),
        estimated_duration_ms=10000,
    ),
    RegisteredCheck(
        id="IO-002",
        name="Local Disk Throughput",
        category=CheckCategory.IO,
        description="Measure sequential read/write to local SSD",
        probe=check_disk_throughput,
        estimated_duration_ms=5000,
    ),
    RegisteredCheck(
        id="IO-003",
        name="GCS Connectivity",
        category=CheckCategory.IO,
        description="Verify connectivity to storage.googleapis.com",
        probe=check_gcs_connectivity,
        dependencies=("IO-006",),
        estimated_duration_ms=2000,
    ),
    RegisteredCheck(
        id="IO-004",
        name="Checkpoint Directory Access",
        category=CheckCategory.IO,
        description="Verify checkpoint directory access and space",
        probe=check_checkpoint_directory,
        estimated_duration_ms=1000,
    ),
    RegisteredCheck(
        id="IO-005",
        name="Network Latency to GCP Services",
        category=CheckCategory.IO,
        description="Measure latency to GCP services",
        probe=check_service_latency,
        dependencies=("IO-006",),
        estimated_duration_ms=5000,
    ),
    RegisteredCheck(
        id="IO-006",
        name="DNS Resolution",
        category=CheckCategory.IO,
        description="Verify DNS resolution is working",
        probe=check_dns_resolution,
        estimated_duration_ms=2000,
    ),
)
