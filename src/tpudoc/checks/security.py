"""Security posture checks."""

from __future__ import annotations

import time

from tpudoc.checks.base import NOT_ON_GCP, RegisteredCheck, elapsed_ms
from tpudoc.errors import TpuDocError
from tpudoc.models import CheckCategory, CheckResult, PassResult, SkipResult, WarnResult
from tpudoc.probes import metadata, net

BROAD_SCOPE_MARKERS = ("cloud-platform", "compute", "devstorage.full")
CONCERNING_PORTS = frozenset({22, 80, 443, 8080, 8888, 3389, 5432, 3306, 6379, 27017})
METADATA_PROBE_URL = "http://metadata.google.internal/computeMetadata/v1/"
METADATA_PROBE_TIMEOUT_MS = 5000


def check_service_account() -> CheckResult:
    """SEC-001: default service account and the breadth of its scopes."""
    start = time.monotonic()
    if not metadata.reachable():
        return SkipResult(reason=NOT_ON_GCP)

    try:
        account = metadata.service_account()
    except TpuDocError as exc:
        return SkipResult(reason=f"Service account info unavailable: {exc}")

    try:
        scopes = metadata.access_scopes()
    except TpuDocError:
        return PassResult(
            message=f"Service account: {account} (scopes not checked)",
            duration_ms=elapsed_ms(start),
        )

    duration_ms = elapsed_ms(start)
    if any(marker in scope for scope in scopes for marker in BROAD_SCOPE_MARKERS):
        return WarnResult(
            message=f"Service account {account} has broad scopes",
            details="Consider using more restrictive scopes",
            duration_ms=duration_ms,
        )
    return PassResult(message=f"Service account: {account}", duration_ms=duration_ms)


def check_network_exposure() -> CheckResult:
    """SEC-002: sockets listening on every interface."""
    start = time.monotonic()
    exposed = net.listening_ports()
    duration_ms = elapsed_ms(start)

    concerning = [port for port in exposed if port in CONCERNING_PORTS]
    if concerning:
        return WarnResult(
            message=f"{len(concerning)} potentially exposed port(s): {', '.join(map(str, concerning))}",
            details="Services bound to 0.0.0.0 are accessible from any interface",
            duration_ms=duration_ms,
        )
    if exposed:
        return PassResult(
            message=f"{len(exposed)} port(s) listening on all interfaces (none concerning)",
            duration_ms=duration_ms,
        )
    return PassResult(message="No services exposed on all interfaces", duration_ms=duration_ms)


def check_workload_identity() -> CheckResult:
    """SEC-003: GKE workload identity or a dedicated service account."""
    start = time.monotonic()
    if not metadata.reachable():
        return SkipResult(reason=NOT_ON_GCP)

    try:
        cluster = metadata.instance_attribute("gke-cluster-name")
    except TpuDocError:
        cluster = None
    if cluster:
        return PassResult(
            message="Running in GKE with potential workload identity",
            duration_ms=elapsed_ms(start),
        )

    try:
        account = metadata.service_account()
    except TpuDocError:
        return SkipResult(reason="Could not determine service account configuration")

    duration_ms = elapsed_ms(start)
    if "compute@developer" in account:
        return WarnResult(
            message="Using default Compute Engine service account",
            details="Consider using a custom service account with minimal permissions",
            duration_ms=duration_ms,
        )
    return PassResult(message=f"Using custom service account: {account}", duration_ms=duration_ms)


def check_encryption() -> CheckResult:
    """SEC-004: encryption at rest (always on for GCP disks)."""
    start = time.monotonic()
    if not metadata.reachable():
        return SkipResult(reason=NOT_ON_GCP)
    return PassResult(message="GCP default encryption at rest enabled", duration_ms=elapsed_ms(start))


def check_metadata_access() -> CheckResult:
    """SEC-005: the metadata server rejects requests without its header."""
    start = time.monotonic()
    if not metadata.reachable():
        return SkipResult(reason=NOT_ON_GCP)

    try:
        result = net.http_get(METADATA_PROBE_URL, METADATA_PROBE_TIMEOUT_MS)
    except TpuDocError as exc:
        return SkipResult(reason=f"Could not check metadata access: {exc}")

    duration_ms = elapsed_ms(start)
    if result.status_code == 403:
        return PassResult(message="Metadata access requires proper headers", duration_ms=duration_ms)
    return WarnResult(
        message="Metadata server accessible without protection headers",
        details="Consider enabling metadata concealment",
        duration_ms=duration_ms,
    )


def check_ssh_key_management() -> CheckResult:
    """SEC-006: OS Login instead of project-wide SSH keys."""
    start = time.monotonic()
    if not metadata.reachable():
        return SkipResult(reason=NOT_ON_GCP)

    try:
        value = metadata.instance_attribute("enable-oslogin")
    except TpuDocError:
        return WarnResult(
            message="Could not determine OS Login status",
            details="Unable to query instance metadata",
            duration_ms=elapsed_ms(start),
        )

    duration_ms = elapsed_ms(start)
    if value is not None and value.lower() == "true":
        return PassResult(message="OS Login enabled", duration_ms=duration_ms)
    return WarnResult(
        message="OS Login not enabled",
        details="Consider enabling OS Login for centralized SSH key management",
        duration_ms=duration_ms,
    )


def check_firewall_rules() -> CheckResult:
    """SEC-007: firewall rules live outside the VM; informational only."""
    start = time.monotonic()
    return PassResult(
        message="Firewall rules must be verified via GCP Console or gcloud",
        duration_ms=elapsed_ms(start),
    )


CHECKS: tuple[RegisteredCheck, ...] = (
    RegisteredCheck(
        id="SEC-001",
        name="Service Account Permissions",
        category=CheckCategory.SECURITY,
        description="Identify service account and check for overly permissive roles",
        probe=check_service_account,
        estimated_duration_ms=2000,
    ),
    RegisteredCheck(
        id="SEC-002",
        name="Network Exposure",
        category=CheckCategory.SECURITY,
        description="Check for services listening on all interfaces",
        probe=check_network_exposure,
        estimated_duration_ms=500,
    ),
    RegisteredCheck(
        id="SEC-003",
        name="Workload Identity Status",
        category=CheckCategory.SECURITY,
        description="Check if workload identity is configured",
        probe=check_workload_identity,
        dependencies=("SEC-001",),
        estimated_duration_ms=1000,
    ),
    RegisteredCheck(
        id="SEC-004",
        name="Encryption Status",
        category=CheckCategory.SECURITY,
        description="Verify data encryption settings",
        probe=check_encryption,
        estimated_duration_ms=500,
    ),
    RegisteredCheck(
        id="SEC-005",
        name="Instance Metadata Access",
        category=CheckCategory.SECURITY,
        description="Verify metadata server access configuration",
        probe=check_metadata_access,
        estimated_duration_ms=1000,
    ),
    RegisteredCheck(
        id="SEC-006",
        name="SSH Key Management",
        category=CheckCategory.SECURITY,
        description="Check for OS Login vs legacy SSH keys",
        probe=check_ssh_key_management,
        estimated_duration_ms=1000,
    ),
    RegisteredCheck(
        id="SEC-007",
        name="Firewall Rules",
        category=CheckCategory.SECURITY,
        description="Provide guidance on firewall configuration",
        probe=check_firewall_rules,
        estimated_duration_ms=100,
    ),
)
