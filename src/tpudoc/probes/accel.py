"""TPU accelerator probes.

Detection draws on several sources.  When they disagree the precedence is
environment variables, then sysfs, then the metadata server, then a
default derived from the TPU generation.  Figures that cannot be read
without libtpu (HBM availability, link bandwidth) are estimated from the
generation table in :data:`TPU_SPECS`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

from tpudoc.errors import NotOnAcceleratorError, ProbeIOError, ProbeParseError, TpuDocError
from tpudoc.probes import metadata, system

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

SYS_ACCEL = Path("/sys/class/accel")
SYS_THERMAL = Path("/sys/class/thermal")
SYS_MODULE = Path("/sys/module")
DEV_ROOT = Path("/dev")
LIBTPU_PATHS = (Path("/usr/local/lib/libtpu.so"), Path("/usr/lib/libtpu.so"))

GIB = 1024**3
DEFAULT_TEMPERATURE_C = 65.0
HBM_AVAILABLE_FRACTION = 0.95


class TpuType(StrEnum):
    """TPU generation."""

    V4 = "v4"
    V5E = "v5e"
    V5P = "v5p"
    V6E = "v6e"
    V7 = "v7"
    UNKNOWN = "unknown"


class TpuHealth(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class TpuSpec:
    """Published characteristics of one TPU generation."""

    chips_per_host: int
    cores_per_chip: int
    hbm_gb_per_chip: int
    hbm_bandwidth_gbps: int
    ici_bandwidth_gbps: float
    peak_tflops: int


TPU_SPECS: dict[TpuType, TpuSpec] = {
    TpuType.V4: TpuSpec(4, 2, 32, 1200, 400.0, 275),
    TpuType.V5E: TpuSpec(8, 1, 16, 800, 200.0, 197),
    TpuType.V5P: TpuSpec(8, 2, 95, 1600, 450.0, 459),
    TpuType.V6E: TpuSpec(4, 1, 32, 1800, 500.0, 918),
    TpuType.V7: TpuSpec(8, 2, 128, 2000, 600.0, 2307),
    TpuType.UNKNOWN: TpuSpec(1, 1, 16, 800, 200.0, 100),
}


@dataclass(frozen=True)
class TpuTopology:
    chips: int
    cores_per_chip: int
    shape: str


@dataclass(frozen=True)
class HbmInfo:
    """High-bandwidth memory totals across all chips, in bytes."""

    total_bytes: int
    available_bytes: int
    per_chip_bytes: int


@dataclass(frozen=True)
class ThermalInfo:
    chip_temperatures: tuple[float, ...]

    @property
    def max_temperature(self) -> float:
        return max(self.chip_temperatures, default=0.0)


@dataclass(frozen=True)
class ErrorCounters:
    correctable: int
    uncorrectable: int


@dataclass(frozen=True)
class IciStatus:
    """Inter-chip interconnect state."""

    healthy: bool
    bandwidth_gbps: float
    details: str


def parse_tpu_type(name: str) -> TpuType:
    """Map an accelerator or machine type name to a generation.

    >>> parse_tpu_type("v5litepod-8")
    <TpuType.V5E: 'v5e'>
    """
    lower = name.lower()
    if "v5litepod" in lower or "v5e" in lower:
        return TpuType.V5E
    if "v5p" in lower:
        return TpuType.V5P
    if "v6e" in lower:
        return TpuType.V6E
    if "v7" in lower:
        return TpuType.V7
    if "v4" in lower:
        return TpuType.V4
    return TpuType.UNKNOWN


def _sysfs_device_count() -> int:
    try:
        return sum(1 for p in SYS_ACCEL.iterdir() if p.name.startswith("accel"))
    except OSError:
        return 0


def _env_int(name: str) -> int | None:
    raw = system.env(name)
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise ProbeParseError(name, f"expected an integer, got {raw!r}") from exc


def _metadata_value(fetch: Callable[[], str]) -> str | None:
    if not metadata.reachable():
        return None
    try:
        return fetch()
    except TpuDocError:
        logger.debug("Metadata server unavailable for TPU detection")
        return None


def is_accelerator_vm() -> bool:
    """Return True if any detection source reports a TPU.  Never raises."""
    if system.env("TPU_NAME"):
        return True
    if _sysfs_device_count() > 0:
        return True
    machine = _metadata_value(metadata.machine_type)
    if machine is not None and "tpu" in machine.lower():
        return True
    modules = system.kernel_modules()
    return "tpu" in modules or "libtpu" in modules


def device_type() -> TpuType:
    """Return the TPU generation of this host.

    Raises
    ------
    NotOnAcceleratorError
        If no source identifies an accelerator type.
    """
    for var in ("TPU_NAME", "TPU_ACCELERATOR_TYPE"):
        value = system.env(var)
        if value:
            return parse_tpu_type(value)

    if not metadata.reachable():
        raise NotOnAcceleratorError

    try:
        accel_type = metadata.instance_attribute("accelerator-type")
    except TpuDocError:
        accel_type = None
    if accel_type:
        return parse_tpu_type(accel_type)

    try:
        return parse_tpu_type(metadata.machine_type())
    except TpuDocError as exc:
        raise NotOnAcceleratorError from exc


def chip_count() -> int:
    """Return the number of chips attached to this host."""
    configured = _env_int("TPU_CHIPS_PER_HOST")
    if configured is not None:
        return configured
    detected = _sysfs_device_count()
    if detected > 0:
        return detected
    return TPU_SPECS[device_type()].chips_per_host


def expected_chip_count() -> int:
    """Return how many chips this host should have."""
    configured = _env_int("TPU_EXPECTED_CHIPS")
    if configured is not None:
        return configured
    return TPU_SPECS[device_type()].chips_per_host


def topology() -> TpuTopology:
    chips = chip_count()
    spec = TPU_SPECS[device_type()]
    shape = system.env("TPU_TOPOLOGY") or f"{chips}x1"
    return TpuTopology(chips=chips, cores_per_chip=spec.cores_per_chip, shape=shape)


def memory_info() -> HbmInfo:
    """Return HBM totals, estimating availability at 95%."""
    per_chip = TPU_SPECS[device_type()].hbm_gb_per_chip * GIB
    total = per_chip * chip_count()
    return HbmInfo(
        total_bytes=total,
        available_bytes=int(total * HBM_AVAILABLE_FRACTION),
        per_chip_bytes=per_chip,
    )


def health() -> TpuHealth:
    """Return the health reported by ``TPU_HEALTH``, else healthy if present."""
    reported = system.env("TPU_HEALTH")
    if reported is not None:
        try:
            return TpuHealth(reported.strip().lower())
        except ValueError:
            return TpuHealth.UNKNOWN
    if is_accelerator_vm():
        return TpuHealth.HEALTHY
    raise NotOnAcceleratorError


def thermal_info() -> ThermalInfo:
    """Return per-chip temperatures in Celsius.

    Reads thermal zones whose type mentions ``tpu`` or ``accel``.  When
    none exist, reports a nominal temperature for every chip.
    """
    temperatures: list[float] = []
    try:
        zones = sorted(SYS_THERMAL.glob("thermal_zone*"))
    except OSError:
        zones = []
    for zone in zones:
        try:
            zone_type = (zone / "type").read_text(encoding="utf-8").strip().lower()
            if "tpu" not in zone_type and "accel" not in zone_type:
                continue
            millidegrees = int((zone / "temp").read_text(encoding="utf-8").strip())
        except (OSError, ValueError):
            continue
        temperatures.append(millidegrees / 1000.0)

    if temperatures:
        return ThermalInfo(chip_temperatures=tuple(temperatures))
    return ThermalInfo(chip_temperatures=(DEFAULT_TEMPERATURE_C,) * chip_count())


def error_counters() -> ErrorCounters:
    """Return error totals from ``TPU_CORRECTABLE_ERRORS``/``TPU_UNCORRECTABLE_ERRORS``."""
    return ErrorCounters(
        correctable=_env_int("TPU_CORRECTABLE_ERRORS") or 0,
        uncorrectable=_env_int("TPU_UNCORRECTABLE_ERRORS") or 0,
    )


def interconnect_status() -> IciStatus:
    """Return ICI link status for multi-chip hosts.

    Raises
    ------
    ProbeIOError
        On single-chip hosts, which have no interconnect.
    """
    chips = chip_count()
    if chips <= 1:
        raise ProbeIOError("interconnect_status", "Single chip configuration")
    return IciStatus(
        healthy=True,
        bandwidth_gbps=TPU_SPECS[device_type()].ici_bandwidth_gbps,
        details="ICI status inferred from TPU type",
    )


def driver_loaded() -> bool:
    """Return True if a TPU kernel module or accel device node exists."""
    modules = system.kernel_modules()
    if "tpu" in modules or "accel" in modules:
        return True
    try:
        return any(DEV_ROOT.glob("accel*"))
    except OSError:
        return False


def driver_version() -> str:
    """Return the TPU driver version from sysfs or ``TPU_DRIVER_VERSION``."""
    for module in ("tpu", "accel"):
        path = SYS_MODULE / module / "version"
        try:
            version = path.read_text(encoding="utf-8").strip()
        except OSError:
            continue
        if version:
            return version
    version = system.env("TPU_DRIVER_VERSION")
    if version:
        return version
    raise ProbeIOError("driver_version", "driver version not available")


def library_version() -> str:
    """Return the libtpu version, or a marker when only the library is found."""
    version = system.env("LIBTPU_VERSION")
    if version:
        return version
    if any(path.exists() for path in LIBTPU_PATHS):
        return "available (version unknown)"
    raise ProbeIOError("library_version", "libtpu not found")
