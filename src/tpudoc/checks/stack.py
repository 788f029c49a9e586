"""Software stack checks.

Versions are read from environment overrides first, then by asking the
host's ``python3`` (which may differ from the interpreter running
tpu-doc), then from ``pip3``.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

from tpudoc.checks.base import RegisteredCheck, elapsed_ms, parse_version
from tpudoc.errors import ProbeParseError, TpuDocError
from tpudoc.models import CheckCategory, CheckResult, FailResult, PassResult, SkipResult, WarnResult
from tpudoc.probes import accel, system

logger = logging.getLogger(__name__)

MIN_JAX_VERSION = (0, 4, 1)
MIN_PYTHON_VERSION = (3, 9, 0)
QUERY_TIMEOUT_S = 30.0

REQUIRED_ENV_VARS = ("TPU_NAME",)
RECOMMENDED_ENV_VARS = ("TPU_WORKER_ID", "PYTHONPATH")


# ---------------------------------------------------------------------------
# Version discovery
# ---------------------------------------------------------------------------


def _python_value(module: str) -> str | None:
    """Return ``<module>.__version__`` as reported by the host's python3."""
    try:
        output = system.run_command(
            ["python3", "-c", f"import {module}; print({module}.__version__)"],
            timeout_s=QUERY_TIMEOUT_S,
        )
    except TpuDocError as exc:
        logger.debug("python3 query for %s failed: %s", module, exc)
        return None
    value = output.stdout.strip()
    return value if output.ok and value else None


def _pip_show_version(package: str) -> str | None:
    try:
        output = system.run_command(["pip3", "show", package], timeout_s=QUERY_TIMEOUT_S)
    except TpuDocError:
        return None
    if not output.ok:
        return None
    for line in output.stdout.splitlines():
        if line.startswith("Version:"):
            return line.removeprefix("Version:").strip()
    return None


def detect_jax_version() -> str | None:
    return system.env("JAX_VERSION") or _python_value("jax") or _pip_show_version("jax")


def detect_xla_version() -> str | None:
    version = system.env("XLA_VERSION")
    if version:
        return version
    jaxlib = _python_value("jaxlib")
    return f"jaxlib {jaxlib}" if jaxlib else None


def detect_python_version() -> str:
    """Return the host python3 version string, e.g. ``3.11.5``.

    Raises
    ------
    TpuDocError
        If python3 cannot be run or its output is not recognised.
    """
    version = system.env("PYTHON_VERSION")
    if version:
        return version
    output = system.run_command(["python3", "--version"], timeout_s=QUERY_TIMEOUT_S)
    # Python 2 printed its version to stderr
    text = output.stdout if "Python" in output.stdout else output.stderr
    text = text.strip()
    if not text.startswith("Python "):
        raise ProbeParseError("python_version", f"unexpected output: {text!r}")
    return text.removeprefix("Python ").strip()


def _major(version: str) -> int | None:
    try:
        return int(version.split(".", 1)[0])
    except ValueError:
        return None


def find_known_conflicts() -> list[str]:
    """Return descriptions of known incompatible package combinations."""
    conflicts: list[str] = []
    jax_version = detect_jax_version()
    tf_version = _python_value("tensorflow")
    numpy_version = _python_value("numpy")

    if jax_version and tf_version and jax_version.startswith("0.4"):
        tf_major = _major(tf_version)
        if tf_major is not None and tf_major < 2:
            conflicts.append(f"JAX {jax_version} with TensorFlow {tf_version} may cause conflicts")

    if jax_version and numpy_version:
        np_major = _major(numpy_version)
        parsed = parse_version(jax_version)
        if np_major is not None and np_major >= 2 and parsed is not None and parsed < (0, 4, 0):
            conflicts.append(f"JAX {jax_version} may not be compatible with NumPy {numpy_version}")

    if jax_version:
        try:
            nvcc = system.run_command(["nvcc", "--version"], timeout_s=QUERY_TIMEOUT_S)
        except TpuDocError:
            nvcc = None
        if nvcc is not None and nvcc.ok and "cuda" in nvcc.stdout.lower():
            conflicts.append("CUDA toolkit detected - ensure using TPU-compatible JAX build")

    return conflicts


def _check_minimum_version(label: str, version: str, minimum: tuple[int, int, int], start: float) -> CheckResult:
    duration_ms = elapsed_ms(start)
    parsed = parse_version(version)
    if parsed is None:
        return WarnResult(
            message=f"{label} version {version} (unparseable)",
            details="Could not parse version for compatibility check",
            duration_ms=duration_ms,
        )
    if parsed < minimum:
        return FailResult(
            message=f"{label} version {version} is too old",
            details="Minimum required version is {}.{}.{}".format(*minimum),
            duration_ms=duration_ms,
        )
    return PassResult(message=f"{label} version {version}", duration_ms=duration_ms)


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------


def check_jax_version() -> CheckResult:
    """STK-001: JAX is installed and recent enough for TPU support."""
    start = time.monotonic()
    version = detect_jax_version()
    if version is None:
        return SkipResult(reason="JAX version unavailable: JAX not installed or not detectable")
    return _check_minimum_version("JAX", version, MIN_JAX_VERSION, start)


def check_libtpu_version() -> CheckResult:
    """STK-002: libtpu is present and not a development build."""
    start = time.monotonic()
    try:
        version = accel.library_version()
    except TpuDocError as exc:
        return SkipResult(reason=f"libtpu version unavailable: {exc}")

    duration_ms = elapsed_ms(start)
    if "dev" in version or "nightly" in version:
        return WarnResult(
            message=f"libtpu version {version}",
            details="Using development/nightly build",
            duration_ms=duration_ms,
        )
    return PassResult(message=f"libtpu version {version}", duration_ms=duration_ms)


def check_xla_version() -> CheckResult:
    """STK-003: report the XLA (jaxlib) version."""
    start = time.monotonic()
    version = detect_xla_version()
    if version is None:
        return SkipResult(reason="XLA version not detectable (informational only)")
    return PassResult(message=f"XLA version {version}", duration_ms=elapsed_ms(start))


def check_python_version() -> CheckResult:
    """STK-004: host python3 meets the minimum version."""
    start = time.monotonic()
    try:
        version = detect_python_version()
    except TpuDocError as exc:
        return SkipResult(reason=f"Python version unavailable: {exc}")
    return _check_minimum_version("Python", version, MIN_PYTHON_VERSION, start)


def check_pjrt_plugin() -> CheckResult:
    """STK-005: the PJRT TPU plugin can be located."""
    start = time.monotonic()
    library_path = system.env("TPU_LIBRARY_PATH")
    if library_path is not None:
        if Path(library_path).exists():
            return PassResult(message=f"PJRT plugin found at {library_path}", duration_ms=elapsed_ms(start))
        return FailResult(
            message="TPU_LIBRARY_PATH points to non-existent location",
            details=f"Path {library_path} does not exist",
            duration_ms=elapsed_ms(start),
        )

    for candidate in accel.LIBTPU_PATHS:
        if candidate.exists():
            return PassResult(message=f"PJRT plugin found at {candidate}", duration_ms=elapsed_ms(start))

    return WarnResult(
        message="TPU_LIBRARY_PATH not set",
        details="PJRT plugin location not specified",
        duration_ms=elapsed_ms(start),
    )


def check_dependency_conflicts() -> CheckResult:
    """STK-006: known incompatible package combinations."""
    start = time.monotonic()
    conflicts = find_known_conflicts()
    duration_ms = elapsed_ms(start)
    if conflicts:
        return WarnResult(
            message=f"{len(conflicts)} potential conflict(s) detected",
            details="; ".join(conflicts),
            duration_ms=duration_ms,
        )
    return PassResult(message="No known dependency conflicts", duration_ms=duration_ms)


def check_environment_variables() -> CheckResult:
    """STK-007: required and recommended TPU environment variables."""
    start = time.monotonic()
    missing_required = [var for var in REQUIRED_ENV_VARS if system.env(var) is None]
    missing_recommended = [var for var in RECOMMENDED_ENV_VARS if system.env(var) is None]
    duration_ms = elapsed_ms(start)

    if missing_required:
        return FailResult(
            message=f"Missing required environment variable(s): {', '.join(missing_required)}",
            details="These variables are required for TPU operation",
            duration_ms=duration_ms,
        )
    if missing_recommended:
        return WarnResult(
            message=f"Missing recommended variable(s): {', '.join(missing_recommended)}",
            details="These variables are recommended for optimal operation",
            duration_ms=duration_ms,
        )
    return PassResult(message="All environment variables set", duration_ms=duration_ms)


CHECKS: tuple[RegisteredCheck, ...] = (
    RegisteredCheck(
        id="STK-001",
        name="JAX Version",
        category=CheckCategory.STACK,
        description="Detect and validate installed JAX version",
        probe=check_jax_version,
        estimated_duration_ms=1000,
    ),
    RegisteredCheck(
        id="STK-002",
        name="libtpu Version",
        category=CheckCategory.STACK,
        description="Detect and validate libtpu version",
        probe=check_libtpu_version,
        estimated_duration_ms=500,
    ),
    RegisteredCheck(
        id="STK-003",
        name="XLA Compiler Version",
        category=CheckCategory.STACK,
        description="Detect XLA compiler version",
        probe=check_xla_version,
        estimated_duration_ms=500,
    ),
    RegisteredCheck(
        id="STK-004",
        name="Python Version",
        category=CheckCategory.STACK,
        description="Check Python version compatibility",
        probe=check_python_version,
        estimated_duration_ms=500,
    ),
    RegisteredCheck(
        id="STK-005",
        name="PJRT Plugin Status",
        category=CheckCategory.STACK,
        description="Verify PJRT TPU plugin is available",
        probe=check_pjrt_plugin,
        estimated_duration_ms=500,
    ),
    RegisteredCheck(
        id="STK-006",
        name="Dependency Conflicts",
        category=CheckCategory.STACK,
        description="Check for known conflicting package versions",
        probe=check_dependency_conflicts,
        estimated_duration_ms=1000,
    ),
    RegisteredCheck(
        id="STK-007",
        name="Environment Variables",
        category=CheckCategory.STACK,
        description="Verify required environment variables are set",
        probe=check_environment_variables,
        estimated_duration_ms=100,
    ),
)
