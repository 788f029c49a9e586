"""Host introspection probes.

Reads ``/proc`` and ``/etc`` for identity and resource information and
runs external commands for the stack checks.  File locations are module
constants so they can be pointed at fixtures.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

from tpudoc.errors import CommandError, PermissionDeniedError, ProbeIOError, ProbeParseError, ProbeTimeoutError

logger = logging.getLogger(__name__)

ETC_HOSTNAME = Path("/etc/hostname")
PROC_ROOT = Path("/proc")


@dataclass(frozen=True)
class MemoryInfo:
    """Host RAM snapshot in bytes."""

    total_bytes: int
    available_bytes: int
    free_bytes: int


@dataclass(frozen=True)
class CpuInfo:
    """CPU model and core count from ``/proc/cpuinfo``."""

    model_name: str
    cores: int
    frequency_mhz: float | None


@dataclass(frozen=True)
class DiskInfo:
    """Usage of the filesystem holding a path, in bytes."""

    path: str
    total_bytes: int
    used_bytes: int
    available_bytes: int


@dataclass(frozen=True)
class CommandOutput:
    """Captured result of an external command."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def read_text(path: Path, context: str) -> str:
    """Read a small text file, mapping OS errors to probe errors.

    Invalid UTF-8 is replaced rather than rejected.
    """
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except PermissionError as exc:
        raise PermissionDeniedError(str(path)) from exc
    except OSError as exc:
        raise ProbeIOError(context, f"{path}: {exc.strerror or exc}") from exc


def hostname() -> str:
    """Return the host name from ``/etc/hostname`` or the kernel."""
    for path in (ETC_HOSTNAME, PROC_ROOT / "sys" / "kernel" / "hostname"):
        try:
            name = path.read_text(encoding="utf-8", errors="replace").strip()
        except OSError:
            continue
        if name:
            return name
    raise ProbeIOError("hostname", "no hostname source available")


def kernel_version() -> str:
    """Return the kernel release (third field of ``/proc/version``)."""
    content = read_text(PROC_ROOT / "version", "kernel_version")
    parts = content.split()
    if len(parts) < 3:
        raise ProbeParseError("kernel_version", "unexpected /proc/version format")
    return parts[2]


def memory_info() -> MemoryInfo:
    """Return total, available and free RAM from ``/proc/meminfo``."""
    content = read_text(PROC_ROOT / "meminfo", "memory_info")
    values: dict[str, int] = {}
    for line in content.splitlines():
        key, _, rest = line.partition(":")
        fields = rest.split()
        if not fields:
            continue
        try:
            values[key.strip()] = int(fields[0]) * 1024
        except ValueError as exc:
            raise ProbeParseError("memory_info", f"bad value for {key.strip()}: {fields[0]}") from exc

    if "MemTotal" not in values:
        raise ProbeParseError("memory_info", "MemTotal missing from /proc/meminfo")
    free = values.get("MemFree", 0)
    return MemoryInfo(
        total_bytes=values["MemTotal"],
        available_bytes=values.get("MemAvailable", free),
        free_bytes=free,
    )


def cpu_info() -> CpuInfo:
    """Return the CPU model, logical core count and clock."""
    content = read_text(PROC_ROOT / "cpuinfo", "cpu_info")
    model = ""
    cores = 0
    mhz: float | None = None
    for line in content.splitlines():
        key, _, value = line.partition(":")
        key = key.strip()
        value = value.strip()
        if key == "processor":
            cores += 1
        elif key == "model name" and not model:
            model = value
        elif key == "cpu MHz" and mhz is None:
            try:
                mhz = float(value)
            except ValueError as exc:
                raise ProbeParseError("cpu_info", f"bad cpu MHz: {value}") from exc
    return CpuInfo(model_name=model or "unknown", cores=cores, frequency_mhz=mhz)


def disk_info(path: str | Path) -> DiskInfo:
    """Return usage of the filesystem containing *path*."""
    try:
        usage = shutil.disk_usage(path)
    except PermissionError as exc:
        raise PermissionDeniedError(str(path)) from exc
    except OSError as exc:
        raise ProbeIOError("disk_info", f"{path}: {exc.strerror or exc}") from exc
    return DiskInfo(
        path=str(path),
        total_bytes=usage.total,
        used_bytes=usage.used,
        available_bytes=usage.free,
    )


def unix_timestamp() -> int:
    """Current wall-clock time in whole seconds since the epoch."""
    return int(time.time())


def env(name: str) -> str | None:
    """Return environment variable *name*, or None when unset."""
    return os.environ.get(name)


def process_running(name: str) -> bool:
    """Return True if any process has the command name *name*."""
    try:
        entries = list(PROC_ROOT.iterdir())
    except OSError as exc:
        raise ProbeIOError("process_running", f"cannot list {PROC_ROOT}: {exc.strerror or exc}") from exc

    for entry in entries:
        if not entry.name.isdigit():
            continue
        try:
            comm = (entry / "comm").read_text(encoding="utf-8", errors="replace").strip()
        except OSError:
            # Process exited between listing and reading
            continue
        if comm == name:
            return True
    return False


def kernel_modules() -> str:
    """Return the content of ``/proc/modules`` (empty if unreadable)."""
    try:
        return (PROC_ROOT / "modules").read_text(encoding="utf-8", errors="replace")
    except OSError:
        return ""


def run_command(args: list[str], *, timeout_s: float = 30.0) -> CommandOutput:
    """Execute *args* and capture its output.

    Parameters
    ----------
    args:
        Program and arguments.
    timeout_s:
        Seconds to wait before the process is killed.

    Returns
    -------
    CommandOutput
        Exit status and decoded output. A non-zero exit status is returned,
        not raised.

    Raises
    ------
    CommandError
        If the program cannot be found or started.
    ProbeTimeoutError
        If the program does not finish within *timeout_s*.
    """
    command = " ".join(args)
    logger.debug("Running %s", command)
    try:
        proc = subprocess.run(  # noqa: S603 -- argument list, no shell
            args,
            capture_output=True,
            timeout=timeout_s,
            check=False,
        )
    except FileNotFoundError as exc:
        raise CommandError(args[0], "command not found") from exc
    except subprocess.TimeoutExpired as exc:
        raise ProbeTimeoutError(command, int(timeout_s * 1000)) from exc
    except OSError as exc:
        raise CommandError(args[0], str(exc)) from exc

    return CommandOutput(
        returncode=proc.returncode,
        stdout=proc.stdout.decode("utf-8", errors="replace"),
        stderr=proc.stderr.decode("utf-8", errors="replace"),
    )
