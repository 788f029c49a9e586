"""Tests for tpudoc.probes.accel: TPU detection and generation tables."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from tpudoc.errors import NotOnAcceleratorError, ProbeIOError, ProbeParseError
from tpudoc.probes import accel, system
from tpudoc.probes.accel import TPU_SPECS, TpuHealth, TpuType, parse_tpu_type

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_host(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """An empty host: no sysfs devices, no modules, no metadata server."""
    for name in ("accel", "thermal", "module", "dev", "proc", "lib"):
        (tmp_path / name).mkdir()
    monkeypatch.setattr(accel, "SYS_ACCEL", tmp_path / "accel")
    monkeypatch.setattr(accel, "SYS_THERMAL", tmp_path / "thermal")
    monkeypatch.setattr(accel, "SYS_MODULE", tmp_path / "module")
    monkeypatch.setattr(accel, "DEV_ROOT", tmp_path / "dev")
    monkeypatch.setattr(accel, "LIBTPU_PATHS", (tmp_path / "lib" / "libtpu.so",))
    monkeypatch.setattr(system, "PROC_ROOT", tmp_path / "proc")
    return tmp_path


pytestmark = pytest.mark.usefixtures("_clean_env", "offline")


# ---------------------------------------------------------------------------
# Generation parsing
# ---------------------------------------------------------------------------


class TestParseTpuType:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("v4-8", TpuType.V4),
            ("v5litepod-8", TpuType.V5E),
            ("v5e-16", TpuType.V5E),
            ("v5p-8", TpuType.V5P),
            ("v6e-4", TpuType.V6E),
            ("v7-8", TpuType.V7),
            ("ct5lp-hightpu-4t", TpuType.UNKNOWN),
            ("n2-standard-8", TpuType.UNKNOWN),
        ],
    )
    def test_names(self, name: str, expected: TpuType) -> None:
        assert parse_tpu_type(name) == expected

    def test_case_insensitive(self) -> None:
        assert parse_tpu_type("V5P-128") == TpuType.V5P

    def test_every_type_has_specs(self) -> None:
        assert set(TPU_SPECS) == set(TpuType)
        assert TPU_SPECS[TpuType.V5E].hbm_gb_per_chip == 16
        assert TPU_SPECS[TpuType.V4].chips_per_host == 4


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------


class TestDetection:
    def test_not_a_tpu_host(self, fake_host: Path) -> None:
        assert accel.is_accelerator_vm() is False

    def test_tpu_name_env(self, fake_host: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TPU_NAME", "v5litepod-8")
        assert accel.is_accelerator_vm() is True
        assert accel.device_type() == TpuType.V5E

    def test_sysfs_devices(self, fake_host: Path) -> None:
        (fake_host / "accel" / "accel0").mkdir()
        (fake_host / "accel" / "accel1").mkdir()
        assert accel.is_accelerator_vm() is True

    def test_kernel_module(self, fake_host: Path) -> None:
        (fake_host / "proc" / "modules").write_text("tpu 40960 0 - Live\n", encoding="utf-8")
        assert accel.is_accelerator_vm() is True

    def test_metadata_machine_type(self, fake_host: Path) -> None:
        with (
            patch("tpudoc.probes.metadata.reachable", return_value=True),
            patch("tpudoc.probes.metadata.machine_type", return_value="ct5lp-hightpu-4t"),
        ):
            assert accel.is_accelerator_vm() is True

    def test_accelerator_type_env(self, fake_host: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TPU_ACCELERATOR_TYPE", "v6e-4")
        assert accel.device_type() == TpuType.V6E

    def test_device_type_from_metadata_attribute(self, fake_host: Path) -> None:
        with (
            patch("tpudoc.probes.metadata.reachable", return_value=True),
            patch("tpudoc.probes.metadata.instance_attribute", return_value="v5p-8"),
        ):
            assert accel.device_type() == TpuType.V5P

    def test_device_type_off_tpu(self, fake_host: Path) -> None:
        with pytest.raises(NotOnAcceleratorError):
            accel.device_type()


# ---------------------------------------------------------------------------
# Chips, memory, health
# ---------------------------------------------------------------------------


class TestChips:
    def test_chip_count_env(self, fake_host: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TPU_CHIPS_PER_HOST", "4")
        assert accel.chip_count() == 4

    def test_chip_count_sysfs(self, fake_host: Path) -> None:
        for i in range(3):
            (fake_host / "accel" / f"accel{i}").mkdir()
        assert accel.chip_count() == 3

    def test_chip_count_from_generation(self, fake_host: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TPU_NAME", "v4-8")
        assert accel.chip_count() == 4

    def test_bad_integer(self, fake_host: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TPU_CHIPS_PER_HOST", "four")
        with pytest.raises(ProbeParseError):
            accel.chip_count()

    def test_expected_chip_count_env(self, fake_host: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TPU_EXPECTED_CHIPS", "8")
        assert accel.expected_chip_count() == 8

    def test_topology(self, fake_host: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TPU_NAME", "v5p-8")
        monkeypatch.setenv("TPU_CHIPS_PER_HOST", "4")
        topo = accel.topology()
        assert topo.chips == 4
        assert topo.cores_per_chip == 2
        assert topo.shape == "4x1"


class TestMemoryAndHealth:
    def test_memory_info(self, fake_host: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TPU_NAME", "v5litepod-8")
        monkeypatch.setenv("TPU_CHIPS_PER_HOST", "8")
        hbm = accel.memory_info()
        assert hbm.per_chip_bytes == 16 * 1024**3
        assert hbm.total_bytes == 8 * 16 * 1024**3
        assert hbm.available_bytes == int(hbm.total_bytes * 0.95)

    def test_health_env(self, fake_host: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TPU_HEALTH", "Degraded")
        assert accel.health() == TpuHealth.DEGRADED

    def test_health_unknown_value(self, fake_host: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TPU_HEALTH", "wobbly")
        assert accel.health() == TpuHealth.UNKNOWN

    def test_health_off_tpu(self, fake_host: Path) -> None:
        with pytest.raises(NotOnAcceleratorError):
            accel.health()

    def test_error_counters(self, fake_host: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TPU_CORRECTABLE_ERRORS", "3")
        counters = accel.error_counters()
        assert counters.correctable == 3
        assert counters.uncorrectable == 0


class TestThermal:
    def test_reads_tpu_zones(self, fake_host: Path) -> None:
        for index, (zone_type, temp) in enumerate((("tpu0", "71500"), ("x86_pkg_temp", "90000"))):
            zone = fake_host / "thermal" / f"thermal_zone{index}"
            zone.mkdir()
            (zone / "type").write_text(zone_type, encoding="utf-8")
            (zone / "temp").write_text(temp, encoding="utf-8")
        thermal = accel.thermal_info()
        assert thermal.chip_temperatures == (71.5,)
        assert thermal.max_temperature == pytest.approx(71.5)

    def test_nominal_when_no_zones(self, fake_host: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TPU_CHIPS_PER_HOST", "2")
        thermal = accel.thermal_info()
        assert thermal.chip_temperatures == (65.0, 65.0)


class TestInterconnectAndDriver:
    def test_single_chip_has_no_interconnect(self, fake_host: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TPU_CHIPS_PER_HOST", "1")
        with pytest.raises(ProbeIOError):
            accel.interconnect_status()

    def test_multi_chip_bandwidth(self, fake_host: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TPU_NAME", "v4-8")
        status = accel.interconnect_status()
        assert status.healthy is True
        assert status.bandwidth_gbps == pytest.approx(400.0)

    def test_driver_not_loaded(self, fake_host: Path) -> None:
        assert accel.driver_loaded() is False

    def test_driver_loaded_from_device_node(self, fake_host: Path) -> None:
        (fake_host / "dev" / "accel0").touch()
        assert accel.driver_loaded() is True

    def test_driver_version_sysfs(self, fake_host: Path) -> None:
        (fake_host / "module" / "accel").mkdir()
        (fake_host / "module" / "accel" / "version").write_text("1.2.3\n", encoding="utf-8")
        assert accel.driver_version() == "1.2.3"

    def test_driver_version_missing(self, fake_host: Path) -> None:
        with pytest.raises(ProbeIOError):
            accel.driver_version()

    def test_library_version_env(self, fake_host: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LIBTPU_VERSION", "0.1.dev20240101")
        assert accel.library_version() == "0.1.dev20240101"

    def test_library_present_without_version(self, fake_host: Path) -> None:
        (fake_host / "lib" / "libtpu.so").touch()
        assert accel.library_version() == "available (version unknown)"

    def test_library_missing(self, fake_host: Path) -> None:
        with pytest.raises(ProbeIOError):
            accel.library_version()
