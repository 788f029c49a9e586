"""Tests for the hardware checks (HW-001..HW-006)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from tpudoc.checks import hardware
from tpudoc.errors import NotOnAcceleratorError, ProbeIOError
from tpudoc.models import FailResult, PassResult, SkipResult, WarnResult
from tpudoc.probes import accel

if TYPE_CHECKING:
    from collections.abc import Callable

    from tpudoc.models import CheckResult

GIB = 1024**3


@pytest.fixture
def on_tpu(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Pretend the host is a TPU VM; returns monkeypatch for further setup."""
    monkeypatch.setattr(accel, "is_accelerator_vm", lambda: True)
    return monkeypatch


@pytest.fixture
def off_tpu(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(accel, "is_accelerator_vm", lambda: False)


@pytest.mark.usefixtures("off_tpu")
class TestOffTpu:
    @pytest.mark.parametrize(
        "probe",
        [
            hardware.check_device_detection,
            hardware.check_hbm_availability,
            hardware.check_thermal_status,
            hardware.check_error_counters,
            hardware.check_interconnect,
            hardware.check_driver_status,
        ],
    )
    def test_every_check_skips(self, probe: Callable[[], CheckResult]) -> None:
        result = probe()
        assert isinstance(result, SkipResult)
        assert result.reason == "Not running on a TPU VM"


class TestDeviceDetection:
    def _counts(self, on_tpu: pytest.MonkeyPatch, found: int, expected: int) -> None:
        on_tpu.setattr(accel, "chip_count", lambda: found)
        on_tpu.setattr(accel, "expected_chip_count", lambda: expected)

    def test_matching_count_passes(self, on_tpu: pytest.MonkeyPatch) -> None:
        self._counts(on_tpu, 4, 4)
        result = hardware.check_device_detection()
        assert isinstance(result, PassResult)
        assert result.message == "4 chips detected"

    def test_fewer_chips_fail(self, on_tpu: pytest.MonkeyPatch) -> None:
        self._counts(on_tpu, 3, 4)
        result = hardware.check_device_detection()
        assert isinstance(result, FailResult)
        assert "3 found, 4 expected" in result.message

    def test_more_chips_warn(self, on_tpu: pytest.MonkeyPatch) -> None:
        self._counts(on_tpu, 8, 4)
        assert isinstance(hardware.check_device_detection(), WarnResult)

    def test_zero_chips_fail(self, on_tpu: pytest.MonkeyPatch) -> None:
        self._counts(on_tpu, 0, 4)
        result = hardware.check_device_detection()
        assert isinstance(result, FailResult)
        assert result.message == "No TPU chips detected"

    def test_probe_error_fails(self, on_tpu: pytest.MonkeyPatch) -> None:
        def boom() -> int:
            raise NotOnAcceleratorError

        on_tpu.setattr(accel, "chip_count", boom)
        result = hardware.check_device_detection()
        assert isinstance(result, FailResult)
        assert result.message == "Failed to detect TPU chips"


class TestHbmAvailability:
    @pytest.mark.parametrize(
        ("available_gb", "expected"),
        [(95, PassResult), (90, PassResult), (80, WarnResult), (40, FailResult)],
    )
    def test_thresholds(self, on_tpu: pytest.MonkeyPatch, available_gb: int, expected: type) -> None:
        info = accel.HbmInfo(total_bytes=100 * GIB, available_bytes=available_gb * GIB, per_chip_bytes=25 * GIB)
        on_tpu.setattr(accel, "memory_info", lambda: info)
        assert isinstance(hardware.check_hbm_availability(), expected)

    def test_details_report_gigabytes(self, on_tpu: pytest.MonkeyPatch) -> None:
        info = accel.HbmInfo(total_bytes=64 * GIB, available_bytes=16 * GIB, per_chip_bytes=16 * GIB)
        on_tpu.setattr(accel, "memory_info", lambda: info)
        result = hardware.check_hbm_availability()
        assert isinstance(result, FailResult)
        assert result.details == "16.0GB available of 64.0GB total"


class TestThermalStatus:
    @pytest.mark.parametrize(
        ("temperature", "expected"),
        [(65.0, PassResult), (74.9, PassResult), (75.0, WarnResult), (85.0, FailResult)],
    )
    def test_thresholds(self, on_tpu: pytest.MonkeyPatch, temperature: float, expected: type) -> None:
        on_tpu.setattr(accel, "thermal_info", lambda: accel.ThermalInfo((60.0, temperature)))
        assert isinstance(hardware.check_thermal_status(), expected)


class TestErrorCounters:
    def test_clean(self, on_tpu: pytest.MonkeyPatch) -> None:
        on_tpu.setattr(accel, "error_counters", lambda: accel.ErrorCounters(0, 0))
        result = hardware.check_error_counters()
        assert isinstance(result, PassResult)
        assert result.message == "No hardware errors"

    def test_correctable_warn(self, on_tpu: pytest.MonkeyPatch) -> None:
        on_tpu.setattr(accel, "error_counters", lambda: accel.ErrorCounters(2, 0))
        assert isinstance(hardware.check_error_counters(), WarnResult)

    def test_uncorrectable_fail(self, on_tpu: pytest.MonkeyPatch) -> None:
        on_tpu.setattr(accel, "error_counters", lambda: accel.ErrorCounters(5, 1))
        result = hardware.check_error_counters()
        assert isinstance(result, FailResult)
        assert result.message == "1 uncorrectable errors detected"


class TestInterconnect:
    def test_single_chip_skips(self, on_tpu: pytest.MonkeyPatch) -> None:
        on_tpu.setattr(accel, "chip_count", lambda: 1)
        result = hardware.check_interconnect()
        assert isinstance(result, SkipResult)
        assert "Single-chip" in result.reason

    def test_healthy(self, on_tpu: pytest.MonkeyPatch) -> None:
        on_tpu.setattr(accel, "chip_count", lambda: 4)
        on_tpu.setattr(accel, "interconnect_status", lambda: accel.IciStatus(True, 400.0, "ok"))
        result = hardware.check_interconnect()
        assert isinstance(result, PassResult)
        assert result.message == "ICI healthy, bandwidth: 400.0 GB/s"

    def test_unhealthy(self, on_tpu: pytest.MonkeyPatch) -> None:
        on_tpu.setattr(accel, "chip_count", lambda: 4)
        on_tpu.setattr(accel, "interconnect_status", lambda: accel.IciStatus(False, 0.0, "link 2 down"))
        result = hardware.check_interconnect()
        assert isinstance(result, FailResult)
        assert result.details == "link 2 down"


class TestDriverStatus:
    def test_not_loaded(self, on_tpu: pytest.MonkeyPatch) -> None:
        on_tpu.setattr(accel, "driver_loaded", lambda: False)
        assert isinstance(hardware.check_driver_status(), FailResult)

    def test_version_unknown(self, on_tpu: pytest.MonkeyPatch) -> None:
        def no_version() -> str:
            raise ProbeIOError("driver_version", "driver version not available")

        on_tpu.setattr(accel, "driver_loaded", lambda: True)
        on_tpu.setattr(accel, "driver_version", no_version)
        assert isinstance(hardware.check_driver_status(), WarnResult)

    def test_version_known(self, on_tpu: pytest.MonkeyPatch) -> None:
        on_tpu.setattr(accel, "driver_loaded", lambda: True)
        on_tpu.setattr(accel, "driver_version", lambda: "1.2.3")
        result = hardware.check_driver_status()
        assert isinstance(result, PassResult)
        assert result.message == "Driver version: 1.2.3"
