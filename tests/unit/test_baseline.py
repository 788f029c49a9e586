"""Tests for tpudoc.baseline: saving and loading JSON reports."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from tpudoc.baseline import dump_report, load_baseline, parse_report, save_baseline
from tpudoc.errors import ProbeIOError, ProbeParseError
from tpudoc.models import Check, CheckCategory, FailResult, PassResult, SkipResult, ValidationReport

if TYPE_CHECKING:
    from pathlib import Path


def _report() -> ValidationReport:
    return ValidationReport(
        timestamp=1705315800,
        hostname="tpu-vm-1",
        tpu_type="v4",
        total_duration_ms=250,
        checks=(
            Check(
                id="HW-001",
                name="TPU Device Detection",
                category=CheckCategory.HARDWARE,
                description="Verify expected number of TPU chips are present",
                result=PassResult(message="4 chips detected", duration_ms=10),
            ),
            Check(
                id="IO-003",
                name="GCS Connectivity",
                category=CheckCategory.IO,
                description="Verify connectivity to storage.googleapis.com",
                result=FailResult(
                    message="Cannot connect to «storage» (Zürich)",
                    details="TCP 443",
                    duration_ms=5000,
                ),
            ),
            Check(
                id="CFG-004",
                name="Distributed Configuration Check",
                category=CheckCategory.CONFIG,
                description="Check multi-host configuration",
                result=SkipResult(reason="Single-host configuration"),
            ),
            Check(
                id="SEC-007",
                name="Firewall Rules",
                category=CheckCategory.SECURITY,
                description="Provide guidance on firewall configuration",
            ),
        ),
    )


class TestRoundTrip:
    def test_save_and_load(self, tmp_path: Path) -> None:
        path = tmp_path / "baseline.json"
        report = _report()
        save_baseline(report, path)
        assert load_baseline(path) == report

    def test_file_is_pretty_json(self, tmp_path: Path) -> None:
        path = tmp_path / "baseline.json"
        save_baseline(_report(), path)
        text = path.read_text(encoding="utf-8")
        assert text == dump_report(_report())
        assert "«storage»" in text
        assert json.loads(text)["summary"]["total"] == 4

    def test_not_executed_maps_back_to_none(self) -> None:
        loaded = parse_report(dump_report(_report()))
        assert loaded.checks[-1].result is None
        assert loaded.checks[-1].status == "not_executed"


class TestParseReport:
    def test_unknown_keys_ignored(self) -> None:
        data = json.loads(dump_report(_report()))
        data["generator"] = "tpu-doc 9.9"
        data["checks"][0]["owner"] = "infra"
        data["checks"][0]["result"]["extra_info"] = "collected by agent"
        data["checks"][1]["result"]["retries"] = 2
        assert parse_report(json.dumps(data)) == _report()

    def test_minimal_document(self) -> None:
        report = parse_report('{"timestamp": 5, "hostname": "h"}')
        assert report.tpu_type is None
        assert report.checks == ()

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "{not json",
            "[1, 2]",
            '{"hostname": "h"}',
            '{"timestamp": 1, "hostname": "h", "checks": [{"id": "X", "result": {"status": "maybe"}}]}',
            '{"timestamp": -1, "hostname": "h"}',
        ],
    )
    def test_invalid_documents(self, text: str) -> None:
        with pytest.raises(ProbeParseError) as exc_info:
            parse_report(text)
        assert exc_info.value.context == "baseline"


class TestFileErrors:
    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ProbeIOError):
            load_baseline(tmp_path / "absent.json")

    def test_unwritable_location(self, tmp_path: Path) -> None:
        with pytest.raises(ProbeIOError):
            save_baseline(_report(), tmp_path / "no-such-dir" / "baseline.json")
