"""JSON report, also the on-disk baseline format."""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any

from tpudoc.models import NOT_EXECUTED

if TYPE_CHECKING:
    from tpudoc.models import Check, ValidationReport

# json.dumps writes 0x08 and 0x0c as \b and \f; reports use \uXXXX for both.
_ESCAPE_RE = re.compile(r"\\(.)")
_SHORT_ESCAPES = {"b": "\\u0008", "f": "\\u000c"}


def _dumps(data: Any, **kwargs: Any) -> str:
    text = json.dumps(data, ensure_ascii=False, **kwargs)
    return _ESCAPE_RE.sub(lambda m: _SHORT_ESCAPES.get(m.group(1), m.group(0)), text)


def check_to_dict(check: Check) -> dict[str, Any]:
    """Return the serialized form of one check.

    The ``result`` object carries only the fields of its variant; a check
    that never ran serializes as ``{"status": "not_executed"}``.
    """
    result = {"status": NOT_EXECUTED} if check.result is None else check.result.model_dump(mode="json")
    return {
        "id": check.id,
        "name": check.name,
        "category": check.category.value,
        "description": check.description,
        "result": result,
    }


def report_to_dict(report: ValidationReport) -> dict[str, Any]:
    """Return the serialized form of *report* with a fixed key order."""
    summary = report.summary()
    data: dict[str, Any] = {
        "timestamp": report.timestamp,
        "hostname": report.hostname,
    }
    if report.tpu_type is not None:
        data["tpu_type"] = report.tpu_type
    data["total_duration_ms"] = report.total_duration_ms
    data["summary"] = {
        "passed": summary.passed,
        "warned": summary.warned,
        "failed": summary.failed,
        "skipped": summary.skipped,
        "total": summary.total,
    }
    data["checks"] = [check_to_dict(c) for c in report.checks]
    return data


class JsonFormatter:
    """Render a report as JSON.

    Parameters
    ----------
    pretty:
        Two-space indentation with one member per line.  The baseline
        codec always writes pretty output.
    """

    def __init__(self, *, pretty: bool = True) -> None:
        self.pretty = pretty

    def format(self, report: ValidationReport) -> str:
        data = report_to_dict(report)
        if self.pretty:
            return _dumps(data, indent=2)
        return _dumps(data, separators=(",", ":"))
