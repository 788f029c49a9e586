"""JUnit XML report for CI dashboards."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING
from xml.sax.saxutils import escape

from tpudoc.models import CheckCategory, FailResult, PassResult, SkipResult, WarnResult

if TYPE_CHECKING:
    from tpudoc.models import Check, ValidationReport

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'

_ENTITIES = {'"': "&quot;", "'": "&apos;"}
# XML 1.0 forbids these even when escaped.
_INVALID_XML_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")


def escape_xml(text: str) -> str:
    """Escape ``& < > " '`` and replace characters XML 1.0 cannot carry."""
    return escape(_INVALID_XML_CHARS.sub("\ufffd", text), _ENTITIES)


def _seconds(duration_ms: int) -> str:
    return f"{duration_ms / 1000:.3f}"


def _duration_ms(check: Check) -> int:
    result = check.result
    if isinstance(result, (PassResult, WarnResult, FailResult)):
        return result.duration_ms
    return 0


class JunitFormatter:
    """Render a report as ``<testsuites>``, one suite per category."""

    def format(self, report: ValidationReport) -> str:
        summary = report.summary()
        lines = [
            XML_DECLARATION,
            f'<testsuites tests="{summary.total}" failures="{summary.failed}" errors="0" '
            f'skipped="{summary.skipped}" time="{_seconds(report.total_duration_ms)}">',
        ]

        for category in CheckCategory:
            checks = report.by_category(category)
            if not checks:
                continue
            failures = sum(1 for c in checks if c.status == "fail")
            skipped = sum(1 for c in checks if c.status in ("skip", "not_executed"))
            suite_ms = sum(_duration_ms(c) for c in checks)
            lines.append(
                f'  <testsuite name="{category.suite_name}" tests="{len(checks)}" '
                f'failures="{failures}" errors="0" skipped="{skipped}" time="{_seconds(suite_ms)}">'
            )
            for check in checks:
                lines.extend(self._testcase(check, category))
            lines.append("  </testsuite>")

        lines.append("</testsuites>")
        return "\n".join(lines)

    def _testcase(self, check: Check, category: CheckCategory) -> list[str]:
        opening = (
            f'    <testcase name="{escape_xml(check.id)}" classname="tpu-doc.{category.suite_name}" '
            f'time="{_seconds(_duration_ms(check))}"'
        )
        match check.result:
            case PassResult(message=message):
                body = f"<system-out>{escape_xml(message)}</system-out>"
            case WarnResult(message=message, details=details):
                body = f"<system-out>WARNING: {escape_xml(message)} - {escape_xml(details)}</system-out>"
            case FailResult(message=message, details=details):
                body = f'<failure message="{escape_xml(message)}">{escape_xml(details)}</failure>'
            case SkipResult(reason=reason):
                body = f'<skipped message="{escape_xml(reason)}" />'
            case _:
                return [f"{opening} />"]
        return [f"{opening}>", f"      {body}", "    </testcase>"]
