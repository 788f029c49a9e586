"""Human-readable terminal report."""

from __future__ import annotations

from typing import TYPE_CHECKING

from tpudoc.formatters.timefmt import format_timestamp
from tpudoc.models import CheckCategory, FailResult, PassResult, SkipResult, WarnResult

if TYPE_CHECKING:
    from tpudoc.models import Check, ValidationReport

RULE = "-" * 80

GREEN = "32"
YELLOW = "33"
RED = "31"
GRAY = "90"


class TextFormatter:
    """Render a report as sectioned plain text.

    Parameters
    ----------
    color:
        Wrap status badges in ANSI colour codes.
    verbose:
        Append durations, and details for warnings and failures.
    quiet:
        Only show warnings and failures, and only the categories that
        have them.
    """

    def __init__(self, *, color: bool = True, verbose: bool = False, quiet: bool = False) -> None:
        self.color = color
        self.verbose = verbose
        self.quiet = quiet

    def _paint(self, text: str, code: str) -> str:
        if not self.color:
            return text
        return f"\x1b[{code}m{text}\x1b[0m"

    def format(self, report: ValidationReport) -> str:
        lines = [
            RULE,
            "tpu-doc validation report",
            f"Host: {report.hostname}",
        ]
        if report.tpu_type is not None:
            lines.append(f"TPU Type: {report.tpu_type}")
        lines += [f"Timestamp: {format_timestamp(report.timestamp)}", RULE, ""]

        for category in CheckCategory:
            checks = report.by_category(category)
            if not checks:
                continue
            if self.quiet and not any(c.status in ("fail", "warn") for c in checks):
                continue
            lines.append(category.section_title)
            for check in checks:
                if self.quiet and check.status not in ("fail", "warn"):
                    continue
                lines.append(self._check_line(check))
            lines.append("")

        summary = report.summary()
        lines += [
            RULE,
            f"SUMMARY: {summary.passed} passed, {summary.warned} warnings, "
            f"{summary.failed} failed, {summary.skipped} skipped",
            f"Total time: {report.total_duration_ms / 1000:.1f}s",
            f"Exit code: {summary.exit_code} ({summary.exit_description})",
            RULE,
        ]
        return "\n".join(lines)

    def _check_line(self, check: Check) -> str:
        match check.result:
            case PassResult(message=message, duration_ms=duration_ms):
                badge = self._paint("[PASS]", GREEN)
                text = f"{message} ({duration_ms}ms)" if self.verbose else message
            case WarnResult(message=message, details=details, duration_ms=duration_ms):
                badge = self._paint("[WARN]", YELLOW)
                text = f"{message} - {details} ({duration_ms}ms)" if self.verbose else message
            case FailResult(message=message, details=details, duration_ms=duration_ms):
                badge = self._paint("[FAIL]", RED)
                text = f"{message} - {details} ({duration_ms}ms)" if self.verbose else message
            case SkipResult(reason=reason):
                badge = self._paint("[SKIP]", GRAY)
                text = reason
            case _:
                badge = self._paint("[----]", GRAY)
                text = "Not executed"
        return f"  {badge} {check.id}: {check.name} ({text})"
