"""Thread-safe result accumulation and baseline comparison."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from tpudoc.models import (
    Check,
    CheckCategory,
    ComparisonResult,
    ResultSummary,
    ValidationReport,
)

if TYPE_CHECKING:
    from collections.abc import Sequence


class ResultAggregator:
    """Collects executed checks from any number of worker threads.

    All state sits behind one lock; the check list keeps insertion order,
    which is completion order when checks run in parallel.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._checks: list[Check] = []
        self._hostname = "unknown"
        self._tpu_type: str | None = None

    def add(self, check: Check) -> None:
        with self._lock:
            self._checks.append(check)

    def set_metadata(self, *, hostname: str, tpu_type: str | None) -> None:
        """Set the host identity recorded in the report."""
        with self._lock:
            self._hostname = hostname
            self._tpu_type = tpu_type

    def checks(self) -> list[Check]:
        """Return a snapshot of the collected checks."""
        with self._lock:
            return list(self._checks)

    def has_failures(self) -> bool:
        with self._lock:
            return any(c.status == "fail" for c in self._checks)

    def summary(self) -> ResultSummary:
        return ResultSummary.from_checks(self.checks())

    def by_category(self, category: CheckCategory) -> list[Check]:
        return [c for c in self.checks() if c.category == category]

    def failures(self) -> list[Check]:
        return [c for c in self.checks() if c.status == "fail"]

    def warnings(self) -> list[Check]:
        return [c for c in self.checks() if c.status == "warn"]

    def to_report(self, *, timestamp: int, total_duration_ms: int) -> ValidationReport:
        """Freeze the collected checks into a report."""
        with self._lock:
            return ValidationReport(
                timestamp=timestamp,
                hostname=self._hostname,
                tpu_type=self._tpu_type,
                checks=tuple(self._checks),
                total_duration_ms=total_duration_ms,
            )

    def compare_to_baseline(self, baseline: ValidationReport) -> ComparisonResult:
        """Classify the collected checks against *baseline*."""
        return compare_checks(self.checks(), baseline.checks)


def compare_checks(current: Sequence[Check], baseline: Sequence[Check]) -> ComparisonResult:
    """Classify every current check id relative to a baseline.

    Parameters
    ----------
    current:
        Checks from the new run.
    baseline:
        Checks from the saved run.  Ids missing from *current* are
        ignored.

    Returns
    -------
    ComparisonResult
        Disjoint id lists whose union is the set of current ids, each in
        current report order.
    """
    previous = {c.id: c.status for c in baseline}
    new_failures: list[str] = []
    new_warnings: list[str] = []
    resolved: list[str] = []
    regressions: list[str] = []
    unchanged: list[str] = []

    for check in current:
        before = previous.get(check.id)
        now = check.status
        if before == "pass" and now == "fail":
            regressions.append(check.id)
        elif before == "pass" and now == "warn":
            new_warnings.append(check.id)
        elif before in ("fail", "warn") and now == "pass":
            resolved.append(check.id)
        elif before is None and now == "fail":
            new_failures.append(check.id)
        elif before is None and now == "warn":
            new_warnings.append(check.id)
        else:
            unchanged.append(check.id)

    return ComparisonResult(
        new_failures=new_failures,
        new_warnings=new_warnings,
        resolved=resolved,
        regressions=regressions,
        unchanged=unchanged,
    )


def compare_reports(current: ValidationReport, baseline: ValidationReport) -> ComparisonResult:
    """Compare two reports; see :func:`compare_checks`."""
    return compare_checks(current.checks, baseline.checks)
