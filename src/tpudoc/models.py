"""Pydantic models and enums for tpu-doc."""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from collections.abc import Iterable

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_WARNINGS = 2
EXIT_ERROR = 3

NOT_EXECUTED = "not_executed"


class CheckCategory(StrEnum):
    """Check domains, in report order.

    The values are the tokens used in JSON reports and baseline files.
    """

    HARDWARE = "Hardware"
    STACK = "Stack"
    PERFORMANCE = "Performance"
    IO = "Io"
    SECURITY = "Security"
    CONFIG = "Config"

    @property
    def label(self) -> str:
        """Human-readable name (``I/O`` for the Io category)."""
        return _CATEGORY_LABELS[self]

    @property
    def section_title(self) -> str:
        """Section header used by the text report."""
        return f"{_CATEGORY_LABELS[self].upper()} CHECKS"

    @property
    def suite_name(self) -> str:
        """Lowercase name used for JUnit suites and class names."""
        return self.value.lower()


_CATEGORY_LABELS: dict[CheckCategory, str] = {
    CheckCategory.HARDWARE: "Hardware",
    CheckCategory.STACK: "Stack",
    CheckCategory.PERFORMANCE: "Performance",
    CheckCategory.IO: "I/O",
    CheckCategory.SECURITY: "Security",
    CheckCategory.CONFIG: "Configuration",
}


class OutputFormat(StrEnum):
    """Report output formats."""

    TEXT = "text"
    JSON = "json"
    JUNIT = "junit"


# ---------------------------------------------------------------------------
# Check results
# ---------------------------------------------------------------------------


class PassResult(BaseModel):
    """The check passed."""

    model_config = ConfigDict(frozen=True)

    status: Literal["pass"] = "pass"
    message: str
    duration_ms: int = Field(default=0, ge=0)


class WarnResult(BaseModel):
    """The check passed with a condition worth attention."""

    model_config = ConfigDict(frozen=True)

    status: Literal["warn"] = "warn"
    message: str
    details: str
    duration_ms: int = Field(default=0, ge=0)


class FailResult(BaseModel):
    """The check found an active fault."""

    model_config = ConfigDict(frozen=True)

    status: Literal["fail"] = "fail"
    message: str
    details: str
    duration_ms: int = Field(default=0, ge=0)


class SkipResult(BaseModel):
    """The check does not apply to this host."""

    model_config = ConfigDict(frozen=True)

    status: Literal["skip"] = "skip"
    reason: str


CheckResult = Annotated[
    PassResult | WarnResult | FailResult | SkipResult,
    Field(discriminator="status"),
]

_SEVERITY: dict[str, int] = {"pass": 0, "skip": 1, NOT_EXECUTED: 1, "warn": 2, "fail": 3}


def status_of(result: CheckResult | None) -> str:
    """Return the status token for *result* (``not_executed`` for None)."""
    return NOT_EXECUTED if result is None else result.status


def severity(result: CheckResult | None) -> int:
    """Rank a result: ``pass < skip < warn < fail``.

    A missing result ranks with ``skip``.
    """
    return _SEVERITY[status_of(result)]


# ---------------------------------------------------------------------------
# Checks and reports
# ---------------------------------------------------------------------------


class Check(BaseModel):
    """A named validation step and, once executed, its outcome."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str
    category: CheckCategory
    description: str
    result: CheckResult | None = None

    @field_validator("result", mode="before")
    @classmethod
    def _not_executed_is_none(cls, v: Any) -> Any:
        """Map the serialized ``not_executed`` status back to None."""
        if isinstance(v, dict) and v.get("status") == NOT_EXECUTED:
            return None
        return v

    @property
    def status(self) -> str:
        """Status token of the result, ``not_executed`` when absent."""
        return status_of(self.result)

    def with_result(self, result: CheckResult | None) -> Check:
        """Return a copy of this check carrying *result*."""
        return self.model_copy(update={"result": result})


class ResultSummary(BaseModel):
    """Counts derived from a list of checks.

    ``skipped`` includes checks that were never executed.
    """

    model_config = ConfigDict(frozen=True)

    passed: int = 0
    warned: int = 0
    failed: int = 0
    skipped: int = 0
    total: int = 0
    total_duration_ms: int = 0

    @classmethod
    def from_checks(cls, checks: Iterable[Check]) -> ResultSummary:
        """Tally *checks* in a single pass.

        Parameters
        ----------
        checks:
            Checks to count.

        Returns
        -------
        ResultSummary
            Counts per status and the summed duration of pass, warn and
            fail results.
        """
        counts = {"pass": 0, "warn": 0, "fail": 0, "skip": 0}
        duration = 0
        total = 0
        for check in checks:
            total += 1
            result = check.result
            if result is None or result.status == "skip":
                counts["skip"] += 1
                continue
            counts[result.status] += 1
            duration += result.duration_ms
        return cls(
            passed=counts["pass"],
            warned=counts["warn"],
            failed=counts["fail"],
            skipped=counts["skip"],
            total=total,
            total_duration_ms=duration,
        )

    @property
    def exit_code(self) -> int:
        """Process exit code: 1 on failures, 2 on warnings only, else 0."""
        if self.failed > 0:
            return EXIT_FAILURES
        if self.warned > 0:
            return EXIT_WARNINGS
        return EXIT_OK

    @property
    def exit_description(self) -> str:
        """Annotation printed next to the exit code in text reports."""
        return _EXIT_DESCRIPTIONS[self.exit_code]


_EXIT_DESCRIPTIONS = {
    EXIT_OK: "all checks passed",
    EXIT_FAILURES: "failures detected",
    EXIT_WARNINGS: "warnings detected",
}


class ValidationReport(BaseModel):
    """Outcome of one orchestration run."""

    model_config = ConfigDict(frozen=True)

    timestamp: int = Field(ge=0)
    hostname: str
    tpu_type: str | None = None
    checks: tuple[Check, ...] = ()
    total_duration_ms: int = Field(default=0, ge=0)

    def summary(self) -> ResultSummary:
        """Return the result counts for this report."""
        return ResultSummary.from_checks(self.checks)

    def by_category(self, category: CheckCategory) -> list[Check]:
        """Return the checks of *category* in report order."""
        return [c for c in self.checks if c.category == category]

    def exit_code(self) -> int:
        """Return the process exit code this report maps to."""
        return self.summary().exit_code


class ComparisonResult(BaseModel):
    """Classification of a report's check ids against a baseline."""

    model_config = ConfigDict(frozen=True)

    new_failures: list[str] = Field(default_factory=list)
    new_warnings: list[str] = Field(default_factory=list)
    resolved: list[str] = Field(default_factory=list)
    regressions: list[str] = Field(default_factory=list)
    unchanged: list[str] = Field(default_factory=list)

    @property
    def has_regressions(self) -> bool:
        """Whether anything got worse since the baseline."""
        return bool(self.regressions or self.new_failures or self.new_warnings)


class OrchestratorConfig(BaseModel):
    """Execution settings for one orchestration run."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    parallel: bool = False
    max_parallel: int = Field(default=4, ge=1)
    fail_fast: bool = False
    timeout_ms: int = Field(default=30000, ge=1)
