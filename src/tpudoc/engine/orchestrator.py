"""Dependency-ordered check execution.

Checks are selected by a filter, ordered so that every selected
dependency runs before its dependents, and executed either one at a time
or in bounded parallel rounds.  Each check runs inside an isolation
wrapper: an exception or an overrun becomes a ``Fail`` result instead of
aborting the run.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import TYPE_CHECKING

from tpudoc.checks.base import elapsed_ms
from tpudoc.engine.aggregator import ResultAggregator
from tpudoc.errors import TpuDocError
from tpudoc.models import (
    FailResult,
    OrchestratorConfig,
    PassResult,
    SkipResult,
    ValidationReport,
    WarnResult,
)
from tpudoc.probes import accel, system

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from tpudoc.checks.base import RegisteredCheck
    from tpudoc.models import CheckCategory, CheckResult

logger = logging.getLogger(__name__)

PANIC_MESSAGE = "Check panicked during execution"
PANIC_DETAILS = "An unexpected error occurred"
TIMEOUT_DETAILS = "Check exceeded global timeout"

_RESULT_TYPES = (PassResult, WarnResult, FailResult, SkipResult)


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RunAll:
    """Select every registered check."""


@dataclass(frozen=True)
class RunCategories:
    """Select checks whose category is in *categories*; empty means all."""

    categories: frozenset[CheckCategory]


@dataclass(frozen=True)
class RunOnly:
    """Select exactly *ids*, in the given order; unknown ids are dropped."""

    ids: tuple[str, ...]


@dataclass(frozen=True)
class RunExcluding:
    """Select every check except *ids*."""

    ids: frozenset[str]


CheckFilter = RunAll | RunCategories | RunOnly | RunExcluding


def select_checks(
    registry: Sequence[RegisteredCheck],
    check_filter: CheckFilter,
) -> list[RegisteredCheck]:
    """Apply *check_filter* to *registry*.

    Registry order is kept except for :class:`RunOnly`, which follows the
    caller's order with duplicates removed.
    """
    match check_filter:
        case RunAll():
            return list(registry)
        case RunCategories(categories=categories):
            if not categories:
                return list(registry)
            return [c for c in registry if c.category in categories]
        case RunExcluding(ids=excluded):
            return [c for c in registry if c.id not in excluded]
        case RunOnly(ids=ids):
            by_id = {c.id: c for c in registry}
            selected: list[RegisteredCheck] = []
            seen: set[str] = set()
            for check_id in ids:
                if check_id in seen:
                    continue
                seen.add(check_id)
                check = by_id.get(check_id)
                if check is None:
                    logger.info("Ignoring unknown check id %s", check_id)
                    continue
                selected.append(check)
            return selected
    msg = f"unsupported check filter: {check_filter!r}"
    raise TypeError(msg)


def resolve_order(selected: Sequence[RegisteredCheck]) -> list[RegisteredCheck]:
    """Order *selected* so each check follows its selected dependencies.

    Depth-first over the selection in its given order.  Dependencies
    outside the selection are ignored.  A cycle does not recurse forever:
    a check already on the current path is skipped, so each check still
    appears exactly once.
    """
    by_id = {c.id: c for c in selected}
    ordered: list[RegisteredCheck] = []
    visited: set[str] = set()
    visiting: set[str] = set()

    def visit(check: RegisteredCheck) -> None:
        if check.id in visited or check.id in visiting:
            return
        visiting.add(check.id)
        for dep in check.dependencies:
            dep_check = by_id.get(dep)
            if dep_check is not None:
                visit(dep_check)
        visiting.discard(check.id)
        visited.add(check.id)
        ordered.append(check)

    for check in selected:
        visit(check)
    return ordered


def run_isolated(check: RegisteredCheck, timeout_ms: int) -> CheckResult:
    """Run one check, converting exceptions and overruns into failures.

    Parameters
    ----------
    check:
        The check to execute.
    timeout_ms:
        Wall-clock budget.  The probe is not interrupted; a result that
        arrives late is replaced by a timeout failure.

    Returns
    -------
    CheckResult
        The probe's own result, or a ``Fail`` describing the panic or
        timeout.
    """
    start = time.monotonic()
    try:
        result = check.probe()
        if not isinstance(result, _RESULT_TYPES):
            msg = f"probe returned {type(result).__name__}"
            raise TypeError(msg)
    except KeyboardInterrupt:
        raise
    except BaseException:
        logger.warning("Check %s raised during execution", check.id, exc_info=True)
        return FailResult(message=PANIC_MESSAGE, details=PANIC_DETAILS, duration_ms=elapsed_ms(start))

    duration_ms = elapsed_ms(start)
    if duration_ms > timeout_ms:
        logger.warning("Check %s exceeded %dms (took %dms)", check.id, timeout_ms, duration_ms)
        return FailResult(
            message=f"Check timed out after {duration_ms}ms",
            details=TIMEOUT_DETAILS,
            duration_ms=duration_ms,
        )
    return result


def _default_tpu_type() -> str:
    return str(accel.device_type())


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class CheckOrchestrator:
    """Runs a selection of registered checks and builds the report.

    Parameters
    ----------
    registry:
        All available checks.
    config:
        Execution settings; defaults to sequential with a 30 s budget.
    hostname_probe:
        Returns the host name recorded in the report; defaults to
        :func:`tpudoc.probes.system.hostname`.
    tpu_type_probe:
        Returns the accelerator type recorded in the report; defaults to
        the detected TPU generation.
    """

    def __init__(
        self,
        registry: Sequence[RegisteredCheck],
        config: OrchestratorConfig | None = None,
        *,
        hostname_probe: Callable[[], str] | None = None,
        tpu_type_probe: Callable[[], str] | None = None,
    ) -> None:
        self._registry = tuple(registry)
        self._config = config or OrchestratorConfig()
        self._hostname_probe = hostname_probe or system.hostname
        self._tpu_type_probe = tpu_type_probe or _default_tpu_type

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    def run_all(self) -> ValidationReport:
        return self.run(RunAll())

    def run_categories(self, categories: Iterable[CheckCategory]) -> ValidationReport:
        return self.run(RunCategories(frozenset(categories)))

    def run_only(self, ids: Iterable[str]) -> ValidationReport:
        return self.run(RunOnly(tuple(ids)))

    def run_excluding(self, ids: Iterable[str]) -> ValidationReport:
        return self.run(RunExcluding(frozenset(ids)))

    def run(self, check_filter: CheckFilter) -> ValidationReport:
        """Execute the checks selected by *check_filter*.

        When ``fail_fast`` stops the run early, the checks that never ran
        are appended without a result so they are reported as skipped.
        """
        aggregator = ResultAggregator()
        aggregator.set_metadata(hostname=self._hostname(), tpu_type=self._tpu_type())
        timestamp = system.unix_timestamp()

        ordered = resolve_order(select_checks(self._registry, check_filter))
        logger.info(
            "Running %d checks (%s)",
            len(ordered),
            "parallel" if self._config.parallel else "sequential",
        )

        start = time.monotonic()
        if self._config.parallel:
            unexecuted = self._run_parallel(ordered, aggregator)
        else:
            unexecuted = self._run_sequential(ordered, aggregator)
        total_duration_ms = elapsed_ms(start)

        if unexecuted:
            logger.info("Fail-fast stopped the run; %d checks not executed", len(unexecuted))
        for check in unexecuted:
            aggregator.add(check.to_check())

        return aggregator.to_report(timestamp=timestamp, total_duration_ms=total_duration_ms)

    # ------------------------------------------------------------------
    # Execution modes
    # ------------------------------------------------------------------

    def _execute(self, check: RegisteredCheck, aggregator: ResultAggregator) -> CheckResult:
        logger.debug("Running %s (%s)", check.id, check.name)
        result = run_isolated(check, self._config.timeout_ms)
        aggregator.add(check.to_check(result))
        return result

    def _run_sequential(
        self,
        ordered: Sequence[RegisteredCheck],
        aggregator: ResultAggregator,
    ) -> list[RegisteredCheck]:
        """Run checks one at a time; return the ones left unexecuted."""
        for index, check in enumerate(ordered):
            result = self._execute(check, aggregator)
            if self._config.fail_fast and result.status == "fail":
                return list(ordered[index + 1 :])
        return []

    def _run_parallel(
        self,
        ordered: Sequence[RegisteredCheck],
        aggregator: ResultAggregator,
    ) -> list[RegisteredCheck]:
        """Run checks in rounds of at most ``max_parallel``.

        A check becomes runnable once every selected dependency has
        completed.  Each round finishes before the next one is scheduled.
        """
        selected_ids = {c.id for c in ordered}
        completed: set[str] = set()
        remaining = list(ordered)
        max_parallel = self._config.max_parallel

        with ThreadPoolExecutor(max_workers=max_parallel, thread_name_prefix="tpu-doc") as pool:
            while remaining:
                runnable = [
                    c
                    for c in remaining
                    if all(dep in completed or dep not in selected_ids for dep in c.dependencies)
                ]
                if not runnable:
                    logger.warning(
                        "No runnable checks among %s; finishing sequentially",
                        ", ".join(c.id for c in remaining),
                    )
                    return self._run_sequential(remaining, aggregator)

                batch = runnable[:max_parallel]
                futures = [pool.submit(self._execute, check, aggregator) for check in batch]
                wait(futures)
                for future in futures:
                    future.result()

                batch_ids = {c.id for c in batch}
                completed |= batch_ids
                remaining = [c for c in remaining if c.id not in batch_ids]

                if self._config.fail_fast and aggregator.has_failures():
                    return remaining
        return []

    # ------------------------------------------------------------------
    # Report metadata
    # ------------------------------------------------------------------

    def _hostname(self) -> str:
        try:
            return self._hostname_probe()
        except TpuDocError as exc:
            logger.debug("Hostname unavailable: %s", exc)
            return "unknown"

    def _tpu_type(self) -> str | None:
        try:
            return self._tpu_type_probe()
        except TpuDocError as exc:
            logger.debug("TPU type unavailable: %s", exc)
            return None
