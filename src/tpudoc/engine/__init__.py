"""Check registry, orchestrator and result aggregation."""

from __future__ import annotations

from typing import TYPE_CHECKING

from tpudoc.engine.aggregator import ResultAggregator, compare_checks, compare_reports
from tpudoc.engine.orchestrator import (
    CheckFilter,
    CheckOrchestrator,
    RunAll,
    RunCategories,
    RunExcluding,
    RunOnly,
    resolve_order,
    run_isolated,
    select_checks,
)
from tpudoc.engine.registry import create_registry, validate_registry
from tpudoc.models import OrchestratorConfig

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from tpudoc.checks.base import RegisteredCheck
    from tpudoc.models import CheckCategory, ValidationReport


def build_filter(
    *,
    categories: Iterable[CheckCategory] | None = None,
    skip: Iterable[str] = (),
    only: Iterable[str] = (),
) -> CheckFilter:
    """Build a filter with priority only > skip > categories > all.

    An empty *categories* collection means every category.
    """
    only_ids = tuple(only)
    if only_ids:
        return RunOnly(only_ids)
    skip_ids = frozenset(skip)
    if skip_ids:
        return RunExcluding(skip_ids)
    selected = frozenset(categories or ())
    if selected:
        return RunCategories(selected)
    return RunAll()


def run_checks(
    *,
    categories: Iterable[CheckCategory] | None = None,
    skip: Iterable[str] = (),
    only: Iterable[str] = (),
    parallel: bool = False,
    fail_fast: bool = False,
    timeout_ms: int = 30000,
    max_parallel: int = 4,
    registry: Sequence[RegisteredCheck] | None = None,
    hostname_probe: Callable[[], str] | None = None,
    tpu_type_probe: Callable[[], str] | None = None,
) -> ValidationReport:
    """Run checks and return the report.

    Parameters
    ----------
    categories:
        Restrict to these categories; empty or None means all.
    skip:
        Check ids to exclude.  Ignored when *only* is given.
    only:
        Run exactly these ids.  Takes priority over every other filter.
    parallel, fail_fast, timeout_ms, max_parallel:
        See :class:`~tpudoc.models.OrchestratorConfig`.
    registry:
        Checks to choose from; defaults to the built-in catalogue.
    hostname_probe, tpu_type_probe:
        Overrides for the report metadata lookups.
    """
    config = OrchestratorConfig(
        parallel=parallel,
        fail_fast=fail_fast,
        timeout_ms=timeout_ms,
        max_parallel=max_parallel,
    )
    orchestrator = CheckOrchestrator(
        create_registry() if registry is None else registry,
        config,
        hostname_probe=hostname_probe,
        tpu_type_probe=tpu_type_probe,
    )
    return orchestrator.run(build_filter(categories=categories, skip=skip, only=only))


__all__ = [
    "CheckFilter",
    "CheckOrchestrator",
    "ResultAggregator",
    "RunAll",
    "RunCategories",
    "RunExcluding",
    "RunOnly",
    "build_filter",
    "compare_checks",
    "compare_reports",
    "create_registry",
    "resolve_order",
    "run_checks",
    "run_isolated",
    "select_checks",
    "validate_registry",
]
