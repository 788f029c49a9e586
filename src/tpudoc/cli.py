"""Command-line interface for tpu-doc.

Running ``tpu-doc`` with no subcommand is the same as ``tpu-doc check``.
Option precedence is command line, then config file, then ``TPU_DOC_*``
environment variables, then defaults; boolean switches are enabled when
any source enables them.
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import click
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from tpudoc.baseline import load_baseline, save_baseline
from tpudoc.config import ConfigFile, color_disabled, get_settings, load_config_file
from tpudoc.engine import create_registry, run_checks
from tpudoc.engine.aggregator import compare_reports
from tpudoc.errors import TpuDocError
from tpudoc.formatters import get_formatter
from tpudoc.models import EXIT_ERROR, CheckCategory, OutputFormat
from tpudoc.version import build_info

if TYPE_CHECKING:
    from collections.abc import Generator

    from tpudoc.config import TpuDocSettings
    from tpudoc.models import ComparisonResult

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class UsageError(Exception):
    """Raised for invalid option combinations or values."""


@contextmanager
def error_handler(console: Console | None = None) -> Generator[None, None, None]:
    """Print expected errors Rich-formatted and exit with status 3.

    SystemExit and KeyboardInterrupt are allowed to propagate.
    """
    if console is None:
        console = Console(stderr=True)
    try:
        yield
    except (SystemExit, KeyboardInterrupt):
        raise
    except (TpuDocError, UsageError, ValidationError) as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}", highlight=False)
        raise typer.Exit(EXIT_ERROR) from exc


def _configure_logging(level: str) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)


def _parse_format(value: str) -> OutputFormat:
    try:
        return OutputFormat(value.strip().lower())
    except ValueError:
        choices = ", ".join(f.value for f in OutputFormat)
        msg = f"Unknown format {value!r} (expected one of: {choices})"
        raise UsageError(msg) from None


def _parse_category(value: str) -> CheckCategory:
    by_name = {c.value.lower(): c for c in CheckCategory}
    by_name["config-audit"] = CheckCategory.CONFIG
    category = by_name.get(value.strip().lower())
    if category is None:
        choices = ", ".join(c.value.lower() for c in CheckCategory)
        msg = f"Unknown category {value!r} (expected one of: {choices})"
        raise UsageError(msg)
    return category


# ---------------------------------------------------------------------------
# Option resolution
# ---------------------------------------------------------------------------


@dataclass
class CheckOptions:
    """Fully resolved options for one ``check`` run."""

    output_format: OutputFormat = OutputFormat.TEXT
    verbose: bool = False
    quiet: bool = False
    color: bool = True
    timeout_ms: int = 30000
    parallel: bool = False
    fail_fast: bool = False
    max_parallel: int = 4
    categories: list[CheckCategory] = field(default_factory=list)
    skip: list[str] = field(default_factory=list)
    only: list[str] = field(default_factory=list)
    baseline: Path | None = None
    save_baseline: Path | None = None


def _selected_categories(flags: dict[CheckCategory | None, bool]) -> list[CheckCategory] | None:
    """Return the category chosen by flags, [] for ``--all``, None if unset."""
    chosen = [category for category, enabled in flags.items() if enabled]
    if len(chosen) > 1:
        msg = (
            "Category flags are mutually exclusive: use one of --all, --hardware, --stack, "
            "--performance, --io, --security, --config-audit"
        )
        raise UsageError(msg)
    if not chosen:
        return None
    return [] if chosen[0] is None else [chosen[0]]


def resolve_options(  # noqa: PLR0913
    settings: TpuDocSettings,
    *,
    category_flags: dict[CheckCategory | None, bool],
    skip: list[str] | None,
    only: list[str] | None,
    output_format: str | None,
    quiet: bool,
    verbose: bool,
    no_color: bool,
    timeout_ms: int | None,
    parallel: bool,
    fail_fast: bool,
    config: Path | None,
    baseline: Path | None,
    save_baseline_path: Path | None,
) -> CheckOptions:
    """Merge command-line values with the config file and environment.

    Raises
    ------
    UsageError
        On conflicting category flags or an unknown format.
    ProbeIOError, ProbeParseError
        If the config file cannot be read or is invalid.
    """
    categories = _selected_categories(category_flags)
    config_path = config or settings.config
    file_opts = load_config_file(config_path) if config_path is not None else ConfigFile()
    if config_path is not None:
        logger.info("Loaded config file %s", config_path)

    if output_format is not None:
        resolved_format = _parse_format(output_format)
    else:
        resolved_format = file_opts.format or settings.format

    return CheckOptions(
        output_format=resolved_format,
        verbose=verbose or file_opts.verbose or settings.verbose,
        quiet=quiet or file_opts.quiet,
        color=not (no_color or file_opts.no_color or color_disabled()),
        timeout_ms=timeout_ms or file_opts.timeout_ms or settings.timeout_ms,
        parallel=parallel or file_opts.parallel,
        fail_fast=fail_fast or file_opts.fail_fast,
        max_parallel=file_opts.max_parallel or settings.max_parallel,
        categories=categories if categories is not None else list(file_opts.categories),
        skip=list(skip) if skip else list(file_opts.skip),
        only=list(only) if only else list(file_opts.only),
        baseline=baseline or file_opts.baseline,
        save_baseline=save_baseline_path,
    )


# ---------------------------------------------------------------------------
# Check execution
# ---------------------------------------------------------------------------


def _print_comparison(console: Console, comparison: ComparisonResult, baseline: Path) -> None:
    table = Table(title=f"Comparison with baseline {baseline}")
    table.add_column("Change", style="bold")
    table.add_column("Count", justify="right")
    table.add_column("Checks")
    rows = (
        ("Regressions", "red", comparison.regressions),
        ("New failures", "red", comparison.new_failures),
        ("New warnings", "yellow", comparison.new_warnings),
        ("Resolved", "green", comparison.resolved),
        ("Unchanged", "dim", comparison.unchanged),
    )
    for label, color, ids in rows:
        table.add_row(f"[{color}]{label}[/{color}]", str(len(ids)), ", ".join(ids))
    console.print(table)


def execute_check(options: CheckOptions, *, console: Console | None = None) -> int:
    """Run the checks described by *options*, print the report, return the exit code."""
    console = console or Console(stderr=True)

    baseline_report = load_baseline(options.baseline) if options.baseline is not None else None

    report = run_checks(
        categories=options.categories,
        skip=options.skip,
        only=options.only,
        parallel=options.parallel,
        fail_fast=options.fail_fast,
        timeout_ms=options.timeout_ms,
        max_parallel=options.max_parallel,
    )

    formatter = get_formatter(
        options.output_format,
        color=options.color,
        verbose=options.verbose,
        quiet=options.quiet,
    )
    print(formatter.format(report))

    if options.save_baseline is not None:
        save_baseline(report, options.save_baseline)
        console.print(f"[dim]Baseline saved to {options.save_baseline}[/dim]")

    if baseline_report is not None and options.baseline is not None:
        _print_comparison(console, compare_reports(report, baseline_report), options.baseline)

    return report.exit_code()


# ---------------------------------------------------------------------------
# Main app
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="tpu-doc",
    help="Diagnose and validate TPU hosts.",
    add_completion=False,
)

# Options shared by the implicit default command and ``check``.
_ALL = typer.Option(False, "--all", help="Run every category (default).")
_HARDWARE = typer.Option(False, "--hardware", help="Run hardware checks only.")
_STACK = typer.Option(False, "--stack", help="Run software stack checks only.")
_PERFORMANCE = typer.Option(False, "--performance", help="Run performance baseline checks only.")
_IO = typer.Option(False, "--io", help="Run I/O checks only.")
_SECURITY = typer.Option(False, "--security", help="Run security checks only.")
_CONFIG_AUDIT = typer.Option(False, "--config-audit", help="Run configuration audit checks only.")
_SKIP = typer.Option(None, "--skip", help="Skip a check by id (repeatable).")
_ONLY = typer.Option(None, "--only", help="Run only this check id (repeatable).")
_FORMAT = typer.Option(None, "--format", "-f", help="Output format: text, json or junit.")
_QUIET = typer.Option(False, "--quiet", "-q", help="Only show warnings and failures.")
_VERBOSE = typer.Option(False, "--verbose", "-v", help="Show durations and details.")
_NO_COLOR = typer.Option(False, "--no-color", help="Disable colored output.")
_TIMEOUT = typer.Option(None, "--timeout", min=1, help="Per-check timeout in milliseconds.")
_PARALLEL = typer.Option(False, "--parallel", help="Run independent checks concurrently.")
_FAIL_FAST = typer.Option(False, "--fail-fast", help="Stop after the first failure.")
_CONFIG = typer.Option(None, "--config", help="YAML config file.")
_BASELINE = typer.Option(None, "--baseline", help="Compare against a saved report.")
_SAVE_BASELINE = typer.Option(None, "--save-baseline", help="Save this report as a baseline.")


def _run_check(  # noqa: PLR0913
    *,
    all_: bool,
    hardware: bool,
    stack: bool,
    performance: bool,
    io: bool,
    security: bool,
    config_audit: bool,
    skip: list[str] | None,
    only: list[str] | None,
    output_format: str | None,
    quiet: bool,
    verbose: bool,
    no_color: bool,
    timeout: int | None,
    parallel: bool,
    fail_fast: bool,
    config: Path | None,
    baseline: Path | None,
    save_baseline_path: Path | None,
) -> None:
    console = Console(stderr=True)
    with error_handler(console=console):
        options = resolve_options(
            get_settings(),
            category_flags={
                None: all_,
                CheckCategory.HARDWARE: hardware,
                CheckCategory.STACK: stack,
                CheckCategory.PERFORMANCE: performance,
                CheckCategory.IO: io,
                CheckCategory.SECURITY: security,
                CheckCategory.CONFIG: config_audit,
            },
            skip=skip,
            only=only,
            output_format=output_format,
            quiet=quiet,
            verbose=verbose,
            no_color=no_color,
            timeout_ms=timeout,
            parallel=parallel,
            fail_fast=fail_fast,
            config=config,
            baseline=baseline,
            save_baseline_path=save_baseline_path,
        )
        code = execute_check(options, console=console)
    raise typer.Exit(code)


@app.callback(invoke_without_command=True)
def main(  # noqa: PLR0913
    ctx: typer.Context,
    all_: bool = _ALL,
    hardware: bool = _HARDWARE,
    stack: bool = _STACK,
    performance: bool = _PERFORMANCE,
    io: bool = _IO,
    security: bool = _SECURITY,
    config_audit: bool = _CONFIG_AUDIT,
    skip: list[str] = _SKIP,
    only: list[str] = _ONLY,
    output_format: str = _FORMAT,
    quiet: bool = _QUIET,
    verbose: bool = _VERBOSE,
    no_color: bool = _NO_COLOR,
    timeout: int = _TIMEOUT,
    parallel: bool = _PARALLEL,
    fail_fast: bool = _FAIL_FAST,
    config: Path = _CONFIG,
    baseline: Path = _BASELINE,
    save_baseline_path: Path = _SAVE_BASELINE,
) -> None:
    """Diagnose and validate TPU hosts.

    Without a subcommand, runs the checks (same as ``tpu-doc check``).
    """
    with error_handler():
        _configure_logging(get_settings().log_level)

    if ctx.invoked_subcommand is not None:
        return

    _run_check(
        all_=all_,
        hardware=hardware,
        stack=stack,
        performance=performance,
        io=io,
        security=security,
        config_audit=config_audit,
        skip=skip,
        only=only,
        output_format=output_format,
        quiet=quiet,
        verbose=verbose,
        no_color=no_color,
        timeout=timeout,
        parallel=parallel,
        fail_fast=fail_fast,
        config=config,
        baseline=baseline,
        save_baseline_path=save_baseline_path,
    )


@app.command()
def check(  # noqa: PLR0913
    all_: bool = _ALL,
    hardware: bool = _HARDWARE,
    stack: bool = _STACK,
    performance: bool = _PERFORMANCE,
    io: bool = _IO,
    security: bool = _SECURITY,
    config_audit: bool = _CONFIG_AUDIT,
    skip: list[str] = _SKIP,
    only: list[str] = _ONLY,
    output_format: str = _FORMAT,
    quiet: bool = _QUIET,
    verbose: bool = _VERBOSE,
    no_color: bool = _NO_COLOR,
    timeout: int = _TIMEOUT,
    parallel: bool = _PARALLEL,
    fail_fast: bool = _FAIL_FAST,
    config: Path = _CONFIG,
    baseline: Path = _BASELINE,
    save_baseline_path: Path = _SAVE_BASELINE,
) -> None:
    """Run validation checks and print the report.

    Exit status is 0 when everything passed, 1 on failures, 2 when there
    are only warnings and 3 on usage or I/O errors.
    """
    _run_check(
        all_=all_,
        hardware=hardware,
        stack=stack,
        performance=performance,
        io=io,
        security=security,
        config_audit=config_audit,
        skip=skip,
        only=only,
        output_format=output_format,
        quiet=quiet,
        verbose=verbose,
        no_color=no_color,
        timeout=timeout,
        parallel=parallel,
        fail_fast=fail_fast,
        config=config,
        baseline=baseline,
        save_baseline_path=save_baseline_path,
    )


@app.command(name="list")
def list_checks(
    category: str = typer.Option(None, "--category", "-c", help="Only list this category."),
) -> None:
    """List available checks by category."""
    console = Console()
    with error_handler():
        selected = [_parse_category(category)] if category is not None else list(CheckCategory)

    registry = create_registry()
    for cat in selected:
        checks = [c for c in registry if c.category == cat]
        if not checks:
            continue
        table = Table(title=cat.section_title)
        table.add_column("ID", style="bold")
        table.add_column("Name")
        table.add_column("Depends on")
        table.add_column("Est. (ms)", justify="right")
        for entry in checks:
            table.add_row(
                entry.id,
                entry.name,
                ", ".join(entry.dependencies) or "-",
                str(entry.estimated_duration_ms),
            )
        console.print(table)


@app.command()
def version() -> None:
    """Show version and build information."""
    for line in build_info():
        typer.echo(line)


def _is_parse_error(exc: BaseException) -> bool:
    """Return True for click usage errors.

    Newer typer releases ship their own copy of click, whose exceptions do
    not derive from :class:`click.ClickException`, so the check goes by the
    ``show()``/``exit_code`` interface they share.
    """
    if isinstance(exc, click.ClickException):
        return True
    return callable(getattr(exc, "show", None)) and isinstance(getattr(exc, "exit_code", None), int)


def _is_abort(exc: BaseException) -> bool:
    return isinstance(exc, click.exceptions.Abort) or any(cls.__name__ == "Abort" for cls in type(exc).__mro__)


def run_cli() -> None:
    """Entry point for the ``tpu-doc`` console script.

    Usage errors exit with status 3 instead of click's default 2.
    """
    try:
        code = app(standalone_mode=False)
    except typer.Exit as exc:
        code = exc.exit_code
    except Exception as exc:
        if _is_abort(exc):
            Console(stderr=True).print("Aborted.")
        elif _is_parse_error(exc):
            exc.show()  # type: ignore[attr-defined]
        else:
            raise
        code = EXIT_ERROR
    # code is None when a command returns normally
    sys.exit(code if isinstance(code, int) else 0)
