"""Baseline files: a saved JSON report used for regression comparison."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from tpudoc.errors import ProbeIOError, ProbeParseError
from tpudoc.formatters.json_report import JsonFormatter
from tpudoc.models import ValidationReport

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


def dump_report(report: ValidationReport) -> str:
    """Serialize *report* in the pretty JSON layout."""
    return JsonFormatter(pretty=True).format(report)


def parse_report(text: str) -> ValidationReport:
    """Parse a JSON report back into a :class:`ValidationReport`.

    Keys the model does not know (``summary`` among them) are ignored.

    Raises
    ------
    ProbeParseError
        If *text* is not JSON or does not describe a report.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ProbeParseError("baseline", f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ProbeParseError("baseline", "top level must be an object")
    try:
        return ValidationReport.model_validate(data)
    except ValidationError as exc:
        raise ProbeParseError("baseline", str(exc)) from exc


def save_baseline(report: ValidationReport, path: Path) -> None:
    """Write *report* to *path*.

    Raises
    ------
    ProbeIOError
        If the file cannot be written.
    """
    try:
        path.write_text(dump_report(report), encoding="utf-8")
    except OSError as exc:
        raise ProbeIOError("baseline", f"{path}: {exc.strerror or exc}") from exc
    logger.info("Saved baseline with %d checks to %s", len(report.checks), path)


def load_baseline(path: Path) -> ValidationReport:
    """Read a report previously written by :func:`save_baseline`.

    Raises
    ------
    ProbeIOError
        If the file cannot be read.
    ProbeParseError
        If its contents are not a valid report.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ProbeIOError("baseline", f"{path}: {exc.strerror or exc}") from exc
    return parse_report(text)
