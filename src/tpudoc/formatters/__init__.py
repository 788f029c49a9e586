"""Report emitters.

Every formatter turns a :class:`~tpudoc.models.ValidationReport` into a
string deterministically: the same report always renders the same text.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from tpudoc.formatters.json_report import JsonFormatter
from tpudoc.formatters.junit import JunitFormatter
from tpudoc.formatters.text import TextFormatter
from tpudoc.models import OutputFormat

if TYPE_CHECKING:
    from tpudoc.models import ValidationReport


class Formatter(Protocol):
    """Protocol for report emitters."""

    def format(self, report: ValidationReport) -> str:
        """Render *report*."""
        ...


def get_formatter(
    output_format: OutputFormat | str,
    *,
    color: bool = True,
    verbose: bool = False,
    quiet: bool = False,
) -> Formatter:
    """Return the emitter for *output_format*.

    Parameters
    ----------
    output_format:
        ``text``, ``json`` or ``junit``.
    color, verbose, quiet:
        Options for the text emitter; the others ignore them.

    Raises
    ------
    ValueError
        If *output_format* is not a known format name.
    """
    match OutputFormat(output_format):
        case OutputFormat.JSON:
            return JsonFormatter(pretty=True)
        case OutputFormat.JUNIT:
            return JunitFormatter()
        case _:
            return TextFormatter(color=color, verbose=verbose, quiet=quiet)


__all__ = [
    "Formatter",
    "JsonFormatter",
    "JunitFormatter",
    "TextFormatter",
    "get_formatter",
]
