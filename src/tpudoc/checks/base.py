"""Base types for the check catalogue.

A check is a nullary function returning a :data:`~tpudoc.models.CheckResult`.
Checks never raise for environmental problems: probe errors become
``Skip`` (the thing being checked is absent) or ``Fail`` (it is broken).
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from tpudoc.models import Check, CheckCategory

if TYPE_CHECKING:
    from collections.abc import Callable

    from tpudoc.models import CheckResult

NOT_ON_TPU = "Not running on a TPU VM"
NOT_ON_GCP = "Not running on GCP"

GIB = 1024**3


@dataclass(frozen=True)
class RegisteredCheck:
    """A catalogue entry: check identity plus the function that runs it.

    Attributes
    ----------
    id:
        Stable identifier such as ``HW-001``.
    name:
        Display name.
    category:
        Domain the check belongs to.
    description:
        One-line description of what is validated.
    probe:
        Nullary function producing the result.
    dependencies:
        Ids that must run before this check when both are selected.
        Ordering only; a failed prerequisite does not skip this check.
    estimated_duration_ms:
        Advisory runtime estimate.
    """

    id: str
    name: str
    category: CheckCategory
    description: str
    probe: Callable[[], CheckResult]
    dependencies: tuple[str, ...] = ()
    estimated_duration_ms: int = 1000

    def to_check(self, result: CheckResult | None = None) -> Check:
        """Return the report record for this entry."""
        return Check(
            id=self.id,
            name=self.name,
            category=self.category,
            description=self.description,
            result=result,
        )


def elapsed_ms(start: float) -> int:
    """Milliseconds since *start*, a :func:`time.monotonic` reading."""
    return int((time.monotonic() - start) * 1000)


def parse_version(version: str) -> tuple[int, int, int] | None:
    """Parse ``major.minor[.patch]`` leniently.

    Trailing non-digits in the patch component are ignored, so
    ``3.11.5rc1`` parses as ``(3, 11, 5)``.  Returns None when major or
    minor are not integers.
    """
    parts = version.strip().split(".")
    if len(parts) < 2:
        return None
    try:
        major = int(parts[0])
        minor = int(parts[1])
    except ValueError:
        return None
    patch = 0
    if len(parts) > 2:
        digits = ""
        for ch in parts[2]:
            if not ch.isdigit():
                break
            digits += ch
        patch = int(digits) if digits else 0
    return (major, minor, patch)
