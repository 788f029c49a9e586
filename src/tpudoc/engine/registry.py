"""Static check registry.

The registry is assembled once from the category modules and never
mutated.  Ids are public API: CI pipelines filter on them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from tpudoc.checks import audit, hardware, io, performance, security, stack

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from tpudoc.checks.base import RegisteredCheck


def create_registry() -> tuple[RegisteredCheck, ...]:
    """Return every check in report order (category, then id)."""
    return (
        *hardware.CHECKS,
        *stack.CHECKS,
        *performance.CHECKS,
        *io.CHECKS,
        *security.CHECKS,
        *audit.CHECKS,
    )


def validate_registry(checks: Sequence[RegisteredCheck]) -> None:
    """Verify ids are unique and dependencies form a DAG over known ids.

    Parameters
    ----------
    checks:
        The registry to validate.

    Raises
    ------
    ValueError
        On a duplicate id, a dependency on an unknown id, or a cycle.
    """
    by_id: dict[str, RegisteredCheck] = {}
    for check in checks:
        if check.id in by_id:
            msg = f"duplicate check id {check.id!r}"
            raise ValueError(msg)
        by_id[check.id] = check

    for check in checks:
        for dep in check.dependencies:
            if dep not in by_id:
                msg = f"check {check.id!r} depends on unknown id {dep!r}"
                raise ValueError(msg)

    # 0 = unvisited, 1 = on the current path, 2 = done
    state: dict[str, int] = dict.fromkeys(by_id, 0)

    def visit(check_id: str, path: list[str]) -> None:
        if state[check_id] == 2:
            return
        if state[check_id] == 1:
            cycle = " -> ".join([*path[path.index(check_id) :], check_id])
            msg = f"dependency cycle: {cycle}"
            raise ValueError(msg)
        state[check_id] = 1
        path.append(check_id)
        for dep in by_id[check_id].dependencies:
            visit(dep, path)
        path.pop()
        state[check_id] = 2

    for check_id in by_id:
        visit(check_id, [])


def find_check(checks: Iterable[RegisteredCheck], check_id: str) -> RegisteredCheck | None:
    """Return the check with *check_id*, or None."""
    return next((c for c in checks if c.id == check_id), None)
