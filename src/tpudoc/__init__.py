"""tpu-doc - diagnostic and validation engine for TPU hosts."""

from __future__ import annotations

__version__ = "0.1.0"

from tpudoc.engine import CheckOrchestrator, create_registry, run_checks
from tpudoc.models import Check, CheckCategory, ValidationReport

__all__ = [
    "__version__",
    "Check",
    "CheckCategory",
    "CheckOrchestrator",
    "ValidationReport",
    "create_registry",
    "run_checks",
]
