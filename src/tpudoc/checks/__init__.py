"""Validation check catalogue, one module per category.

Checks degrade gracefully: hosts without a TPU or outside GCP get
``Skip`` results, and unavailable data is reported as a skip reason.
"""

from __future__ import annotations

from tpudoc.checks.base import RegisteredCheck

__all__ = ["RegisteredCheck"]
