"""Build information for ``tpu-doc version``."""

from __future__ import annotations

import platform
import sys
from importlib.metadata import PackageNotFoundError, version

from tpudoc import __version__

DIST_NAME = "tpu-doc"


def package_version() -> str:
    """Return the installed distribution version, else the source version."""
    try:
        return version(DIST_NAME)
    except PackageNotFoundError:
        return __version__


def build_info() -> list[str]:
    """Return the lines printed by the ``version`` command."""
    return [
        f"tpu-doc {package_version()}",
        f"Python {platform.python_version()} ({sys.implementation.name})",
        f"Platform: {platform.system()} {platform.release()} {platform.machine()}",
    ]
