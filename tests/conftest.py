"""Shared test fixtures for tpu-doc."""

from __future__ import annotations

import os

import pytest

# Host-specific variables the probes read; cleared so results do not
# depend on the machine running the tests.
_PROBE_ENV_PREFIXES = ("TPU_", "TPU_DOC_", "JAX_", "XLA_", "LIBTPU_", "TF_CPP_")
_PROBE_ENV_NAMES = ("NO_COLOR", "GCS_BUCKET", "CHECKPOINT_DIR")


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> None:
    """Reset the settings singleton before each test."""
    from tpudoc.config import _clear_settings_cache

    _clear_settings_cache()


@pytest.fixture
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove TPU, JAX and tpu-doc variables from the environment."""
    for key in list(os.environ):
        if key.startswith(_PROBE_ENV_PREFIXES) or key in _PROBE_ENV_NAMES:
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def offline(monkeypatch: pytest.MonkeyPatch) -> None:
    """Make the metadata server unreachable without touching the network."""
    monkeypatch.setattr("tpudoc.probes.metadata.reachable", lambda timeout_s=1.0: False)
