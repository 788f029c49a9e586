"""Centralized configuration for tpu-doc.

All settings are configurable via environment variables with the ``TPU_DOC_``
prefix.  For example, ``TPU_DOC_FORMAT=json`` selects JSON output.

Environment Variables
---------------------
TPU_DOC_FORMAT : str
    Report format. One of: text, json, junit.
    Default: ``text``
TPU_DOC_VERBOSE : bool
    Include durations and details in text reports. Any value, including
    an empty one or ``0``, enables it; only an unset variable leaves it off.
    Default: ``false``
TPU_DOC_CONFIG : str
    Path to a YAML config file (see :class:`ConfigFile`).
    Default: None
TPU_DOC_LOG_LEVEL : str
    Logging level. One of: DEBUG, INFO, WARNING, ERROR, CRITICAL.
    Default: ``WARNING``
TPU_DOC_TIMEOUT_MS : int
    Per-check timeout in milliseconds. Must be >= 1.
    Default: 30000
TPU_DOC_MAX_PARALLEL : int
    Maximum checks run at once in parallel mode. Must be >= 1.
    Default: 4

``NO_COLOR`` (any value) disables colored text output.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tpudoc.errors import ProbeIOError, ProbeParseError
from tpudoc.models import CheckCategory, OutputFormat

# ---------------------------------------------------------------------------
# Settings model
# ---------------------------------------------------------------------------


class TpuDocSettings(BaseSettings):
    """Environment-driven settings for tpu-doc.

    All fields can be overridden via environment variables prefixed with
    ``TPU_DOC_``.  See module docstring for the full list.
    """

    model_config = SettingsConfigDict(
        env_prefix="TPU_DOC_",
    )

    # Output
    format: OutputFormat = OutputFormat.TEXT
    verbose: bool = False

    # Config file
    config: Path | None = None

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"

    # Execution
    timeout_ms: int = Field(default=30000, ge=1)
    max_parallel: int = Field(default=4, ge=1)

    @field_validator("format", mode="before")
    @classmethod
    def _normalize_format(cls, v: Any) -> Any:
        """Accept format names in any case."""
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("verbose", mode="before")
    @classmethod
    def _presence_means_set(cls, v: Any) -> Any:
        """Enable verbose whenever ``TPU_DOC_VERBOSE`` is set, whatever its value."""
        if isinstance(v, str):
            return True
        return v

    @field_validator("config", mode="before")
    @classmethod
    def _empty_config_is_none(cls, v: Any) -> Any:
        """Ignore an empty ``TPU_DOC_CONFIG``."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, v: str) -> str:
        """Normalize log level to uppercase and validate."""
        return v.upper() if isinstance(v, str) else v


def color_disabled() -> bool:
    """Return True when ``NO_COLOR`` is present in the environment."""
    return "NO_COLOR" in os.environ


# ---------------------------------------------------------------------------
# Config file
# ---------------------------------------------------------------------------


class ConfigFile(BaseModel):
    """Options read from a YAML config file.

    Every key is optional; absent keys fall back to the environment and
    then to defaults.  Example::

        format: junit
        fail_fast: true
        skip: [PERF-004, IO-001]
    """

    model_config = ConfigDict(extra="forbid")

    format: OutputFormat | None = None
    verbose: bool = False
    quiet: bool = False
    no_color: bool = False
    timeout_ms: int | None = Field(default=None, ge=1)
    parallel: bool = False
    fail_fast: bool = False
    max_parallel: int | None = Field(default=None, ge=1)
    skip: list[str] = Field(default_factory=list)
    only: list[str] = Field(default_factory=list)
    categories: list[CheckCategory] = Field(default_factory=list)
    baseline: Path | None = None

    @field_validator("categories", mode="before")
    @classmethod
    def _parse_categories(cls, v: Any) -> Any:
        """Accept category names case-insensitively (``io``, ``hardware``)."""
        if not isinstance(v, list):
            return v
        by_name = {c.value.lower(): c for c in CheckCategory}
        return [by_name.get(item.lower(), item) if isinstance(item, str) else item for item in v]


def load_config_file(path: Path) -> ConfigFile:
    """Load and validate a YAML config file.

    Parameters
    ----------
    path:
        Location of the file.

    Returns
    -------
    ConfigFile
        The validated options. An empty file yields all defaults.

    Raises
    ------
    ProbeIOError
        If the file cannot be read.
    ProbeParseError
        If the file is not valid YAML or contains unknown keys or bad values.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ProbeIOError("config", f"{path}: {exc.strerror or exc}") from exc

    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ProbeParseError("config", f"{path}: {exc}") from exc

    if raw is None:
        return ConfigFile()
    if not isinstance(raw, dict):
        raise ProbeParseError("config", f"{path}: top level must be a mapping")

    try:
        return ConfigFile.model_validate(raw)
    except ValidationError as exc:
        raise ProbeParseError("config", f"{path}: {exc}") from exc


# ---------------------------------------------------------------------------
# Singleton / cached accessor
# ---------------------------------------------------------------------------

_settings_instance: TpuDocSettings | None = None


def get_settings() -> TpuDocSettings:
    """Return the cached TpuDocSettings singleton.

    Creates the instance on first call, then returns the same object
    on subsequent calls.  Use :func:`_clear_settings_cache` in tests
    to reset.

    Returns
    -------
    TpuDocSettings
        The application settings instance.
    """
    global _settings_instance  # noqa: PLW0603
    if _settings_instance is None:
        _settings_instance = TpuDocSettings()
    return _settings_instance


def _clear_settings_cache() -> None:
    """Clear the settings singleton cache.

    Intended for test teardown so each test can start with fresh settings.
    """
    global _settings_instance  # noqa: PLW0603
    _settings_instance = None
