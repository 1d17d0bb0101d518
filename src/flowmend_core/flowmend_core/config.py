# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.
"""Central flowmend configuration.

All values have sensible defaults and can be overridden via environment variables
using the ``FLOWMEND_`` prefix:

  FLOWMEND_STRICT_MODE            Treat every warning as an error (default: false)
  FLOWMEND_AUTO_CORRECT           Repair graphs before the final validation
                                  (default: true)
  FLOWMEND_LOG_LEVEL              Log level (default: INFO)
  FLOWMEND_LOG_FORMAT             ``text`` or ``json`` (default: text)
  FLOWMEND_LOG_FILE               Also log to this file (optional)
  FLOWMEND_MAX_LOG_FILE_BYTES     Max bytes per log file (optional)
  FLOWMEND_LOG_BACKUP_COUNT       Log rotation backup count (optional)
  FLOWMEND_FALLBACK_NODE_TYPE     Type suggested when nothing similar is registered
                                  (default: n8n-nodes-base.function)
  FLOWMEND_GRID_ORIGIN_X          Grid origin for reassigned positions (default: 200)
  FLOWMEND_GRID_ORIGIN_Y          (default: 200)
  FLOWMEND_GRID_COLUMN_SPACING    Horizontal distance between grid columns (default: 350)
  FLOWMEND_GRID_ROW_SPACING       Vertical distance between grid rows (default: 200)
  FLOWMEND_GRID_ROWS              Rows per grid column (default: 4)
  FLOWMEND_CATALOG_FILE           Extra node type table merged into the built-in one
  FLOWMEND_CREDENTIALS_FILE       Extra credential table merged into the built-in one
"""

from __future__ import annotations

import os
from typing import Optional

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from flowmend_common.constants import (
    DEFAULT_FALLBACK_NODE_TYPE,
    DEFAULT_GRID_COLUMN_SPACING,
    DEFAULT_GRID_ORIGIN_X,
    DEFAULT_GRID_ORIGIN_Y,
    DEFAULT_GRID_ROW_SPACING,
    DEFAULT_GRID_ROWS,
)

_VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "WARN", "ERROR", "CRITICAL"})
_VALID_LOG_FORMATS = frozenset({"text", "json"})


class FlowmendConfig(BaseSettings):
    """Central flowmend configuration.

    Instantiate with ``FlowmendConfig()`` to read defaults and any
    ``FLOWMEND_*`` environment variable overrides automatically.
    """

    model_config = SettingsConfigDict(env_prefix="FLOWMEND_")

    # ── Validation behaviour ───────────────────────────────────────────────
    strict_mode: bool = False
    auto_correct: bool = True
    fallback_node_type: str = DEFAULT_FALLBACK_NODE_TYPE

    # ── Repair layout ──────────────────────────────────────────────────────
    grid_origin_x: int = DEFAULT_GRID_ORIGIN_X
    grid_origin_y: int = DEFAULT_GRID_ORIGIN_Y
    grid_column_spacing: int = DEFAULT_GRID_COLUMN_SPACING
    grid_row_spacing: int = DEFAULT_GRID_ROW_SPACING
    grid_rows: int = DEFAULT_GRID_ROWS

    # ── Extra tables ───────────────────────────────────────────────────────
    catalog_file: Optional[str] = None
    credentials_file: Optional[str] = None

    # ── Logging configuration ──────────────────────────────────────────────
    log_level: str = "WARNING"
    log_format: str = "text"
    log_file: Optional[str] = None
    max_log_file_bytes: Optional[int] = None
    log_backup_count: Optional[int] = None

    # ── Validators ─────────────────────────────────────────────────────────

    @field_validator("fallback_node_type")
    @classmethod
    def _valid_fallback(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("fallback_node_type must not be empty")
        return v

    @field_validator("grid_column_spacing", "grid_row_spacing", "grid_rows")
    @classmethod
    def _positive(cls, v: int, info: ValidationInfo) -> int:
        if v < 1:
            raise ValueError(f"{info.field_name}={v} must be >= 1")
        return v

    @field_validator("catalog_file", "credentials_file")
    @classmethod
    def _existing_file(cls, v: Optional[str], info: ValidationInfo) -> Optional[str]:
        # Empty string means "not set" so the variable can be cleared in a shell
        if not v:
            return None
        if not os.path.isfile(v):
            raise ValueError(f"{info.field_name}={v!r} does not exist or is not a file")
        return v

    @field_validator("log_level")
    @classmethod
    def _valid_log_level(cls, v: str) -> str:
        if v.upper() not in _VALID_LOG_LEVELS:
            raise ValueError(
                f"log_level={v!r} is not a valid log level. "
                f"Valid values: {', '.join(sorted(_VALID_LOG_LEVELS))}"
            )
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def _valid_log_format(cls, v: str) -> str:
        if v.lower() not in _VALID_LOG_FORMATS:
            raise ValueError(f"log_format={v!r} must be one of: text, json")
        return v.lower()

    @field_validator("max_log_file_bytes", "log_backup_count")
    @classmethod
    def _non_negative(cls, v: Optional[int], info: ValidationInfo) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError(f"{info.field_name}={v} must be >= 0")
        return v


# ── Module-level singleton ─────────────────────────────────────────────────────

_config: Optional[FlowmendConfig] = None


def get_config() -> FlowmendConfig:
    """Return the process-wide config singleton.

    Creates a fresh ``FlowmendConfig`` on first call (reading env vars).
    Subsequent calls return the cached instance.

    Note: not thread-safe. In multi-threaded contexts, call
    ``load_and_validate_config()`` once during startup before spawning threads.
    """
    global _config
    if _config is None:
        _config = FlowmendConfig()
    return _config


def load_and_validate_config() -> FlowmendConfig:
    """Build, validate, cache and return the config.

    Raises ``pydantic.ValidationError`` with a clear message if any value is
    invalid. Call this once at CLI startup to surface config errors before any
    workflow is loaded.
    """
    global _config
    cfg = FlowmendConfig()
    _config = cfg
    return cfg
