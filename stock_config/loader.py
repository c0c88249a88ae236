"""
Configuration Loader (``stock_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the frozen dataclasses
of ``stock_config.schema``, then validates ranges.  The single public
entry point for runtime config is ``stock_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section keys, wrong types or out-of-range values
  -> ``ConfigValidationError``.
"""

from __future__ import annotations

from dataclasses import fields, replace
from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import (
    VALID_LOG_LEVELS,
    ConfigValidationError,
    LedgerSettings,
    LoggingSettings,
    StockConfig,
    StoreSettings,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigValidationError: if the top level is not a mapping.
    """
    with open(path, encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigValidationError([f"{path}: top level must be a mapping"])
    return data


def _parse_section(cls, name: str, data: Any, errors: list[str]):
    if data is None:
        return cls()
    if not isinstance(data, dict):
        errors.append(f"{name}: must be a mapping")
        return cls()

    known = {f.name: f for f in fields(cls)}
    unknown = sorted(set(data) - set(known))
    if unknown:
        errors.append(f"{name}: unknown keys {unknown}")

    values = {}
    defaults = cls()
    for key, value in data.items():
        if key not in known:
            continue
        expected = type(getattr(defaults, key))
        if expected is float and isinstance(value, int) and not isinstance(value, bool):
            value = float(value)
        if not isinstance(value, expected) or (
            expected is int and isinstance(value, bool)
        ):
            errors.append(
                f"{name}.{key}: expected {expected.__name__}, got {type(value).__name__}"
            )
            continue
        values[key] = value
    return cls(**values)


def parse_config(data: dict[str, Any], source_path: str | None = None) -> StockConfig:
    """Parse a loaded YAML mapping into a StockConfig (unvalidated ranges)."""
    errors: list[str] = []
    config = StockConfig(
        config_id=str(data.get("config_id", "default")),
        version=int(data.get("version", 1)),
        store=_parse_section(StoreSettings, "store", data.get("store"), errors),
        ledger=_parse_section(LedgerSettings, "ledger", data.get("ledger"), errors),
        logging=_parse_section(LoggingSettings, "logging", data.get("logging"), errors),
        source_path=source_path,
    )
    if errors:
        raise ConfigValidationError(errors)
    return config


def apply_env_overrides(config: StockConfig, environ: dict[str, str]) -> StockConfig:
    """Apply STOCK_LEDGER_DATABASE_URL, falling back to DATABASE_URL."""
    url = environ.get("STOCK_LEDGER_DATABASE_URL") or environ.get("DATABASE_URL")
    if not url:
        return config
    return replace(config, store=replace(config.store, database_url=url))


def validate_config(config: StockConfig) -> None:
    """
    Check value ranges.

    Raises:
        ConfigValidationError: listing every violation found.
    """
    errors: list[str] = []
    store, ledger = config.store, config.ledger

    if not store.database_url:
        errors.append("store.database_url: must not be empty")
    if store.pool_size < 1:
        errors.append("store.pool_size: must be >= 1")
    if store.max_overflow < 0:
        errors.append("store.max_overflow: must be >= 0")
    if store.pool_timeout_s <= 0:
        errors.append("store.pool_timeout_s: must be > 0")
    if store.lock_timeout_ms <= 0:
        errors.append("store.lock_timeout_ms: must be > 0")
    if store.statement_timeout_ms <= 0:
        errors.append("store.statement_timeout_ms: must be > 0")

    if ledger.max_conflict_retries < 0:
        errors.append("ledger.max_conflict_retries: must be >= 0")
    if ledger.conflict_backoff_ms < 0:
        errors.append("ledger.conflict_backoff_ms: must be >= 0")
    if ledger.max_page_size < 1:
        errors.append("ledger.max_page_size: must be >= 1")
    if not 1 <= ledger.default_page_size <= max(ledger.max_page_size, 1):
        errors.append("ledger.default_page_size: must be between 1 and max_page_size")

    if config.logging.level.upper() not in VALID_LOG_LEVELS:
        errors.append(f"logging.level: must be one of {list(VALID_LOG_LEVELS)}")

    if errors:
        raise ConfigValidationError(errors)
