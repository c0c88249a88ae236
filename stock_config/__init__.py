"""
stock_config -- single public entrypoint for stock ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files or environment variables directly.

Architecture position:
    Configuration sits above ``stock_kernel``.  The kernel never imports
    from ``stock_config``; the CLI and application wiring pass the settings
    they need into kernel constructors.

Resolution order:
    1. ``config_path`` argument, else
    2. ``STOCK_LEDGER_CONFIG`` environment variable, else
    3. ``stock_config/sets/default.yaml``.
    ``STOCK_LEDGER_DATABASE_URL`` (or ``DATABASE_URL``) then overrides
    ``store.database_url``.

Audit relevance:
    Every successful call logs ``stock_config_loaded`` with the config id,
    version and source path (never the database URL, which may hold
    credentials).
"""

from __future__ import annotations

import os
from pathlib import Path

from stock_config.loader import (
    apply_env_overrides,
    load_yaml_file,
    parse_config,
    validate_config,
)
from stock_config.schema import (
    ConfigValidationError,
    LedgerSettings,
    LoggingSettings,
    StockConfig,
    StoreSettings,
)
from stock_kernel.logging_config import get_logger

__all__ = [
    "ConfigValidationError",
    "LedgerSettings",
    "LoggingSettings",
    "StockConfig",
    "StoreSettings",
    "get_active_config",
]

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

CONFIG_ENV_VAR = "STOCK_LEDGER_CONFIG"


def get_active_config(
    config_path: str | Path | None = None,
    environ: dict[str, str] | None = None,
) -> StockConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Explicit YAML configuration set.
        environ: Environment mapping (defaults to ``os.environ``).

    Returns:
        A validated, frozen StockConfig.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ConfigValidationError: If any value is malformed or out of range.
    """
    env = dict(os.environ) if environ is None else environ
    path = Path(config_path or env.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)

    config = parse_config(load_yaml_file(path), source_path=str(path))
    config = apply_env_overrides(config, env)
    validate_config(config)

    _logger.info(
        "stock_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "source_path": str(path),
            "dialect": config.store.database_url.split(":", 1)[0],
        },
    )
    return config
