"""
Configuration schema (``stock_config.schema``).

Frozen dataclasses for every configuration section.  Parsed from YAML by
``stock_config.loader``; consumed read-only by the application facade and
the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass, field

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigValidationError(ValueError):
    """A configuration value is missing or out of range."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


@dataclass(frozen=True)
class StoreSettings:
    """Connection and bounded-wait settings for the relational store."""

    database_url: str = "sqlite:///stock_ledger.db"
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 5
    pool_timeout_s: float = 10.0
    lock_timeout_ms: int = 5000
    statement_timeout_ms: int = 30000


@dataclass(frozen=True)
class LedgerSettings:
    """Behaviour of the ledger facade."""

    max_conflict_retries: int = 3
    conflict_backoff_ms: int = 50
    default_page_size: int = 50
    max_page_size: int = 500


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class StockConfig:
    """Root configuration object returned by get_active_config()."""

    config_id: str
    version: int
    store: StoreSettings = field(default_factory=StoreSettings)
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    source_path: str | None = None
