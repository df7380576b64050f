"""
StockConfig schema.

Frozen dataclasses the loader parses ``sets/*.yaml`` into.  Nothing here
reads files or the environment; ``get_active_config()`` does that, and
``bridges`` turns these values into kernel inputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings handed to ``init_engine_from_config``."""

    url: str = "sqlite:///stock_ledger.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    busy_timeout: float = 30.0  # SQLite only, seconds


@dataclass(frozen=True)
class CatalogDefaults:
    """Values substituted for fields a product create payload omits."""

    category: str = "General"
    cost_price: Decimal = Decimal("0")
    selling_price: Decimal = Decimal("0")
    min_threshold: int = 5
    max_threshold: int = 100


@dataclass(frozen=True)
class LedgerSettings:
    recent_limit: int = 10
    max_recent_limit: int = 100


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class StockConfig:
    """The whole runtime configuration of a stock ledger deployment."""

    config_id: str
    version: int = 1
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    catalog: CatalogDefaults = field(default_factory=CatalogDefaults)
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    checksum: str = ""
