"""
stock_config -- single public entrypoint for stock ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Services never read configuration files or
    environment variables; they receive values through the constructors
    ``stock_config.bridges`` calls.

Architecture position:
    Configuration.  Sits above ``stock_kernel``; the kernel MUST NEVER
    import from ``stock_config``.

Environment:
    STOCK_LEDGER_CONFIG        path of the YAML file to load instead of
                               ``sets/default.yaml``.
    STOCK_LEDGER_DATABASE_URL  replaces ``database.url``.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- schema or range validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``STOCK_CONFIG_TRACE`` log entry with the config id, version and
    checksum.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path

from stock_config.loader import load_yaml_file, parse_config
from stock_config.schema import (
    CatalogDefaults,
    DatabaseConfig,
    LedgerSettings,
    LoggingSettings,
    StockConfig,
)

__all__ = [
    "CatalogDefaults",
    "DatabaseConfig",
    "LedgerSettings",
    "LoggingSettings",
    "StockConfig",
    "get_active_config",
]

_logger = logging.getLogger("stock_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

CONFIG_PATH_ENV = "STOCK_LEDGER_CONFIG"
DATABASE_URL_ENV = "STOCK_LEDGER_DATABASE_URL"


def get_active_config(config_path: Path | str | None = None) -> StockConfig:
    """The ONLY public configuration entrypoint.

    Resolution order for the file: ``config_path``, then
    ``$STOCK_LEDGER_CONFIG``, then the packaged default.  A set
    ``$STOCK_LEDGER_DATABASE_URL`` overrides ``database.url`` whichever file
    is used.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        ValueError: If the configuration is invalid.
    """
    path = Path(config_path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    if not path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    config = parse_config(load_yaml_file(path))

    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        config = dataclasses.replace(
            config,
            database=dataclasses.replace(config.database, url=database_url),
        )

    _logger.info(
        "STOCK_CONFIG_TRACE",
        extra={
            "trace_type": "STOCK_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "config_path": str(path),
            "database_url_overridden": bool(database_url),
        },
    )
    return config
