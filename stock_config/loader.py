"""
Configuration Loader (``stock_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``stock_config.schema`` dataclasses.  Runtime callers go through
``stock_config.get_active_config()`` instead.

Invariants enforced
-------------------
* Every parse error raises ``ValueError`` naming the offending key.
* Unknown sections or keys are rejected rather than ignored.
* ``compute_checksum`` is deterministic for identical input.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import (
    CatalogDefaults,
    DatabaseConfig,
    LedgerSettings,
    LoggingSettings,
    StockConfig,
)

_SECTIONS = frozenset({"config_id", "version", "database", "catalog", "ledger", "logging"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML value must be a mapping")
    return data


def _section(data: dict[str, Any], name: str, allowed: set[str]) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"'{name}' must be a mapping, got {type(section).__name__}")
    unknown = set(section) - allowed
    if unknown:
        raise ValueError(f"Unknown keys in '{name}': {sorted(unknown)}")
    return section


def _non_negative_int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{key} must be a non-negative integer, got {value!r}")
    return value


def _positive_int(value: Any, key: str) -> int:
    if _non_negative_int(value, key) == 0:
        raise ValueError(f"{key} must be positive, got {value!r}")
    return value


def _money(value: Any, key: str) -> Decimal:
    # YAML floats go through str() so 0.1 stays 0.1
    if isinstance(value, bool):
        raise ValueError(f"{key} must be a decimal amount, got {value!r}")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{key} must be a decimal amount, got {value!r}") from None
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"{key} must be a non-negative amount, got {value!r}")
    return amount


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    """Parse the ``database`` section."""
    section = _section(
        data,
        "database",
        {"url", "echo", "pool_size", "max_overflow", "pool_timeout", "busy_timeout"},
    )
    defaults = DatabaseConfig()
    url = section.get("url", defaults.url)
    if not isinstance(url, str) or not url:
        raise ValueError("database.url must be a non-empty string")
    busy_timeout = section.get("busy_timeout", defaults.busy_timeout)
    if isinstance(busy_timeout, bool) or not isinstance(busy_timeout, (int, float)) or busy_timeout < 0:
        raise ValueError(f"database.busy_timeout must be non-negative, got {busy_timeout!r}")
    return DatabaseConfig(
        url=url,
        echo=bool(section.get("echo", defaults.echo)),
        pool_size=_positive_int(section.get("pool_size", defaults.pool_size), "database.pool_size"),
        max_overflow=_non_negative_int(
            section.get("max_overflow", defaults.max_overflow), "database.max_overflow"
        ),
        pool_timeout=_positive_int(
            section.get("pool_timeout", defaults.pool_timeout), "database.pool_timeout"
        ),
        busy_timeout=float(busy_timeout),
    )


def parse_catalog_defaults(data: dict[str, Any]) -> CatalogDefaults:
    """Parse the ``catalog`` section (create-payload defaults)."""
    section = _section(
        data,
        "catalog",
        {"category", "cost_price", "selling_price", "min_threshold", "max_threshold"},
    )
    defaults = CatalogDefaults()
    category = section.get("category", defaults.category)
    if not isinstance(category, str) or not category.strip():
        raise ValueError("catalog.category must be a non-empty string")
    result = CatalogDefaults(
        category=category.strip(),
        cost_price=_money(section.get("cost_price", defaults.cost_price), "catalog.cost_price"),
        selling_price=_money(
            section.get("selling_price", defaults.selling_price), "catalog.selling_price"
        ),
        min_threshold=_non_negative_int(
            section.get("min_threshold", defaults.min_threshold), "catalog.min_threshold"
        ),
        max_threshold=_non_negative_int(
            section.get("max_threshold", defaults.max_threshold), "catalog.max_threshold"
        ),
    )
    if result.min_threshold > result.max_threshold:
        raise ValueError(
            f"catalog.min_threshold ({result.min_threshold}) exceeds "
            f"catalog.max_threshold ({result.max_threshold})"
        )
    return result


def parse_ledger_settings(data: dict[str, Any]) -> LedgerSettings:
    """Parse the ``ledger`` section."""
    section = _section(data, "ledger", {"recent_limit", "max_recent_limit"})
    defaults = LedgerSettings()
    result = LedgerSettings(
        recent_limit=_positive_int(
            section.get("recent_limit", defaults.recent_limit), "ledger.recent_limit"
        ),
        max_recent_limit=_positive_int(
            section.get("max_recent_limit", defaults.max_recent_limit),
            "ledger.max_recent_limit",
        ),
    )
    if result.recent_limit > result.max_recent_limit:
        raise ValueError(
            f"ledger.recent_limit ({result.recent_limit}) exceeds "
            f"ledger.max_recent_limit ({result.max_recent_limit})"
        )
    return result


def parse_logging_settings(data: dict[str, Any]) -> LoggingSettings:
    """Parse the ``logging`` section."""
    section = _section(data, "logging", {"level"})
    level = str(section.get("level", LoggingSettings().level)).upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"logging.level is not a logging level: {level!r}")
    return LoggingSettings(level=level)


def parse_config(data: dict[str, Any]) -> StockConfig:
    """Parse a whole configuration document."""
    unknown = set(data) - _SECTIONS
    if unknown:
        raise ValueError(f"Unknown configuration sections: {sorted(unknown)}")
    config_id = data.get("config_id")
    if not isinstance(config_id, str) or not config_id:
        raise ValueError("config_id is required")
    return StockConfig(
        config_id=config_id,
        version=_positive_int(data.get("version", 1), "version"),
        database=parse_database(data),
        catalog=parse_catalog_defaults(data),
        ledger=parse_ledger_settings(data),
        logging=parse_logging_settings(data),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
