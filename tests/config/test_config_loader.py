"""
Tests for stock_config: YAML loading, section validation, environment
overrides and the config -> kernel bridges.
"""

from decimal import Decimal

import pytest
import yaml

from stock_config import (
    CONFIG_PATH_ENV,
    DATABASE_URL_ENV,
    DEFAULT_CONFIG_PATH,
    get_active_config,
)
from stock_config.bridges import build_catalog, build_ledger, build_product_defaults
from stock_config.loader import compute_checksum, load_yaml_file, parse_config
from stock_kernel.domain.dtos import ProductDefaults


def _write(tmp_path, data, name="stock.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaultConfig:

    def test_packaged_defaults(self, config):
        assert config.config_id == "default"
        assert config.catalog.category == "General"
        assert config.catalog.cost_price == Decimal("0")
        assert (config.catalog.min_threshold, config.catalog.max_threshold) == (5, 100)
        assert (config.ledger.recent_limit, config.ledger.max_recent_limit) == (10, 100)
        assert config.logging.level == "INFO"
        assert len(config.checksum) == 64

    def test_checksum_deterministic(self):
        data = load_yaml_file(DEFAULT_CONFIG_PATH)
        assert compute_checksum(data) == compute_checksum(dict(reversed(list(data.items()))))

    def test_trace_logged(self, captured_logs, monkeypatch):
        monkeypatch.delenv(DATABASE_URL_ENV, raising=False)
        get_active_config(DEFAULT_CONFIG_PATH)

        traces = [r for r in captured_logs() if r["event"] == "STOCK_CONFIG_TRACE"]
        assert traces[0]["config_id"] == "default"
        assert traces[0]["database_url_overridden"] is False


class TestEnvironmentOverrides:

    def test_config_path_from_env(self, tmp_path, monkeypatch):
        path = _write(tmp_path, {"config_id": "shop", "ledger": {"recent_limit": 3}})
        monkeypatch.setenv(CONFIG_PATH_ENV, str(path))

        config = get_active_config()

        assert config.config_id == "shop"
        assert config.ledger.recent_limit == 3

    def test_explicit_path_wins_over_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CONFIG_PATH_ENV, str(_write(tmp_path, {"config_id": "env"})))
        explicit = _write(tmp_path, {"config_id": "explicit"}, name="other.yaml")

        assert get_active_config(explicit).config_id == "explicit"

    def test_database_url_override(self, monkeypatch):
        monkeypatch.setenv(DATABASE_URL_ENV, "sqlite:///elsewhere.db")

        config = get_active_config(DEFAULT_CONFIG_PATH)

        assert config.database.url == "sqlite:///elsewhere.db"
        assert config.database.pool_size == 20

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")


class TestParseConfig:

    def test_minimal_document_takes_defaults(self):
        config = parse_config({"config_id": "bare"})

        assert config.version == 1
        assert config.database.url == "sqlite:///stock_ledger.db"
        assert config.catalog.max_threshold == 100

    def test_yaml_float_money_kept_exact(self):
        config = parse_config({"config_id": "x", "catalog": {"cost_price": 0.1}})
        assert config.catalog.cost_price == Decimal("0.1")

    def test_logging_level_normalized(self):
        assert parse_config({"config_id": "x", "logging": {"level": "debug"}}).logging.level == "DEBUG"

    @pytest.mark.parametrize(
        "data",
        [
            {},
            {"config_id": ""},
            {"config_id": "x", "reporting": {}},
            {"config_id": "x", "version": 0},
            {"config_id": "x", "database": {"url": ""}},
            {"config_id": "x", "database": {"host": "db"}},
            {"config_id": "x", "database": {"pool_size": 0}},
            {"config_id": "x", "database": {"busy_timeout": -1}},
            {"config_id": "x", "database": "sqlite://"},
            {"config_id": "x", "catalog": {"min_threshold": 10, "max_threshold": 5}},
            {"config_id": "x", "catalog": {"cost_price": "-1"}},
            {"config_id": "x", "catalog": {"selling_price": "free"}},
            {"config_id": "x", "catalog": {"min_threshold": True}},
            {"config_id": "x", "catalog": {"category": " "}},
            {"config_id": "x", "ledger": {"recent_limit": 50, "max_recent_limit": 20}},
            {"config_id": "x", "ledger": {"recent_limit": 0}},
            {"config_id": "x", "logging": {"level": "CHATTY"}},
        ],
    )
    def test_invalid(self, data):
        with pytest.raises(ValueError):
            parse_config(data)

    def test_non_mapping_document(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            load_yaml_file(path)


class TestBridges:

    def test_product_defaults(self):
        config = parse_config(
            {
                "config_id": "x",
                "catalog": {"category": "Stationery", "selling_price": "1.5", "min_threshold": 2},
            }
        )

        assert build_product_defaults(config) == ProductDefaults(
            category="Stationery",
            cost_price=Decimal("0"),
            selling_price=Decimal("1.5"),
            min_threshold=2,
            max_threshold=100,
        )

    def test_catalog_uses_configured_defaults(self, session, clock):
        config = parse_config({"config_id": "x", "catalog": {"category": "Tools"}})
        catalog = build_catalog(session, config, clock)

        product = catalog.create({"name": "Hammer", "initialQuantity": 1})

        assert product.category == "Tools"

    def test_ledger_uses_configured_limits(self, session, clock):
        config = parse_config(
            {"config_id": "x", "ledger": {"recent_limit": 1, "max_recent_limit": 2}}
        )
        ledger = build_ledger(session, config, clock)
        product = ledger.catalog.create({"name": "Nail", "initialQuantity": 10})
        for _ in range(3):
            ledger.append(product.id, "sale", 1)

        assert len(ledger.list_recent()) == 1
        assert len(ledger.list_recent(10)) == 2
