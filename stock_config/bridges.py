"""
Config -> Kernel Bridges.

Convert StockConfig values into kernel inputs.  These live in stock_config
(the producer) because the kernel never imports stock_config.

Usage:
    config = get_active_config()
    catalog = build_catalog(session, config)
    ledger = build_ledger(session, config, catalog=catalog)
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from stock_config.schema import StockConfig
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import ProductDefaults
from stock_kernel.services.catalog_service import ProductCatalog
from stock_kernel.services.ledger_service import TransactionLedger


def build_product_defaults(config: StockConfig) -> ProductDefaults:
    c = config.catalog
    return ProductDefaults(
        category=c.category,
        cost_price=c.cost_price,
        selling_price=c.selling_price,
        min_threshold=c.min_threshold,
        max_threshold=c.max_threshold,
    )


def build_catalog(
    session: Session,
    config: StockConfig,
    clock: Clock | None = None,
) -> ProductCatalog:
    return ProductCatalog(session, clock=clock, defaults=build_product_defaults(config))


def build_ledger(
    session: Session,
    config: StockConfig,
    clock: Clock | None = None,
    catalog: ProductCatalog | None = None,
) -> TransactionLedger:
    return TransactionLedger(
        session,
        clock=clock,
        catalog=catalog or build_catalog(session, config, clock),
        recent_limit=config.ledger.recent_limit,
        max_recent_limit=config.ledger.max_recent_limit,
    )
