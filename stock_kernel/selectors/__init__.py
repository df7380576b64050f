"""Selectors for the stock kernel (read side)."""

from stock_kernel.selectors.report_selector import (
    DashboardStats,
    ReconciliationDiscrepancy,
    ReportAggregator,
    StockSummary,
    StockSummaryReport,
    StockSummaryRow,
)

__all__ = [
    "DashboardStats",
    "ReconciliationDiscrepancy",
    "ReportAggregator",
    "StockSummary",
    "StockSummaryReport",
    "StockSummaryRow",
]
