"""
Stock Kernel - inventory stock ledger.

An append-only stock ledger with:
- Per-product serialized sales and restocks
- Non-negative stock enforcement (all-or-nothing receipts)
- Compensating entries instead of mutation
- Low-stock detection and valuation reports derived at query time
"""

__version__ = "0.1.0"
