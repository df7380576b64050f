"""
ProductLockRegistry -- per-product mutual exclusion.

Responsibility:
    Serializes stock mutations on the same product so that the
    insufficient-stock check and the decrement are never separated by an
    interleaving write.  Mutations on different products do not contend.

Architecture position:
    Kernel > Services.  Used by TransactionLedger around every append.

Invariants enforced:
    - A product's lock is held from before its row is read until after the
      transaction that changed it has committed or rolled back.
    - Multi-product operations acquire locks in sorted product-id order, so
      two receipts over overlapping products cannot deadlock.

Non-goals:
    Cross-process exclusion.  Between processes the stock rules rest on the
    database: quantity moves are conditional UPDATEs and the product row
    stays write-locked until commit.  This registry keeps threads of one
    process from even attempting a doomed write.
"""

import threading
from contextlib import contextmanager
from typing import Hashable, Iterable, Iterator


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class ProductLockRegistry:
    """Reference-counted map of product id -> lock.

    Entries are dropped when no thread holds or waits on them, so the
    registry does not grow with the catalog.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: dict[Hashable, _Entry] = {}

    def _checkout(self, key: Hashable) -> _Entry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1
            return entry

    def _release(self, key: Hashable, entry: _Entry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]

    @contextmanager
    def hold(self, *keys: Hashable) -> Iterator[None]:
        """Hold the locks for all ``keys`` (deduplicated, sorted by str)."""
        ordered = sorted(set(keys), key=str)
        checked_out: list[tuple[Hashable, _Entry]] = []
        acquired: list[_Entry] = []
        try:
            for key in ordered:
                entry = self._checkout(key)
                checked_out.append((key, entry))
                entry.lock.acquire()
                acquired.append(entry)
            yield
        finally:
            for entry in reversed(acquired):
                entry.lock.release()
            for key, entry in reversed(checked_out):
                self._release(key, entry)

    def active_keys(self) -> Iterable[Hashable]:
        """Keys currently held or awaited (diagnostics and tests)."""
        with self._guard:
            return list(self._entries)


# Process-wide registry shared by every TransactionLedger by default
default_lock_registry = ProductLockRegistry()
