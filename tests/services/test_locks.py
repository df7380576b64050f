"""
Tests for ProductLockRegistry.
"""

import threading
import time

import pytest

from stock_kernel.services.locks import ProductLockRegistry


class TestProductLockRegistry:

    def test_entries_dropped_after_release(self):
        registry = ProductLockRegistry()

        with registry.hold("a", "b"):
            assert sorted(registry.active_keys()) == ["a", "b"]

        assert list(registry.active_keys()) == []

    def test_duplicate_keys_held_once(self):
        registry = ProductLockRegistry()

        with registry.hold("a", "a"):
            assert list(registry.active_keys()) == ["a"]

    def test_released_on_error(self):
        registry = ProductLockRegistry()

        try:
            with registry.hold("a"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass

        with registry.hold("a"):
            pass
        assert list(registry.active_keys()) == []

    def test_same_key_serializes(self):
        registry = ProductLockRegistry()
        inside = []
        overlap = []

        def worker():
            with registry.hold("p"):
                inside.append(1)
                if len(inside) > 1:
                    overlap.append(True)
                time.sleep(0.01)
                inside.pop()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlap == []

    def test_different_keys_do_not_contend(self):
        registry = ProductLockRegistry()
        entered = threading.Event()

        def other():
            with registry.hold("b"):
                entered.set()

        with registry.hold("a"):
            t = threading.Thread(target=other)
            t.start()
            assert entered.wait(timeout=5)
            t.join()

    def test_interrupted_acquire_gives_entry_back(self, monkeypatch):
        registry = ProductLockRegistry()
        checkout = registry._checkout

        class _InterruptedLock:
            def acquire(self):
                raise KeyboardInterrupt

            def release(self):
                raise AssertionError("released a lock that was never acquired")

        def interrupted_checkout(key):
            entry = checkout(key)
            if key == "b":
                entry.lock = _InterruptedLock()
            return entry

        monkeypatch.setattr(registry, "_checkout", interrupted_checkout)

        with pytest.raises(KeyboardInterrupt):
            with registry.hold("a", "b"):
                pass

        assert list(registry.active_keys()) == []
        with registry.hold("a"):
            pass
