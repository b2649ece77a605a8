"""
Tests for running handlers under a lock with LockGuard.

Validates that:
- Handlers run while the lock is held and the lock is released afterwards
- Handler failures are reported, not raised, and still release the lock
- Contended resources skip the handler
"""

import threading

import pytest

from lease_lock.config import LockSettings
from lease_lock.errors import StoreUnavailable
from lease_lock.guard import LockGuard
from lease_lock.lock import Lock
from lease_lock.store import InMemoryStore


class DownStore(InMemoryStore):
    def set_if_absent(self, key, value, ttl_seconds):
        raise StoreUnavailable("redis is down")


def test_handler_runs_and_lock_is_released():
    """
    Scenario:
    A handler runs under the lock for "report-1".

    Expectation:
    - Handler output returned
    - Lock held during the handler, gone afterwards
    """

    store = InMemoryStore()
    guard = LockGuard(store)
    key = Lock(store, "report-1").key

    seen_during = []

    def handler():
        seen_during.append(store.get(key))
        return {"rows": 3}

    result = guard.run("report-1", handler)

    assert result.acquired is True
    assert result.success is True
    assert result.output == {"rows": 3}
    assert result.error is None
    assert seen_during[0] is not None
    assert store.get(key) is None


def test_handler_failure_is_reported_and_releases():
    store = InMemoryStore()
    guard = LockGuard(store)

    def failing_handler():
        raise ValueError("invalid payload")

    result = guard.run("report-2", failing_handler)

    assert result.acquired is True
    assert result.success is False
    assert "invalid payload" in result.error
    assert store.get(Lock(store, "report-2").key) is None

    # lock is free again
    assert guard.run("report-2", lambda: "ok").output == "ok"


def test_contended_resource_skips_handler():
    """
    Scenario:
    One holder is inside the guarded handler while 5 more runs arrive.

    Expectation:
    - Handler executes once
    - Other runs report acquired=False
    """

    store = InMemoryStore()
    guard = LockGuard(store, LockSettings(ttl_seconds=30))

    execution_count = 0
    started = threading.Event()
    finish = threading.Event()

    def slow_handler():
        nonlocal execution_count
        execution_count += 1
        started.set()
        finish.wait(timeout=5)
        return "done"

    holder_result = {}
    holder = threading.Thread(
        target=lambda: holder_result.update(result=guard.run("invoice-9", slow_handler))
    )
    holder.start()
    assert started.wait(timeout=5)

    refused = [guard.run("invoice-9", slow_handler) for _ in range(5)]

    finish.set()
    holder.join(timeout=5)

    assert execution_count == 1
    assert holder_result["result"].success is True
    for result in refused:
        assert result.acquired is False
        assert result.success is False
        assert result.error == "Resource is locked by another holder"


def test_wait_timeout_waits_for_release():
    store = InMemoryStore()
    guard = LockGuard(store, LockSettings(ttl_seconds=30))
    holder = Lock(store, "nightly", ttl_seconds=30)
    assert holder.acquire()

    timer = threading.Timer(0.05, holder.release)
    timer.start()
    try:
        result = guard.run("nightly", lambda: "ran", wait_timeout=5)
    finally:
        timer.join()

    assert result.acquired is True
    assert result.output == "ran"


def test_ttl_override_applies_to_lock():
    store = InMemoryStore()
    guard = LockGuard(store)
    key = Lock(store, "export").key
    ttls = []

    guard.run("export", lambda: ttls.append(store.ttl(key)), ttl_seconds=60)

    assert 59 < ttls[0] <= 60


def test_store_failure_propagates():
    guard = LockGuard(DownStore())

    with pytest.raises(StoreUnavailable):
        guard.run("report-3", lambda: None)
