"""Unit tests for the region guard and its lock backends."""

import threading
from unittest.mock import MagicMock, patch

import pytest
from redis.exceptions import LockError

from modules.batching.exceptions import LockTimeout
from modules.batching.locks import (
    LocalLockBackend,
    RedisLockBackend,
    RegionGuard,
    lock_name,
    with_region_lock,
)

pytestmark = pytest.mark.unit


def _guard(timeout=0.2):
    return RegionGuard(backend=LocalLockBackend(), timeout=timeout, lease=5)


class TestLockName:
    def test_is_stable_and_prefixed(self):
        assert lock_name("Carmen") == lock_name("Carmen")
        assert lock_name("Carmen").startswith("batching:region:")

    def test_differs_per_region(self):
        assert lock_name("Carmen") != lock_name("Lapasan")


class TestLocalGuard:
    def test_same_region_times_out_while_held(self):
        holding = threading.Event()
        done = threading.Event()
        guard = _guard()

        def holder():
            with guard.hold("Carmen"):
                holding.set()
                done.wait(5)

        thread = threading.Thread(target=holder)
        thread.start()
        try:
            assert holding.wait(5)
            with pytest.raises(LockTimeout) as exc_info:
                with _guard(timeout=0.05).hold("Carmen"):
                    pass
            assert exc_info.value.region_key == "Carmen"
            assert exc_info.value.retryable is True
        finally:
            done.set()
            thread.join(5)

    def test_other_region_is_not_blocked(self):
        holding = threading.Event()
        done = threading.Event()
        guard = _guard()

        def holder():
            with guard.hold("Carmen"):
                holding.set()
                done.wait(5)

        thread = threading.Thread(target=holder)
        thread.start()
        try:
            assert holding.wait(5)
            assert _guard(timeout=0.05).run("Lapasan", lambda: "ran") == "ran"
        finally:
            done.set()
            thread.join(5)

    def test_waiter_enters_after_release(self):
        order = []
        holding = threading.Event()
        guard = _guard(timeout=5)

        def holder():
            with guard.hold("Gusa"):
                holding.set()
                order.append("first")

        thread = threading.Thread(target=holder)
        thread.start()
        assert holding.wait(5)
        guard.run("Gusa", lambda: order.append("second"))
        thread.join(5)

        assert order == ["first", "second"]

    def test_released_when_body_raises(self):
        guard = _guard()
        with pytest.raises(RuntimeError):
            with guard.hold("Bulua"):
                raise RuntimeError("boom")

        assert guard.run("Bulua", lambda: 1) == 1

    def test_registry_forgets_regions_nobody_holds(self):
        guard = _guard(timeout=0.05)
        names = [f"Purok {i} Agusan" for i in range(50)]
        for name in names:
            with guard.hold(name):
                assert lock_name(name) in LocalLockBackend.active_names()

        assert not set(map(lock_name, names)) & set(LocalLockBackend.active_names())

    def test_timed_out_waiter_leaves_no_entry_behind(self):
        guard = _guard(timeout=0.05)
        with guard.hold("Macasandig"):
            with pytest.raises(LockTimeout):
                with guard.hold("Macasandig"):
                    pass
            assert lock_name("Macasandig") in LocalLockBackend.active_names()

        assert lock_name("Macasandig") not in LocalLockBackend.active_names()

    def test_empty_region_key_is_rejected(self):
        with pytest.raises(ValueError):
            with _guard().hold(""):
                pass

    def test_with_region_lock_uses_configured_backend(self):
        assert with_region_lock("Iponan", lambda: 42) == 42


class TestRedisBackend:
    def test_acquire_passes_lease_and_wait(self):
        redis_lock = MagicMock()
        redis_lock.acquire.return_value = True
        connection = MagicMock()
        connection.lock.return_value = redis_lock

        with patch("django_redis.get_redis_connection", return_value=connection):
            handle = RedisLockBackend().acquire("batching:region:x", 3, 30)

        assert handle is redis_lock
        connection.lock.assert_called_once_with(
            "batching:region:x", timeout=30, blocking_timeout=3
        )

    def test_guard_raises_lock_timeout_when_not_acquired(self):
        redis_lock = MagicMock()
        redis_lock.acquire.return_value = False
        connection = MagicMock()
        connection.lock.return_value = redis_lock
        guard = RegionGuard(backend=RedisLockBackend(), timeout=0.1, lease=5)

        with patch("django_redis.get_redis_connection", return_value=connection):
            with pytest.raises(LockTimeout):
                with guard.hold("Carmen"):
                    pass

        redis_lock.release.assert_not_called()

    def test_expired_lease_is_logged_not_raised(self):
        redis_lock = MagicMock()
        redis_lock.acquire.return_value = True
        redis_lock.release.side_effect = LockError("Cannot release an unlocked lock")
        connection = MagicMock()
        connection.lock.return_value = redis_lock
        guard = RegionGuard(backend=RedisLockBackend(), timeout=0.1, lease=5)

        with patch("django_redis.get_redis_connection", return_value=connection):
            assert guard.run("Carmen", lambda: "done") == "done"

        redis_lock.release.assert_called_once()
