"""Per-region mutual exclusion for the batching critical section.

``RegionGuard.hold(region_key)`` is entered before the database
transaction opens and left after it commits, so the whole
locate-or-create-then-update sequence of one region runs alone while
other regions proceed in parallel.  There is no global lock.

Backends:

- ``redis``: a redis-py ``Lock`` on the ``default`` django-redis
  connection; holds across processes and hosts.  The lease bounds how
  long a crashed worker can keep a region blocked.
- ``local``: a ``threading.Lock`` per region; single-process
  deployments and the test suite.
"""

from __future__ import annotations

import hashlib
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar

import structlog
from redis.exceptions import LockError

from modules.batching.conf import get_batching_settings
from modules.batching.exceptions import LockTimeout

logger = structlog.get_logger(__name__)

T = TypeVar("T")

LOCK_PREFIX = "batching:region:"


def lock_name(region_key: str) -> str:
    digest = hashlib.sha1(region_key.encode("utf-8")).hexdigest()
    return f"{LOCK_PREFIX}{digest}"


class _LocalEntry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class LocalLockBackend:
    """In-process locks, one per lock name, shared by every guard instance.

    An entry lives only while some thread holds or waits for it, so the
    registry does not grow with every region name ever seen.
    """

    _registry: Dict[str, _LocalEntry] = {}
    _registry_lock = threading.Lock()

    def acquire(self, name: str, timeout: float, lease: float) -> Optional[Any]:
        with self._registry_lock:
            entry = self._registry.get(name)
            if entry is None:
                entry = self._registry[name] = _LocalEntry()
            entry.users += 1
        if entry.lock.acquire(timeout=max(timeout, 0)):
            return entry
        self._leave(name, entry)
        return None

    def release(self, handle: Any, name: str) -> None:
        handle.lock.release()
        self._leave(name, handle)

    def _leave(self, name: str, entry: _LocalEntry) -> None:
        with self._registry_lock:
            entry.users -= 1
            if entry.users == 0 and self._registry.get(name) is entry:
                del self._registry[name]

    @classmethod
    def active_names(cls) -> List[str]:
        with cls._registry_lock:
            return sorted(cls._registry)


class RedisLockBackend:
    def __init__(self, alias: str = "default") -> None:
        self._alias = alias

    def acquire(self, name: str, timeout: float, lease: float) -> Optional[Any]:
        from django_redis import get_redis_connection

        lock = get_redis_connection(self._alias).lock(
            name,
            timeout=lease,
            blocking_timeout=max(timeout, 0),
        )
        if lock.acquire(blocking=True):
            return lock
        return None

    def release(self, handle: Any, name: str) -> None:
        try:
            handle.release()
        except LockError as exc:
            # The lease ran out before we finished; another worker may have
            # entered the region meanwhile.
            logger.error("batching.lock_lease_expired", lock=name, error=str(exc))


def build_lock_backend(name: str) -> Any:
    if name == "redis":
        return RedisLockBackend()
    return LocalLockBackend()


class RegionGuard:
    """Serialises batching work per region key."""

    def __init__(
        self,
        backend: Optional[Any] = None,
        timeout: Optional[float] = None,
        lease: Optional[float] = None,
    ) -> None:
        conf = get_batching_settings()
        self._backend = backend or build_lock_backend(conf.lock_backend)
        self._timeout = conf.lock_timeout if timeout is None else timeout
        self._lease = conf.lock_lease if lease is None else lease

    @contextmanager
    def hold(self, region_key: str) -> Iterator[None]:
        if not region_key:
            raise ValueError("region_key is required to take the region guard.")

        name = lock_name(region_key)
        log = logger.bind(region_key=region_key)
        started = time.monotonic()
        handle = self._backend.acquire(name, self._timeout, self._lease)
        waited_ms = round((time.monotonic() - started) * 1000, 2)
        if handle is None:
            log.warning("batching.lock_timeout", waited_ms=waited_ms)
            raise LockTimeout(region_key, self._timeout)

        log.debug("batching.lock_acquired", waited_ms=waited_ms)
        try:
            yield
        finally:
            self._backend.release(handle, name)
            log.debug("batching.lock_released")

    def run(self, region_key: str, fn: Callable[[], T]) -> T:
        with self.hold(region_key):
            return fn()


def with_region_lock(region_key: str, fn: Callable[[], T]) -> T:
    """Run *fn* while holding the region guard with the configured backend."""
    return RegionGuard().run(region_key, fn)
