"""
Per-order mutual exclusion with bounded leases.

``acquire`` never waits: a held lease returns ``None`` straight away and the
caller reports the order as already being processed. A lease expires on its
own after ``lease_seconds`` so a crashed holder cannot wedge an order.
"""
import asyncio
import threading
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

import structlog
from redlock import Lock, Redlock

from order_payments.config import Settings

logger = structlog.get_logger(__name__)

DEFAULT_LEASE_SECONDS = 5.0


def lock_key(order_id: str) -> str:
    return f"order:payment:lock:{order_id}"


@dataclass(frozen=True)
class LockHandle:
    """Proof of lease ownership, needed to release it."""

    order_id: str
    token: str
    lease_seconds: float
    acquired_at: float


class OrderLock(ABC):
    """Lock service injected into the payment processor."""

    def __init__(self, lease_seconds: float = DEFAULT_LEASE_SECONDS):
        self.lease_seconds = lease_seconds

    @abstractmethod
    async def acquire(
        self, order_id: str, lease_seconds: Optional[float] = None
    ) -> Optional[LockHandle]:
        """Take the order's lease, or return None if it is held."""

    @abstractmethod
    async def release(self, handle: LockHandle) -> None:
        """Give the lease back. Releasing twice, or after expiry, is a no-op."""


class InMemoryOrderLock(OrderLock):
    """Process-wide lease map with expiry."""

    def __init__(
        self,
        lease_seconds: float = DEFAULT_LEASE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(lease_seconds)
        self._clock = clock
        self._leases: Dict[str, Tuple[str, float]] = {}
        self._mutex = threading.Lock()

    async def acquire(
        self, order_id: str, lease_seconds: Optional[float] = None
    ) -> Optional[LockHandle]:
        lease = lease_seconds or self.lease_seconds
        now = self._clock()
        with self._mutex:
            current = self._leases.get(order_id)
            if current is not None and current[1] > now:
                return None
            token = uuid.uuid4().hex
            self._leases[order_id] = (token, now + lease)
        return LockHandle(order_id=order_id, token=token, lease_seconds=lease, acquired_at=now)

    async def release(self, handle: LockHandle) -> None:
        with self._mutex:
            current = self._leases.get(handle.order_id)
            # A lease that expired and was taken over belongs to someone else
            if current is not None and current[0] == handle.token:
                del self._leases[handle.order_id]

    def is_locked(self, order_id: str) -> bool:
        with self._mutex:
            current = self._leases.get(order_id)
            return current is not None and current[1] > self._clock()


class RedisOrderLock(OrderLock):
    """
    Lease stored in Redis through Redlock, shared by every process.

    Redlock is synchronous, so its calls run in a worker thread.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        lease_seconds: float = DEFAULT_LEASE_SECONDS,
        redlock: Optional[Redlock] = None,
    ):
        super().__init__(lease_seconds)
        if redlock is None:
            if not redis_url:
                raise ValueError("redis_url is required for RedisOrderLock")
            # A single try: acquisition must fail fast instead of queueing
            redlock = Redlock([redis_url], retry_count=1)
        self._redlock = redlock

    async def acquire(
        self, order_id: str, lease_seconds: Optional[float] = None
    ) -> Optional[LockHandle]:
        lease = lease_seconds or self.lease_seconds
        acquired_at = time.monotonic()
        lock = await asyncio.to_thread(self._redlock.lock, lock_key(order_id), int(lease * 1000))
        if not lock:
            return None
        token = lock.key.decode() if isinstance(lock.key, bytes) else lock.key
        return LockHandle(
            order_id=order_id, token=token, lease_seconds=lease, acquired_at=acquired_at
        )

    async def release(self, handle: LockHandle) -> None:
        # Redlock deletes the key only if it still holds this token
        lock = Lock(validity=0, resource=lock_key(handle.order_id), key=handle.token)
        await asyncio.to_thread(self._redlock.unlock, lock)


def build_order_lock(settings: Settings) -> OrderLock:
    if settings.lock_backend == "redis":
        return RedisOrderLock(settings.redis_url, lease_seconds=settings.lock_lease_seconds)
    return InMemoryOrderLock(lease_seconds=settings.lock_lease_seconds)
