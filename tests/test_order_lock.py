"""
Tests for the per-order lease lock.
"""
from typing import Any

import pytest
from redlock import Lock

from order_payments.config import Settings
from order_payments.core.order_lock import (
    InMemoryOrderLock,
    RedisOrderLock,
    build_order_lock,
    lock_key,
)


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestInMemoryOrderLock:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_second_acquire_is_busy(self) -> None:
        lock = InMemoryOrderLock(lease_seconds=5.0)

        handle = await lock.acquire("order-1")
        assert handle is not None
        assert await lock.acquire("order-1") is None
        assert lock.is_locked("order-1")

        await lock.release(handle)
        assert not lock.is_locked("order-1")
        assert await lock.acquire("order-1") is not None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_orders_are_independent(self) -> None:
        lock = InMemoryOrderLock()

        assert await lock.acquire("order-1") is not None
        assert await lock.acquire("order-2") is not None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_lease_expires(self) -> None:
        clock = FakeClock()
        lock = InMemoryOrderLock(lease_seconds=5.0, clock=clock)

        first = await lock.acquire("order-1")
        clock.now += 4.9
        assert await lock.acquire("order-1") is None

        clock.now += 0.2
        second = await lock.acquire("order-1")
        assert second is not None
        assert second.token != first.token

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_stale_handle_cannot_release_new_lease(self) -> None:
        clock = FakeClock()
        lock = InMemoryOrderLock(lease_seconds=5.0, clock=clock)

        stale = await lock.acquire("order-1")
        clock.now += 6
        await lock.acquire("order-1")

        await lock.release(stale)
        assert lock.is_locked("order-1")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_release_is_idempotent(self) -> None:
        lock = InMemoryOrderLock()
        handle = await lock.acquire("order-1")

        await lock.release(handle)
        await lock.release(handle)

        assert not lock.is_locked("order-1")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_custom_lease(self) -> None:
        clock = FakeClock()
        lock = InMemoryOrderLock(lease_seconds=5.0, clock=clock)

        handle = await lock.acquire("order-1", lease_seconds=1.0)
        assert handle.lease_seconds == 1.0
        clock.now += 1.5
        assert await lock.acquire("order-1") is not None


class TestRedisOrderLock:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_acquire_and_release_through_redlock(self, mocker: Any) -> None:
        redlock = mocker.MagicMock()
        redlock.lock.return_value = Lock(validity=4900, resource=lock_key("order-1"), key=b"token-1")
        lock = RedisOrderLock(lease_seconds=5.0, redlock=redlock)

        handle = await lock.acquire("order-1")

        assert handle is not None
        assert handle.token == "token-1"
        redlock.lock.assert_called_once_with("order:payment:lock:order-1", 5000)

        await lock.release(handle)
        released = redlock.unlock.call_args.args[0]
        assert released.resource == "order:payment:lock:order-1"
        assert released.key == "token-1"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_busy_when_redlock_refuses(self, mocker: Any) -> None:
        redlock = mocker.MagicMock()
        redlock.lock.return_value = False
        lock = RedisOrderLock(lease_seconds=5.0, redlock=redlock)

        assert await lock.acquire("order-1") is None

    @pytest.mark.unit
    def test_requires_url_without_client(self) -> None:
        with pytest.raises(ValueError, match="redis_url"):
            RedisOrderLock(redis_url=None)


class TestBuildOrderLock:
    @pytest.mark.unit
    def test_memory_backend(self, test_settings: Settings) -> None:
        lock = build_order_lock(test_settings)
        assert isinstance(lock, InMemoryOrderLock)
        assert lock.lease_seconds == test_settings.lock_lease_seconds

    @pytest.mark.unit
    def test_redis_backend(self, mocker: Any) -> None:
        redlock_cls = mocker.patch("order_payments.core.order_lock.Redlock")
        settings = Settings(lock_backend="redis", redis_url="redis://localhost:6379/1")

        lock = build_order_lock(settings)

        assert isinstance(lock, RedisOrderLock)
        redlock_cls.assert_called_once_with(["redis://localhost:6379/1"], retry_count=1)
