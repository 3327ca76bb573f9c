"""Tests for acquisition with a timeout and retry policy."""

import asyncio
import time
from pathlib import Path

import pytest

from leasedfilelock import LeasedFileLock

HOUR = 3600.0
MINIMUM_RETRY = 0.001


async def acquire_and_release_after(target: Path, lease: float, delay: float) -> bool:
    """Take the lock, hold it for ``delay`` seconds, then dispose of it."""
    lock = LeasedFileLock(target)
    if not await lock.try_acquire(lease):
        return False
    with lock:
        await asyncio.sleep(delay)
    return True


@pytest.mark.asyncio
async def test_timeout_against_held_lock(target: Path) -> None:
    """Test that a held lock makes a timed acquisition give up on time."""
    timeout, retry = 0.3, 0.05
    with LeasedFileLock(target) as holder, LeasedFileLock(target) as waiter:
        assert await holder.try_acquire(HOUR)

        start = time.monotonic()
        acquired = await waiter.with_timeout(timeout, retry).try_acquire(HOUR)
        elapsed = time.monotonic() - start

        assert not acquired
        assert elapsed >= timeout * 0.9
        assert elapsed < timeout + retry + 0.5


@pytest.mark.asyncio
async def test_retry_wait_is_cut_short_by_timeout(target: Path) -> None:
    """Test that the last retry pause does not run past the deadline."""
    with LeasedFileLock(target) as holder, LeasedFileLock(target) as waiter:
        assert await holder.try_acquire(HOUR)

        start = time.monotonic()
        assert not await waiter.with_timeout(0.4, 0.39).try_acquire(HOUR)
        assert time.monotonic() - start < 0.65


@pytest.mark.asyncio
@pytest.mark.parametrize("lease", [0.1, 0.2, 0.3])
async def test_acquire_before_release_fails(target: Path, lease: float) -> None:
    """Test that a short timeout expires while the first lease is live."""
    with LeasedFileLock(target) as first, LeasedFileLock(target) as second:
        assert await first.try_acquire(lease)
        assert not await second.with_timeout(0.015, MINIMUM_RETRY).try_acquire(lease)


@pytest.mark.asyncio
@pytest.mark.parametrize("lease", [0.03, 0.05, 0.1, 0.15])
async def test_acquire_after_release(target: Path, lease: float) -> None:
    """Test that a timed acquisition succeeds once the holder lets go."""
    assert await acquire_and_release_after(target, 0.001, 0.001)
    with LeasedFileLock(target) as second:
        assert await second.with_timeout(lease * 10, MINIMUM_RETRY).try_acquire(lease)


@pytest.mark.asyncio
@pytest.mark.parametrize("delay", [0.064, 0.08, 0.1])
async def test_acquire_when_released_mid_window(target: Path, delay: float) -> None:
    """Test that a waiter gets the lock soon after the holder disposes early."""
    lease, timeout = delay * 2, delay * 4
    holder = LeasedFileLock(target)
    assert await holder.try_acquire(lease)

    async def release_later() -> None:
        await asyncio.sleep(delay)
        holder.dispose()

    releaser = asyncio.create_task(release_later())

    with LeasedFileLock(target) as waiter:
        start = time.monotonic()
        acquired = await waiter.with_timeout(timeout, MINIMUM_RETRY).try_acquire(lease)
        elapsed = time.monotonic() - start

    await releaser
    assert acquired
    assert elapsed < timeout


@pytest.mark.asyncio
@pytest.mark.parametrize("lease", [1.0, 2.0])
async def test_free_lock_does_not_wait(target: Path, lease: float) -> None:
    """Test that an uncontended timed acquisition returns immediately."""
    with LeasedFileLock(target) as lock:
        start = time.monotonic()
        assert await lock.with_timeout(lease, lease / 2).try_acquire(lease)
        assert time.monotonic() - start < lease / 2


@pytest.mark.asyncio
async def test_lease_expiry_unblocks_waiter(target: Path) -> None:
    """Test that a lease nobody releases still lapses for the waiter."""
    with LeasedFileLock(target) as holder, LeasedFileLock(target) as waiter:
        assert await holder.try_acquire(0.1)
        assert await waiter.with_timeout(2.0, 0.01).try_acquire(HOUR)
        assert not await holder.try_acquire(HOUR)


@pytest.mark.asyncio
async def test_timed_out_lock_stays_cancelled(target: Path) -> None:
    """Test that a timed-out handle refuses later attempts."""
    with LeasedFileLock(target) as holder:
        assert await holder.try_acquire(0.2)
        waiter = LeasedFileLock(target).with_timeout(0.05, 0.01)
        assert not await waiter.try_acquire(HOUR)

    assert not holder.record_path.exists()
    assert not await waiter.try_acquire(HOUR)
    waiter.dispose()
