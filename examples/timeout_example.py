"""Example demonstrating retries, lease expiry and continuous refresh."""

import asyncio
import tempfile
import time
from pathlib import Path

from leasedfilelock import LeasedFileLock


async def slow_worker(target: Path, worker_id: str, lease: float) -> None:
    """
    Worker that takes a short lease and never releases it.

    Other workers get the lock once the lease runs out, even though this
    worker's handle is still alive.
    """
    lock = LeasedFileLock(target)
    if await lock.try_acquire(lease):
        print(f"[{worker_id}] Got the lock for {lease:.1f}s and went quiet")


async def patient_worker(target: Path, worker_id: str) -> None:
    """Worker that retries until the lock frees up."""
    async with LeasedFileLock(target).with_timeout(5.0, 0.1) as lock:
        start = time.monotonic()
        if await lock.try_acquire(1.0):
            print(f"[{worker_id}] ✓ Got the lock after {time.monotonic() - start:.1f}s")
            await asyncio.sleep(0.2)
        else:
            print(f"[{worker_id}] ✗ Gave up")


async def main() -> None:
    """Demonstrate lease expiry unblocking waiters."""
    print("=== Lease Expiry and Retry Example ===\n")

    with tempfile.TemporaryDirectory() as tmpdir:
        target = Path(tmpdir) / "shared.db"
        target.touch()

        await slow_worker(target, "Slow-Worker", lease=1.0)
        await asyncio.gather(
            patient_worker(target, "Patient-A"),
            patient_worker(target, "Patient-B"),
        )


async def refresh_example() -> None:
    """Example with a lease kept alive in the background."""
    print("\n\n=== Continuous Refresh Example ===\n")

    with tempfile.TemporaryDirectory() as tmpdir:
        target = Path(tmpdir) / "shared.db"
        target.touch()

        cancel = asyncio.Event()
        async with LeasedFileLock(target) as holder, LeasedFileLock(target) as other:
            await holder.try_acquire(0.5, continuous_refresh=True, cancel=cancel)

            await asyncio.sleep(1.5)
            print(f"After 1.5s another handle acquires: {await other.try_acquire(1.0)}")

            # Stop refreshing and let the lease run out
            cancel.set()
            await asyncio.sleep(1.5)
            print(f"After cancelling, another handle acquires: {await other.try_acquire(1.0)}")


if __name__ == "__main__":
    asyncio.run(main())
    asyncio.run(refresh_example())
