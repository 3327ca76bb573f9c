"""Basic usage example for leasedfilelock."""

import asyncio
import tempfile
from pathlib import Path

from leasedfilelock import LeasedFileLock


async def main() -> None:
    """Demonstrate taking, inspecting and releasing a lock."""
    with tempfile.TemporaryDirectory() as tmpdir:
        target = Path(tmpdir) / "report.csv"
        target.touch()

        print("=== Basic Lock Example ===\n")

        with LeasedFileLock(target) as first, LeasedFileLock(target) as second:
            # First handle takes a one minute lease
            print(f"First handle acquired: {await first.try_acquire(60.0)}")
            print(f"Lock file: {first.record_path.name}")
            print(f"Lease ends at: {await first.get_release_date():%H:%M:%S}\n")

            # Second handle loses while the lease is live
            print(f"Second handle acquired: {await second.try_acquire(60.0)}")

            # Holder extends its lease
            await first.add_time(30.0)
            print(f"Extended lease ends at: {await first.get_release_date():%H:%M:%S}\n")

        # Leaving the block disposed both handles and removed the lock file
        print(f"Lock file still present: {first.record_path.exists()}")


if __name__ == "__main__":
    asyncio.run(main())
