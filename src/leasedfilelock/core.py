"""Main LeasedFileLock implementation."""

import asyncio
import concurrent.futures
import logging
import os
from collections.abc import Coroutine
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from leasedfilelock.errors import InvalidConfigurationError, LockDisposedError
from leasedfilelock.record import LockRecordStore
from leasedfilelock.timing import run_detached, timeout_after, wait_until_set
from leasedfilelock.types import OwnerId, StrPath

logger = logging.getLogger(__name__)

LOCK_FILE_SUFFIX = ".lock"

# Upper bound in seconds on the ownership check performed while disposing
DEFAULT_DISPOSE_TIMEOUT = 10.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LeasedFileLock:
    """
    Cross-process lock on a file, backed by a lease record next to it.

    Handles race to write ``<target>.lock`` under an exclusive OS lock. A
    lease expires on its own at its release date, so a crashed holder never
    blocks others for longer than its lease. Each handle has a random owner
    id; only the handle whose id is in the record counts as the holder.
    """

    def __init__(
        self,
        path: StrPath,
        *,
        dispose_timeout: float = DEFAULT_DISPOSE_TIMEOUT,
    ) -> None:
        """
        Create a handle for the lock guarding ``path``.

        Args:
            path: File to guard. The lock record lives at the same path with
                its suffix replaced by ``.lock``.
            dispose_timeout: Seconds to wait for the ownership check when
                releasing on dispose; an unfinished check counts as not owned.

        Raises:
            InvalidConfigurationError: If the path is empty, whitespace, or
                has no file name, or dispose_timeout is not positive
        """
        raw = os.fspath(path)
        if not raw or not raw.strip():
            raise InvalidConfigurationError("Lock path cannot be empty or whitespace")
        try:
            record_path = Path(raw).with_suffix(LOCK_FILE_SUFFIX)
        except ValueError as exc:
            raise InvalidConfigurationError(f"Cannot derive a lock file from {raw!r}") from exc
        if dispose_timeout <= 0:
            raise InvalidConfigurationError("Dispose timeout must be positive")

        self.target_path = Path(raw)
        self.record_path = record_path
        self._store = LockRecordStore(record_path)
        self._dispose_timeout = dispose_timeout
        self._timeout: float | None = None
        self._retry_interval: float | None = None
        self._cancelled = asyncio.Event()
        self._deadline: asyncio.TimerHandle | None = None
        self._linked: set[asyncio.Event] = set()
        self._background: set[asyncio.Task[None]] = set()
        self._disposed = False

    @property
    def owner_id(self) -> OwnerId:
        """Identifier this handle writes into the lock record."""
        return self._store.owner_id

    @property
    def disposed(self) -> bool:
        return self._disposed

    def with_timeout(self, timeout: float, retry_interval: float) -> "LeasedFileLock":
        """
        Make acquisition retry until ``timeout`` seconds have passed.

        Args:
            timeout: Total time an acquisition may take
            retry_interval: Pause between failed attempts; must be shorter
                than ``timeout``

        Returns:
            This lock, for chaining

        Raises:
            InvalidConfigurationError: If retry_interval >= timeout or is negative
            LockDisposedError: If the lock is disposed
        """
        self._ensure_active()
        if retry_interval >= timeout:
            raise InvalidConfigurationError(
                "Retry interval cannot be greater than or equal to the timeout"
            )
        if retry_interval < 0:
            raise InvalidConfigurationError("Retry interval cannot be negative")
        self._timeout = timeout
        self._retry_interval = retry_interval
        return self

    def with_disposal_timeout(self, timeout: float) -> "LeasedFileLock":
        """Override how long dispose waits for the ownership check. Returns this lock."""
        self._ensure_active()
        if timeout <= 0:
            raise InvalidConfigurationError("Dispose timeout must be positive")
        self._dispose_timeout = timeout
        return self

    async def try_acquire(
        self,
        lease_duration: float,
        continuous_refresh: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> bool:
        """
        Try to take the lease for ``lease_duration`` seconds.

        Without a timeout policy this makes one attempt. With one (see
        with_timeout) it retries until an attempt succeeds or the timeout
        elapses. Losing a race and I/O failures both return False.

        Args:
            lease_duration: Lease length in seconds
            continuous_refresh: Keep extending the lease in the background
                until the lock is cancelled, times out, or is disposed
            cancel: Event that, once set, cancels this lock: in-flight
                attempts stop and background refreshing ends

        Returns:
            True if this handle now holds the lease

        Raises:
            LockDisposedError: If the lock is disposed
        """
        self._ensure_active()
        if cancel is not None:
            self._link_cancellation(cancel)

        if self._timeout is None or self._retry_interval is None:
            return await self._try_once(lease_duration, continuous_refresh)

        # The deadline stays armed after success and then ends refreshing
        if self._deadline is not None:
            self._deadline.cancel()
        self._deadline = asyncio.get_running_loop().call_later(self._timeout, self._cancel)
        while not self._cancelled.is_set():
            if await self._try_once(lease_duration, continuous_refresh):
                return True
            await wait_until_set(self._cancelled, self._retry_interval)
        logger.debug("Gave up acquiring %s", self.record_path)
        return False

    async def add_time(self, extra: float) -> None:
        """
        Push the persisted release date ``extra`` seconds further out.

        The record is rewritten with this handle's owner id without checking
        that this handle still holds the lease. Failures are logged only.

        Raises:
            LockDisposedError: If the lock is disposed
        """
        self._ensure_active()
        await self._extend(extra)

    async def get_release_date(self) -> datetime:
        """
        Return when the current lease runs out.

        Returns MIN_RELEASE_DATE if there is no readable lock record. The
        value is a snapshot and says nothing about who holds the lease.

        Raises:
            LockDisposedError: If the lock is disposed
        """
        self._ensure_active()
        return await self._store.release_date()

    def dispose(self) -> None:
        """
        Cancel background work and delete the lock record if this handle owns it.

        Safe to call from synchronous code and from inside a running event
        loop; the release runs on a private loop in a worker thread. Calling
        it again is a no-op. Never raises.
        """
        if not self._begin_disposal():
            return
        try:
            run_detached(self._release, timeout=2 * self._dispose_timeout)
        except concurrent.futures.TimeoutError:
            logger.warning("Releasing %s did not finish in time", self.record_path)

    async def close(self) -> None:
        """Async counterpart of dispose() that awaits background tasks on this loop."""
        if not self._begin_disposal():
            return
        for task in list(self._background):
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._release()

    def __enter__(self) -> "LeasedFileLock":
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.dispose()

    async def __aenter__(self) -> "LeasedFileLock":
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.close()

    def _ensure_active(self) -> None:
        if self._disposed:
            raise LockDisposedError(f"Lock on {self.target_path} has been disposed")

    def _cancel(self) -> None:
        """Set the cancellation signal; shared by every cancellation source."""
        if not self._disposed:
            self._cancelled.set()

    def _begin_disposal(self) -> bool:
        """Cancel and mark disposed. Returns False if already disposed."""
        if self._disposed:
            return False
        self._cancelled.set()
        self._disposed = True
        if self._deadline is not None:
            self._deadline.cancel()
        for task in list(self._background):
            if not task.done() and not task.get_loop().is_closed():
                task.cancel()
        return True

    async def _release(self) -> None:
        """Delete the lock record if this handle can prove it owns it."""
        try:
            owned = await timeout_after(
                self._store.is_owned_by_this_instance(), self._dispose_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Ownership check for %s timed out; leaving it in place", self.record_path)
            return
        if not owned:
            return
        try:
            await self._store.delete_record()
        except OSError as exc:
            logger.debug("Could not delete %s: %s", self.record_path, exc)
            return
        logger.info("Released lock %s", self.record_path)

    async def _try_once(self, lease_duration: float, continuous_refresh: bool) -> bool:
        """Single acquisition attempt; every failure mode is reported as False."""
        if lease_duration <= 0 or self._cancelled.is_set():
            return False

        try:
            now = _utcnow()
            record = await self._store.read_record()
            if not record.can_be_taken_by(self.owner_id, now):
                return False
            if self._cancelled.is_set():
                return False

            # The exclusive write is the real arbiter; the check above is a hint.
            release_at = _utcnow() + timedelta(seconds=lease_duration)
            if not await self._store.write_record(self.owner_id, release_at):
                return False
        except (OSError, ValueError, OverflowError) as exc:
            logger.debug("Acquisition attempt on %s failed: %s", self.record_path, exc)
            return False

        if self._cancelled.is_set():
            # Cancelled while writing: give the record back instead of holding it
            await self._release()
            return False

        logger.info("Acquired lock %s until %s", self.record_path, release_at.isoformat())
        if continuous_refresh:
            self._spawn(self._refresh_loop(lease_duration))
        return True

    async def _extend(self, extra: float) -> None:
        release_at = await self._store.release_date()
        try:
            new_release_at = release_at + timedelta(seconds=extra)
        except OverflowError:
            logger.debug("Cannot extend %s by %ss: out of range", self.record_path, extra)
            return
        if not await self._store.write_record(self.owner_id, new_release_at):
            logger.debug("Could not extend lease on %s", self.record_path)

    async def _refresh_loop(self, lease_duration: float) -> None:
        """Background task that keeps the lease ahead of the clock."""
        while not self._cancelled.is_set():
            await self._extend(lease_duration)
            if await wait_until_set(self._cancelled, lease_duration):
                break

    def _link_cancellation(self, cancel: asyncio.Event) -> None:
        if cancel in self._linked:
            return
        self._linked.add(cancel)
        if cancel.is_set():
            self._cancel()
            return
        self._spawn(self._forward_cancellation(cancel))

    async def _forward_cancellation(self, cancel: asyncio.Event) -> None:
        await cancel.wait()
        self._cancel()

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
