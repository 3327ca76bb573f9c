"""Persisted lock state: the two-line lock record and its store."""

import asyncio
import logging
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

import aiofiles
import aiofiles.os

from leasedfilelock.types import OwnerId

if os.name == "nt":
    import msvcrt
else:
    import fcntl

logger = logging.getLogger(__name__)

# Tick epoch and smallest representable release date
MIN_RELEASE_DATE = datetime(1, 1, 1, tzinfo=timezone.utc)

_TICKS_PER_SECOND = 10_000_000
_TICKS_PER_MICROSECOND = 10


def to_ticks(moment: datetime) -> int:
    """Convert an aware datetime to 100ns ticks since 0001-01-01 UTC."""
    delta = moment - MIN_RELEASE_DATE
    seconds = delta.days * 86_400 + delta.seconds
    return seconds * _TICKS_PER_SECOND + delta.microseconds * _TICKS_PER_MICROSECOND


def from_ticks(ticks: int) -> datetime:
    """
    Convert 100ns ticks since 0001-01-01 UTC to an aware datetime.

    Sub-microsecond ticks are truncated.

    Raises:
        OverflowError: If ``ticks`` is outside the datetime range
    """
    if ticks < 0:
        raise OverflowError(f"Negative tick count: {ticks}")
    return MIN_RELEASE_DATE + timedelta(microseconds=ticks // _TICKS_PER_MICROSECOND)


@dataclass(frozen=True)
class LockRecord:
    """Immutable snapshot of a lock file: who holds the lease and until when."""

    owner_id: OwnerId | None = None
    release_at: datetime = MIN_RELEASE_DATE

    def is_expired(self, now: datetime) -> bool:
        """Check if the lease has run out (a lease ending exactly now has)."""
        return self.release_at <= now

    def can_be_taken_by(self, owner_id: OwnerId, now: datetime) -> bool:
        """Check if ``owner_id`` may write this record without stealing a live lease."""
        return self.owner_id == owner_id or self.is_expired(now)

    def encode(self) -> str:
        """Render the record as the two-line lock file text."""
        owner = self.owner_id if self.owner_id is not None else uuid.UUID(int=0)
        return f"{owner}\n{to_ticks(self.release_at)}\n"

    @classmethod
    def decode(cls, text: str) -> "LockRecord":
        """
        Parse lock file text.

        Anything other than exactly two lines holding a UUID and an integer
        tick count decodes to the empty record.
        """
        lines = text.splitlines()
        if len(lines) != 2:
            return cls()
        try:
            owner_id = uuid.UUID(lines[0].strip())
            release_at = from_ticks(int(lines[1].strip()))
        except (ValueError, OverflowError):
            return cls()
        if owner_id.int == 0:
            owner_id = None
        return cls(owner_id=owner_id, release_at=release_at)


def _lock_nonblocking(fileno: int, *, exclusive: bool) -> None:
    """
    Take an OS lock on an open file without waiting.

    Raises:
        OSError: If another handle holds a conflicting lock
    """
    if os.name == "nt":
        # Byte-range locks are mandatory on Windows, so readers need none.
        if exclusive:
            msvcrt.locking(fileno, msvcrt.LK_NBLCK, 1)
        return
    mode = fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH
    fcntl.flock(fileno, mode | fcntl.LOCK_NB)


def _write_locked(path: Path, payload: str) -> None:
    """Open, exclusively lock, overwrite and close the record file in one go."""
    with open(path, "a+", encoding="utf-8") as f:
        f.seek(0)
        _lock_nonblocking(f.fileno(), exclusive=True)
        f.truncate(0)
        f.write(payload)
        f.flush()


class LockRecordStore:
    """
    Reads and writes the lock record for a single lock file.

    Writers hold an exclusive OS lock for the duration of one write, which is
    the only synchronization between competing processes. Reads never fail:
    a missing, contended, or corrupt file reads as the empty record.
    """

    def __init__(self, path: Path, owner_id: OwnerId | None = None) -> None:
        """
        Initialize the store.

        Args:
            path: Location of the lock file
            owner_id: Identifier this instance writes; a random UUID if omitted
        """
        self.path = path
        self.owner_id = owner_id if owner_id is not None else uuid.uuid4()

    async def write_record(self, owner_id: OwnerId, release_at: datetime) -> bool:
        """
        Write the record under an exclusive lock.

        Returns:
            True if written, False if the file was locked elsewhere, any
            I/O error occurred, or release_at is not timezone-aware
        """
        try:
            payload = LockRecord(owner_id=owner_id, release_at=release_at).encode()
            # The exclusive lock is taken and dropped inside this one worker call
            await asyncio.to_thread(_write_locked, self.path, payload)
        except (OSError, TypeError) as exc:
            logger.debug("Lock record write to %s failed: %s", self.path, exc)
            return False
        return True

    async def read_record(self) -> LockRecord:
        """Read the current record, or the empty record if none can be read."""
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8-sig") as f:
                _lock_nonblocking(f.fileno(), exclusive=False)
                text = await f.read()
        except FileNotFoundError:
            return LockRecord()
        except (OSError, ValueError) as exc:
            logger.debug("Lock record read from %s failed: %s", self.path, exc)
            return LockRecord()
        return LockRecord.decode(text)

    async def release_date(self) -> datetime:
        """Return the persisted release date (MIN_RELEASE_DATE if none)."""
        record = await self.read_record()
        return record.release_at

    async def is_owned_by_this_instance(self) -> bool:
        """Check whether the persisted owner is this store's owner id."""
        record = await self.read_record()
        return record.owner_id == self.owner_id

    async def delete_record(self) -> None:
        """
        Remove the lock file.

        Raises:
            OSError: If the file is missing or cannot be removed
        """
        await aiofiles.os.remove(self.path)
