"""leasedfilelock - Cross-process file locks with expiring leases."""

from leasedfilelock.core import DEFAULT_DISPOSE_TIMEOUT, LOCK_FILE_SUFFIX, LeasedFileLock
from leasedfilelock.errors import (
    InvalidConfigurationError,
    LeasedFileLockError,
    LockDisposedError,
)
from leasedfilelock.record import MIN_RELEASE_DATE, LockRecord, LockRecordStore

__version__ = "0.0.1"

__all__ = [
    "LeasedFileLock",
    "LockRecord",
    "LockRecordStore",
    "MIN_RELEASE_DATE",
    "DEFAULT_DISPOSE_TIMEOUT",
    "LOCK_FILE_SUFFIX",
    "LeasedFileLockError",
    "InvalidConfigurationError",
    "LockDisposedError",
]
