"""Exception classes for leasedfilelock."""


class LeasedFileLockError(Exception):
    """Base exception for all leasedfilelock errors."""


class InvalidConfigurationError(LeasedFileLockError):
    """Raised when a lock is constructed or configured with invalid arguments."""


class LockDisposedError(LeasedFileLockError):
    """Raised when operations are attempted on a disposed lock."""
