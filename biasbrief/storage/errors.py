"""Storage error taxonomy. Every storage error is recoverable."""


class StorageError(Exception):
    """Base class for preference storage failures."""


class QuotaExceededError(StorageError):
    """The backing storage rejected a write because it is full."""


class StorageParseError(StorageError):
    """A stored value is not valid for its type."""


class StorageUnavailableError(StorageError):
    """The backing storage is missing, disabled or unreachable."""
