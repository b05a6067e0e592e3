"""Exceptions raised by the sync engine."""


class SyncError(Exception):
    """Base exception for calendar sync errors."""

    pass


class FetchError(SyncError):
    """Feed could not be downloaded (network failure, timeout, non-2xx)."""

    pass


class FormatError(SyncError):
    """Feed body is empty or lacks the VCALENDAR wrapper."""

    pass


class EventValidationError(SyncError):
    """A single event cannot be reconciled (bad date range, missing fields)."""

    pass


class PersistenceError(SyncError):
    """A store write or read failed."""

    pass


class ConflictNotFoundError(SyncError):
    """No conflict exists with the requested id."""

    pass
