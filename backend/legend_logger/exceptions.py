"""
Legend Logger - Error types
"""


class LegendLoggerError(Exception):
    """Base class for errors raised by Legend Logger."""


class StorageFailure(LegendLoggerError):
    """
    The durable store could not complete a query or commit.

    Memory and storage can no longer be assumed to agree, so this is never
    handled inside the persistence layer; the application boundary decides
    what to do with it.
    """


class InvalidImageError(LegendLoggerError):
    """Image payload could not be decoded."""


class LayoutStateError(LegendLoggerError):
    """Layout event received in a state that does not accept it."""
