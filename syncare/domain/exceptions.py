"""
Domain-specific exception hierarchy for the SynCare scheduling engine.
"""


class SyncareError(Exception):
    """Base class for all application-level errors."""


class InvalidInterval(SyncareError, ValueError):
    """Raised for an empty or inverted interval, or an unparsable timestamp."""


class InvalidRequest(SyncareError, ValueError):
    """Raised when a request carries values the engine cannot work with."""


class RecordNotFound(SyncareError, LookupError):
    """Raised when a referenced patient, practitioner or appointment is missing."""


class StorageError(SyncareError):
    """Raised when the record store cannot be read or written."""
