class BinrelayError(Exception):
    """Base exception for binrelay errors."""


class ConfigurationError(BinrelayError):
    """Invalid or missing configuration; fatal at start."""


class MissingPrimaryKeyError(ConfigurationError):
    """An update or delete cannot be targeted because the table has no primary key."""


class InvalidIdentifierError(ConfigurationError, ValueError):
    """A table or column name is not safe to interpolate into SQL."""


class SerializationError(BinrelayError):
    """A change record could not be encoded or decoded."""


class NormalizationError(BinrelayError):
    """A row image does not match the table's column list."""


class QueueStoreError(BinrelayError):
    """Any failure while appending to or draining a task queue."""


class PositionError(BinrelayError):
    """The persisted resume position could not be read."""


class DeliveryError(BinrelayError):
    """Failure fetching a payload from the delivery endpoint."""
