"""
Errors - Exception taxonomy for the reconciliation framework.

Every error carries a human readable message and a ``reason`` which the
controller uses when recording a warning event on the reconciled object.
"""


class OperatorError(Exception):
    """Base class for all framework errors."""

    reason = "ReconcileFailed"

    def __init__(self, message: str = ""):
        self.message = message
        super().__init__(message)


class ConfigurationError(OperatorError):
    """Raised at construction time for invalid or missing configuration."""

    reason = "InvalidConfig"


class ExecutionFailedError(OperatorError):
    """Raised when a chain invariant is violated, e.g. an empty chain."""

    reason = "ExecutionFailed"


class TransientError(OperatorError):
    """Base class for errors which may resolve when retried."""

    reason = "TransientFailure"


class NotEstablishedError(TransientError):
    """Raised while a custom type is created but not yet established."""

    reason = "NotEstablished"


class ConflictError(TransientError):
    """Raised when an optimistic-concurrency update lost a race."""

    reason = "Conflict"


class NameConflictError(OperatorError):
    """Raised when the API refused the names of a custom type."""

    reason = "NameConflict"


class WrongTypeError(OperatorError):
    """Raised when a chained state value does not have the expected type."""

    reason = "WrongType"


class CanceledError(OperatorError):
    """Raised when a backoff loop is stopped through its cancel token."""

    reason = "Canceled"


class InvalidEventError(OperatorError):
    """Raised for watch events of an unknown type."""

    reason = "InvalidEvent"


class AlreadyExistsError(OperatorError):
    """Raised by backends when creating an object which already exists."""

    reason = "AlreadyExists"


class NotFoundError(OperatorError):
    """Raised by backends when an object does not exist."""

    reason = "NotFound"
