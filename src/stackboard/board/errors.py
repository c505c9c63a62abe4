"""Exceptions raised by the board engine and its data sources."""


class BoardError(Exception):
    """Base class for board engine errors."""


class ConfigurationError(BoardError):
    """The table or view is not set up to support the attempted operation.

    Raised for a table without a primary key, a view without a grouping
    column, or an attempt to delete the uncategorized stack. Never retried.
    """


class DataSourceError(BoardError):
    """A backend call failed (network, validation or server error).

    Attributes:
        operation: Name of the data-source operation that failed
        message: Human-readable failure description
        status: HTTP status code when the failure came from a response
    """

    def __init__(self, operation: str, message: str, status: int | None = None) -> None:
        self.operation = operation
        self.message = message
        self.status = status
        super().__init__(f"{operation} failed: {message}")
