"""Abstract interface for user-visible board messages."""

from abc import ABC, abstractmethod


class UserFeedback(ABC):
    """Surface operation outcomes to the user.

    The board engine reports recoverable failures here instead of raising,
    so a failed edit leaves the board usable.
    """

    @abstractmethod
    def info(self, message: str) -> None:
        """Show an informational notice (e.g. a delete refused by the backend)."""
        ...

    @abstractmethod
    def error(self, message: str) -> None:
        """Show an error for an operation that was aborted."""
        ...
