"""Fake UserFeedback for testing."""

from stackboard.gateway.feedback.abc import UserFeedback


class FakeUserFeedback(UserFeedback):
    """Collects messages in memory for test assertions."""

    def __init__(self) -> None:
        self._infos: list[str] = []
        self._errors: list[str] = []

    def info(self, message: str) -> None:
        self._infos.append(message)

    def error(self, message: str) -> None:
        self._errors.append(message)

    @property
    def infos(self) -> tuple[str, ...]:
        return tuple(self._infos)

    @property
    def errors(self) -> tuple[str, ...]:
        return tuple(self._errors)
