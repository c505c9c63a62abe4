"""Console implementation of UserFeedback using rich."""

from rich.console import Console

from stackboard.gateway.feedback.abc import UserFeedback


class ConsoleFeedback(UserFeedback):
    """Writes notices and errors to stderr."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console if console is not None else Console(stderr=True)

    def info(self, message: str) -> None:
        self._console.print(f"[cyan]i[/cyan] {message}", highlight=False)

    def error(self, message: str) -> None:
        self._console.print(f"[bold red]Error:[/bold red] {message}", highlight=False)
