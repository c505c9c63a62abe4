"""stackboard: a stacked (kanban-style) view over a backend-stored table.

Rows are grouped into stacks by the value of a single-select grouping field.
See `stackboard --help` for the CLI.
"""

from stackboard.cli.cli import cli


def main() -> None:
    """CLI entry point used by the `stackboard` console script."""
    cli()
