import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

import click
from rich.console import Console
from rich.table import Table

from stackboard.board.errors import BoardError
from stackboard.board.store import BoardStore, EditableBoardStore
from stackboard.board.types import StackDescriptor, StackKey
from stackboard.core.context import BoardContext, create_context
from stackboard.gateway.data_source.abc import DataSource, ReadOnlyDataSource

CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])

UNCATEGORIZED_LABEL = "Uncategorized"

P = ParamSpec("P")
T = TypeVar("T")


def board_options(f: Callable[P, T]) -> Callable[P, T]:
    """Options addressing one stacked view of a table."""
    f = click.option("--view", "view_id", required=True, help="Kanban view id")(f)
    f = click.option("--table", "table_id", required=True, help="Table id")(f)
    return f


def _run(coro: Awaitable[T]) -> T:
    async def runner() -> T:
        return await coro

    try:
        return asyncio.run(runner())
    except BoardError as e:
        raise click.ClickException(str(e)) from e


async def _open_store(
    ctx: BoardContext, source: ReadOnlyDataSource, table_id: str, view_id: str
) -> BoardStore:
    store = await BoardStore.open(
        source,
        table_id=table_id,
        view_id=view_id,
        feedback=ctx.feedback,
        page_size=ctx.config.page_size,
        uncategorized_color=ctx.config.uncategorized_color,
        uncategorized_order=ctx.config.uncategorized_order,
    )
    await store.load()
    return store


async def _open_editable(
    ctx: BoardContext, source: DataSource, table_id: str, view_id: str
) -> EditableBoardStore:
    store = await EditableBoardStore.open(
        source,
        table_id=table_id,
        view_id=view_id,
        feedback=ctx.feedback,
        page_size=ctx.config.page_size,
        uncategorized_color=ctx.config.uncategorized_color,
        uncategorized_order=ctx.config.uncategorized_order,
    )
    await store.load()
    return store


def _stack_label(key: StackKey) -> str:
    return UNCATEGORIZED_LABEL if key is None else key


def _find_descriptor(store: BoardStore, title: str) -> StackDescriptor:
    for descriptor in store.stacks:
        if descriptor.title == title:
            return descriptor
    raise click.ClickException(f"Stack {title!r} is not on this board")


def _stack_key(title: str | None, uncategorized: bool) -> StackKey:
    if uncategorized:
        return None
    if title is None:
        raise click.UsageError("Pass a stack title or --uncategorized")
    return title


def _render_board(store: BoardStore, *, with_rows: bool) -> None:
    console = Console(width=200)

    table = Table(show_header=True, header_style="bold", box=None)
    table.add_column("Stack", style="cyan", no_wrap=True)
    table.add_column("Rows", justify="right", no_wrap=True)
    table.add_column("Color", no_wrap=True)
    table.add_column("State", no_wrap=True)

    for descriptor in store.stacks:
        loaded = len(store.rows(descriptor.title))
        count = store.count(descriptor.title)
        rows_display = f"{loaded}/{count}" if loaded < count else str(count)
        color = descriptor.color if descriptor.color is not None else "-"
        state = "[dim]collapsed[/dim]" if descriptor.collapsed else "[green]open[/green]"
        table.add_row(_stack_label(descriptor.title), rows_display, color, state)
    console.print(table)

    if not with_rows:
        return

    pk_titles = [col.title for col in store.table.primary_key_columns]
    for descriptor in store.stacks:
        if descriptor.collapsed:
            continue
        rows = store.rows(descriptor.title)
        if not rows:
            continue
        stack_table = Table(title=_stack_label(descriptor.title), box=None, header_style="bold")
        for title in pk_titles:
            stack_table.add_column(title, style="yellow", no_wrap=True)
        for entry in rows:
            stack_table.add_row(*(str(entry.current.get(title, "")) for title in pk_titles))
        console.print(stack_table)


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(package_name="stackboard")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, debug: bool) -> None:
    """Browse and edit a table as stacks grouped by a single-select field."""
    if debug:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s - %(levelname)s - %(message)s")

    # Only create context if not already provided (e.g., by tests)
    if ctx.obj is None:
        ctx.obj = create_context()


@cli.command("show")
@board_options
@click.option("--shared", "shared_uuid", default=None, help="Open a shared view (read-only)")
@click.option("--password", default=None, help="Password of the shared view")
@click.option("--rows", "with_rows", is_flag=True, help="List the loaded rows of each stack")
@click.pass_obj
def show_cmd(
    ctx: BoardContext,
    table_id: str,
    view_id: str,
    shared_uuid: str | None,
    password: str | None,
    with_rows: bool,
) -> None:
    """Show the stacks of a view with their row counts."""

    async def run() -> BoardStore:
        source = (
            ctx.open_shared_source(shared_uuid, password)
            if shared_uuid is not None
            else ctx.open_source()
        )
        try:
            return await _open_store(ctx, source, table_id, view_id)
        finally:
            await source.close()

    store = _run(run())
    _render_board(store, with_rows=with_rows)


@cli.command("load-more")
@board_options
@click.argument("stack", required=False)
@click.option("--uncategorized", is_flag=True, help="Target the uncategorized stack")
@click.option("--shared", "shared_uuid", default=None, help="Open a shared view (read-only)")
@click.option("--password", default=None, help="Password of the shared view")
@click.pass_obj
def load_more_cmd(
    ctx: BoardContext,
    table_id: str,
    view_id: str,
    stack: str | None,
    uncategorized: bool,
    shared_uuid: str | None,
    password: str | None,
) -> None:
    """Load the next page of one stack."""
    key = _stack_key(stack, uncategorized)

    async def run() -> tuple[int, int, bool]:
        source = (
            ctx.open_shared_source(shared_uuid, password)
            if shared_uuid is not None
            else ctx.open_source()
        )
        try:
            store = await _open_store(ctx, source, table_id, view_id)
            if not store.cache.has_stack(key):
                raise click.ClickException(f"Stack {_stack_label(key)!r} is not on this board")
            loaded = await store.load_more(key)
            return len(store.rows(key)), store.count(key), loaded
        finally:
            await source.close()

    loaded_rows, count, ok = _run(run())
    if not ok:
        raise SystemExit(1)
    click.echo(f"{_stack_label(key)}: {loaded_rows}/{count} rows loaded")


@cli.command("move-row")
@board_options
@click.argument("primary_key")
@click.argument("stack", required=False)
@click.option("--uncategorized", is_flag=True, help="Move to the uncategorized stack")
@click.pass_obj
def move_row_cmd(
    ctx: BoardContext,
    table_id: str,
    view_id: str,
    primary_key: str,
    stack: str | None,
    uncategorized: bool,
) -> None:
    """Move a row to another stack by setting its grouping value."""
    key = _stack_key(stack, uncategorized)

    async def run() -> bool:
        source = ctx.open_source()
        try:
            store = await _open_editable(ctx, source, table_id, view_id)
            if key is not None:
                _find_descriptor(store, key)
            entry = store.find_row(primary_key)
            if entry is None:
                raise click.ClickException(f"Row {primary_key} is not loaded on this board")
            moved = await store.move_row(entry, key)
            await store.drain_audits()
            return moved
        finally:
            await source.close()

    if not _run(run()):
        raise SystemExit(1)
    click.echo(f"Moved row {primary_key} to {_stack_label(key)}")


@cli.command("delete-stack")
@board_options
@click.argument("title")
@click.pass_obj
def delete_stack_cmd(ctx: BoardContext, table_id: str, view_id: str, title: str) -> None:
    """Delete a stack; its rows move to the uncategorized stack."""

    async def run() -> bool:
        source = ctx.open_source()
        try:
            store = await _open_editable(ctx, source, table_id, view_id)
            return await store.delete_stack(title)
        finally:
            await source.close()

    if not _run(run()):
        raise SystemExit(1)
    click.echo(f"Deleted stack {title}")


@cli.command("collapse")
@board_options
@click.argument("title", required=False)
@click.option("--uncategorized", is_flag=True, help="Target the uncategorized stack")
@click.option("--expand", is_flag=True, help="Expand instead of collapsing")
@click.pass_obj
def collapse_cmd(
    ctx: BoardContext,
    table_id: str,
    view_id: str,
    title: str | None,
    uncategorized: bool,
    expand: bool,
) -> None:
    """Collapse (or expand) a stack."""
    key = _stack_key(title, uncategorized)

    async def run() -> bool:
        source = ctx.open_source()
        try:
            store = await _open_editable(ctx, source, table_id, view_id)
            descriptor = _find_descriptor(store, key) if key is not None else None
            stack_id = descriptor.id if descriptor is not None else _uncategorized_id(store)
            return await store.set_collapsed(stack_id, not expand)
        finally:
            await source.close()

    if not _run(run()):
        raise SystemExit(1)
    state = "Expanded" if expand else "Collapsed"
    click.echo(f"{state} stack {_stack_label(key)}")


def _uncategorized_id(store: BoardStore) -> str:
    for descriptor in store.stacks:
        if descriptor.is_uncategorized:
            return descriptor.id
    raise click.ClickException("Board has no uncategorized stack")
