"""Core types for the stacked board view."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any

# Stack key of the reserved "uncategorized" stack (rows with no grouping value)
UNCATEGORIZED_KEY = None

# Stack id of the reserved "uncategorized" descriptor; never deleted or reassigned
UNCATEGORIZED_ID = "uncategorized"

# Separator used to build composite primary-key strings
PK_SEPARATOR = "___"

StackKey = str | None
Record = dict[str, Any]


@dataclass(frozen=True)
class SelectOption:
    """One option of a single-select grouping column.

    Attributes:
        id: Stable option identifier (never changes across renames)
        title: User-visible option title, also the grouping value stored on rows
        order: Display order, None when the column does not carry one
        color: Display color (e.g. "#cfdffe"), None when unset
    """

    id: str
    title: str
    order: float | None
    color: str | None


@dataclass(frozen=True)
class TableColumn:
    """Column definition of the underlying table.

    Attributes:
        title: Column title, the key used in row records
        is_primary_key: True when the column is part of the primary key
        is_auto_generated: True for auto-increment / server-generated columns
        column_id: Backend column identifier
        options: Select options when the column is a single-select column
    """

    title: str
    is_primary_key: bool
    is_auto_generated: bool
    column_id: str
    options: tuple[SelectOption, ...] = ()


@dataclass(frozen=True)
class TableMeta:
    """Table definition: identity and columns."""

    id: str
    title: str
    columns: tuple[TableColumn, ...]

    @property
    def primary_key_columns(self) -> tuple[TableColumn, ...]:
        return tuple(col for col in self.columns if col.is_primary_key)

    def column_by_id(self, column_id: str) -> TableColumn | None:
        for col in self.columns:
            if col.column_id == column_id:
                return col
        return None

    def with_column_options(
        self, column_id: str, options: tuple[SelectOption, ...]
    ) -> TableMeta:
        return replace(
            self,
            columns=tuple(
                replace(col, options=options) if col.column_id == column_id else col
                for col in self.columns
            ),
        )


@dataclass(frozen=True)
class GroupingColumn:
    """The single-select column whose value determines stack membership.

    Attributes:
        id: Backend column identifier
        title: Column title (the field name on row records)
        options: Authoritative option set, in the column's natural order
    """

    id: str
    title: str
    options: tuple[SelectOption, ...]

    @staticmethod
    def from_column(column: TableColumn) -> GroupingColumn:
        return GroupingColumn(id=column.column_id, title=column.title, options=column.options)

    def without_option(self, title: str) -> GroupingColumn:
        return GroupingColumn(
            id=self.id,
            title=self.title,
            options=tuple(opt for opt in self.options if opt.title != title),
        )


@dataclass(frozen=True)
class StackDescriptor:
    """Display configuration for one stack.

    Attributes:
        id: Option id, or UNCATEGORIZED_ID for the reserved stack
        title: Stack title (Row Cache key), None for the uncategorized stack
        order: Sort position; stacks render by ascending order
        color: Display color
        collapsed: Locally owned collapse flag, never present on the column option
    """

    id: str
    title: str | None
    order: float
    color: str | None
    collapsed: bool

    @property
    def is_uncategorized(self) -> bool:
        return self.id == UNCATEGORIZED_ID

    def matches_option(self, option: SelectOption, *, fallback_order: float) -> bool:
        """Compare against an option, ignoring the locally owned collapsed flag."""
        option_order = option.order if option.order is not None else fallback_order
        return (
            self.title == option.title and self.order == option_order and self.color == option.color
        )


@dataclass
class RowEntry:
    """A cached row.

    Mutable: `current` is edited in place by the caller and overwritten with
    the server's echo after a successful write.

    Attributes:
        current: Live, editable projection of the row
        original: Last-known server snapshot
        is_new: True for a local placeholder not yet persisted
    """

    current: Record
    original: Record
    is_new: bool = False

    @staticmethod
    def from_server(record: Record) -> RowEntry:
        return RowEntry(current=dict(record), original=dict(record), is_new=False)

    @staticmethod
    def placeholder() -> RowEntry:
        return RowEntry(current={}, original={}, is_new=True)

    def absorb(self, record: Record) -> None:
        """Overwrite both snapshots with a server-returned row."""
        self.current.update(record)
        self.original.update(record)


@dataclass(frozen=True)
class ViewMetadata:
    """Kanban view metadata as stored by the backend.

    Attributes:
        view_id: View identifier
        grouping_column_id: Column id of the grouping field, None when unset
        serialized_stack_meta: Raw stack-metadata overlay blob, None when never saved
    """

    view_id: str
    grouping_column_id: str | None
    serialized_stack_meta: str | None


@dataclass(frozen=True)
class ViewQuery:
    """Active sort/filter configuration of the view.

    When sorts_on_server / filters_on_server is True the server applies the
    view's saved configuration and the client must not send its own.
    """

    sorts: tuple[dict[str, Any], ...] = ()
    filters: tuple[dict[str, Any], ...] = ()
    sorts_on_server: bool = False
    filters_on_server: bool = False


@dataclass(frozen=True)
class PageParams:
    offset: int
    limit: int


@dataclass(frozen=True)
class PageInfo:
    total_rows: int
    offset: int
    is_last_page: bool


@dataclass(frozen=True)
class RowsPage:
    rows: tuple[Record, ...]
    page_info: PageInfo


@dataclass(frozen=True)
class GroupedStackPage:
    """First page of rows for one stack, as returned by the grouped load.

    Attributes:
        key: Stack key (grouping value), None for uncategorized
        rows: Materialized rows of the first page
        total_count: Total rows in the stack on the server
    """

    key: StackKey
    rows: tuple[Record, ...]
    total_count: int


@dataclass(frozen=True)
class AuditRecord:
    field_name: str
    new_value_encoded: str
    old_value_encoded: str


@dataclass(frozen=True)
class RowDeleteBlocked:
    """Soft failure returned when the backend refuses to delete a row.

    Attributes:
        reasons: Explanations from the backend (e.g. foreign-key constraints)
    """

    reasons: tuple[str, ...] = ()


@dataclass(frozen=True)
class ViewMetadataUpdate:
    """Mutable view metadata fields.

    All fields are optional - only provided fields are updated.

    Attributes:
        serialized_stack_meta: Encoded stack-metadata overlay
        grouping_column_id: Column id of the grouping field
    """

    serialized_stack_meta: str | None = None
    grouping_column_id: str | None = None
