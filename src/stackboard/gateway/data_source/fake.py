"""In-memory fake implementation of DataSource for testing."""

import re

from stackboard.board.errors import DataSourceError
from stackboard.board.types import (
    PK_SEPARATOR,
    AuditRecord,
    GroupedStackPage,
    PageInfo,
    PageParams,
    Record,
    RowDeleteBlocked,
    RowsPage,
    SelectOption,
    TableMeta,
    ViewMetadata,
    ViewMetadataUpdate,
    ViewQuery,
)
from stackboard.gateway.data_source.abc import DataSource

_WHERE_PATTERN = re.compile(r"^\((?P<field>[^,]+),(?P<op>eq|is),(?P<value>.*)\)$")


class FakeDataSource(DataSource):
    """In-memory fake for testing.

    All state is provided via constructor using keyword arguments. Every
    mutation is recorded for test assertions, and any operation can be made
    to fail by name through `fail_on`.

    Usage:
        source = FakeDataSource(
            table=table,
            rows=[{"Id": 1, "Status": "Todo"}],
            view=ViewMetadata(view_id="vw1", grouping_column_id="col-status",
                              serialized_stack_meta=None),
        )
        source.fail_on.add("bulk_update_by_filter")
    """

    def __init__(
        self,
        *,
        table: TableMeta,
        rows: list[Record] | None = None,
        view: ViewMetadata | None = None,
        first_page_size: int = 25,
        blocked_deletes: dict[str, tuple[str, ...]] | None = None,
    ) -> None:
        """Create FakeDataSource with pre-configured state.

        Args:
            table: Table definition returned by fetch_table_meta
            rows: Stored rows
            view: View metadata, defaults to a view without grouping column
            first_page_size: Rows per stack returned by fetch_grouped_rows
            blocked_deletes: Primary keys whose delete is refused, with reasons
        """
        self._table = table
        self._rows: list[Record] = [dict(r) for r in rows] if rows is not None else []
        self._view = (
            view
            if view is not None
            else ViewMetadata(view_id="view", grouping_column_id=None, serialized_stack_meta=None)
        )
        self._first_page_size = first_page_size
        self._blocked_deletes = dict(blocked_deletes) if blocked_deletes is not None else {}
        self.fail_on: set[str] = set()

        self._view_updates: list[ViewMetadataUpdate] = []
        self._column_option_updates: list[tuple[str, tuple[SelectOption, ...]]] = []
        self._created_rows: list[Record] = []
        self._row_updates: list[tuple[str, Record]] = []
        self._deleted_keys: list[str] = []
        self._bulk_updates: list[tuple[Record, str]] = []
        self._audits: list[tuple[str, AuditRecord]] = []
        self._page_requests: list[tuple[str, ViewQuery, PageParams]] = []

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise DataSourceError(operation, "simulated failure", status=500)

    # === READ OPERATIONS ===

    async def fetch_table_meta(self, table_id: str) -> TableMeta:
        self._check("fetch_table_meta")
        return self._table

    async def fetch_view_metadata(self, view_id: str) -> ViewMetadata:
        self._check("fetch_view_metadata")
        return self._view

    async def fetch_grouped_rows(
        self,
        *,
        table_id: str,
        view_id: str,
        grouping_column_id: str,
        query: ViewQuery,
    ) -> list[GroupedStackPage]:
        """Group stored rows by the grouping column, one page per option plus None."""
        self._check("fetch_grouped_rows")
        column = self._table.column_by_id(grouping_column_id)
        if column is None:
            raise DataSourceError("fetch_grouped_rows", f"unknown column {grouping_column_id}")
        keys: list[str | None] = [opt.title for opt in column.options]
        keys.append(None)
        pages: list[GroupedStackPage] = []
        for key in keys:
            matching = [r for r in self._rows if r.get(column.title) == key]
            pages.append(
                GroupedStackPage(
                    key=key,
                    rows=tuple(dict(r) for r in matching[: self._first_page_size]),
                    total_count=len(matching),
                )
            )
        return pages

    async def fetch_rows_page(
        self,
        *,
        table_id: str,
        view_id: str,
        where: str,
        query: ViewQuery,
        page: PageParams,
    ) -> RowsPage:
        """Filter stored rows by a single (field,eq,value) / (field,is,null) expression."""
        self._check("fetch_rows_page")
        self._page_requests.append((where, query, page))
        matching = [r for r in self._rows if _matches(r, where)]
        window = matching[page.offset : page.offset + page.limit]
        return RowsPage(
            rows=tuple(dict(r) for r in window),
            page_info=PageInfo(
                total_rows=len(matching),
                offset=page.offset,
                is_last_page=page.offset + page.limit >= len(matching),
            ),
        )

    # === WRITE OPERATIONS ===

    async def update_view_metadata(self, view_id: str, updates: ViewMetadataUpdate) -> None:
        self._check("update_view_metadata")
        self._view_updates.append(updates)
        self._view = ViewMetadata(
            view_id=self._view.view_id,
            grouping_column_id=(
                updates.grouping_column_id
                if updates.grouping_column_id is not None
                else self._view.grouping_column_id
            ),
            serialized_stack_meta=(
                updates.serialized_stack_meta
                if updates.serialized_stack_meta is not None
                else self._view.serialized_stack_meta
            ),
        )

    async def update_column_options(
        self, column_id: str, options: tuple[SelectOption, ...]
    ) -> None:
        self._check("update_column_options")
        self._column_option_updates.append((column_id, options))
        self._table = self._table.with_column_options(column_id, options)

    async def create_row(self, *, table_id: str, view_id: str, values: Record) -> Record:
        self._check("create_row")
        created = dict(values)
        for col in self._table.columns:
            if col.is_auto_generated and col.is_primary_key:
                existing = [r.get(col.title) for r in self._rows if isinstance(r.get(col.title), int)]
                created[col.title] = max(existing, default=0) + 1
        self._rows.append(created)
        self._created_rows.append(dict(created))
        return dict(created)

    async def update_row_field(
        self,
        *,
        table_id: str,
        view_id: str,
        primary_key: str,
        values: Record,
    ) -> Record:
        self._check("update_row_field")
        self._row_updates.append((primary_key, dict(values)))
        row = self._find(primary_key)
        if row is None:
            raise DataSourceError("update_row_field", f"row {primary_key} not found", status=404)
        row.update(values)
        return dict(row)

    async def delete_row(
        self, *, table_id: str, view_id: str, primary_key: str
    ) -> RowDeleteBlocked | None:
        self._check("delete_row")
        reasons = self._blocked_deletes.get(primary_key)
        if reasons is not None:
            return RowDeleteBlocked(reasons=reasons)
        row = self._find(primary_key)
        if row is not None:
            self._rows.remove(row)
        self._deleted_keys.append(primary_key)
        return None

    async def bulk_update_by_filter(self, *, table_id: str, values: Record, where: str) -> None:
        self._check("bulk_update_by_filter")
        self._bulk_updates.append((dict(values), where))
        for row in self._rows:
            if _matches(row, where):
                row.update(values)

    async def record_audit(self, *, table_id: str, primary_key: str, record: AuditRecord) -> None:
        self._check("record_audit")
        self._audits.append((primary_key, record))

    def _find(self, primary_key: str) -> Record | None:
        pk_columns = self._table.primary_key_columns
        for row in self._rows:
            key = PK_SEPARATOR.join(str(row.get(col.title, "")) for col in pk_columns)
            if key == primary_key:
                return row
        return None

    # === TEST ASSERTIONS ===

    @property
    def rows(self) -> tuple[Record, ...]:
        return tuple(dict(r) for r in self._rows)

    @property
    def table(self) -> TableMeta:
        return self._table

    @property
    def view(self) -> ViewMetadata:
        return self._view

    @property
    def view_updates(self) -> tuple[ViewMetadataUpdate, ...]:
        return tuple(self._view_updates)

    @property
    def column_option_updates(self) -> tuple[tuple[str, tuple[SelectOption, ...]], ...]:
        return tuple(self._column_option_updates)

    @property
    def created_rows(self) -> tuple[Record, ...]:
        return tuple(self._created_rows)

    @property
    def row_updates(self) -> tuple[tuple[str, Record], ...]:
        return tuple(self._row_updates)

    @property
    def deleted_keys(self) -> tuple[str, ...]:
        return tuple(self._deleted_keys)

    @property
    def bulk_updates(self) -> tuple[tuple[Record, str], ...]:
        return tuple(self._bulk_updates)

    @property
    def audits(self) -> tuple[tuple[str, AuditRecord], ...]:
        return tuple(self._audits)

    @property
    def page_requests(self) -> tuple[tuple[str, ViewQuery, PageParams], ...]:
        return tuple(self._page_requests)


def _matches(row: Record, where: str) -> bool:
    match = _WHERE_PATTERN.match(where)
    if match is None:
        raise DataSourceError("filter", f"unsupported where expression {where!r}", status=400)
    value = row.get(match.group("field"))
    if match.group("op") == "is":
        return value is None
    return value == match.group("value")
