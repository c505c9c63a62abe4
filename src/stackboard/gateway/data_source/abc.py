"""Abstract interfaces for board data sources.

Two capability levels:
- ReadOnlyDataSource: fetch operations only (shared/public views)
- DataSource: adds every mutation the editable board needs

The board engine depends only on these interfaces. A read-only board is
built on a ReadOnlyDataSource and simply has no mutation methods.

All implementations raise DataSourceError for network, validation or server
failures.
"""

from abc import ABC, abstractmethod

from stackboard.board.types import (
    AuditRecord,
    GroupedStackPage,
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


class ReadOnlyDataSource(ABC):
    """Fetch operations available to every board, shared views included."""

    async def close(self) -> None:
        """Release held resources (HTTP sessions). No-op by default."""
        return None

    @abstractmethod
    async def fetch_table_meta(self, table_id: str) -> TableMeta:
        """Fetch the table definition (columns, primary key, select options).

        Raises:
            DataSourceError: If the request fails
        """
        ...

    @abstractmethod
    async def fetch_view_metadata(self, view_id: str) -> ViewMetadata:
        """Fetch the kanban view metadata (grouping column and stack overlay blob).

        Raises:
            DataSourceError: If the request fails
        """
        ...

    @abstractmethod
    async def fetch_grouped_rows(
        self,
        *,
        table_id: str,
        view_id: str,
        grouping_column_id: str,
        query: ViewQuery,
    ) -> list[GroupedStackPage]:
        """Fetch the first page of every stack in one call.

        Args:
            table_id: Table identifier
            view_id: View identifier
            grouping_column_id: Column to group by
            query: Active sort/filter configuration

        Returns:
            One GroupedStackPage per stack, the uncategorized stack keyed by None

        Raises:
            DataSourceError: If the request fails
        """
        ...

    @abstractmethod
    async def fetch_rows_page(
        self,
        *,
        table_id: str,
        view_id: str,
        where: str,
        query: ViewQuery,
        page: PageParams,
    ) -> RowsPage:
        """Fetch one page of rows matching a where-expression.

        Args:
            table_id: Table identifier
            view_id: View identifier
            where: Filter expression, e.g. "(Status,eq,Done)"
            query: Active sort/filter configuration; parts owned by the server are skipped
            page: Offset and limit

        Raises:
            DataSourceError: If the request fails
        """
        ...


class DataSource(ReadOnlyDataSource):
    """Read-write data source used by the editable board."""

    @abstractmethod
    async def update_view_metadata(self, view_id: str, updates: ViewMetadataUpdate) -> None:
        """Persist changed view metadata fields.

        Raises:
            DataSourceError: If the request fails
        """
        ...

    @abstractmethod
    async def update_column_options(
        self, column_id: str, options: tuple[SelectOption, ...]
    ) -> None:
        """Replace the option set of a single-select column.

        Raises:
            DataSourceError: If the request fails
        """
        ...

    @abstractmethod
    async def create_row(self, *, table_id: str, view_id: str, values: Record) -> Record:
        """Create a row and return it as stored, server-computed fields included.

        Raises:
            DataSourceError: If the request fails
        """
        ...

    @abstractmethod
    async def update_row_field(
        self,
        *,
        table_id: str,
        view_id: str,
        primary_key: str,
        values: Record,
    ) -> Record:
        """Update fields of one row and return the row as stored.

        Raises:
            DataSourceError: If the request fails
        """
        ...

    @abstractmethod
    async def delete_row(
        self, *, table_id: str, view_id: str, primary_key: str
    ) -> RowDeleteBlocked | None:
        """Delete one row by composite primary key.

        Returns:
            None on success, RowDeleteBlocked when the backend refused the delete

        Raises:
            DataSourceError: If the request fails
        """
        ...

    @abstractmethod
    async def bulk_update_by_filter(self, *, table_id: str, values: Record, where: str) -> None:
        """Set field values on every row matching a where-expression.

        Raises:
            DataSourceError: If the request fails
        """
        ...

    @abstractmethod
    async def record_audit(self, *, table_id: str, primary_key: str, record: AuditRecord) -> None:
        """Record a field change in the audit trail.

        Raises:
            DataSourceError: If the request fails
        """
        ...
