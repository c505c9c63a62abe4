"""Incremental loading of one stack's rows."""

import logging

from stackboard.board.locks import StackLocks
from stackboard.board.row_cache import RowCache
from stackboard.board.rows import build_stack_filter
from stackboard.board.types import PageParams, RowEntry, RowsPage, StackKey, TableMeta, ViewQuery
from stackboard.gateway.data_source.abc import ReadOnlyDataSource

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 25


class PaginationLoader:
    """Fetches the next page of a stack and appends it to the cache.

    Counts are never touched: the grouped load already reported each stack's
    server total.
    """

    def __init__(
        self,
        source: ReadOnlyDataSource,
        *,
        table: TableMeta,
        view_id: str,
        cache: RowCache,
        locks: StackLocks,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self._source = source
        self._table = table
        self._view_id = view_id
        self._cache = cache
        self._locks = locks
        self._page_size = page_size

    def has_more(self, stack_key: StackKey) -> bool:
        return len(self._cache.rows(stack_key)) < self._cache.count(stack_key)

    async def load_more(
        self,
        stack_key: StackKey,
        query: ViewQuery,
        page: PageParams | None = None,
    ) -> RowsPage:
        """Fetch and append the next page of a stack.

        Args:
            stack_key: Stack title, None for the uncategorized stack
            query: Active view sorts/filters (skipped where the server owns them)
            page: Explicit offset/limit; defaults to the rows already cached and
                the configured page size

        Raises:
            DataSourceError: If the fetch fails; the cache is left unchanged
        """
        async with self._locks.hold(stack_key):
            if page is None:
                page = PageParams(offset=len(self._cache.rows(stack_key)), limit=self._page_size)
            fetched = await self._source.fetch_rows_page(
                table_id=self._table.id,
                view_id=self._view_id,
                where=build_stack_filter(self._cache.grouping_field, stack_key),
                query=query,
                page=page,
            )
            self._cache.append_rows(stack_key, (RowEntry.from_server(r) for r in fetched.rows))
        logger.debug(
            "Loaded %d more row(s) for stack %r at offset %d",
            len(fetched.rows),
            stack_key,
            page.offset,
        )
        return fetched
