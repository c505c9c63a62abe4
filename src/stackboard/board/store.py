"""Board store facades.

BoardStore is the read-only board: it loads metadata and rows and pages
through stacks. EditableBoardStore adds every mutation and requires a
read-write DataSource. A board over a shared (read-only) source is simply a
BoardStore, so mutation methods do not exist on it at all.

Typical activation:
    store = await EditableBoardStore.open(source, table_id="tbl", view_id="vw",
                                          feedback=feedback)
    await store.load()
"""

import logging
from typing import Self

from stackboard.board.errors import ConfigurationError, DataSourceError
from stackboard.board.locks import StackLocks
from stackboard.board.pagination import DEFAULT_PAGE_SIZE, PaginationLoader
from stackboard.board.reconciler import (
    DEFAULT_UNCATEGORIZED_COLOR,
    MetadataReconciler,
    ReconcileResult,
    apply_cache_mutations,
    diff_stack_meta,
)
from stackboard.board.row_cache import RowCache
from stackboard.board.row_mutator import RowMutator
from stackboard.board.rows import extract_primary_key
from stackboard.board.stack_meta import StackMetaStore, decode_overlay
from stackboard.board.stack_mutator import StackMutator
from stackboard.board.types import (
    UNCATEGORIZED_KEY,
    GroupingColumn,
    PageParams,
    Record,
    RowEntry,
    StackDescriptor,
    StackKey,
    TableMeta,
    ViewMetadata,
    ViewMetadataUpdate,
    ViewQuery,
)
from stackboard.gateway.data_source.abc import DataSource, ReadOnlyDataSource
from stackboard.gateway.feedback.abc import UserFeedback

logger = logging.getLogger(__name__)


class BoardStore:
    """Read-only stacked view of a table."""

    def __init__(
        self,
        source: ReadOnlyDataSource,
        *,
        table: TableMeta,
        view_id: str,
        feedback: UserFeedback,
        query: ViewQuery | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        uncategorized_color: str | None = DEFAULT_UNCATEGORIZED_COLOR,
        uncategorized_order: float | None = None,
    ) -> None:
        self._source = source
        self._table = table
        self._view_id = view_id
        self._feedback = feedback
        self._query = query if query is not None else ViewQuery()
        self._page_size = page_size
        self._uncategorized_color = uncategorized_color
        self._uncategorized_order = uncategorized_order

        self._locks = StackLocks()
        self._cache = RowCache(grouping_field="")
        self._grouping_column: GroupingColumn | None = None
        self._meta_store: StackMetaStore | None = None
        self._reveal_new_stack = False
        self._pagination = PaginationLoader(
            source,
            table=table,
            view_id=view_id,
            cache=self._cache,
            locks=self._locks,
            page_size=page_size,
        )

    @classmethod
    async def open(
        cls,
        source: ReadOnlyDataSource,
        *,
        table_id: str,
        view_id: str,
        feedback: UserFeedback,
        query: ViewQuery | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        uncategorized_color: str | None = DEFAULT_UNCATEGORIZED_COLOR,
        uncategorized_order: float | None = None,
    ) -> Self:
        """Fetch the table definition and build a store for one of its views."""
        table = await source.fetch_table_meta(table_id)
        return cls(
            source,
            table=table,
            view_id=view_id,
            feedback=feedback,
            query=query,
            page_size=page_size,
            uncategorized_color=uncategorized_color,
            uncategorized_order=uncategorized_order,
        )

    # === STATE ===

    @property
    def table(self) -> TableMeta:
        return self._table

    @property
    def view_id(self) -> str:
        return self._view_id

    @property
    def query(self) -> ViewQuery:
        return self._query

    @property
    def cache(self) -> RowCache:
        return self._cache

    @property
    def grouping_column(self) -> GroupingColumn:
        if self._grouping_column is None:
            raise ConfigurationError("Board metadata has not been loaded")
        return self._grouping_column

    @property
    def grouping_field(self) -> str:
        return self.grouping_column.title

    @property
    def stacks(self) -> tuple[StackDescriptor, ...]:
        """Stack descriptors in display order."""
        if self._meta_store is None:
            return ()
        return self._meta_store.descriptors

    @property
    def reveal_new_stack(self) -> bool:
        """UI hint: the last metadata load added a stack."""
        return self._reveal_new_stack

    def rows(self, stack_key: StackKey) -> tuple[RowEntry, ...]:
        return self._cache.rows(stack_key)

    def count(self, stack_key: StackKey) -> int:
        return self._cache.count(stack_key)

    def has_more(self, stack_key: StackKey) -> bool:
        return self._pagination.has_more(stack_key)

    def find_row(self, primary_key: str) -> RowEntry | None:
        """Find a cached, persisted row by its primary-key string.

        Raises:
            ConfigurationError: If the table has no primary key
        """
        for key in self._cache.keys():
            for entry in self._cache.rows(key):
                if entry.is_new:
                    continue
                if extract_primary_key(entry.current, self._table) == primary_key:
                    return entry
        return None

    # === LOADING ===

    def _resolve_grouping_column(self, view: ViewMetadata) -> GroupingColumn:
        if view.grouping_column_id is None:
            msg = f"View {self._view_id} has no grouping field"
            raise ConfigurationError(msg)
        column = self._table.column_by_id(view.grouping_column_id)
        if column is None:
            msg = (
                f"Grouping column {view.grouping_column_id} not found "
                f"in table '{self._table.title}'"
            )
            raise ConfigurationError(msg)
        return GroupingColumn.from_column(column)

    async def load_meta(self) -> tuple[StackDescriptor, ...]:
        """Load view metadata and align the stack overlay with the grouping column.

        The table definition is fetched again, so option changes made upstream
        (or by delete_stack) are seen by every load.

        Raises:
            ConfigurationError: If the view has no usable grouping column
            DataSourceError: If a fetch or reconciliation write fails
        """
        self._table = await self._source.fetch_table_meta(self._table.id)
        view = await self._source.fetch_view_metadata(self._view_id)
        column = self._resolve_grouping_column(view)
        if self._grouping_column is None or self._grouping_column.title != column.title:
            self._cache.reset(column.title)
        self._grouping_column = column
        self._meta_store = StackMetaStore(column.id, decode_overlay(view.serialized_stack_meta))
        self._on_meta_loaded()
        await self._align_stacks(column, self._meta_store.persisted_descriptors)
        return self.stacks

    def _on_meta_loaded(self) -> None:
        """Hook for subclasses that wire components needing the stack metadata."""

    async def _align_stacks(
        self, column: GroupingColumn, persisted: tuple[StackDescriptor, ...] | None
    ) -> None:
        assert self._meta_store is not None
        diff = diff_stack_meta(
            column,
            persisted,
            uncategorized_color=self._uncategorized_color,
            uncategorized_order=self._uncategorized_order,
        )
        apply_cache_mutations(self._cache, diff.mutations)
        self._meta_store.replace_all(diff.descriptors)
        self._reveal_new_stack = diff.has_new_stacks

    async def load_data(self) -> None:
        """Load the first page of every stack, replacing the cache.

        Raises:
            ConfigurationError: If load_meta has not run
            DataSourceError: If the grouped fetch fails; the cache is left unchanged
        """
        column = self.grouping_column
        pages = await self._source.fetch_grouped_rows(
            table_id=self._table.id,
            view_id=self._view_id,
            grouping_column_id=column.id,
            query=self._query,
        )
        self._cache.reset(column.title)
        self._cache.load(pages)
        for descriptor in self.stacks:
            self._cache.ensure_stack(descriptor.title)
        self._cache.ensure_stack(UNCATEGORIZED_KEY)
        logger.debug(
            "Loaded %d stack(s), %d row(s) in total",
            len(self._cache.keys()),
            self._cache.total_count(),
        )

    async def load(self) -> None:
        await self.load_meta()
        await self.load_data()

    async def load_more(self, stack_key: StackKey, page: PageParams | None = None) -> bool:
        """Append the next page of a stack; failures are reported, not raised."""
        try:
            await self._pagination.load_more(stack_key, self._query, page)
        except DataSourceError as e:
            logger.warning("Loading more rows for %r failed: %s", stack_key, e)
            self._feedback.error(e.message)
            return False
        return True


class EditableBoardStore(BoardStore):
    """Read-write board: reconciles metadata and mutates stacks and rows."""

    def __init__(
        self,
        source: DataSource,
        *,
        table: TableMeta,
        view_id: str,
        feedback: UserFeedback,
        query: ViewQuery | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        uncategorized_color: str | None = DEFAULT_UNCATEGORIZED_COLOR,
        uncategorized_order: float | None = None,
    ) -> None:
        super().__init__(
            source,
            table=table,
            view_id=view_id,
            feedback=feedback,
            query=query,
            page_size=page_size,
            uncategorized_color=uncategorized_color,
            uncategorized_order=uncategorized_order,
        )
        self._writer = source
        self._row_mutator = RowMutator(
            source,
            table=table,
            view_id=view_id,
            cache=self._cache,
            locks=self._locks,
            feedback=feedback,
        )
        self._reconciler: MetadataReconciler | None = None
        self._stack_mutator: StackMutator | None = None
        self._last_reconcile: ReconcileResult | None = None

    def _on_meta_loaded(self) -> None:
        assert self._meta_store is not None
        self._reconciler = MetadataReconciler(
            self._writer,
            table=self._table,
            view_id=self._view_id,
            cache=self._cache,
            meta_store=self._meta_store,
            locks=self._locks,
            uncategorized_color=self._uncategorized_color,
            uncategorized_order=self._uncategorized_order,
        )
        self._stack_mutator = StackMutator(
            self._writer,
            table=self._table,
            view_id=self._view_id,
            cache=self._cache,
            meta_store=self._meta_store,
            locks=self._locks,
            feedback=self._feedback,
        )

    async def _align_stacks(
        self, column: GroupingColumn, persisted: tuple[StackDescriptor, ...] | None
    ) -> None:
        assert self._reconciler is not None
        result = await self._reconciler.reconcile(column, persisted)
        self._last_reconcile = result
        self._reveal_new_stack = result.reveal_new_stack

    @property
    def last_reconcile(self) -> ReconcileResult | None:
        return self._last_reconcile

    async def reconcile(self) -> ReconcileResult:
        """Re-run reconciliation against the current grouping column.

        Raises:
            DataSourceError: If a bulk rewrite or the overlay write fails
        """
        if self._reconciler is None or self._meta_store is None:
            raise ConfigurationError("Board metadata has not been loaded")
        result = await self._reconciler.reconcile(
            self.grouping_column, self._meta_store.descriptors
        )
        self._last_reconcile = result
        self._reveal_new_stack = result.reveal_new_stack
        return result

    # === STACKS ===

    async def delete_stack(self, title: str, position_index: int = -1) -> bool:
        """Delete a stack, moving its rows to the uncategorized stack.

        Args:
            title: Stack title
            position_index: Index in display order; looked up by title when it does not
                point at the titled stack

        Raises:
            ConfigurationError: For the uncategorized stack or an unknown stack
        """
        if self._stack_mutator is None:
            raise ConfigurationError("Board metadata has not been loaded")
        remaining = await self._stack_mutator.delete_stack(
            self.grouping_column, title, position_index
        )
        if remaining is None:
            return False
        self._grouping_column = remaining
        self._table = self._table.with_column_options(remaining.id, remaining.options)
        return True

    async def set_collapsed(self, stack_id: str, collapsed: bool) -> bool:
        """Collapse or expand a stack and persist the overlay."""
        if self._meta_store is None:
            raise ConfigurationError("Board metadata has not been loaded")
        if not self._meta_store.set_collapsed(stack_id, collapsed):
            msg = f"Unknown stack id {stack_id!r}"
            raise ConfigurationError(msg)
        return await self.update_view_meta()

    async def update_view_meta(self) -> bool:
        """Persist the current stack overlay; failures are reported, not raised."""
        if self._meta_store is None:
            raise ConfigurationError("Board metadata has not been loaded")
        try:
            await self._writer.update_view_metadata(
                self._view_id,
                ViewMetadataUpdate(serialized_stack_meta=self._meta_store.serialize()),
            )
        except DataSourceError as e:
            logger.warning("Saving stack metadata failed: %s", e)
            self._feedback.error(e.message)
            return False
        return True

    # === ROWS ===

    def add_placeholder(self, index: int | None = None) -> RowEntry:
        return self._row_mutator.add_placeholder(index)

    async def insert_row(
        self, row_data: Record, target_index: int | None = None
    ) -> RowEntry | None:
        return await self._row_mutator.insert(row_data, target_index)

    async def update_field(self, entry: RowEntry, field_name: str) -> bool:
        return await self._row_mutator.update_field(entry, field_name)

    async def apply_stack_move(self, entry: RowEntry, is_new_row: bool) -> None:
        await self._row_mutator.apply_stack_move(entry, is_new_row)

    async def save_row(self, entry: RowEntry) -> RowEntry | None:
        return await self._row_mutator.save_row(entry)

    async def move_row(self, entry: RowEntry, stack_key: StackKey) -> bool:
        """Set a row's grouping value and move it to that stack."""
        entry.current[self.grouping_field] = stack_key
        return await self.save_row(entry) is not None

    async def delete_row(self, entry: RowEntry) -> bool:
        return await self._row_mutator.delete(entry)

    async def drain_audits(self) -> None:
        await self._row_mutator.drain_audits()
