"""Stack-level operations on an editable board."""

import logging

from stackboard.board.errors import ConfigurationError, DataSourceError
from stackboard.board.locks import StackLocks
from stackboard.board.row_cache import RowCache
from stackboard.board.rows import build_stack_filter
from stackboard.board.stack_meta import StackMetaStore
from stackboard.board.types import (
    UNCATEGORIZED_KEY,
    GroupingColumn,
    TableMeta,
    ViewMetadataUpdate,
)
from stackboard.gateway.data_source.abc import DataSource
from stackboard.gateway.feedback.abc import UserFeedback

logger = logging.getLogger(__name__)


class StackMutator:
    """Deletes stacks, folding their rows into the uncategorized stack."""

    def __init__(
        self,
        source: DataSource,
        *,
        table: TableMeta,
        view_id: str,
        cache: RowCache,
        meta_store: StackMetaStore,
        locks: StackLocks,
        feedback: UserFeedback,
    ) -> None:
        self._source = source
        self._table = table
        self._view_id = view_id
        self._cache = cache
        self._meta_store = meta_store
        self._locks = locks
        self._feedback = feedback

    async def delete_stack(
        self, column: GroupingColumn, title: str, position_index: int
    ) -> GroupingColumn | None:
        """Delete a stack and its grouping option.

        Steps, in order:
        1. rewrite the grouping value of the stack's rows to null at the data source
        2. merge the stack's cached rows and count into the uncategorized stack
        3. drop the descriptor at position_index and persist the overlay
        4. remove the option from the grouping column (authoritative deletion)

        Nothing local changes when step 1 fails. Later failures are reported and
        leave the view inconsistent until the next reconciliation.

        Args:
            column: Current grouping column
            title: Title of the stack to delete
            position_index: Index of the stack's descriptor in display order

        Returns:
            The grouping column without the deleted option, or None on failure

        Raises:
            ConfigurationError: If asked to delete the uncategorized stack
        """
        descriptors = self._meta_store.descriptors
        in_range = 0 <= position_index < len(descriptors)
        if not in_range or descriptors[position_index].title != title:
            position_index = self._meta_store.index_of_title(title)
        if position_index == -1:
            msg = f"Stack {title!r} is not on this board"
            raise ConfigurationError(msg)
        if descriptors[position_index].is_uncategorized:
            raise ConfigurationError("The uncategorized stack cannot be deleted")

        field = column.title
        async with self._locks.hold(title, UNCATEGORIZED_KEY):
            try:
                await self._source.bulk_update_by_filter(
                    table_id=self._table.id,
                    values={field: None},
                    where=build_stack_filter(field, title),
                )
            except DataSourceError as e:
                logger.warning("Deleting stack %r aborted: %s", title, e)
                self._feedback.error(e.message)
                return None

            if self._cache.has_stack(title):
                self._cache.merge_into_uncategorized(title)

        self._meta_store.remove_at(position_index)
        remaining = column.without_option(title)
        try:
            await self._source.update_view_metadata(
                self._view_id,
                ViewMetadataUpdate(serialized_stack_meta=self._meta_store.serialize()),
            )
            await self._source.update_column_options(column.id, remaining.options)
        except DataSourceError as e:
            logger.warning("Deleting stack %r left partially applied: %s", title, e)
            self._feedback.error(e.message)
            return None

        logger.info("Deleted stack %r", title)
        return remaining
