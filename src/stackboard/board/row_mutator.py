"""Row-level CRUD with optimistic application to the row cache.

Every operation awaits the data source first and touches the cache only
after the call succeeded. DataSourceError is caught here, at the operation
boundary, and surfaced through UserFeedback; ConfigurationError propagates.
"""

import asyncio
import logging
from collections.abc import Callable

from stackboard.board.errors import DataSourceError
from stackboard.board.locks import StackLocks
from stackboard.board.row_cache import RowCache
from stackboard.board.rows import (
    build_insert_payload,
    encode_audit_value,
    extract_primary_key,
)
from stackboard.board.types import (
    UNCATEGORIZED_KEY,
    AuditRecord,
    Record,
    RowDeleteBlocked,
    RowEntry,
    StackKey,
    TableMeta,
)
from stackboard.gateway.data_source.abc import DataSource
from stackboard.gateway.feedback.abc import UserFeedback

logger = logging.getLogger(__name__)


class RowMutator:
    """Creates, edits, moves and deletes rows of an editable board."""

    def __init__(
        self,
        source: DataSource,
        *,
        table: TableMeta,
        view_id: str,
        cache: RowCache,
        locks: StackLocks,
        feedback: UserFeedback,
    ) -> None:
        self._source = source
        self._table = table
        self._view_id = view_id
        self._cache = cache
        self._locks = locks
        self._feedback = feedback
        self._audit_tasks: set[asyncio.Task[None]] = set()

    @property
    def grouping_field(self) -> str:
        return self._cache.grouping_field

    def _stack_key_of(self, record: Record) -> StackKey:
        return record.get(self.grouping_field)

    def _same_row(self, primary_key: str) -> Callable[[RowEntry], bool]:
        def predicate(candidate: RowEntry) -> bool:
            if candidate.is_new:
                return False
            return extract_primary_key(candidate.current, self._table) == primary_key

        return predicate

    # === CREATE ===

    def add_placeholder(self, index: int | None = None) -> RowEntry:
        """Insert an empty, not-yet-persisted row into the uncategorized stack."""
        rows = self._cache.rows(UNCATEGORIZED_KEY)
        position = len(rows) if index is None else max(0, min(index, len(rows)))
        entry = RowEntry.placeholder()
        self._cache.insert(UNCATEGORIZED_KEY, position, entry)
        return entry

    async def insert(self, row_data: Record, target_index: int | None = None) -> RowEntry | None:
        """Create an uncategorized row and put it into the uncategorized stack.

        A grouping value in row_data is dropped; save_row creates a row
        directly in a stack. The placeholder at target_index is replaced;
        when no placeholder sits there the row is inserted at that index and
        counted.

        Returns:
            The persisted entry, or None when the data source failed
        """
        if row_data.get(self.grouping_field) is not None:
            logger.debug("Dropping grouping value from uncategorized insert")
        uncategorized = {k: v for k, v in row_data.items() if k != self.grouping_field}
        return await self._create(uncategorized, target_index)

    async def _create(self, row_data: Record, target_index: int | None) -> RowEntry | None:
        # Callers with a grouping value in row_data must follow up with apply_stack_move
        payload = build_insert_payload(row_data, self._table)
        async with self._locks.hold(UNCATEGORIZED_KEY):
            try:
                created = await self._source.create_row(
                    table_id=self._table.id, view_id=self._view_id, values=payload
                )
            except DataSourceError as e:
                logger.warning("Row insert failed: %s", e)
                self._feedback.error(e.message)
                return None

            entry = RowEntry.from_server(created)
            rows = self._cache.rows(UNCATEGORIZED_KEY)
            index = len(rows) if target_index is None else max(0, min(target_index, len(rows)))
            if index < len(rows) and rows[index].is_new:
                self._cache.replace(UNCATEGORIZED_KEY, index, entry)
            else:
                self._cache.insert(UNCATEGORIZED_KEY, index, entry)
        return entry

    # === UPDATE ===

    async def update_field(self, entry: RowEntry, field_name: str) -> bool:
        """Write one field of a row and absorb the server's echo.

        Does not move the row between stacks; call apply_stack_move after
        editing the grouping field.

        Returns:
            True when the write succeeded

        Raises:
            ConfigurationError: If the table has no primary key
        """
        primary_key = extract_primary_key(entry.current, self._table)
        new_value = entry.current.get(field_name)
        old_value = entry.original.get(field_name)
        async with self._locks.hold(self._stack_key_of(entry.original)):
            try:
                updated = await self._source.update_row_field(
                    table_id=self._table.id,
                    view_id=self._view_id,
                    primary_key=primary_key,
                    values={field_name: new_value},
                )
            except DataSourceError as e:
                logger.warning("Row update failed for %s: %s", primary_key, e)
                self._feedback.error(f"Row update failed: {e.message}")
                return False

            self._record_audit(
                primary_key,
                AuditRecord(
                    field_name=field_name,
                    new_value_encoded=encode_audit_value(new_value),
                    old_value_encoded=encode_audit_value(old_value),
                ),
            )
            # Absorb formula/derived columns recomputed by the server
            entry.current.update(updated)
            if field_name == self.grouping_field:
                # original still names the old stack until apply_stack_move runs
                previous = entry.original.get(field_name)
                entry.original.update(updated)
                entry.original[field_name] = previous
            else:
                entry.original.update(updated)
        return True

    def _record_audit(self, primary_key: str, record: AuditRecord) -> None:
        task = asyncio.create_task(self._send_audit(primary_key, record))
        self._audit_tasks.add(task)
        task.add_done_callback(self._audit_tasks.discard)

    async def _send_audit(self, primary_key: str, record: AuditRecord) -> None:
        try:
            await self._source.record_audit(
                table_id=self._table.id, primary_key=primary_key, record=record
            )
        except DataSourceError as e:
            logger.debug("Ignoring audit failure for %s: %s", primary_key, e)

    async def drain_audits(self) -> None:
        """Wait for pending audit writes (used on shutdown and in tests)."""
        if self._audit_tasks:
            await asyncio.gather(*self._audit_tasks)

    # === MOVE ===

    async def apply_stack_move(self, entry: RowEntry, is_new_row: bool) -> None:
        """Relocate a row after its grouping value was committed.

        - new row with a grouping value: leaves the uncategorized stack for its target
        - new row without one: stays uncategorized
        - existing row: moves from its old stack when the value changed,
          otherwise is refreshed in place
        """
        new_key = self._stack_key_of(entry.current)
        if is_new_row:
            if new_key is None:
                return
            async with self._locks.hold(UNCATEGORIZED_KEY, new_key):
                index = self._cache.index_of(UNCATEGORIZED_KEY, entry)
                if index == -1 and not entry.is_new:
                    primary_key = extract_primary_key(entry.current, self._table)
                    index = self._cache.find_index(UNCATEGORIZED_KEY, self._same_row(primary_key))
                if index == -1:
                    logger.debug("New row not found in uncategorized stack; appending only")
                    self._cache.append(new_key, entry)
                else:
                    self._cache.move(UNCATEGORIZED_KEY, index, new_key, entry)
                entry.original[self.grouping_field] = new_key
            return

        old_key = self._stack_key_of(entry.original)
        primary_key = extract_primary_key(entry.current, self._table)
        async with self._locks.hold(old_key, new_key):
            index = self._cache.find_index(old_key, self._same_row(primary_key))
            if index == -1:
                return
            if new_key != old_key:
                self._cache.move(old_key, index, new_key, entry)
            else:
                self._cache.replace(old_key, index, entry)
            entry.original[self.grouping_field] = new_key

    async def save_row(self, entry: RowEntry) -> RowEntry | None:
        """Persist a placeholder or the grouping field of an existing row, then relocate it.

        Returns:
            The entry now held in the cache, or None when the write failed
        """
        if entry.is_new:
            index = self._cache.index_of(UNCATEGORIZED_KEY, entry)
            created = await self._create(entry.current, index if index != -1 else None)
            if created is None:
                return None
            await self.apply_stack_move(created, is_new_row=True)
            return created

        if not await self.update_field(entry, self.grouping_field):
            return None
        await self.apply_stack_move(entry, is_new_row=False)
        return entry

    # === DELETE ===

    async def delete(self, entry: RowEntry) -> bool:
        """Delete a row; the cache changes only after the backend confirmed.

        Placeholders are dropped locally without a network call.

        Returns:
            True when the row was removed

        Raises:
            ConfigurationError: If the table has no primary key
        """
        if entry.is_new:
            location = self._cache.locate(entry)
            if location is not None:
                key, index = location
                async with self._locks.hold(key):
                    self._cache.remove(key, index)
            return True

        primary_key = extract_primary_key(entry.current, self._table)
        key = self._stack_key_of(entry.original)
        async with self._locks.hold(key):
            try:
                outcome = await self._source.delete_row(
                    table_id=self._table.id, view_id=self._view_id, primary_key=primary_key
                )
            except DataSourceError as e:
                logger.warning("Row delete failed for %s: %s", primary_key, e)
                self._feedback.error(f"Row delete failed: {e.message}")
                return False

            if isinstance(outcome, RowDeleteBlocked):
                reasons = "\n".join(outcome.reasons)
                self._feedback.info(
                    f"Unable to delete row with ID {primary_key} because of the following:\n"
                    f"{reasons}\nClear the data first & try again"
                )
                return False

            index = self._cache.find_index(key, self._same_row(primary_key))
            if index != -1:
                self._cache.remove(key, index)
        logger.debug("Deleted row %s from stack %r", primary_key, key)
        return True
