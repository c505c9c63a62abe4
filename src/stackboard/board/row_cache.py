"""Per-stack row cache with a parallel total-count index.

The cache is the single owner of the row lists and counts. Callers read
through tuples and mutate only through the methods below, which keep the two
maps in lockstep:

- counts change only together with a tracked insert, move or delete
- counts are never re-derived from list length (lists may hold only the
  first pages of a stack)
- counts never go below zero
"""

from collections.abc import Callable, Iterable, Mapping

from stackboard.board.types import (
    UNCATEGORIZED_KEY,
    GroupedStackPage,
    RowEntry,
    StackKey,
)


class RowCache:
    """Ordered row entries and server totals, keyed by stack key."""

    def __init__(self, grouping_field: str) -> None:
        self._grouping_field = grouping_field
        self._rows: dict[StackKey, list[RowEntry]] = {}
        self._counts: dict[StackKey, int] = {}

    @property
    def grouping_field(self) -> str:
        return self._grouping_field

    @property
    def is_populated(self) -> bool:
        """True once rows have been loaded (or stacks created) at least once."""
        return len(self._rows) > 0

    def keys(self) -> tuple[StackKey, ...]:
        return tuple(self._rows)

    def has_stack(self, key: StackKey) -> bool:
        return key in self._rows

    def rows(self, key: StackKey) -> tuple[RowEntry, ...]:
        return tuple(self._rows.get(key, ()))

    def count(self, key: StackKey) -> int:
        return self._counts.get(key, 0)

    def total_count(self) -> int:
        return sum(self._counts.values())

    # === LOADING ===

    def reset(self, grouping_field: str) -> None:
        """Drop all stacks, e.g. before a full reload or after the grouping field changed."""
        self._grouping_field = grouping_field
        self._rows = {}
        self._counts = {}

    def load(self, pages: Iterable[GroupedStackPage]) -> None:
        """Replace the cache contents with the result of a grouped load."""
        self._rows = {}
        self._counts = {}
        for page in pages:
            self._rows[page.key] = [RowEntry.from_server(record) for record in page.rows]
            self._counts[page.key] = max(page.total_count, 0)

    def ensure_stack(self, key: StackKey) -> None:
        """Create empty entries for a stack unless they already exist."""
        self._rows.setdefault(key, [])
        self._counts.setdefault(key, 0)

    def append_rows(self, key: StackKey, entries: Iterable[RowEntry]) -> None:
        """Append a fetched page; the server total is already known, so counts are untouched."""
        self.ensure_stack(key)
        self._rows[key].extend(entries)

    # === ROW MUTATIONS ===

    def insert(self, key: StackKey, index: int, entry: RowEntry) -> None:
        """Insert a row that is new to the stack and count it."""
        self.ensure_stack(key)
        self._rows[key].insert(index, entry)
        self._counts[key] += 1

    def append(self, key: StackKey, entry: RowEntry) -> None:
        self.insert(key, len(self._rows.get(key, ())), entry)

    def replace(self, key: StackKey, index: int, entry: RowEntry) -> None:
        """Swap the entry at index for a refreshed one; counts are untouched."""
        self._rows[key][index] = entry

    def remove(self, key: StackKey, index: int) -> RowEntry:
        """Remove the entry at index and decrement the stack's count."""
        entry = self._rows[key].pop(index)
        self._counts[key] = max(self._counts.get(key, 0) - 1, 0)
        return entry

    def move(self, old_key: StackKey, index: int, new_key: StackKey, entry: RowEntry) -> None:
        """Move a row between stacks, appending it to the new stack.

        `entry` replaces the removed entry so callers can pass a refreshed
        object for the same row.
        """
        self.remove(old_key, index)
        self.append(new_key, entry)

    def index_of(self, key: StackKey, entry: RowEntry) -> int:
        """Index of an entry by identity, -1 when absent."""
        for index, candidate in enumerate(self._rows.get(key, ())):
            if candidate is entry:
                return index
        return -1

    def find_index(self, key: StackKey, predicate: Callable[[RowEntry], bool]) -> int:
        """Index of the first entry matching predicate, -1 when absent."""
        for index, candidate in enumerate(self._rows.get(key, ())):
            if predicate(candidate):
                return index
        return -1

    def locate(self, entry: RowEntry) -> tuple[StackKey, int] | None:
        """Find the stack and index holding an entry (by identity)."""
        for key, entries in self._rows.items():
            for index, candidate in enumerate(entries):
                if candidate is entry:
                    return key, index
        return None

    # === STACK MUTATIONS ===

    def rename_stack(self, old_key: StackKey, new_key: StackKey) -> None:
        """Move a stack's rows and count to a new key and rewrite their grouping value.

        Rows already cached under new_key are kept ahead of the moved rows.
        """
        self.rename_stacks({old_key: new_key})

    def rename_stacks(self, renames: Mapping[StackKey, StackKey]) -> None:
        """Apply several renames at once, such as a chain (A->B, B->C) or a swap.

        Every source stack is detached before any target is filled, so each
        row moves exactly once even when a target is another rename's source.
        """
        detached = {
            old_key: (self._rows.pop(old_key, []), self._counts.pop(old_key, 0))
            for old_key in renames
        }
        for old_key, new_key in renames.items():
            moved_rows, moved_count = detached[old_key]
            self._set_grouping_value(moved_rows, new_key)
            self.ensure_stack(new_key)
            self._rows[new_key].extend(moved_rows)
            self._counts[new_key] += moved_count

    def merge_into_uncategorized(self, key: StackKey) -> None:
        """Fold a stack into the uncategorized stack and drop its own entries."""
        if key == UNCATEGORIZED_KEY:
            return
        self.rename_stack(key, UNCATEGORIZED_KEY)

    def _set_grouping_value(self, entries: list[RowEntry], value: StackKey) -> None:
        for entry in entries:
            entry.current[self._grouping_field] = value
            entry.original[self._grouping_field] = value
