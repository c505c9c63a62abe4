"""Reconcile the persisted stack overlay with the grouping column's option set.

The grouping column owns the authoritative options (id, title, order,
color). The overlay adds what the column does not carry (collapse state) and
remembers the layout the view last saw. On view activation the two are
diffed by option id, never by title, since titles are mutable:

- option present in both with different values: update, and when the title
  changed, rename the stack (bulk rewrite of the grouping value + cache move)
- option only in the column: new stack
- descriptor only in the overlay: option deleted upstream; its rows are
  merged into the uncategorized stack when they are cached

The pure diff (`diff_stack_meta`) is shared by the read-only board, which
orders its stacks with it but never writes.
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from stackboard.board.locks import StackLocks
from stackboard.board.row_cache import RowCache
from stackboard.board.rows import build_stack_filter
from stackboard.board.stack_meta import StackMetaStore
from stackboard.board.types import (
    UNCATEGORIZED_ID,
    UNCATEGORIZED_KEY,
    GroupingColumn,
    StackDescriptor,
    TableMeta,
    ViewMetadataUpdate,
)
from stackboard.gateway.data_source.abc import DataSource

logger = logging.getLogger(__name__)

DEFAULT_UNCATEGORIZED_COLOR = "#c2f5e8"


@dataclass(frozen=True)
class RenameStack:
    old_key: str
    new_key: str


@dataclass(frozen=True)
class AddStack:
    key: str


@dataclass(frozen=True)
class RemoveStack:
    """An option deleted upstream; its cached rows go to the uncategorized stack."""

    key: str


CacheMutation = RenameStack | AddStack | RemoveStack


@dataclass(frozen=True)
class StackMetaDiff:
    """Outcome of diffing the overlay against the column's options.

    Attributes:
        descriptors: Descriptor list after applying the diff
        mutations: Cache migrations implied by the diff, in option order
        changed: True when the descriptor list must be persisted
        bootstrapped: True when no overlay existed and descriptors were built fresh
        has_new_stacks: True when at least one option was added
    """

    descriptors: tuple[StackDescriptor, ...]
    mutations: tuple[CacheMutation, ...]
    changed: bool
    bootstrapped: bool
    has_new_stacks: bool


@dataclass(frozen=True)
class ReconcileResult:
    """Result of a reconciliation pass.

    Attributes:
        descriptors: Current ordered descriptor list
        cache_mutations: Cache migrations that were applied
        persisted: True when the overlay was written back to the view
        reveal_new_stack: UI hint - a stack was added and should be scrolled into view
    """

    descriptors: tuple[StackDescriptor, ...]
    cache_mutations: tuple[CacheMutation, ...]
    persisted: bool
    reveal_new_stack: bool


def _next_order(descriptors: list[StackDescriptor]) -> float:
    if not descriptors:
        return 0.0
    return max(d.order for d in descriptors) + 1


def _uncategorized_descriptor(order: float, color: str | None) -> StackDescriptor:
    return StackDescriptor(
        id=UNCATEGORIZED_ID,
        title=UNCATEGORIZED_KEY,
        order=order,
        color=color,
        collapsed=False,
    )


def bootstrap_descriptors(
    column: GroupingColumn,
    *,
    uncategorized_color: str | None,
    uncategorized_order: float | None,
) -> tuple[StackDescriptor, ...]:
    """Build descriptors for a view whose overlay was never saved.

    Options keep their natural order; the uncategorized stack sorts after
    every option unless an explicit order is configured.
    """
    descriptors = [
        StackDescriptor(
            id=option.id,
            title=option.title,
            order=option.order if option.order is not None else float(position),
            color=option.color,
            collapsed=False,
        )
        for position, option in enumerate(column.options)
    ]
    order = uncategorized_order if uncategorized_order is not None else _next_order(descriptors)
    descriptors.append(_uncategorized_descriptor(order, uncategorized_color))
    return tuple(sorted(descriptors, key=lambda d: d.order))


def diff_stack_meta(
    column: GroupingColumn,
    persisted: tuple[StackDescriptor, ...] | None,
    *,
    uncategorized_color: str | None = DEFAULT_UNCATEGORIZED_COLOR,
    uncategorized_order: float | None = None,
) -> StackMetaDiff:
    """Diff the column's options against the persisted descriptors."""
    if persisted is None:
        descriptors = bootstrap_descriptors(
            column,
            uncategorized_color=uncategorized_color,
            uncategorized_order=uncategorized_order,
        )
        return StackMetaDiff(
            descriptors=descriptors,
            mutations=tuple(AddStack(key=opt.title) for opt in column.options),
            changed=True,
            bootstrapped=True,
            has_new_stacks=False,
        )

    descriptors = list(persisted)
    mutations: list[CacheMutation] = []
    changed = False
    has_new_stacks = False

    for option in column.options:
        index = next((i for i, d in enumerate(descriptors) if d.id == option.id), -1)
        if index != -1:
            existing = descriptors[index]
            if existing.matches_option(option, fallback_order=existing.order):
                continue
            descriptors[index] = StackDescriptor(
                id=existing.id,
                title=option.title,
                order=option.order if option.order is not None else existing.order,
                color=option.color,
                collapsed=existing.collapsed,
            )
            if existing.title != option.title and existing.title is not None:
                mutations.append(RenameStack(old_key=existing.title, new_key=option.title))
            changed = True
        else:
            descriptors.append(
                StackDescriptor(
                    id=option.id,
                    title=option.title,
                    order=option.order if option.order is not None else _next_order(descriptors),
                    color=option.color,
                    collapsed=False,
                )
            )
            mutations.append(AddStack(key=option.title))
            changed = True
            has_new_stacks = True

    option_ids = {option.id for option in column.options}
    for descriptor in list(descriptors):
        if descriptor.is_uncategorized or descriptor.id in option_ids:
            continue
        descriptors.remove(descriptor)
        if descriptor.title is not None:
            mutations.append(RemoveStack(key=descriptor.title))
        changed = True

    if not any(d.is_uncategorized for d in descriptors):
        order = (
            uncategorized_order if uncategorized_order is not None else _next_order(descriptors)
        )
        descriptors.append(_uncategorized_descriptor(order, uncategorized_color))
        changed = True

    return StackMetaDiff(
        descriptors=tuple(sorted(descriptors, key=lambda d: d.order)),
        mutations=tuple(mutations),
        changed=changed,
        bootstrapped=False,
        has_new_stacks=has_new_stacks,
    )


def _temporary_key(old_key: str) -> str:
    return f"__stackboard_rename_{uuid.uuid4().hex[:12]}"


def plan_rename_rewrites(
    renames: tuple[RenameStack, ...],
    temporary_key: Callable[[str], str] = _temporary_key,
) -> tuple[tuple[str, str], ...]:
    """Order bulk rewrites so no rewrite lands rows in a stack still waiting to be renamed.

    A rewrite old->new runs only once no pending rename still reads from
    `new`. Cycles (a swap, A->B->C->A) are broken by parking one stack under
    a temporary value first.

    Returns:
        (from_value, to_value) pairs in execution order
    """
    pending = {r.old_key: r.new_key for r in renames if r.old_key != r.new_key}
    steps: list[tuple[str, str]] = []
    while pending:
        ready = [old for old, new in pending.items() if new not in pending]
        if ready:
            for old in ready:
                steps.append((old, pending.pop(old)))
            continue
        old = next(iter(pending))
        parked = temporary_key(old)
        steps.append((old, parked))
        pending[parked] = pending.pop(old)
    return tuple(steps)


def _partition(
    mutations: tuple[CacheMutation, ...],
) -> tuple[tuple[RemoveStack, ...], tuple[RenameStack, ...], tuple[AddStack, ...]]:
    removals = tuple(m for m in mutations if isinstance(m, RemoveStack))
    renames = tuple(m for m in mutations if isinstance(m, RenameStack))
    additions = tuple(m for m in mutations if isinstance(m, AddStack))
    return removals, renames, additions


def apply_cache_mutations(cache: RowCache, mutations: tuple[CacheMutation, ...]) -> None:
    """Apply diff mutations to the cache without touching the data source.

    Used by the read-only board. Caches that were never populated are left
    alone: the next grouped load builds them from scratch.
    """
    if not cache.is_populated:
        return
    removals, renames, additions = _partition(mutations)
    for removal in removals:
        if cache.has_stack(removal.key):
            cache.merge_into_uncategorized(removal.key)
    cache.rename_stacks({r.old_key: r.new_key for r in renames})
    for addition in additions:
        cache.ensure_stack(addition.key)


class MetadataReconciler:
    """Applies a stack-metadata diff to the data source, the cache and the overlay.

    Removals run before renames, and all renames of a pass run as one batch.

    Not transactional: a failed bulk rewrite raises DataSourceError after
    earlier mutations of the same pass were applied, and before the overlay
    is persisted, so the next pass picks up where this one stopped.
    """

    def __init__(
        self,
        source: DataSource,
        *,
        table: TableMeta,
        view_id: str,
        cache: RowCache,
        meta_store: StackMetaStore,
        locks: StackLocks,
        uncategorized_color: str | None = DEFAULT_UNCATEGORIZED_COLOR,
        uncategorized_order: float | None = None,
    ) -> None:
        self._source = source
        self._table = table
        self._view_id = view_id
        self._cache = cache
        self._meta_store = meta_store
        self._locks = locks
        self._uncategorized_color = uncategorized_color
        self._uncategorized_order = uncategorized_order

    async def reconcile(
        self,
        column: GroupingColumn,
        persisted: tuple[StackDescriptor, ...] | None,
    ) -> ReconcileResult:
        """Align the overlay with the column's options.

        Args:
            column: Grouping column with its authoritative option set
            persisted: Descriptors from the stored overlay, None when never saved

        Raises:
            DataSourceError: If a bulk rewrite or the overlay write fails
        """
        diff = diff_stack_meta(
            column,
            persisted,
            uncategorized_color=self._uncategorized_color,
            uncategorized_order=self._uncategorized_order,
        )

        removals, renames, additions = _partition(diff.mutations)
        for removal in removals:
            await self._remove(column, removal)
        if renames:
            await self._rename(column, renames)
        if self._cache.is_populated:
            for addition in additions:
                self._cache.ensure_stack(addition.key)

        self._meta_store.replace_all(diff.descriptors)

        if diff.changed:
            await self._source.update_view_metadata(
                self._view_id,
                ViewMetadataUpdate(serialized_stack_meta=self._meta_store.serialize()),
            )
            logger.debug(
                "Persisted %d stack descriptor(s) for column %s",
                len(diff.descriptors),
                column.id,
            )

        return ReconcileResult(
            descriptors=diff.descriptors,
            cache_mutations=diff.mutations,
            persisted=diff.changed,
            reveal_new_stack=diff.has_new_stacks,
        )

    async def _rename(self, column: GroupingColumn, renames: tuple[RenameStack, ...]) -> None:
        field = column.title
        keys = {r.old_key for r in renames} | {r.new_key for r in renames}
        async with self._locks.hold(*keys):
            for from_value, to_value in plan_rename_rewrites(renames):
                await self._source.bulk_update_by_filter(
                    table_id=self._table.id,
                    values={field: to_value},
                    where=build_stack_filter(field, from_value),
                )
            if self._cache.is_populated:
                self._cache.rename_stacks({r.old_key: r.new_key for r in renames})
        for rename in renames:
            logger.info("Renamed stack %r to %r", rename.old_key, rename.new_key)

    async def _remove(self, column: GroupingColumn, removal: RemoveStack) -> None:
        # Never-populated caches self-correct on the next grouped load
        if not (self._cache.is_populated and self._cache.has_stack(removal.key)):
            return
        field = column.title
        async with self._locks.hold(removal.key, UNCATEGORIZED_KEY):
            await self._source.bulk_update_by_filter(
                table_id=self._table.id,
                values={field: None},
                where=build_stack_filter(field, removal.key),
            )
            self._cache.merge_into_uncategorized(removal.key)
        logger.info("Merged deleted stack %r into uncategorized", removal.key)
