"""Tests for RowCache count bookkeeping and stack migrations."""

from stackboard.board.row_cache import RowCache
from stackboard.board.types import GroupedStackPage, RowEntry
from tests.test_utils.builders import task


def _loaded_cache() -> RowCache:
    cache = RowCache(grouping_field="Status")
    cache.load(
        [
            GroupedStackPage(key="Todo", rows=(task(1, "Todo"), task(2, "Todo")), total_count=7),
            GroupedStackPage(key="Done", rows=(task(3, "Done"),), total_count=1),
            GroupedStackPage(key=None, rows=(), total_count=0),
        ]
    )
    return cache


def test_load_keeps_server_totals_rather_than_list_length() -> None:
    cache = _loaded_cache()

    assert cache.is_populated
    assert len(cache.rows("Todo")) == 2
    assert cache.count("Todo") == 7
    assert cache.total_count() == 8


def test_append_rows_leaves_count_untouched() -> None:
    cache = _loaded_cache()

    cache.append_rows("Todo", [RowEntry.from_server(task(4, "Todo"))])

    assert len(cache.rows("Todo")) == 3
    assert cache.count("Todo") == 7


def test_move_conserves_total_count() -> None:
    cache = _loaded_cache()
    entry = cache.rows("Todo")[0]
    before = cache.total_count()

    cache.move("Todo", 0, "Done", entry)

    assert cache.count("Todo") == 6
    assert cache.count("Done") == 2
    assert cache.rows("Done")[-1] is entry
    assert cache.total_count() == before


def test_remove_never_goes_below_zero() -> None:
    cache = RowCache(grouping_field="Status")
    cache.append_rows(None, [RowEntry.placeholder()])

    cache.remove(None, 0)

    assert cache.count(None) == 0


def test_rename_stack_rewrites_grouping_value_and_merges_counts() -> None:
    cache = _loaded_cache()

    cache.rename_stack("Todo", "Backlog")

    assert not cache.has_stack("Todo")
    assert cache.count("Backlog") == 7
    assert all(entry.current["Status"] == "Backlog" for entry in cache.rows("Backlog"))
    assert all(entry.original["Status"] == "Backlog" for entry in cache.rows("Backlog"))


def test_rename_onto_existing_stack_keeps_existing_rows_first() -> None:
    cache = _loaded_cache()
    existing = cache.rows("Done")[0]

    cache.rename_stack("Todo", "Done")

    assert cache.rows("Done")[0] is existing
    assert len(cache.rows("Done")) == 3
    assert cache.count("Done") == 8


def test_merge_into_uncategorized_moves_rows_and_count() -> None:
    cache = _loaded_cache()

    cache.merge_into_uncategorized("Todo")

    assert not cache.has_stack("Todo")
    assert cache.count(None) == 7
    assert [entry.current["Id"] for entry in cache.rows(None)] == [1, 2]
    assert all(entry.current["Status"] is None for entry in cache.rows(None))


def test_index_of_uses_identity() -> None:
    cache = _loaded_cache()
    lookalike = RowEntry.from_server(task(1, "Todo"))

    assert cache.index_of("Todo", lookalike) == -1
    assert cache.index_of("Todo", cache.rows("Todo")[1]) == 1


def test_locate_finds_stack_and_index() -> None:
    cache = _loaded_cache()
    entry = cache.rows("Done")[0]

    assert cache.locate(entry) == ("Done", 0)
    assert cache.locate(RowEntry.placeholder()) is None


def test_rename_stacks_swaps_without_merging() -> None:
    cache = _loaded_cache()

    cache.rename_stacks({"Todo": "Done", "Done": "Todo"})

    assert [entry.current["Id"] for entry in cache.rows("Done")] == [1, 2]
    assert [entry.current["Id"] for entry in cache.rows("Todo")] == [3]
    assert cache.count("Done") == 7
    assert cache.count("Todo") == 1
