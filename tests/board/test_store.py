"""Tests for loading boards through BoardStore and EditableBoardStore."""

import pytest

from stackboard.board.errors import ConfigurationError, DataSourceError
from stackboard.board.store import BoardStore, EditableBoardStore
from stackboard.board.types import SelectOption, ViewMetadata
from stackboard.gateway.data_source.fake import FakeDataSource
from stackboard.gateway.feedback.fake import FakeUserFeedback
from tests.test_utils.builders import (
    DONE,
    STATUS_COLUMN_ID,
    TABLE_ID,
    TODO,
    VIEW_ID,
    build_editable_store,
    build_read_only_store,
    build_source,
    build_status_table,
    descriptor,
    serialized_overlay,
    task,
)


class TestReadOnlyBoard:
    def test_exposes_no_mutation_methods(self) -> None:
        for name in (
            "delete_stack",
            "add_placeholder",
            "insert_row",
            "update_field",
            "save_row",
            "apply_stack_move",
            "delete_row",
            "set_collapsed",
            "update_view_meta",
        ):
            assert not hasattr(BoardStore, name)
            assert hasattr(EditableBoardStore, name)

    @pytest.mark.asyncio
    async def test_bootstraps_layout_without_writing(self) -> None:
        source = build_source([task(1, "Todo"), task(2, None)])
        store = build_read_only_store(source)

        await store.load()

        assert [d.title for d in store.stacks] == ["Todo", "Done", None]
        assert source.view_updates == ()
        assert store.count("Todo") == 1
        assert store.count(None) == 1
        assert store.cache.has_stack("Done")

    @pytest.mark.asyncio
    async def test_follows_renamed_option_in_memory_only(self) -> None:
        renamed = SelectOption(id=TODO.id, title="Backlog", order=0.0, color=TODO.color)
        layout = serialized_overlay(descriptor(TODO, 0), descriptor(DONE, 1), descriptor(None, 2))
        source = build_source(
            [task(1, "Backlog")], options=(renamed, DONE), serialized_stack_meta=layout
        )
        store = build_read_only_store(source)

        await store.load()

        assert [d.title for d in store.stacks] == ["Backlog", "Done", None]
        assert source.bulk_updates == ()
        assert source.view_updates == ()


class TestEditableBoard:
    @pytest.mark.asyncio
    async def test_open_fetches_table_definition(self) -> None:
        source = build_source([task(1, "Todo")])

        store = await EditableBoardStore.open(
            source, table_id=TABLE_ID, view_id=VIEW_ID, feedback=FakeUserFeedback()
        )

        assert isinstance(store, EditableBoardStore)
        assert store.table == source.table

    @pytest.mark.asyncio
    async def test_first_load_persists_bootstrapped_layout(self) -> None:
        source = build_source([task(1, "Todo")])
        store = build_editable_store(source)

        await store.load()

        assert len(source.view_updates) == 1
        assert store.last_reconcile is not None
        assert store.last_reconcile.persisted

    @pytest.mark.asyncio
    async def test_reload_is_idempotent(self) -> None:
        source = build_source([task(1, "Todo")])
        store = build_editable_store(source)
        await store.load()

        await store.load()

        assert len(source.view_updates) == 1
        assert store.count("Todo") == 1

    @pytest.mark.asyncio
    async def test_new_option_sets_reveal_hint(self) -> None:
        review = SelectOption(id="opt_review", title="Review", order=None, color=None)
        layout = serialized_overlay(descriptor(TODO, 0), descriptor(DONE, 1), descriptor(None, 2))
        source = build_source(options=(TODO, DONE, review), serialized_stack_meta=layout)
        store = build_editable_store(source)

        await store.load()

        assert store.reveal_new_stack
        assert store.stacks[-1].title == "Review"
        assert store.cache.has_stack("Review")

    @pytest.mark.asyncio
    async def test_set_collapsed_persists_overlay(self) -> None:
        layout = serialized_overlay(descriptor(TODO, 0), descriptor(DONE, 1), descriptor(None, 2))
        source = build_source(serialized_stack_meta=layout)
        store = build_editable_store(source)
        await store.load()

        assert await store.set_collapsed(DONE.id, True)

        assert store.stacks[1].collapsed is True
        assert len(source.view_updates) == 1

        reloaded = build_editable_store(source)
        await reloaded.load()
        assert reloaded.stacks[1].collapsed is True

    @pytest.mark.asyncio
    async def test_set_collapsed_rejects_unknown_stack(self) -> None:
        source = build_source()
        store = build_editable_store(source)
        await store.load()

        with pytest.raises(ConfigurationError):
            await store.set_collapsed("opt_missing", True)

    @pytest.mark.asyncio
    async def test_failed_metadata_write_is_reported(self) -> None:
        source = build_source()
        feedback = FakeUserFeedback()
        store = build_editable_store(source, feedback=feedback)
        await store.load()
        source.fail_on.add("update_view_metadata")

        assert not await store.update_view_meta()
        assert feedback.errors == ("simulated failure",)

    @pytest.mark.asyncio
    async def test_reload_sees_options_renamed_upstream(self) -> None:
        layout = serialized_overlay(descriptor(TODO, 0), descriptor(DONE, 1), descriptor(None, 2))
        source = build_source([task(1, "Todo"), task(2, "Todo")], serialized_stack_meta=layout)
        store = build_editable_store(source)
        await store.load()
        renamed = SelectOption(id=TODO.id, title="Backlog", order=0.0, color=TODO.color)
        await source.update_column_options(STATUS_COLUMN_ID, (renamed, DONE))

        await store.load_meta()

        assert [d.title for d in store.stacks] == ["Backlog", "Done", None]
        assert source.bulk_updates == (({"Status": "Backlog"}, "(Status,eq,Todo)"),)
        assert store.count("Backlog") == 2
        assert all(e.current["Status"] == "Backlog" for e in store.rows("Backlog"))
        assert not store.cache.has_stack("Todo")

    @pytest.mark.asyncio
    async def test_chained_renames_keep_rows_in_their_own_stacks(self) -> None:
        archived = SelectOption(id="opt_archived", title="Archived", order=2.0, color=None)
        layout = serialized_overlay(
            descriptor(TODO, 0), descriptor(DONE, 1), descriptor(archived, 2), descriptor(None, 3)
        )
        options = tuple(
            SelectOption(id=option.id, title=title, order=option.order, color=option.color)
            for option, title in ((TODO, "Done"), (DONE, "Archived"), (archived, "Gone"))
        )
        source = build_source(
            [task(1, "Todo"), task(2, "Done"), task(3, "Archived")],
            options=options,
            serialized_stack_meta=layout,
        )
        store = build_editable_store(source)

        await store.load()

        assert {r["Id"]: r["Status"] for r in source.rows} == {1: "Done", 2: "Archived", 3: "Gone"}
        assert [d.title for d in store.stacks] == ["Done", "Archived", "Gone", None]
        assert (store.count("Done"), store.count("Archived"), store.count("Gone")) == (1, 1, 1)

    @pytest.mark.asyncio
    async def test_find_row_by_primary_key(self) -> None:
        source = build_source([task(1, "Todo"), task(2, "Done")])
        store = build_editable_store(source)
        await store.load()

        found = store.find_row("2")

        assert found is not None
        assert found.current["Status"] == "Done"
        assert store.find_row("99") is None


@pytest.mark.asyncio
@pytest.mark.parametrize("grouping_column_id", [None, "col_gone"])
async def test_unusable_grouping_column_is_a_configuration_error(
    grouping_column_id: str | None,
) -> None:
    source = FakeDataSource(
        table=build_status_table(),
        view=ViewMetadata(
            view_id=VIEW_ID, grouping_column_id=grouping_column_id, serialized_stack_meta=None
        ),
    )
    store = build_read_only_store(source)

    with pytest.raises(ConfigurationError):
        await store.load()


@pytest.mark.asyncio
async def test_failed_grouped_load_propagates_and_keeps_cache() -> None:
    source = build_source([task(1, "Todo")])
    store = build_read_only_store(source)
    await store.load()
    source.fail_on.add("fetch_grouped_rows")

    with pytest.raises(DataSourceError):
        await store.load_data()

    assert store.count("Todo") == 1
    assert store.grouping_column.id == STATUS_COLUMN_ID
