"""Tests for row insert, edit, move and delete on an editable board."""

import pytest

from stackboard.board.errors import ConfigurationError
from stackboard.board.store import EditableBoardStore
from stackboard.board.types import AuditRecord
from stackboard.gateway.data_source.fake import FakeDataSource
from stackboard.gateway.feedback.fake import FakeUserFeedback
from tests.test_utils.builders import (
    DONE,
    TODO,
    build_editable_store,
    build_source,
    descriptor,
    serialized_overlay,
    task,
)

SAVED_LAYOUT = serialized_overlay(descriptor(TODO, 0), descriptor(DONE, 1), descriptor(None, 2))


def _rows() -> list[dict]:
    return [task(1, "Todo"), task(2, "Todo"), task(3, "Done"), task(4, None)]


async def _loaded(
    source: FakeDataSource, feedback: FakeUserFeedback | None = None
) -> EditableBoardStore:
    store = build_editable_store(source, feedback=feedback)
    await store.load()
    return store


def _assert_membership_agrees(store: EditableBoardStore) -> None:
    for key in store.cache.keys():
        for entry in store.rows(key):
            if not entry.is_new:
                assert entry.current.get("Status") == key


@pytest.mark.asyncio
async def test_insert_without_grouping_value_lands_in_uncategorized_at_index() -> None:
    source = build_source(_rows(), serialized_stack_meta=SAVED_LAYOUT)
    store = await _loaded(source)

    created = await store.insert_row({"Title": "Fresh"}, target_index=0)

    assert created is not None
    assert created.current["Id"] == 5
    assert store.rows(None)[0] is created
    assert store.count(None) == 2
    assert source.created_rows == ({"Title": "Fresh", "Id": 5},)


@pytest.mark.asyncio
async def test_saving_placeholder_with_grouping_value_moves_it_to_its_stack() -> None:
    source = build_source(_rows(), serialized_stack_meta=SAVED_LAYOUT)
    store = await _loaded(source)
    total_before = store.cache.total_count()

    placeholder = store.add_placeholder()
    assert store.count(None) == 2
    placeholder.current.update({"Title": "Ship it", "Status": "Done"})

    saved = await store.save_row(placeholder)

    assert saved is not None
    assert not saved.is_new
    assert store.rows("Done")[-1] is saved
    assert store.count("Done") == 2
    assert store.count(None) == 1
    assert all(not entry.is_new for entry in store.rows(None))
    assert store.cache.total_count() == total_before + 1
    _assert_membership_agrees(store)


@pytest.mark.asyncio
async def test_moving_row_between_stacks_adjusts_both_counts() -> None:
    source = build_source(_rows(), serialized_stack_meta=SAVED_LAYOUT)
    store = await _loaded(source)
    entry = store.rows("Todo")[0]
    total_before = store.cache.total_count()

    moved = await store.move_row(entry, "Done")

    assert moved
    assert store.count("Todo") == 1
    assert store.count("Done") == 2
    assert store.rows("Done")[-1] is entry
    assert entry.original["Status"] == "Done"
    assert store.cache.total_count() == total_before
    assert source.row_updates == (("1", {"Status": "Done"}),)
    _assert_membership_agrees(store)


@pytest.mark.asyncio
async def test_grouping_edit_records_audit_with_old_and_new_values() -> None:
    source = build_source(_rows(), serialized_stack_meta=SAVED_LAYOUT)
    store = await _loaded(source)

    await store.move_row(store.rows("Todo")[0], "Done")
    await store.drain_audits()

    expected = AuditRecord(field_name="Status", new_value_encoded="Done", old_value_encoded="Todo")
    assert source.audits == (("1", expected),)


@pytest.mark.asyncio
async def test_update_field_absorbs_echo_without_moving() -> None:
    source = build_source(_rows(), serialized_stack_meta=SAVED_LAYOUT)
    store = await _loaded(source)
    entry = store.rows("Todo")[1]
    entry.current["Title"] = "<b>renamed</b>"

    assert await store.update_field(entry, "Title")
    await store.drain_audits()

    assert store.rows("Todo")[1] is entry
    assert entry.original["Title"] == "<b>renamed</b>"
    assert source.audits[0][1].new_value_encoded == "&lt;b&gt;renamed&lt;/b&gt;"


@pytest.mark.asyncio
async def test_failed_update_reports_and_leaves_cache_alone() -> None:
    source = build_source(_rows(), serialized_stack_meta=SAVED_LAYOUT)
    feedback = FakeUserFeedback()
    store = await _loaded(source, feedback)
    source.fail_on.add("update_row_field")
    entry = store.rows("Todo")[0]

    moved = await store.move_row(entry, "Done")

    assert not moved
    assert feedback.errors == ("Row update failed: simulated failure",)
    assert store.rows("Todo")[0] is entry
    assert store.count("Todo") == 2
    assert entry.original["Status"] == "Todo"


@pytest.mark.asyncio
async def test_audit_failure_does_not_fail_the_edit() -> None:
    source = build_source(_rows(), serialized_stack_meta=SAVED_LAYOUT)
    feedback = FakeUserFeedback()
    store = await _loaded(source, feedback)
    source.fail_on.add("record_audit")

    assert await store.move_row(store.rows("Todo")[0], "Done")
    await store.drain_audits()

    assert feedback.errors == ()
    assert source.audits == ()


@pytest.mark.asyncio
async def test_delete_removes_row_after_backend_confirms() -> None:
    source = build_source(_rows(), serialized_stack_meta=SAVED_LAYOUT)
    store = await _loaded(source)

    assert await store.delete_row(store.rows("Todo")[0])

    assert source.deleted_keys == ("1",)
    assert store.count("Todo") == 1
    assert [e.current["Id"] for e in store.rows("Todo")] == [2]


@pytest.mark.asyncio
async def test_blocked_delete_is_a_soft_failure() -> None:
    source = build_source(
        _rows(),
        serialized_stack_meta=SAVED_LAYOUT,
        blocked_deletes={"3": ("Row is referenced by Invoices",)},
    )
    feedback = FakeUserFeedback()
    store = await _loaded(source, feedback)

    deleted = await store.delete_row(store.rows("Done")[0])

    assert not deleted
    assert feedback.errors == ()
    assert len(feedback.infos) == 1
    assert "Unable to delete row with ID 3" in feedback.infos[0]
    assert "Row is referenced by Invoices" in feedback.infos[0]
    assert store.count("Done") == 1


@pytest.mark.asyncio
async def test_deleting_placeholder_needs_no_backend_call() -> None:
    source = build_source(_rows(), serialized_stack_meta=SAVED_LAYOUT)
    store = await _loaded(source)
    placeholder = store.add_placeholder(0)

    assert await store.delete_row(placeholder)

    assert source.deleted_keys == ()
    assert store.count(None) == 1
    assert store.cache.locate(placeholder) is None


@pytest.mark.asyncio
async def test_table_without_primary_key_cannot_be_edited() -> None:
    source = build_source(_rows(), serialized_stack_meta=SAVED_LAYOUT, with_primary_key=False)
    store = await _loaded(source)

    with pytest.raises(ConfigurationError):
        await store.update_field(store.rows("Todo")[0], "Title")


@pytest.mark.asyncio
async def test_insert_drops_grouping_value_and_stays_uncategorized() -> None:
    source = build_source(_rows(), serialized_stack_meta=SAVED_LAYOUT)
    store = await _loaded(source)

    created = await store.insert_row({"Title": "Fresh", "Status": "Done"})

    assert created is not None
    assert created.current.get("Status") is None
    assert store.rows(None)[-1] is created
    assert store.count("Done") == 1
    assert source.created_rows == ({"Title": "Fresh", "Id": 5},)
    _assert_membership_agrees(store)


@pytest.mark.asyncio
async def test_failed_insert_keeps_placeholder_and_count() -> None:
    source = build_source(_rows(), serialized_stack_meta=SAVED_LAYOUT)
    feedback = FakeUserFeedback()
    store = await _loaded(source, feedback)
    placeholder = store.add_placeholder(0)
    source.fail_on.add("create_row")

    created = await store.insert_row({"Title": "Fresh"}, target_index=0)

    assert created is None
    assert store.rows(None)[0] is placeholder
    assert store.count(None) == 2
    assert feedback.errors == ("simulated failure",)
    assert source.created_rows == ()


@pytest.mark.asyncio
async def test_failed_delete_keeps_row_and_count() -> None:
    source = build_source(_rows(), serialized_stack_meta=SAVED_LAYOUT)
    feedback = FakeUserFeedback()
    store = await _loaded(source, feedback)
    entry = store.rows("Todo")[0]
    source.fail_on.add("delete_row")

    deleted = await store.delete_row(entry)

    assert not deleted
    assert store.rows("Todo")[0] is entry
    assert store.count("Todo") == 2
    assert feedback.errors == ("Row delete failed: simulated failure",)
    assert source.deleted_keys == ()
