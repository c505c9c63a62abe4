"""Tests for stack metadata overlay decoding and the descriptor store."""

import json

from stackboard.board.stack_meta import (
    OVERLAY_VERSION,
    StackMetaOverlay,
    StackMetaStore,
    decode_overlay,
    encode_overlay,
)
from stackboard.board.types import UNCATEGORIZED_ID
from tests.test_utils.builders import DONE, STATUS_COLUMN_ID, TODO, descriptor


def test_decode_missing_blob_is_empty() -> None:
    assert decode_overlay(None).stacks == {}
    assert decode_overlay("").stacks == {}


def test_decode_fails_closed_on_unreadable_json() -> None:
    overlay = decode_overlay("{not json")

    assert overlay.descriptors_for(STATUS_COLUMN_ID) is None


def test_decode_fails_closed_on_non_object() -> None:
    assert decode_overlay("[1, 2, 3]").stacks == {}


def test_decode_fails_closed_on_invalid_entries() -> None:
    blob = json.dumps({"version": 1, "stacks": {STATUS_COLUMN_ID: [{"title": "no id"}]}})

    assert decode_overlay(blob).stacks == {}


def test_decode_rejects_future_version() -> None:
    blob = json.dumps({"version": OVERLAY_VERSION + 1, "stacks": {}})

    assert decode_overlay(blob).stacks == {}


def test_decode_accepts_legacy_unversioned_form() -> None:
    blob = json.dumps(
        {
            STATUS_COLUMN_ID: [
                {"id": "opt_todo", "title": "Todo", "order": 0, "color": "#cfdffe"},
                {"id": "uncategorized", "title": None, "order": 1, "collapsed": True},
            ]
        }
    )

    descriptors = decode_overlay(blob).descriptors_for(STATUS_COLUMN_ID)

    assert descriptors is not None
    assert [d.title for d in descriptors] == ["Todo", None]
    assert descriptors[1].id == UNCATEGORIZED_ID
    assert descriptors[1].collapsed is True


def test_decode_ignores_unknown_fields_and_coerces_numeric_ids() -> None:
    blob = {STATUS_COLUMN_ID: [{"id": 42, "title": "Todo", "order": 0, "fk_column": "x"}]}

    descriptors = decode_overlay(blob).descriptors_for(STATUS_COLUMN_ID)

    assert descriptors is not None
    assert descriptors[0].id == "42"


def test_encoded_overlay_is_versioned_and_keeps_other_columns() -> None:
    overlay = StackMetaOverlay().with_descriptors("col_other", (descriptor(TODO, 0),))
    store = StackMetaStore(STATUS_COLUMN_ID, overlay)
    store.replace_all((descriptor(DONE, 1), descriptor(None, 2)))

    data = json.loads(store.serialize())

    assert data["version"] == OVERLAY_VERSION
    assert set(data["stacks"]) == {"col_other", STATUS_COLUMN_ID}


def test_store_keeps_descriptors_sorted_by_order() -> None:
    store = StackMetaStore(STATUS_COLUMN_ID, StackMetaOverlay())

    store.replace_all((descriptor(None, 2), descriptor(DONE, 1), descriptor(TODO, 0)))

    assert [d.title for d in store.descriptors] == ["Todo", "Done", None]
    assert store.index_of_title("Done") == 1


def test_set_collapsed_is_local_until_serialized() -> None:
    blob = encode_overlay(
        StackMetaOverlay().with_descriptors(
            STATUS_COLUMN_ID, (descriptor(TODO, 0), descriptor(None, 1))
        )
    )
    store = StackMetaStore(STATUS_COLUMN_ID, decode_overlay(blob))

    assert store.set_collapsed("opt_todo", True)
    assert not store.set_collapsed("opt_missing", True)

    persisted = store.persisted_descriptors
    assert persisted is not None
    assert persisted[0].collapsed is False

    reloaded = decode_overlay(store.serialize()).descriptors_for(STATUS_COLUMN_ID)
    assert reloaded is not None
    assert reloaded[0].collapsed is True
