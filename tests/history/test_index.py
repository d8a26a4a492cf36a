"""Tests for the index builder and diff engine."""

from chatsync.history.index import build_index, diff_index
from chatsync.history.merge import replace_records
from chatsync.history.models import HistoryIndex

from conftest import make_record


def records(*raw):
    return replace_records(list(raw), now=0)


def test_build_index_entries():
    index = build_index(
        records(make_record(11111, "A", 1000, messages=2), make_record(22222, "B", 2000, messages=0)),
        clock=lambda: 42,
    )

    assert index.generated_at == 42
    assert [item.id for item in index.items] == [11111, 22222]
    first = index.items[0]
    assert first.message_count == 2
    assert first.last_message == "A message 1"
    assert index.items[1].last_message == ""


def test_build_index_is_deterministic_except_generated_at():
    recs = records(make_record(11111, "A", 1000), make_record(22222, "B", 2000))
    a = build_index(recs, clock=lambda: 1)
    b = build_index(recs, clock=lambda: 2)

    assert a != b
    assert a.same_items(b)


def test_index_includes_tombstones():
    index = build_index(records(make_record(11111, "A", 1000, isDeleted=True, deletedAt=1000)))
    assert index.ids() == {11111}


def test_index_wire_format_is_camel_case():
    wire = build_index(records(make_record(11111, "A", 1000)), clock=lambda: 5).to_wire()

    assert wire["generatedAt"] == 5
    assert set(wire["items"][0]) == {"id", "title", "updatedAt", "messageCount", "lastMessage"}


def test_index_accepts_legacy_last_message_field():
    index = HistoryIndex.model_validate(
        {
            "version": 1,
            "generatedAt": 1,
            "items": [{"id": 1, "title": "t", "updatedAt": 2, "messageCount": 3, "lastMessageText": "hi"}],
        }
    )
    assert index.items[0].last_message == "hi"


class TestDiff:
    def test_first_sync_uploads_everything(self):
        local = build_index(records(make_record(11111, "A", 1000), make_record(22222, "B", 2000)))

        diff = diff_index(local, None)
        assert diff.to_upload == [11111, 22222]
        assert diff.to_delete_remote == []

    def test_identical_indexes_produce_empty_diff(self):
        recs = records(make_record(11111, "A", 1000))
        diff = diff_index(build_index(recs), build_index(recs))
        assert diff.is_empty

    def test_changed_and_new_items_upload(self):
        remote = build_index(records(make_record(11111, "A", 1000), make_record(22222, "B", 2000)))
        local = build_index(
            records(
                make_record(11111, "A", 1500),
                make_record(22222, "B renamed", 2000),
                make_record(33333, "C", 3000),
            )
        )

        diff = diff_index(local, remote)
        assert diff.to_upload == [11111, 22222, 33333]
        assert diff.to_delete_remote == []

    def test_message_count_change_uploads(self):
        remote = build_index(records(make_record(11111, "A", 1000, messages=1)))
        local = build_index(records(make_record(11111, "A", 1000, messages=2)))
        assert diff_index(local, remote).to_upload == [11111]

    def test_remote_only_items_are_deleted(self):
        remote = build_index(records(make_record(11111, "A", 1000), make_record(22222, "B", 2000)))
        local = build_index(records(make_record(11111, "A", 1000)))

        diff = diff_index(local, remote)
        assert diff.to_upload == []
        assert diff.to_delete_remote == [22222]
        assert diff.total_operations == 1
