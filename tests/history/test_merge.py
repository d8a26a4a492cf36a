"""Tests for the title-keyed merge resolver."""

import random

import pytest

from chatsync.exceptions import InvalidHistoryError
from chatsync.history.merge import (
    Active,
    Resolution,
    Tombstone,
    merge_histories,
    replace_records,
    resolve,
    state_of,
)
from chatsync.history.models import ConversationRecord

from conftest import make_record

NOW = 90_000


def local_records(*raw):
    return replace_records(list(raw), now=0)


def rec(record_id=1, updated_at=1000, messages=1, deleted_at=None):
    return ConversationRecord(
        id=record_id,
        title="t",
        created_at=0,
        updated_at=updated_at,
        messages=[{"content": str(i), "timestamp": i} for i in range(messages)],
        is_deleted=deleted_at is not None,
        deleted_at=deleted_at,
    )


class TestResolve:
    def test_unmatched_active_is_added(self):
        assert resolve(None, Active(rec())) == Resolution.ADD

    def test_unmatched_tombstone_is_not_resurrected(self):
        assert resolve(None, Tombstone(rec(deleted_at=5), 5)) == Resolution.SKIP

    def test_remote_tombstone_propagates(self):
        assert resolve(Active(rec()), Tombstone(rec(deleted_at=5), 5)) == Resolution.PROPAGATE_TOMBSTONE

    def test_both_tombstones_keep_local(self):
        assert resolve(Tombstone(rec(deleted_at=5), 5), Tombstone(rec(deleted_at=9), 9)) == Resolution.KEEP_LOCAL

    def test_tombstone_restored_only_by_newer_content(self):
        local = Tombstone(rec(deleted_at=2000), 2000)
        assert resolve(local, Active(rec(updated_at=2001))) == Resolution.TAKE_REMOTE
        assert resolve(local, Active(rec(updated_at=2000))) == Resolution.KEEP_LOCAL
        assert resolve(local, Active(rec(updated_at=1500))) == Resolution.KEEP_LOCAL

    def test_both_active_newer_wins(self):
        assert resolve(Active(rec(updated_at=1)), Active(rec(updated_at=2))) == Resolution.TAKE_REMOTE
        assert resolve(Active(rec(updated_at=2)), Active(rec(updated_at=1))) == Resolution.KEEP_LOCAL

    def test_tie_broken_by_message_count(self):
        assert resolve(Active(rec(messages=1)), Active(rec(messages=3))) == Resolution.TAKE_REMOTE
        assert resolve(Active(rec(messages=3)), Active(rec(messages=1))) == Resolution.KEEP_LOCAL

    def test_full_tie_keeps_local(self):
        assert resolve(Active(rec()), Active(rec())) == Resolution.KEEP_LOCAL

    def test_state_of(self):
        assert isinstance(state_of(rec()), Active)
        tombstone = state_of(rec(deleted_at=7))
        assert isinstance(tombstone, Tombstone)
        assert tombstone.deleted_at == 7


class TestMergeHistories:
    def test_weather_scenario_keeps_local_id_with_remote_content(self):
        local = local_records(make_record(100, "Weather", 1000, messages=2))
        remote = [make_record(200, "Weather", 2000, messages=3)]

        report = merge_histories(local, remote, NOW)

        assert len(report.records) == 1
        merged = report.records[0]
        assert merged.id == 100
        assert merged.updated_at == 2000
        assert len(merged.messages) == 3
        assert report.updated == 1
        assert report.added == 0

    def test_update_matches_live_record_before_tombstone_with_same_title(self):
        local = local_records(
            make_record(11111, "Weather", 900, isDeleted=True, deletedAt=900),
            make_record(22222, "Weather", 1000),
        )
        remote = [make_record(33333, "Weather", 2000, messages=2)]

        report = merge_histories(local, remote, NOW)

        live = [r for r in report.records if not r.is_deleted]
        assert [(r.id, len(r.messages)) for r in live] == [(22222, 2)]
        assert report.records[1].id == 11111
        assert report.records[1].is_deleted is True

    def test_local_list_is_not_modified(self):
        local = local_records(make_record(100, "Weather", 1000, messages=2))
        merge_histories(local, [make_record(200, "Weather", 2000, messages=3)], NOW)
        assert len(local[0].messages) == 2

    def test_tombstone_propagation(self):
        local = local_records(make_record(100, "A", 1000))
        remote = [make_record(555, "A", 3000, isDeleted=True, deletedAt=2900)]

        merged = merge_histories(local, remote, NOW).records[0]
        assert merged.is_deleted is True
        assert merged.deleted_at == 2900
        assert merged.updated_at == 3000
        assert merged.id == 100

    def test_tombstone_without_deleted_at_uses_now(self):
        local = local_records(make_record(100, "A", 1000))
        merged = merge_histories(local, [make_record(555, "A", 3000, isDeleted=True)], NOW).records[0]
        assert merged.deleted_at == NOW

    def test_stale_remote_does_not_resurrect(self):
        local = local_records(make_record(100, "A", 2000, isDeleted=True, deletedAt=2000))
        report = merge_histories(local, [make_record(555, "A", 1500, messages=5)], NOW)

        assert report.records[0].is_deleted is True
        assert not report.changed

    def test_remote_tombstone_for_unknown_title_is_skipped(self):
        local = local_records(make_record(100, "A", 1000))
        report = merge_histories(local, [make_record(555, "B", 3000, isDeleted=True, deletedAt=3000)], NOW)

        assert [r.title for r in report.records] == ["A"]
        assert not report.changed

    def test_added_record_keeps_id_unless_it_collides(self):
        local = local_records(make_record(100, "A", 1000))
        report = merge_histories(
            local,
            [make_record(100, "B", 2000), make_record(300, "C", 3000)],
            NOW,
            rng=random.Random(5),
        )

        by_title = {r.title: r for r in report.records}
        assert by_title["A"].id == 100
        assert by_title["B"].id != 100
        assert by_title["C"].id == 300
        assert report.added == 2

    def test_result_sorted_newest_first(self):
        local = local_records(make_record(100, "A", 1000), make_record(101, "B", 5000))
        report = merge_histories(local, [make_record(300, "C", 3000)], NOW)
        assert [r.updated_at for r in report.records] == [5000, 3000, 1000]

    def test_rejects_non_list(self):
        with pytest.raises(InvalidHistoryError):
            merge_histories([], {"records": []}, NOW)


def test_replace_records_keeps_payload_ids():
    result = replace_records([make_record(100, "A", 1000), make_record(200, "B", 2000)], NOW)
    assert [r.id for r in result] == [100, 200]
