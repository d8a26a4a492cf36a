"""Index builder and diff engine for incremental uploads.

The index summarises every record with a few fields that change whenever the
record does. Comparing the local index against the one last uploaded tells
the uploader which record objects to write and which to remove, without
transferring any record bodies.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from chatsync.history.models import (
    INDEX_VERSION,
    ConversationRecord,
    HistoryIndex,
    HistoryIndexEntry,
    now_ms,
)


def index_entry(record: ConversationRecord) -> HistoryIndexEntry:
    last = record.last_message
    return HistoryIndexEntry(
        id=record.id,
        title=record.title,
        updated_at=record.updated_at,
        message_count=len(record.messages),
        last_message=last.content if last else "",
    )


def build_index(
    records: Iterable[ConversationRecord],
    clock: Callable[[], int] = now_ms,
) -> HistoryIndex:
    """Summarise records in their given order.

    Which records to include is the caller's choice; the sync path passes
    tombstones too so that deletions propagate.
    """
    return HistoryIndex(
        version=INDEX_VERSION,
        generated_at=clock(),
        items=[index_entry(record) for record in records],
    )


@dataclass
class IndexDiff:
    """Remote operations needed to bring the remote copy up to date."""

    to_upload: list[int] = field(default_factory=list)
    to_delete_remote: list[int] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.to_upload and not self.to_delete_remote

    @property
    def total_operations(self) -> int:
        return len(self.to_upload) + len(self.to_delete_remote)


def entry_changed(local: HistoryIndexEntry, remote: HistoryIndexEntry) -> bool:
    return (
        local.updated_at != remote.updated_at
        or local.message_count != remote.message_count
        or local.last_message != remote.last_message
        or local.title != remote.title
    )


def diff_index(local: HistoryIndex, remote: HistoryIndex | None) -> IndexDiff:
    """Compare indexes by record id.

    Ids are only meaningful within one store lineage, which is fine here:
    the remote index being compared was uploaded by this same store.

    Args:
        local: Freshly built local index
        remote: Last uploaded index, or None on first sync

    Returns:
        IndexDiff with ids to upload and remote-only ids to delete
    """
    diff = IndexDiff()
    remote_items = {item.id: item for item in remote.items} if remote else {}

    for item in local.items:
        remote_item = remote_items.get(item.id)
        if remote_item is None or entry_changed(item, remote_item):
            diff.to_upload.append(item.id)

    if remote is not None:
        local_ids = local.ids()
        diff.to_delete_remote = [
            item.id for item in remote.items if item.id not in local_ids
        ]

    return diff
