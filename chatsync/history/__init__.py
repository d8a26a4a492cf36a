"""Local conversation history.

This package provides:
- RecordStore: the persisted record collection with tombstones
- build_index / diff_index: cheap change detection for uploads
- merge_histories / replace_records: importing remote histories
"""

from chatsync.history.index import IndexDiff, build_index, diff_index
from chatsync.history.merge import (
    MergeReport,
    Resolution,
    merge_histories,
    replace_records,
    resolve,
)
from chatsync.history.models import (
    ChatMessage,
    ConversationRecord,
    HistoryIndex,
    HistoryIndexEntry,
)
from chatsync.history.persistence import (
    InMemoryDocument,
    JsonDocument,
    JsonFileDocument,
)
from chatsync.history.record_store import RecordStore

__all__ = [
    # Models
    "ChatMessage",
    "ConversationRecord",
    "HistoryIndex",
    "HistoryIndexEntry",
    # Store
    "RecordStore",
    "JsonDocument",
    "JsonFileDocument",
    "InMemoryDocument",
    # Index
    "IndexDiff",
    "build_index",
    "diff_index",
    # Merge
    "MergeReport",
    "Resolution",
    "merge_histories",
    "replace_records",
    "resolve",
]
