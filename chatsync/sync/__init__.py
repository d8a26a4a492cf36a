"""Remote sync for conversation history and preferences.

This package provides:
- ObjectStore backends: S3-compatible, HTTP blob proxy, local directory
- SyncOrchestrator: incremental upload/download with snapshot fallback
- Snapshot export/import of the whole local state
"""

from chatsync.sync.codec import decode_json, encode_json, parse_with_compatibility
from chatsync.sync.layout import SyncLayout
from chatsync.sync.object_store import LocalDirectoryObjectStore, ObjectStore
from chatsync.sync.orchestrator import (
    ImportMode,
    IndexDiffCheck,
    MirrorResult,
    SyncOrchestrator,
    SyncOutcome,
    SyncPath,
    SyncProgress,
)
from chatsync.sync.snapshot import export_global, import_global

__all__ = [
    # Stores
    "ObjectStore",
    "LocalDirectoryObjectStore",
    "SyncLayout",
    # Codec
    "decode_json",
    "encode_json",
    "parse_with_compatibility",
    # Orchestrator
    "SyncOrchestrator",
    "SyncOutcome",
    "SyncPath",
    "SyncProgress",
    "ImportMode",
    "MirrorResult",
    "IndexDiffCheck",
    # Snapshot
    "export_global",
    "import_global",
]
