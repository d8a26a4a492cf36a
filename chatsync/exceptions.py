"""
Exceptions for chatsync.
"""


class ChatSyncError(Exception):
    """Base exception for chatsync operations."""


class ObjectStoreError(ChatSyncError):
    """Raised when a remote object store operation fails."""


class ObjectNotFoundError(ObjectStoreError):
    """Raised when a remote object does not exist."""


class InvalidKeyError(ObjectStoreError):
    """Raised when an object key is empty or escapes the store root."""


class PayloadDecodeError(ChatSyncError):
    """Raised when a JSON payload cannot be parsed, even leniently."""


class InvalidHistoryError(ChatSyncError):
    """Raised when imported history does not have the shape of a record list."""


class InvalidConfigError(ChatSyncError):
    """Raised when configuration input is missing or malformed."""


class SnapshotImportError(ChatSyncError):
    """Raised when a whole-state snapshot has no recognisable sections."""
