"""Data models for conversation records and their sync index.

Records travel as camelCase JSON (the format the chat client persists and
uploads). Exported records also carry snake_case copies of the timestamp and
tombstone fields so that stores written by older clients stay readable.
"""

import time
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

DEFAULT_TITLE = "New chat"
INDEX_VERSION = 1


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class ChatMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: str = ""
    is_from_user: bool = Field(False, alias="isFromUser")
    is_error: bool = Field(False, alias="isError")
    timestamp: int
    model_label: str | None = Field(
        None,
        validation_alias=AliasChoices("modelLabel", "modelDisplayName", "model_label"),
        serialization_alias="modelLabel",
    )

    def to_wire(self) -> dict[str, Any]:
        data = {
            "content": self.content,
            "isError": self.is_error,
            "isFromUser": self.is_from_user,
            "timestamp": self.timestamp,
        }
        if self.model_label is not None:
            data["modelLabel"] = self.model_label
        return data


class ConversationRecord(BaseModel):
    """A single conversation, including tombstoned ones."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    title: str = DEFAULT_TITLE
    messages: list[ChatMessage] = Field(default_factory=list)
    created_at: int = Field(alias="createdAt")
    updated_at: int = Field(alias="updatedAt")
    is_deleted: bool = Field(False, alias="isDeleted")
    deleted_at: int | None = Field(None, alias="deletedAt")

    @property
    def last_message(self) -> ChatMessage | None:
        return self.messages[-1] if self.messages else None

    def to_wire(self) -> dict[str, Any]:
        """Serialize for local persistence and upload."""
        return {
            "createdAt": self.created_at,
            "id": self.id,
            "messages": [m.to_wire() for m in self.messages],
            "title": self.title,
            "updatedAt": self.updated_at,
            "isDeleted": self.is_deleted,
            "deletedAt": self.deleted_at,
            "is_deleted": self.is_deleted,
            "deleted_at": self.deleted_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class HistoryIndexEntry(BaseModel):
    """Cheap fingerprint of one record, enough to detect that it changed."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    title: str
    updated_at: int = Field(alias="updatedAt")
    message_count: int = Field(alias="messageCount")
    last_message: str = Field(
        "",
        validation_alias=AliasChoices("lastMessage", "lastMessageText", "last_message"),
        serialization_alias="lastMessage",
    )


class HistoryIndex(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    version: int = INDEX_VERSION
    generated_at: int = Field(0, alias="generatedAt")
    items: list[HistoryIndexEntry] = Field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)

    def ids(self) -> set[int]:
        return {item.id for item in self.items}

    def get(self, record_id: int) -> HistoryIndexEntry | None:
        for item in self.items:
            if item.id == record_id:
                return item
        return None

    def same_items(self, other: "HistoryIndex") -> bool:
        """Compare two indexes ignoring when they were generated."""
        return self.version == other.version and self.items == other.items
