"""Record store: the local, persisted collection of conversation records.

Records are kept newest-first. Deletion is a tombstone so the deletion itself
can be synced; only ``replace_all`` and ``merge_in`` rewrite the collection in
bulk. Every mutation persists immediately through the injected document.
"""

import logging
import random
from collections.abc import Callable
from typing import Any

from chatsync.history.merge import MergeReport, merge_histories, replace_records
from chatsync.history.models import (
    DEFAULT_TITLE,
    ChatMessage,
    ConversationRecord,
    now_ms,
)
from chatsync.history.normalize import derive_title, generate_id
from chatsync.history.persistence import JsonDocument

logger = logging.getLogger(__name__)


class RecordStore:
    """In-memory conversation records backed by a JSON document.

    Args:
        persistence: Where the record list is loaded from and saved to
        clock: Returns the current time in epoch milliseconds
        rng: Random source for id generation
    """

    def __init__(
        self,
        persistence: JsonDocument,
        clock: Callable[[], int] = now_ms,
        rng: random.Random | None = None,
    ):
        self.persistence = persistence
        self.clock = clock
        self.rng = rng
        self._records: list[ConversationRecord] = []
        self._active_id: int | None = None
        self._draft: ConversationRecord | None = None
        self._load()

    def _load(self) -> None:
        raw = self.persistence.load()
        if raw is None:
            return
        if not isinstance(raw, list):
            logger.warning("Stored history is not a list, starting empty")
            return

        self._records = replace_records(raw, self.clock(), self.rng)
        first = self._first_active()
        self._active_id = first.id if first else None
        logger.debug(f"Loaded {len(self._records)} records")

    def _persist(self) -> None:
        self.persistence.save(self.export_all())

    def _new_id(self) -> int:
        return generate_id({r.id for r in self._records}, self.rng)

    def _first_active(self) -> ConversationRecord | None:
        for record in self._records:
            if not record.is_deleted:
                return record
        return None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def records(self) -> list[ConversationRecord]:
        """All records, tombstones included (a shallow copy of the list)."""
        return list(self._records)

    @property
    def is_empty(self) -> bool:
        return not self._records

    @property
    def active_id(self) -> int | None:
        return self._active_id

    @property
    def active(self) -> ConversationRecord | None:
        if self._active_id is None:
            return None
        record = self.get(self._active_id)
        if record is None or record.is_deleted:
            return None
        return record

    @property
    def draft(self) -> ConversationRecord | None:
        return self._draft

    def get(self, record_id: int) -> ConversationRecord | None:
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    def list_active(self) -> list[ConversationRecord]:
        return [r for r in self._records if not r.is_deleted]

    def export_all(self) -> list[dict[str, Any]]:
        """Wire form of every record, tombstones included, for sync."""
        return [record.to_wire() for record in self._records]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set_active(self, record_id: int) -> bool:
        """Select a live record; tombstones cannot be selected."""
        record = self.get(record_id)
        if record is None or record.is_deleted:
            return False
        self._active_id = record_id
        return True

    def start_draft(self) -> ConversationRecord:
        """Deselect and stage an empty conversation that is not stored yet."""
        now = self.clock()
        self._active_id = None
        self._draft = ConversationRecord(
            id=0,
            title=DEFAULT_TITLE,
            created_at=now,
            updated_at=now,
        )
        return self._draft

    def create(self) -> ConversationRecord:
        """Create an empty stored conversation and select it."""
        now = self.clock()
        record = ConversationRecord(
            id=self._new_id(),
            title=DEFAULT_TITLE,
            created_at=now,
            updated_at=now,
        )
        self._records.insert(0, record)
        self._active_id = record.id
        self._persist()
        return record

    def append_message(self, message: ChatMessage) -> ConversationRecord:
        """Append to the active conversation, or to the draft if none is active.

        A draft becomes a stored record (with a real id) on its first
        message, so abandoned empty sessions are never stored.

        Returns:
            The record the message was appended to
        """
        record = self.active
        if record is None:
            draft = self._draft or self.start_draft()
            record = draft.model_copy(update={"id": self._new_id()})
            self._records.insert(0, record)
            self._active_id = record.id
            self._draft = None

        record.messages.append(message)
        record.updated_at = max(record.created_at, message.timestamp)
        if message.is_from_user and len(record.messages) == 1:
            record.title = derive_title(message.content) or record.title
        self._persist()
        return record

    def remove_message_at(self, record_id: int, index: int) -> bool:
        record = self.get(record_id)
        if record is None or not 0 <= index < len(record.messages):
            return False
        del record.messages[index]
        record.updated_at = max(record.created_at, self.clock())
        self._persist()
        return True

    def insert_message_at(self, record_id: int, index: int, message: ChatMessage) -> bool:
        record = self.get(record_id)
        if record is None:
            return False
        position = max(0, min(index, len(record.messages)))
        record.messages.insert(position, message)
        record.updated_at = max(record.created_at, message.timestamp)
        self._persist()
        return True

    def rename(self, record_id: int, title: str) -> bool:
        record = self.get(record_id)
        title = title.strip()
        if record is None or not title:
            return False
        record.title = title
        record.updated_at = max(record.created_at, self.clock())
        self._persist()
        return True

    def soft_delete(self, record_id: int) -> bool:
        """Tombstone a record; the selection moves to the first live record."""
        record = self.get(record_id)
        if record is None:
            return False

        now = max(record.created_at, self.clock())
        record.is_deleted = True
        record.deleted_at = now
        record.updated_at = now

        if self._active_id == record_id:
            first = self._first_active()
            self._active_id = first.id if first else None
        self._persist()
        return True

    def persist_now(self) -> None:
        """Explicit save, e.g. after streaming edits to a message in place."""
        self._persist()

    def replace_all(self, items: Any) -> int:
        """Discard the current records and rebuild from an imported list.

        The active selection survives if its record still exists and is
        live. With a pending draft and no selection, nothing gets selected.

        Returns:
            Number of records now stored

        Raises:
            InvalidHistoryError: If items is not a list (nothing is changed)
        """
        records = replace_records(items, self.clock(), self.rng)
        previous_active = self._active_id
        had_draft = self._draft is not None

        self._records = records
        first = self._first_active()
        if previous_active is not None:
            previous = self.get(previous_active)
            still_exists = previous is not None and not previous.is_deleted
            self._active_id = previous_active if still_exists else (first.id if first else None)
        elif had_draft:
            self._active_id = None
        else:
            self._active_id = first.id if first else None

        self._persist()
        logger.info(f"Replaced history with {len(records)} records")
        return len(records)

    def merge_in(self, items: Any) -> MergeReport:
        """Merge an imported list into the current records by title.

        Raises:
            InvalidHistoryError: If items is not a list (nothing is changed)
        """
        report = merge_histories(self._records, items, self.clock(), self.rng)
        if report.changed:
            self._records = report.records
            self._persist()
        return report
