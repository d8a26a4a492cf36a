"""Coerce untrusted record payloads into canonical conversation records.

Remote objects, snapshot files and local storage written by older clients do
not always match the current record shape. Normalization never rejects an
individual record: every field is coerced on its own, falling back to a
sensible default. Only a top-level input that is not a list is refused.
"""

import logging
import math
import random
from collections.abc import Callable, Container, Mapping
from typing import Any

from chatsync.exceptions import InvalidHistoryError
from chatsync.history.models import DEFAULT_TITLE, ChatMessage, ConversationRecord

logger = logging.getLogger(__name__)

ID_MIN = 10000
ID_MAX = 99999
TITLE_MAX_CHARS = 20

# Given the id found in a payload (or None), return the id to store.
IdAllocator = Callable[[int | None], int]


def generate_id(taken: Container[int], rng: random.Random | None = None) -> int:
    """Pick a random id in [ID_MIN, ID_MAX], re-rolling on collision.

    Only local uniqueness is guaranteed; ids from other stores may clash.
    """
    rng = rng or random
    record_id = rng.randint(ID_MIN, ID_MAX)
    while record_id in taken:
        record_id = rng.randint(ID_MIN, ID_MAX)
    return record_id


def derive_title(text: str) -> str:
    """Title from a user message: whitespace collapsed, truncated with an ellipsis."""
    collapsed = " ".join(text.split())
    if len(collapsed) > TITLE_MAX_CHARS:
        return collapsed[:TITLE_MAX_CHARS] + "…"
    return collapsed


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _first_number(raw: Mapping, *keys: str) -> int | None:
    for key in keys:
        value = raw.get(key)
        if _is_number(value):
            return int(value)
    return None


def _first_present(raw: Mapping, *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _as_mapping(raw: Any) -> Mapping:
    return raw if isinstance(raw, Mapping) else {}


def normalize_message(raw: Any, now: int) -> ChatMessage:
    raw = _as_mapping(raw)
    content = raw.get("content")
    label = _first_present(raw, "modelLabel", "modelDisplayName", "model_label")
    timestamp = _first_number(raw, "timestamp")
    return ChatMessage(
        content=content if isinstance(content, str) else "",
        is_error=bool(raw.get("isError")),
        is_from_user=bool(raw.get("isFromUser")),
        timestamp=timestamp if timestamp is not None else now,
        model_label=label if isinstance(label, str) else None,
    )


def normalize_record(raw: Any, now: int, allocate_id: IdAllocator) -> ConversationRecord:
    """Build a canonical record from any payload shape.

    Args:
        raw: Decoded JSON value for one record (camelCase or snake_case)
        now: Timestamp used for missing times, in epoch ms
        allocate_id: Decides the final id given the payload id (or None)

    Returns:
        A ConversationRecord; never raises for a malformed record
    """
    raw = _as_mapping(raw)
    raw_messages = raw.get("messages")
    messages = (
        [normalize_message(m, now) for m in raw_messages]
        if isinstance(raw_messages, list)
        else []
    )

    record_id = allocate_id(_first_number(raw, "id"))
    created_at = _first_number(raw, "createdAt", "created_at")
    updated_at = _first_number(raw, "updatedAt", "updated_at")
    if updated_at is None:
        updated_at = messages[-1].timestamp if messages else now
    if created_at is None:
        created_at = messages[0].timestamp if messages else now
    created_at = min(created_at, updated_at)

    title = raw.get("title")
    if isinstance(title, str) and title.strip():
        title = title.strip()
    elif messages and messages[0].content:
        title = messages[0].content[:TITLE_MAX_CHARS]
    else:
        title = DEFAULT_TITLE

    return ConversationRecord(
        id=record_id,
        title=title,
        messages=messages,
        created_at=created_at,
        updated_at=updated_at,
        is_deleted=bool(_first_present(raw, "isDeleted", "is_deleted")),
        deleted_at=_first_number(raw, "deletedAt", "deleted_at"),
    )


def normalize_records(
    items: Any,
    now: int,
    allocate_id: IdAllocator,
) -> list[ConversationRecord]:
    """Normalize a whole imported history.

    Raises:
        InvalidHistoryError: If items is not a list of records
    """
    if not isinstance(items, (list, tuple)):
        raise InvalidHistoryError(
            f"History must be a list of records, got {type(items).__name__}"
        )
    records = [normalize_record(item, now, allocate_id) for item in items]
    logger.debug(f"Normalized {len(records)} records")
    return records


def unique_id_allocator(
    taken: set[int] | None = None, rng: random.Random | None = None
) -> IdAllocator:
    """Allocator that keeps payload ids unless already used in this batch."""
    used = taken if taken is not None else set()

    def allocate(candidate: int | None) -> int:
        record_id = candidate
        if record_id is None or record_id in used:
            record_id = generate_id(used, rng)
        used.add(record_id)
        return record_id

    return allocate
