"""Merge resolver for importing a remote history into a local one.

Numeric ids are only unique within one store, so records are matched across
stores by title. Each side of a match is either Active or a Tombstone, and
``resolve`` maps every (local, remote) combination to one Resolution. The
whole scheme is last-writer-wins without vector clocks: the later
``updated_at`` wins, and a deletion only loses to content written after it.
"""

import logging
import random
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from chatsync.history.models import ConversationRecord
from chatsync.history.normalize import (
    generate_id,
    normalize_records,
    unique_id_allocator,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Active:
    """A live record."""

    record: ConversationRecord


@dataclass(frozen=True)
class Tombstone:
    """A soft-deleted record; deleted_at may be missing in old payloads."""

    record: ConversationRecord
    deleted_at: int | None


RecordState = Active | Tombstone


def state_of(record: ConversationRecord) -> RecordState:
    if record.is_deleted:
        return Tombstone(record, record.deleted_at)
    return Active(record)


class Resolution(str, Enum):
    """What to do with one incoming record."""

    ADD = "add"
    SKIP = "skip"
    KEEP_LOCAL = "keep_local"
    TAKE_REMOTE = "take_remote"
    PROPAGATE_TOMBSTONE = "propagate_tombstone"


def resolve(local: RecordState | None, remote: RecordState) -> Resolution:
    """Decide how an incoming record reconciles with its local match.

    Args:
        local: State of the local record sharing the title, or None
        remote: State of the incoming record

    Returns:
        The Resolution to apply
    """
    if local is None:
        # Deleted elsewhere and never seen here: do not resurrect.
        if isinstance(remote, Tombstone):
            return Resolution.SKIP
        return Resolution.ADD

    if isinstance(remote, Tombstone):
        if isinstance(local, Tombstone):
            return Resolution.KEEP_LOCAL
        return Resolution.PROPAGATE_TOMBSTONE

    if isinstance(local, Tombstone):
        # Restore only content written after the local deletion.
        if remote.record.updated_at > (local.deleted_at or 0):
            return Resolution.TAKE_REMOTE
        return Resolution.KEEP_LOCAL

    return _newer_of(local.record, remote.record)


def _newer_of(local: ConversationRecord, remote: ConversationRecord) -> Resolution:
    if remote.updated_at != local.updated_at:
        if remote.updated_at > local.updated_at:
            return Resolution.TAKE_REMOTE
        return Resolution.KEEP_LOCAL
    if len(remote.messages) > len(local.messages):
        return Resolution.TAKE_REMOTE
    return Resolution.KEEP_LOCAL


@dataclass
class MergeReport:
    """Outcome of a merge: the new local record list and what changed."""

    records: list[ConversationRecord] = field(default_factory=list)
    added: int = 0
    updated: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.added or self.updated)


def _find_by_title(records: Sequence[ConversationRecord], title: str) -> int | None:
    """Index of the live record with this title, else of a tombstone."""
    tombstone = None
    for idx, record in enumerate(records):
        if record.title != title:
            continue
        if not record.is_deleted:
            return idx
        if tombstone is None:
            tombstone = idx
    return tombstone


def merge_histories(
    local: Sequence[ConversationRecord],
    incoming: Any,
    now: int,
    rng: random.Random | None = None,
) -> MergeReport:
    """Merge an incoming record list into a copy of the local records.

    The local list is not modified. The winning record of every match keeps
    the local id so UI selection state stays valid.

    Args:
        local: Current local records (tombstones included)
        incoming: Decoded remote history, normalized field by field
        now: Timestamp for tombstones that arrive without deletedAt
        rng: Random source for ids of added records that clash locally

    Returns:
        MergeReport with the merged list sorted by updated_at, newest first

    Raises:
        InvalidHistoryError: If incoming is not a list
    """
    merged = [record.model_copy(deep=True) for record in local]
    taken = {record.id for record in merged}

    def keep_payload_id(candidate: int | None) -> int:
        return candidate if candidate is not None else generate_id(taken, rng)

    remote_records = normalize_records(incoming, now, keep_payload_id)
    report = MergeReport()

    for remote in remote_records:
        idx = _find_by_title(merged, remote.title)
        local_state = state_of(merged[idx]) if idx is not None else None
        resolution = resolve(local_state, state_of(remote))
        logger.debug(f"Merge '{remote.title}' (remote #{remote.id}): {resolution.value}")

        if resolution == Resolution.ADD:
            if remote.id in taken:
                remote = remote.model_copy(update={"id": generate_id(taken, rng)})
            taken.add(remote.id)
            merged.append(remote)
            report.added += 1
        elif resolution == Resolution.PROPAGATE_TOMBSTONE:
            target = merged[idx]
            target.is_deleted = True
            target.deleted_at = remote.deleted_at if remote.deleted_at is not None else now
            target.updated_at = remote.updated_at
            report.updated += 1
        elif resolution == Resolution.TAKE_REMOTE:
            merged[idx] = remote.model_copy(update={"id": merged[idx].id})
            report.updated += 1

    merged.sort(key=lambda record: record.updated_at, reverse=True)
    report.records = merged
    logger.info(f"Merged history: {report.added} added, {report.updated} updated")
    return report


def replace_records(
    incoming: Any,
    now: int,
    rng: random.Random | None = None,
) -> list[ConversationRecord]:
    """Rebuild a history verbatim from the input (bulk import).

    Ids from the payload are kept; missing or duplicate ids get fresh ones.

    Raises:
        InvalidHistoryError: If incoming is not a list
    """
    return normalize_records(incoming, now, unique_id_allocator(rng=rng))
