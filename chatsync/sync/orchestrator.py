"""Sync orchestrator for conversation history.

Incremental protocol against a flat object store:

- upload: diff the local index against the last uploaded one, write the
  auxiliary objects, delete remote-only records, write changed records and
  write the index last, so the remote index never names a missing object
- download: read the remote index, fetch each record individually
  (a failed record is skipped) and import by replace or merge

If the incremental protocol fails, both directions fall back to a single
whole-state snapshot object. Every public operation returns a result value;
failures are reported in it rather than raised.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import ValidationError

from chatsync.exceptions import (
    ChatSyncError,
    ObjectNotFoundError,
    PayloadDecodeError,
)
from chatsync.history.index import build_index, diff_index
from chatsync.history.models import HistoryIndex
from chatsync.history.record_store import RecordStore
from chatsync.preferences.model_config import ModelConfigStore
from chatsync.preferences.user_profile import UserProfileStore
from chatsync.sync.codec import decode_json, encode_json
from chatsync.sync.layout import SyncLayout
from chatsync.sync.object_store import ObjectStore
from chatsync.sync.snapshot import export_global, import_global

logger = logging.getLogger(__name__)


class SyncPath(str, Enum):
    """Which protocol produced the final state of an operation."""

    INCREMENTAL = "incremental"
    SNAPSHOT = "snapshot"
    NONE = "none"


class ImportMode(str, Enum):
    """How downloaded records are applied to the local store."""

    MERGE = "merge"
    REPLACE = "replace"


@dataclass(frozen=True)
class SyncProgress:
    """One progress event."""

    current: int
    total: int
    percent: int
    label: str


ProgressCallback = Callable[[SyncProgress], None]


class ProgressTracker:
    """Emits monotonic progress events to an optional callback.

    The total can be set once it is known (a download learns it from the
    remote index); ``finish`` always ends at current == total, 100%.
    """

    def __init__(self, callback: ProgressCallback | None = None, total: int = 0):
        self.callback = callback
        self.total = total
        self.current = 0
        self._percent = 0

    def set_total(self, total: int) -> None:
        self.total = max(total, self.current)

    def emit(self, label: str) -> None:
        if self.total > 0:
            percent = min(100, round(self.current / self.total * 100))
            self._percent = max(self._percent, percent)
        if self.callback:
            self.callback(SyncProgress(self.current, self.total, self._percent, label))

    def advance(self, label: str | None = None) -> None:
        """Count one finished step; emit only when a label is given."""
        self.current += 1
        if self.total and self.current > self.total:
            self.total = self.current
        if label is not None:
            self.emit(label)

    def finish(self, label: str) -> None:
        self.total = max(self.total, self.current, 1)
        self.current = self.total
        self._percent = 100
        if self.callback:
            self.callback(SyncProgress(self.current, self.total, 100, label))


@dataclass
class SyncOutcome:
    """Result of an upload or download."""

    ok: bool
    message: str
    path: SyncPath = SyncPath.NONE
    mode: ImportMode | None = None
    uploaded: list[int] = field(default_factory=list)
    deleted: list[int] = field(default_factory=list)
    downloaded: list[int] = field(default_factory=list)
    skipped_ids: list[int] = field(default_factory=list)
    primary_error: str | None = None
    fallback_error: str | None = None

    @property
    def used_fallback(self) -> bool:
        return self.primary_error is not None


@dataclass
class MirrorResult:
    """Result of aligning the local store with the remote index."""

    ok: bool
    message: str
    added: int = 0
    removed: int = 0
    skipped_ids: list[int] = field(default_factory=list)


@dataclass
class IndexDiffCheck:
    """Id-level difference between the remote index and the local store."""

    ok: bool
    added: int = 0
    removed: int = 0
    message: str = ""

    @property
    def needs_sync(self) -> bool:
        """Check if a download would change anything."""
        return self.ok and bool(self.added or self.removed)


class SyncOrchestrator:
    """Moves conversation history and preferences between local stores and
    a remote object store.

    Operations run one remote call at a time. Running two operations against
    the same local stores concurrently is not supported; callers serialize.
    """

    def __init__(
        self,
        store: ObjectStore,
        history: RecordStore,
        model_config: ModelConfigStore,
        user_profile: UserProfileStore,
        layout: SyncLayout | None = None,
    ):
        """Initialize orchestrator.

        Args:
            store: Remote object store
            history: Local conversation records
            model_config: Local model configuration
            user_profile: Local user profile
            layout: Remote key layout (defaults to the AIme layout)
        """
        self.store = store
        self.history = history
        self.model_config = model_config
        self.user_profile = user_profile
        self.layout = layout or SyncLayout()

    # ------------------------------------------------------------------
    # Remote helpers
    # ------------------------------------------------------------------

    async def _get_json(self, key: str) -> Any:
        data = await self.store.get(key)
        logger.debug(f"Fetched {key} ({len(data)} bytes)")
        return decode_json(data)

    async def _put_json(self, key: str, value: Any) -> None:
        await self.store.put(key, encode_json(value))
        logger.debug(f"Uploaded {key}")

    async def _fetch_remote_index(self) -> HistoryIndex | None:
        """Fetch the remote index; None when it does not exist.

        Raises:
            PayloadDecodeError: If the index exists but is malformed
            ObjectStoreError: If the read fails
        """
        try:
            raw = await self._get_json(self.layout.index_key)
        except ObjectNotFoundError:
            return None
        try:
            return HistoryIndex.model_validate(raw)
        except ValidationError as e:
            raise PayloadDecodeError(f"Malformed remote index: {e}") from e

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    async def upload_incremental(
        self, progress: ProgressCallback | None = None
    ) -> SyncOutcome:
        """Upload local changes, falling back to a whole-state snapshot.

        Args:
            progress: Optional callback receiving SyncProgress events

        Returns:
            SyncOutcome; ``path`` tells whether the snapshot was used
        """
        tracker = ProgressTracker(progress)
        try:
            return await self._upload_incremental(tracker)
        except Exception as e:
            logger.warning(f"Incremental upload failed, falling back to snapshot: {e}")
            return await self._upload_snapshot(tracker, primary_error=str(e))

    async def _upload_incremental(self, tracker: ProgressTracker) -> SyncOutcome:
        records = self.history.records
        local_index = build_index(records)
        remote_index = await self._fetch_remote_index()
        if remote_index is None:
            logger.info("No remote index found, treating as first sync")

        diff = diff_index(local_index, remote_index)
        # model config + user profile + deletions + records + index
        tracker.set_total(2 + diff.total_operations + 1)
        tracker.emit("Preparing incremental upload")

        try:
            await self._put_json(self.layout.model_config_key, self.model_config.export())
        except ChatSyncError as e:
            logger.warning(f"Model configuration upload failed, continuing: {e}")
        tracker.advance("Uploaded model configuration")

        try:
            await self._put_json(self.layout.user_profile_key, self.user_profile.export())
        except ChatSyncError as e:
            logger.warning(f"User profile upload failed, continuing: {e}")
        tracker.advance("Uploaded user profile")

        for record_id in diff.to_delete_remote:
            await self.store.delete(self.layout.record_key(record_id))
            tracker.advance(f"Deleted remote record #{record_id}")

        by_id = {record.id: record for record in records}
        for record_id in diff.to_upload:
            await self._put_json(self.layout.record_key(record_id), by_id[record_id].to_wire())
            tracker.advance(f"Uploaded record #{record_id}")

        await self._put_json(self.layout.index_key, local_index.to_wire())
        tracker.advance("Uploaded index")
        tracker.finish("Upload complete")

        logger.info(
            f"Incremental upload: {len(diff.to_upload)} uploaded, "
            f"{len(diff.to_delete_remote)} deleted"
        )
        return SyncOutcome(
            ok=True,
            message=(
                f"Incremental upload complete: {len(diff.to_upload)} uploaded, "
                f"{len(diff.to_delete_remote)} deleted"
            ),
            path=SyncPath.INCREMENTAL,
            uploaded=list(diff.to_upload),
            deleted=list(diff.to_delete_remote),
        )

    async def _upload_snapshot(
        self, tracker: ProgressTracker, primary_error: str
    ) -> SyncOutcome:
        try:
            snapshot = export_global(self.history, self.model_config)
            await self._put_json(self.layout.snapshot_key, snapshot)
        except Exception as e:
            logger.error(f"Snapshot upload failed: {e}")
            tracker.finish("Upload failed")
            return SyncOutcome(
                ok=False,
                message=f"Upload failed: {e}",
                primary_error=primary_error,
                fallback_error=str(e),
            )

        tracker.finish("Uploaded whole-state snapshot")
        return SyncOutcome(
            ok=True,
            message="Incremental upload failed, uploaded whole-state snapshot instead",
            path=SyncPath.SNAPSHOT,
            primary_error=primary_error,
        )

    async def upload_record_and_index(self, record_id: int) -> SyncOutcome:
        """Upload one record followed by a fresh index."""
        records = self.history.records
        record = next((r for r in records if r.id == record_id), None)
        if record is None:
            return SyncOutcome(ok=False, message=f"Record not found locally: #{record_id}")

        try:
            await self._put_json(self.layout.record_key(record_id), record.to_wire())
            await self._put_json(self.layout.index_key, build_index(records).to_wire())
        except Exception as e:
            logger.error(f"Upload of record #{record_id} failed: {e}")
            return SyncOutcome(ok=False, message=f"Upload failed: {e}", primary_error=str(e))

        return SyncOutcome(
            ok=True,
            message=f"Uploaded record #{record_id} and updated the index",
            path=SyncPath.INCREMENTAL,
            uploaded=[record_id],
        )

    async def upload_model_config_only(self) -> SyncOutcome:
        try:
            await self._put_json(self.layout.model_config_key, self.model_config.export())
        except Exception as e:
            logger.error(f"Model configuration upload failed: {e}")
            return SyncOutcome(ok=False, message=f"Upload failed: {e}", primary_error=str(e))
        return SyncOutcome(
            ok=True, message="Model configuration uploaded", path=SyncPath.INCREMENTAL
        )

    async def upload_user_profile_only(self) -> SyncOutcome:
        try:
            await self._put_json(self.layout.user_profile_key, self.user_profile.export())
        except Exception as e:
            logger.error(f"User profile upload failed: {e}")
            return SyncOutcome(ok=False, message=f"Upload failed: {e}", primary_error=str(e))
        return SyncOutcome(ok=True, message="User profile uploaded", path=SyncPath.INCREMENTAL)

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------

    async def download_and_import(
        self,
        progress: ProgressCallback | None = None,
        mode: ImportMode | None = None,
    ) -> SyncOutcome:
        """Download the remote history and import it.

        Args:
            progress: Optional callback receiving SyncProgress events
            mode: REPLACE or MERGE; None picks REPLACE for an empty local
                store and MERGE otherwise

        Returns:
            SyncOutcome with downloaded and skipped record ids
        """
        tracker = ProgressTracker(progress)
        tracker.emit("Preparing incremental download")
        try:
            return await self._download_incremental(tracker, mode)
        except Exception as e:
            logger.warning(f"Incremental download failed, falling back to snapshot: {e}")
            return await self._download_snapshot(tracker, primary_error=str(e))

    async def _download_incremental(
        self, tracker: ProgressTracker, mode: ImportMode | None
    ) -> SyncOutcome:
        try:
            self.user_profile.replace(await self._get_json(self.layout.user_profile_key))
        except ObjectNotFoundError:
            logger.debug("No remote user profile")
        except ChatSyncError as e:
            logger.warning(f"Ignoring remote user profile: {e}")
        tracker.advance()

        index = await self._fetch_remote_index()
        if index is None:
            raise ObjectNotFoundError(f"Remote index not found: {self.layout.index_key}")
        tracker.advance()

        # profile + index + model config + records + apply
        tracker.set_total(3 + len(index.items) + 1)
        tracker.emit("Index downloaded, importing")

        try:
            self.model_config.replace(await self._get_json(self.layout.model_config_key))
        except ObjectNotFoundError:
            logger.debug("No remote model configuration")
        except ChatSyncError as e:
            logger.warning(f"Ignoring remote model configuration: {e}")
        tracker.advance("Imported model configuration")

        collected: list[dict[str, Any]] = []
        downloaded: list[int] = []
        skipped: list[int] = []
        for item in index.items:
            try:
                raw = await self._get_json(self.layout.record_key(item.id))
                if not isinstance(raw, dict):
                    raise PayloadDecodeError(f"Record #{item.id} is not an object")
                collected.append(raw)
                downloaded.append(item.id)
            except ChatSyncError as e:
                logger.warning(f"Skipping record #{item.id}: {e}")
                skipped.append(item.id)
            tracker.advance(f"Downloaded record #{item.id}")

        if mode is None:
            mode = ImportMode.REPLACE if self.history.is_empty else ImportMode.MERGE
        if mode == ImportMode.REPLACE:
            self.history.replace_all(collected)
        else:
            report = self.history.merge_in(collected)
            logger.info(f"Merge applied: {report.added} added, {report.updated} updated")
        tracker.advance("Applied history")
        tracker.finish("Download complete")

        message = f"Incremental download complete: {len(downloaded)} records ({mode.value})"
        if skipped:
            message += f", {len(skipped)} skipped"
        return SyncOutcome(
            ok=True,
            message=message,
            path=SyncPath.INCREMENTAL,
            mode=mode,
            downloaded=downloaded,
            skipped_ids=skipped,
        )

    async def _download_snapshot(
        self, tracker: ProgressTracker, primary_error: str
    ) -> SyncOutcome:
        try:
            data = await self._get_json(self.layout.snapshot_key)
            applied = import_global(data, self.history, self.model_config)
        except Exception as e:
            logger.error(f"Snapshot import failed: {e}")
            tracker.finish("Download failed")
            return SyncOutcome(
                ok=False,
                message=f"Download failed: {e}",
                primary_error=primary_error,
                fallback_error=str(e),
            )

        tracker.finish("Imported whole-state snapshot")
        return SyncOutcome(
            ok=True,
            message=(
                "Remote index missing or unreadable, imported snapshot "
                f"({', '.join(applied)})"
            ),
            path=SyncPath.SNAPSHOT,
            mode=ImportMode.REPLACE,
            primary_error=primary_error,
        )

    # ------------------------------------------------------------------
    # Index-only reconciliation
    # ------------------------------------------------------------------

    async def mirror_local_with_cloud(
        self, progress: ProgressCallback | None = None
    ) -> MirrorResult:
        """Align local records with the remote index by id.

        Records only present remotely are downloaded; records only present
        locally are dropped. No merge rules apply.
        """
        tracker = ProgressTracker(progress)
        try:
            remote = await self._fetch_remote_index()
            if remote is None:
                raise ObjectNotFoundError(f"Remote index not found: {self.layout.index_key}")

            local = self.history.records
            local_ids = {record.id for record in local}
            remote_ids = remote.ids()
            to_add = [item.id for item in remote.items if item.id not in local_ids]
            removed = sum(1 for record in local if record.id not in remote_ids)

            tracker.set_total(len(to_add) + 1)
            tracker.emit("Comparing with remote index")

            added: list[dict[str, Any]] = []
            skipped: list[int] = []
            for record_id in to_add:
                try:
                    raw = await self._get_json(self.layout.record_key(record_id))
                    if not isinstance(raw, dict):
                        raise PayloadDecodeError(f"Record #{record_id} is not an object")
                    added.append(raw)
                except ChatSyncError as e:
                    logger.warning(f"Skipping record #{record_id}: {e}")
                    skipped.append(record_id)
                tracker.advance(f"Downloaded record #{record_id}")

            kept = [record.to_wire() for record in local if record.id in remote_ids]
            self.history.replace_all(kept + added)
            tracker.advance("Applied history")
            tracker.finish("Mirror complete")
        except Exception as e:
            logger.error(f"Mirror failed: {e}")
            tracker.finish("Mirror failed")
            return MirrorResult(ok=False, message=f"Mirror failed: {e}")

        return MirrorResult(
            ok=True,
            message=f"Mirror complete: {len(added)} downloaded, {removed} removed",
            added=len(added),
            removed=removed,
            skipped_ids=skipped,
        )

    async def check_index_diff(self) -> IndexDiffCheck:
        """Count ids that differ from the remote index without fetching bodies."""
        try:
            remote = await self._fetch_remote_index()
        except Exception as e:
            logger.warning(f"Index check failed: {e}")
            return IndexDiffCheck(ok=False, message=str(e))
        if remote is None:
            return IndexDiffCheck(ok=False, message="Remote index not found")

        local_ids = {record.id for record in self.history.records}
        remote_ids = remote.ids()
        return IndexDiffCheck(
            ok=True,
            added=len(remote_ids - local_ids),
            removed=len(local_ids - remote_ids),
        )
