"""Whole-state snapshot: every record plus the model configuration in one object.

Used as the fallback when the incremental protocol fails, and for manual
export and import. Imports accept a few shapes produced by other tools.
"""

import logging
from typing import Any

from chatsync.exceptions import InvalidConfigError, SnapshotImportError
from chatsync.history.models import now_ms
from chatsync.history.record_store import RecordStore
from chatsync.preferences.model_config import ModelConfigStore

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1

HISTORY_KEYS = ("chatHistories", "histories", "conversations", "chats", "records")


def export_global(history: RecordStore, model_config: ModelConfigStore) -> dict[str, Any]:
    return {
        "version": SNAPSHOT_VERSION,
        "exportedAt": now_ms(),
        "modelConfig": model_config.export(),
        "chatHistories": history.export_all(),
    }


def _config_section(obj: Any) -> Any:
    if not isinstance(obj, dict):
        return None
    if obj.get("modelConfig"):
        return obj["modelConfig"]
    if obj.get("modelGroups") or obj.get("models"):
        return obj
    return None


def _history_section(obj: Any) -> list | None:
    if isinstance(obj, list):
        return obj
    if isinstance(obj, dict):
        for key in HISTORY_KEYS:
            if isinstance(obj.get(key), list):
                return obj[key]
    return None


def import_global(
    obj: Any, history: RecordStore, model_config: ModelConfigStore
) -> list[str]:
    """Apply a decoded snapshot to the local stores.

    Histories are imported in replace mode. The model configuration is
    taken from ``modelConfig`` or, for a bare config export, from the
    object itself.

    Args:
        obj: Decoded snapshot (object or bare record list)
        history: Record store to replace
        model_config: Model configuration store to replace

    Returns:
        Names of the applied sections ("modelConfig", "chatHistories")

    Raises:
        SnapshotImportError: If a section is malformed or none is recognised
    """
    applied: list[str] = []

    config = _config_section(obj)
    if config is not None:
        try:
            model_config.replace(config)
        except InvalidConfigError as e:
            raise SnapshotImportError(f"Model configuration import failed: {e}") from e
        applied.append("modelConfig")

    records = _history_section(obj)
    if records is not None:
        count = history.replace_all(records)
        applied.append("chatHistories")
        logger.info(f"Imported {count} records from snapshot")

    if not applied:
        raise SnapshotImportError(
            "No recognisable sections (model configuration or chat histories)"
        )
    return applied
