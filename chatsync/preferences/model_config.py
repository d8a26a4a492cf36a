"""Model configuration: provider groups, models and the selected model.

Synced as one object that is always overwritten whole (no per-item index).
"""

import copy
import logging
import math
import uuid
from collections.abc import Callable
from typing import Any

from chatsync.exceptions import InvalidConfigError
from chatsync.history.models import now_ms
from chatsync.history.persistence import JsonDocument

logger = logging.getLogger(__name__)

CONFIG_VERSION = 1


def _string(value: Any, default: str = "") -> str:
    return value if isinstance(value, str) else default


def _timestamp(value: Any, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return int(value) if math.isfinite(value) else default


def _new_id() -> str:
    return str(uuid.uuid4())


def normalize_config(raw: Any, now: int) -> dict[str, Any]:
    """Coerce a decoded model configuration into its canonical shape.

    Models referring to an unknown group are dropped and a selection that no
    longer names a model is cleared.

    Raises:
        InvalidConfigError: If raw is not a JSON object
    """
    if not isinstance(raw, dict):
        raise InvalidConfigError("Model configuration must be a JSON object")

    groups_in = raw.get("modelGroups")
    models_in = raw.get("models")
    groups = [
        {
            "id": _string(g.get("id")) or _new_id(),
            "name": _string(g.get("name")),
            "baseUrl": _string(g.get("baseUrl")),
            "apiKey": _string(g.get("apiKey")),
            "providerUrl": _string(g.get("providerUrl")),
            "createdAt": _timestamp(g.get("createdAt"), now),
        }
        for g in (groups_in if isinstance(groups_in, list) else [])
        if isinstance(g, dict)
    ]
    group_ids = {g["id"] for g in groups}

    models = []
    for m in models_in if isinstance(models_in, list) else []:
        if not isinstance(m, dict):
            continue
        model = {
            "id": _string(m.get("id")) or _new_id(),
            "groupId": _string(m.get("groupId")),
            "modelName": _string(m.get("modelName")),
            "name": _string(m.get("name")),
            "createdAt": _timestamp(m.get("createdAt"), now),
        }
        if isinstance(m.get("remark"), str):
            model["remark"] = m["remark"]
        if model["groupId"] in group_ids:
            models.append(model)

    selected = _string(raw.get("selectedModelId"))
    version = raw.get("version")
    return {
        "exportedAt": now,
        "modelGroups": groups,
        "models": models,
        "selectedModelId": selected if any(m["id"] == selected for m in models) else "",
        "version": version if isinstance(version, int) and not isinstance(version, bool) else CONFIG_VERSION,
    }


class ModelConfigStore:
    """Persisted model configuration document."""

    def __init__(self, persistence: JsonDocument, clock: Callable[[], int] = now_ms):
        self.persistence = persistence
        self.clock = clock
        self._config = self._load()

    def _load(self) -> dict[str, Any]:
        raw = self.persistence.load()
        if raw is not None:
            try:
                return normalize_config(raw, self.clock())
            except InvalidConfigError as e:
                logger.warning(f"Ignoring stored model configuration: {e}")
        return normalize_config({}, self.clock())

    def _save(self) -> None:
        self._config["exportedAt"] = self.clock()
        self.persistence.save(self._config)

    @property
    def config(self) -> dict[str, Any]:
        return copy.deepcopy(self._config)

    def export(self) -> dict[str, Any]:
        """Deep copy for upload, stamped with the export time."""
        exported = copy.deepcopy(self._config)
        exported["exportedAt"] = self.clock()
        return exported

    def replace(self, raw: Any) -> None:
        """Replace the whole configuration with a decoded document.

        Raises:
            InvalidConfigError: If raw is not a JSON object (nothing changes)
        """
        self._config = normalize_config(raw, self.clock())
        self._save()
        logger.info(
            f"Model configuration replaced: {len(self._config['modelGroups'])} groups, "
            f"{len(self._config['models'])} models"
        )

    def selected_model(self) -> dict[str, Any] | None:
        selected = self._config["selectedModelId"]
        for model in self._config["models"]:
            if model["id"] == selected:
                return copy.deepcopy(model)
        return None
