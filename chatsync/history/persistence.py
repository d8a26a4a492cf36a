"""
Local persistence backends for JSON documents.

The record store, model configuration and user profile each persist a single
JSON document. Backends are injected into those stores so tests (and callers
embedding the engine) can swap disk for memory.
"""

import copy
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class JsonDocument(ABC):
    """Abstract single-document JSON persistence."""

    @abstractmethod
    def load(self) -> Any | None:
        """
        Load the stored document.

        Returns:
            The decoded JSON value, or None if nothing usable is stored
        """

    @abstractmethod
    def save(self, value: Any) -> None:
        """
        Replace the stored document.

        Args:
            value: JSON-serializable value
        """


class InMemoryDocument(JsonDocument):
    """Keeps the document in memory; values are deep-copied in and out."""

    def __init__(self, value: Any | None = None):
        self._value = copy.deepcopy(value)
        self.save_count = 0

    def load(self) -> Any | None:
        return copy.deepcopy(self._value)

    def save(self, value: Any) -> None:
        self._value = copy.deepcopy(value)
        self.save_count += 1


class JsonFileDocument(JsonDocument):
    """
    JSON file on local disk.

    Writes are atomic (temp file + rename) so a crash mid-write leaves the
    previous document intact.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()

    def load(self) -> Any | None:
        if not self.path.exists():
            logger.debug(f"No document at {self.path}")
            return None

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load {self.path}: {e}")
            return None

    def save(self, value: Any) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(
            dir=self.path.parent,
            prefix=f".{self.path.name}.",
            suffix=".tmp",
            text=True,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(value, f, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise
