"""
Remote object store capability.

The sync engine only needs a flat key -> bytes namespace with get, put and
an idempotent delete. No listing, no transactions. This module defines that
interface and a local-directory implementation; networked backends live in
``s3_store`` and ``http_store``.
"""

import asyncio
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from chatsync.exceptions import InvalidKeyError, ObjectNotFoundError, ObjectStoreError

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json; charset=utf-8"


class ObjectStore(ABC):
    """
    Abstract base class for remote object stores.

    All methods are coroutines; a sync pass awaits them one at a time.
    """

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """
        Read an object.

        Args:
            key: Object key

        Returns:
            Object body

        Raises:
            ObjectNotFoundError: If the object does not exist
            ObjectStoreError: If reading fails
        """

    @abstractmethod
    async def put(
        self, key: str, data: bytes, content_type: str = JSON_CONTENT_TYPE
    ) -> None:
        """
        Create or overwrite an object.

        Args:
            key: Object key
            data: Object body
            content_type: MIME type stored with the object

        Raises:
            ObjectStoreError: If writing fails
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """
        Delete an object. Deleting a missing object succeeds.

        Args:
            key: Object key

        Raises:
            ObjectStoreError: If deletion fails
        """

    async def close(self) -> None:
        """Release transport resources."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class LocalDirectoryObjectStore(ObjectStore):
    """
    A local directory standing in for a remote bucket.

    Useful for offline use, for syncing through a shared folder, and for
    tests. Keys map to relative paths; writes are atomic.
    """

    def __init__(self, base_path: str | Path):
        self.base_path = Path(base_path).expanduser().resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _validate_key(self, key: str) -> Path:
        """
        Map a key to a path inside the base directory.

        Raises:
            InvalidKeyError: If key is empty or escapes base directory
        """
        if not key:
            raise InvalidKeyError("Key cannot be empty")

        key = key.replace("\\", "/")
        if ".." in key.split("/"):
            raise InvalidKeyError(f"Key cannot contain '..': {key}")
        if key.startswith("/"):
            raise InvalidKeyError(f"Key must be relative: {key}")

        full_path = (self.base_path / key).resolve()
        try:
            full_path.relative_to(self.base_path)
        except ValueError:
            raise InvalidKeyError(f"Key escapes base directory: {key}")
        return full_path

    async def get(self, key: str) -> bytes:
        full_path = self._validate_key(key)
        if not full_path.is_file():
            raise ObjectNotFoundError(f"Object not found: {key}")
        try:
            return await asyncio.to_thread(full_path.read_bytes)
        except OSError as e:
            raise ObjectStoreError(f"Failed to read {key}: {e}") from e

    async def put(
        self, key: str, data: bytes, content_type: str = JSON_CONTENT_TYPE
    ) -> None:
        full_path = self._validate_key(key)
        try:
            await asyncio.to_thread(self._write_atomic, full_path, data)
        except OSError as e:
            raise ObjectStoreError(f"Failed to write {key}: {e}") from e
        logger.debug(f"Wrote {key} ({len(data)} bytes)")

    @staticmethod
    def _write_atomic(full_path: Path, data: bytes) -> None:
        full_path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(
            dir=full_path.parent, prefix=f".{full_path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, full_path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    async def delete(self, key: str) -> None:
        full_path = self._validate_key(key)
        try:
            full_path.unlink(missing_ok=True)
        except OSError as e:
            raise ObjectStoreError(f"Failed to delete {key}: {e}") from e
