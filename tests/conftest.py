"""Shared fixtures for chatsync tests."""

import random
import tempfile
from pathlib import Path

import pytest

from chatsync.exceptions import ObjectNotFoundError, ObjectStoreError
from chatsync.history.persistence import InMemoryDocument
from chatsync.history.record_store import RecordStore
from chatsync.preferences.model_config import ModelConfigStore
from chatsync.preferences.user_profile import UserProfileStore
from chatsync.sync.codec import decode_json, encode_json
from chatsync.sync.object_store import JSON_CONTENT_TYPE, ObjectStore
from chatsync.sync.orchestrator import SyncOrchestrator


class FakeClock:
    """Deterministic millisecond clock; every call advances by ``step``."""

    def __init__(self, start: int = 1_000, step: int = 1):
        self.now = start
        self.step = step

    def __call__(self) -> int:
        self.now += self.step
        return self.now


class RecordingObjectStore(ObjectStore):
    """In-memory object store that records every call in order.

    ``fail_on`` maps (operation, key) to the exception to raise instead of
    performing the operation; the call is still recorded.
    """

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_on: dict[tuple[str, str], Exception] = {}
        self.closed = False

    def _check(self, op: str, key: str) -> None:
        self.calls.append((op, key))
        error = self.fail_on.get((op, key))
        if error is not None:
            raise error

    async def get(self, key: str) -> bytes:
        self._check("get", key)
        if key not in self.objects:
            raise ObjectNotFoundError(f"Object not found: {key}")
        return self.objects[key]

    async def put(
        self, key: str, data: bytes, content_type: str = JSON_CONTENT_TYPE
    ) -> None:
        self._check("put", key)
        self.objects[key] = data

    async def delete(self, key: str) -> None:
        self._check("delete", key)
        self.objects.pop(key, None)

    async def close(self) -> None:
        self.closed = True

    # Test helpers

    def fail(self, op: str, key: str, error: Exception | None = None) -> None:
        self.fail_on[(op, key)] = error or ObjectStoreError(f"Simulated {op} failure: {key}")

    def put_json(self, key: str, value) -> None:
        self.objects[key] = encode_json(value)

    def json(self, key: str):
        return decode_json(self.objects[key])

    def writes(self) -> list[str]:
        return [key for op, key in self.calls if op in ("put", "delete")]


def make_record(record_id: int, title: str, updated_at: int, messages: int = 1, **extra) -> dict:
    """Wire-format record with ``messages`` alternating user/assistant turns."""
    record = {
        "id": record_id,
        "title": title,
        "createdAt": updated_at - 100,
        "updatedAt": updated_at,
        "messages": [
            {
                "content": f"{title} message {i}",
                "isFromUser": i % 2 == 0,
                "isError": False,
                "timestamp": updated_at - 100 + i,
            }
            for i in range(messages)
        ],
    }
    record.update(extra)
    return record


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def remote():
    return RecordingObjectStore()


@pytest.fixture
def history_doc():
    return InMemoryDocument()


@pytest.fixture
def history(history_doc, clock, rng):
    return RecordStore(history_doc, clock=clock, rng=rng)


@pytest.fixture
def model_config(clock):
    return ModelConfigStore(InMemoryDocument(), clock=clock)


@pytest.fixture
def user_profile():
    return UserProfileStore(InMemoryDocument())


@pytest.fixture
def orchestrator(remote, history, model_config, user_profile):
    return SyncOrchestrator(remote, history, model_config, user_profile)
