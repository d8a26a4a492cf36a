"""Tests for chatsync settings and backend selection."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from chatsync.config import Settings, create_object_store, endpoint_for_region
from chatsync.exceptions import InvalidConfigError
from chatsync.sync.http_store import HttpObjectStore
from chatsync.sync.object_store import LocalDirectoryObjectStore


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate from the developer's environment and .env file."""
    monkeypatch.chdir(tmp_path)
    for var in list(os.environ):
        if var.startswith("CHATSYNC_"):
            monkeypatch.delenv(var)


def test_defaults():
    settings = Settings()

    assert settings.backend == "s3"
    assert settings.prefix == "AIme"
    assert settings.log_level == "INFO"
    assert settings.layout.index_key == "AIme/history/index.json"
    assert not settings.is_configured
    assert settings.missing_fields() == ["s3_bucket"]


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("CHATSYNC_BACKEND", "HTTP")
    monkeypatch.setenv("CHATSYNC_REMOTE_URL", "https://proxy.example.com")
    monkeypatch.setenv("CHATSYNC_AUTH_TOKEN", "secret")
    monkeypatch.setenv("CHATSYNC_PREFIX", "profiles/work")
    monkeypatch.setenv("CHATSYNC_LOG_LEVEL", "debug")

    settings = Settings()

    assert settings.backend == "http"
    assert settings.log_level == "DEBUG"
    assert settings.is_configured
    assert settings.layout.record_key(12345) == "profiles/work/history/12345.json"


def test_invalid_values():
    with pytest.raises(ValidationError):
        Settings(log_level="LOUD")
    with pytest.raises(ValidationError):
        Settings(backend="ftp")
    with pytest.raises(ValidationError):
        Settings(timeout=0)


def test_endpoint_for_region():
    assert endpoint_for_region("oss-cn-hangzhou") == "https://oss-cn-hangzhou.aliyuncs.com"
    assert endpoint_for_region("") == ""


def test_resolved_s3_endpoint():
    assert Settings().resolved_s3_endpoint == "https://oss-cn-hangzhou.aliyuncs.com"
    assert Settings(s3_region="us-east-1").resolved_s3_endpoint is None
    assert (
        Settings(s3_endpoint_url="http://localhost:9000").resolved_s3_endpoint
        == "http://localhost:9000"
    )


def test_data_paths():
    settings = Settings(data_dir=Path("/tmp/chatsync-test"))
    assert settings.history_path == Path("/tmp/chatsync-test/history.json")
    assert settings.model_config_path.name == "model_config.json"


class TestCreateObjectStore:
    def test_missing_fields_raise(self):
        with pytest.raises(InvalidConfigError, match="CHATSYNC_S3_BUCKET"):
            create_object_store(Settings())
        with pytest.raises(InvalidConfigError, match="CHATSYNC_AUTH_TOKEN"):
            create_object_store(Settings(backend="http", remote_url="https://x"))

    def test_local_backend(self, tmp_path):
        store = create_object_store(Settings(backend="local", local_remote_dir=tmp_path / "remote"))
        assert isinstance(store, LocalDirectoryObjectStore)
        assert store.base_path == (tmp_path / "remote").resolve()

    def test_http_backend(self):
        store = create_object_store(
            Settings(backend="http", remote_url="https://proxy.example.com/", auth_token="t", namespace="me")
        )
        assert isinstance(store, HttpObjectStore)
        assert store._url("AIme/history/index.json") == "https://proxy.example.com/blob/me/AIme/history/index.json"

    def test_s3_backend(self):
        with patch("chatsync.sync.s3_store.boto3.client") as client:
            store = create_object_store(Settings(s3_bucket="bucket", s3_prefix="/users/"))

        client.assert_called_once()
        assert client.call_args.kwargs["endpoint_url"] == "https://oss-cn-hangzhou.aliyuncs.com"
        assert store._make_key("/AIme/model_config.json") == "users/AIme/model_config.json"
