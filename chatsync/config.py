"""chatsync configuration settings using pydantic-settings."""

from functools import cached_property
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from chatsync.exceptions import InvalidConfigError
from chatsync.sync.layout import DEFAULT_PREFIX, DEFAULT_SNAPSHOT_KEY, SyncLayout

BACKENDS = {"s3", "http", "local"}


def endpoint_for_region(region: str) -> str:
    """Public Aliyun OSS endpoint for a region id such as ``oss-cn-hangzhou``."""
    if not region:
        return ""
    return f"https://{region}.aliyuncs.com"


class Settings(BaseSettings):
    """Configuration settings for chatsync.

    Settings are loaded from environment variables with the CHATSYNC_ prefix.
    For example, CHATSYNC_BACKEND=http selects the blob proxy backend.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHATSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Local state
    data_dir: Path = Path("~/.local/share/chatsync")

    # Logging
    log_level: str = "INFO"

    # Remote layout
    backend: str = "s3"
    prefix: str = DEFAULT_PREFIX
    snapshot_key: str = DEFAULT_SNAPSHOT_KEY

    # S3-compatible storage (AWS S3, Aliyun OSS, MinIO)
    s3_bucket: str = ""
    s3_region: str = "oss-cn-hangzhou"
    s3_endpoint_url: str | None = None
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None
    s3_prefix: str = ""

    # Blob proxy
    remote_url: str = ""
    auth_token: str = ""
    namespace: str = "default"
    timeout: float = 30.0

    # Local directory acting as the remote
    local_remote_dir: Path | None = None

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        if v.lower() not in BACKENDS:
            raise ValueError(f"backend must be one of {BACKENDS}")
        return v.lower()

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @cached_property
    def data_path(self) -> Path:
        """Return expanded data directory path."""
        return self.data_dir.expanduser()

    @property
    def history_path(self) -> Path:
        return self.data_path / "history.json"

    @property
    def model_config_path(self) -> Path:
        return self.data_path / "model_config.json"

    @property
    def user_profile_path(self) -> Path:
        return self.data_path / "user_profile.json"

    @property
    def resolved_s3_endpoint(self) -> str | None:
        """Explicit endpoint, else the OSS endpoint for an ``oss-`` region."""
        if self.s3_endpoint_url:
            return self.s3_endpoint_url
        if self.s3_region.startswith("oss-"):
            return endpoint_for_region(self.s3_region)
        return None

    @property
    def layout(self) -> SyncLayout:
        return SyncLayout(prefix=self.prefix, snapshot_key=self.snapshot_key)

    def missing_fields(self) -> list[str]:
        """Names of settings the selected backend still needs."""
        if self.backend == "s3":
            required = {"s3_bucket": self.s3_bucket}
        elif self.backend == "http":
            required = {"remote_url": self.remote_url, "auth_token": self.auth_token}
        else:
            required = {"local_remote_dir": self.local_remote_dir}
        return [name for name, value in required.items() if not value]

    @property
    def is_configured(self) -> bool:
        return not self.missing_fields()


def create_object_store(settings: Settings):
    """Build the object store selected by ``settings.backend``.

    Raises:
        InvalidConfigError: If the backend is missing required settings
    """
    missing = settings.missing_fields()
    if missing:
        names = ", ".join(f"CHATSYNC_{name.upper()}" for name in missing)
        raise InvalidConfigError(f"Backend '{settings.backend}' is not configured: set {names}")

    if settings.backend == "s3":
        from chatsync.sync.s3_store import S3ObjectStore

        return S3ObjectStore(settings)

    if settings.backend == "http":
        from chatsync.sync.http_store import HttpObjectStore

        return HttpObjectStore(
            settings.remote_url,
            settings.auth_token,
            namespace=settings.namespace,
            timeout=settings.timeout,
        )

    from chatsync.sync.object_store import LocalDirectoryObjectStore

    return LocalDirectoryObjectStore(settings.local_remote_dir)
