"""Object key layout for the remote copy.

The layout is a plain dataclass so several independent remote copies (for
example one per profile) can live in the same bucket under different
prefixes.
"""

from dataclasses import dataclass

DEFAULT_PREFIX = "AIme"
DEFAULT_SNAPSHOT_KEY = "AImeBackup.json"


@dataclass(frozen=True)
class SyncLayout:
    """Where each synced object lives in the flat remote namespace.

    - ``<prefix>/history/index.json``: the history index, written last
    - ``<prefix>/history/<id>.json``: one object per conversation record
    - ``<prefix>/model_config.json`` and ``<prefix>/user_profile.json``
    - ``snapshot_key``: whole-state fallback snapshot (outside the prefix)

    Example:
        >>> SyncLayout().record_key(12345)
        'AIme/history/12345.json'
    """

    prefix: str = DEFAULT_PREFIX
    snapshot_key: str = DEFAULT_SNAPSHOT_KEY

    def _key(self, name: str) -> str:
        prefix = self.prefix.strip("/")
        return f"{prefix}/{name}" if prefix else name

    @property
    def index_key(self) -> str:
        return self._key("history/index.json")

    def record_key(self, record_id: int) -> str:
        return self._key(f"history/{record_id}.json")

    @property
    def model_config_key(self) -> str:
        return self._key("model_config.json")

    @property
    def user_profile_key(self) -> str:
        return self._key("user_profile.json")
