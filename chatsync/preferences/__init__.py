"""Auxiliary single-object resources synced alongside the history."""

from chatsync.preferences.model_config import ModelConfigStore, normalize_config
from chatsync.preferences.user_profile import UserProfileStore, normalize_profile

__all__ = [
    "ModelConfigStore",
    "UserProfileStore",
    "normalize_config",
    "normalize_profile",
]
