"""User profile: optional background details about the user.

Synced as one object, overwritten whole. Normalization is lenient: anything
that is not a JSON object becomes an empty profile.
"""

import copy
import logging
import math
from typing import Any

from chatsync.history.persistence import JsonDocument

logger = logging.getLogger(__name__)

STRING_FIELDS = (
    "nickname",
    "city",
    "preferredLanguage",
    "email",
    "phone",
    "gender",
    "birthday",
    "occupation",
    "company",
    "timezone",
    "website",
    "address",
    "hobbies",
    "bio",
    "avatarUrl",
)


def _number(value: Any) -> int | float | None:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number


def normalize_profile(raw: Any) -> dict[str, Any]:
    """Keep known fields, stringify scalars, drop what cannot be coerced."""
    profile: dict[str, Any] = {}
    if not isinstance(raw, dict):
        return profile

    for name in STRING_FIELDS:
        value = raw.get(name)
        if value is not None:
            profile[name] = value if isinstance(value, str) else str(value)

    if "age" in raw:
        age = raw["age"]
        if age is None:
            profile["age"] = None
        elif _number(age) is not None:
            profile["age"] = _number(age)

    custom = raw.get("customFields")
    if isinstance(custom, dict):
        profile["customFields"] = {
            str(k): str(v) for k, v in custom.items() if v is not None
        }
    return profile


class UserProfileStore:
    """Persisted user profile document."""

    def __init__(self, persistence: JsonDocument):
        self.persistence = persistence
        self._profile = normalize_profile(persistence.load())

    @property
    def profile(self) -> dict[str, Any]:
        return copy.deepcopy(self._profile)

    def export(self) -> dict[str, Any]:
        return copy.deepcopy(self._profile)

    def replace(self, raw: Any) -> None:
        self._profile = normalize_profile(raw)
        self.persistence.save(self._profile)
        logger.info(f"User profile replaced ({len(self._profile)} fields)")

    def clear(self) -> None:
        self._profile = {}
        self.persistence.save(self._profile)
