"""Preference persistence for BiasBrief."""

from .backends import JsonFileStorage, KeyValueStorage, MemoryStorage
from .errors import QuotaExceededError, StorageError, StorageParseError, StorageUnavailableError
from .firestore_profile import FirestoreProfileStorage
from .preferences import PreferenceStore, StorageResult, UserPreferences
from .sync import PreferencePoller

__all__ = [
    "FirestoreProfileStorage",
    "JsonFileStorage",
    "KeyValueStorage",
    "MemoryStorage",
    "PreferencePoller",
    "PreferenceStore",
    "QuotaExceededError",
    "StorageError",
    "StorageParseError",
    "StorageResult",
    "StorageUnavailableError",
    "UserPreferences",
]
