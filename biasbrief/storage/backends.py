"""String key-value storage backends for the preference store.

These mirror a browser's local storage: string keys, string values, no
transactions, finite quota. Backends raise StorageError subclasses; the
preference store turns them into results.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Callable, Optional

from .errors import QuotaExceededError, StorageParseError, StorageUnavailableError

logger = logging.getLogger(__name__)

# Called with the changed key; value is None after a removal
StorageListener = Callable[[str, Optional[str]], None]


class KeyValueStorage:
    """Interface for durable string storage."""

    #: Whether subscribe() delivers writes made through other handles
    emits_events = False

    def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove_item(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> list[str]:
        raise NotImplementedError

    def subscribe(self, listener: StorageListener) -> Callable[[], None]:
        """Register a change listener; returns an unsubscribe callable."""
        return lambda: None


class MemoryStorage(KeyValueStorage):
    """
    In-process storage, shareable between several preference stores.

    Every write is broadcast to subscribers, which is how two views over the
    same storage notice each other's changes.
    """

    emits_events = True

    def __init__(self, quota_bytes: Optional[int] = None, available: bool = True):
        """
        Initialize memory storage.

        Args:
            quota_bytes: Maximum total size of keys and values (UTF-8); None is unlimited
            available: When False every operation raises StorageUnavailableError
        """
        self.quota_bytes = quota_bytes
        self.available = available
        self._data: dict[str, str] = {}
        self._listeners: list[StorageListener] = []
        self._lock = threading.Lock()

    def _check_available(self) -> None:
        if not self.available:
            raise StorageUnavailableError("storage is disabled")

    def _size_with(self, key: str, value: str) -> int:
        size = 0
        for k, v in self._data.items():
            if k != key:
                size += len(k.encode()) + len(v.encode())
        return size + len(key.encode()) + len(value.encode())

    def get_item(self, key: str) -> Optional[str]:
        self._check_available()
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._check_available()
        with self._lock:
            if self.quota_bytes is not None and self._size_with(key, value) > self.quota_bytes:
                raise QuotaExceededError(f"quota of {self.quota_bytes} bytes exceeded writing {key}")
            self._data[key] = value
        self._notify(key, value)

    def remove_item(self, key: str) -> None:
        self._check_available()
        with self._lock:
            existed = self._data.pop(key, None) is not None
        if existed:
            self._notify(key, None)

    def keys(self) -> list[str]:
        self._check_available()
        return list(self._data)

    def subscribe(self, listener: StorageListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, key: str, value: Optional[str]) -> None:
        for listener in list(self._listeners):
            try:
                listener(key, value)
            except Exception:
                logger.exception("[PREFS] Storage listener failed for %s", key)


class JsonFileStorage(KeyValueStorage):
    """
    Storage kept in a single JSON object on disk.

    The file is re-read on every access so separate processes see each
    other's writes; writes replace the file atomically. Other processes do not
    get events, so readers that care poll (see PreferencePoller).
    """

    def __init__(self, path: Path | str, quota_bytes: Optional[int] = 5 * 1024 * 1024):
        self.path = Path(path)
        self.quota_bytes = quota_bytes
        self._lock = threading.Lock()

    def _read(self) -> dict[str, str]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise StorageUnavailableError(f"cannot read {self.path}: {e}") from e
        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise StorageParseError(f"{self.path} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise StorageParseError(f"{self.path} does not hold a JSON object")
        return {str(k): v if isinstance(v, str) else json.dumps(v) for k, v in data.items()}

    def _write(self, data: dict[str, str]) -> None:
        payload = json.dumps(data, indent=2, ensure_ascii=False)
        if self.quota_bytes is not None and len(payload.encode()) > self.quota_bytes:
            raise QuotaExceededError(f"quota of {self.quota_bytes} bytes exceeded for {self.path}")
        tmp_path = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".prefs-", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path is not None:
                Path(tmp_path).unlink(missing_ok=True)
            raise StorageUnavailableError(f"cannot write {self.path}: {e}") from e

    def get_item(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            try:
                data = self._read()
            except StorageParseError as e:
                logger.warning("[PREFS] Replacing corrupt preferences file: %s", e)
                data = {}
            data[key] = value
            self._write(data)

    def remove_item(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if data.pop(key, None) is not None:
                self._write(data)

    def keys(self) -> list[str]:
        return list(self._read())
