"""Typed preference persistence over a string key-value storage.

Every getter has a hardcoded default and never raises: missing or
out-of-range values quietly become the default, while structurally corrupt
values and storage failures come back as a failed StorageResult that still
carries the default. Setters report rejected writes the same way.
"""

import json
import logging
import time
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Callable, Generic, Optional, TypeVar

from ..news.models import normalize_id
from .backends import KeyValueStorage
from .errors import StorageError, StorageParseError

logger = logging.getLogger(__name__)

T = TypeVar("T")

KEY_PREFIX = "bias-brief-"

STORAGE_KEYS = {
    "theme": KEY_PREFIX + "theme",
    "default_bias_mode": KEY_PREFIX + "default-bias-mode",
    "font_size": KEY_PREFIX + "font-size",
    "card_size": KEY_PREFIX + "card-size",
    "articles_per_page": KEY_PREFIX + "articles-per-page",
    "preferred_categories": KEY_PREFIX + "preferred-categories",
    "bookmarks": KEY_PREFIX + "bookmarks",
    "last_visited": KEY_PREFIX + "last-visited",
    "reading_history": KEY_PREFIX + "reading-history",
    "sync_timestamp": KEY_PREFIX + "sync-timestamp",
    "categories": KEY_PREFIX + "categories",
    "articles_list_cache": KEY_PREFIX + "articles-list-cache",
}

THEMES = ("light", "dark")
FONT_SIZES = ("small", "medium", "large")
READING_HISTORY_LIMIT = 100

PreferenceListener = Callable[[str, Any], None]


@dataclass
class StorageResult(Generic[T]):
    """Outcome of a storage operation."""

    success: bool
    data: Optional[T] = None
    error: Optional[Exception] = None
    failed_field: Optional[str] = None

    @classmethod
    def ok(cls, data: Optional[T] = None) -> "StorageResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: Exception, data: Optional[T] = None, failed_field: Optional[str] = None) -> "StorageResult[T]":
        return cls(success=False, data=data, error=error, failed_field=failed_field)


@dataclass
class UserPreferences:
    """The full preference record."""

    theme: str = "light"
    default_bias_mode: bool = False
    font_size: str = "medium"
    card_size: int = 3
    articles_per_page: int = 15
    preferred_categories: list[str] = field(default_factory=list)
    bookmarks: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


DEFAULTS = UserPreferences()


def _unique(items: list[str]) -> list[str]:
    """De-duplicate while keeping first-seen order."""
    return list(dict.fromkeys(items))


# --- Codecs ---
# decode(raw) returns a value, None for "use the default", or raises StorageParseError.
# validate(value) returns an error message or None.

def _decode_choice(choices: tuple[str, ...]) -> Callable[[str], Optional[str]]:
    return lambda raw: raw if raw in choices else None


def _decode_bool(raw: str) -> Optional[bool]:
    return {"true": True, "false": False}.get(raw.strip().lower())


def _decode_positive_int(raw: str) -> Optional[int]:
    try:
        value = int(raw.strip())
    except ValueError:
        return None
    return value if value > 0 else None


def _decode_string_list(raw: str) -> list[str]:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise StorageParseError(f"not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise StorageParseError(f"expected a JSON list, got {type(data).__name__}")
    items = []
    for item in data:
        if isinstance(item, bool) or not isinstance(item, (str, int, float)):
            raise StorageParseError(f"unexpected list item {item!r}")
        items.append(normalize_id(item))
    return _unique([i for i in items if i])


def _validate_choice(choices: tuple[str, ...]) -> Callable[[Any], Optional[str]]:
    return lambda v: None if v in choices else f"must be one of {', '.join(choices)}"


def _validate_bool(value: Any) -> Optional[str]:
    return None if isinstance(value, bool) else "must be a boolean"


def _validate_positive_int(value: Any) -> Optional[str]:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return "must be a positive integer"
    return None


def _validate_string_list(value: Any) -> Optional[str]:
    if isinstance(value, (str, bytes)) or not hasattr(value, "__iter__"):
        return "must be a collection of strings"
    return None


@dataclass(frozen=True)
class _Preference:
    name: str
    decode: Callable[[str], Any]
    encode: Callable[[Any], str]
    validate: Callable[[Any], Optional[str]]

    @property
    def key(self) -> str:
        return STORAGE_KEYS[self.name]

    @property
    def default(self) -> Any:
        value = getattr(DEFAULTS, self.name)
        return list(value) if isinstance(value, list) else value


_PREFERENCES = {
    p.name: p
    for p in (
        _Preference("theme", _decode_choice(THEMES), str, _validate_choice(THEMES)),
        _Preference("default_bias_mode", _decode_bool, lambda v: "true" if v else "false", _validate_bool),
        _Preference("font_size", _decode_choice(FONT_SIZES), str, _validate_choice(FONT_SIZES)),
        _Preference("card_size", _decode_positive_int, str, _validate_positive_int),
        _Preference("articles_per_page", _decode_positive_int, str, _validate_positive_int),
        _Preference(
            "preferred_categories", _decode_string_list,
            lambda v: json.dumps(_unique([str(i) for i in v])), _validate_string_list,
        ),
        _Preference(
            "bookmarks", _decode_string_list,
            lambda v: json.dumps(_unique([normalize_id(i) for i in v])), _validate_string_list,
        ),
    )
}

_FIELDS_BY_KEY = {p.key: p for p in _PREFERENCES.values()}


class PreferenceStore:
    """
    Preference repository over a KeyValueStorage.

    Listeners registered with subscribe() receive (field_name, value) after a
    preference changes. When the storage broadcasts its writes (MemoryStorage),
    changes made by other stores over the same storage are delivered too;
    otherwise only this store's writes are, and PreferencePoller covers the
    rest.
    """

    def __init__(self, storage: KeyValueStorage):
        self.storage = storage
        self._listeners: list[PreferenceListener] = []
        self._unsubscribe_storage = storage.subscribe(self._on_storage_change)

    def close(self) -> None:
        """Detach from the storage's change events."""
        self._unsubscribe_storage()
        self._listeners.clear()

    # --- Change notification ---

    def subscribe(self, listener: PreferenceListener) -> Callable[[], None]:
        """Register a change listener; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, name: str, value: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(name, value)
            except Exception:
                logger.exception("[PREFS] Listener failed for %s", name)

    def _on_storage_change(self, key: str, raw: Optional[str]) -> None:
        pref = _FIELDS_BY_KEY.get(key)
        if pref is None:
            return
        self._notify(pref.name, self._decode(pref, raw).data)

    # --- Generic field access ---

    def _decode(self, pref: _Preference, raw: Optional[str]) -> StorageResult:
        if raw is None:
            return StorageResult.ok(pref.default)
        try:
            value = pref.decode(raw)
        except StorageParseError as e:
            logger.warning("[PREFS] Stored %s is corrupt, using default: %s", pref.name, e)
            return StorageResult.fail(e, pref.default)
        return StorageResult.ok(pref.default if value is None else value)

    def _get(self, name: str) -> StorageResult:
        pref = _PREFERENCES[name]
        try:
            raw = self.storage.get_item(pref.key)
        except StorageError as e:
            logger.warning("[PREFS] Could not read %s, using default: %s", name, e)
            return StorageResult.fail(e, pref.default)
        return self._decode(pref, raw)

    def _set(self, name: str, value: Any) -> StorageResult[None]:
        pref = _PREFERENCES[name]
        problem = pref.validate(value)
        if problem:
            return StorageResult.fail(ValueError(f"{name} {problem}"), failed_field=name)
        try:
            self.storage.set_item(pref.key, pref.encode(value))
        except StorageError as e:
            logger.error("[PREFS] Failed to save %s: %s", name, e)
            return StorageResult.fail(e, failed_field=name)
        if not self.storage.emits_events:
            self._notify(name, self._decode(pref, pref.encode(value)).data)
        return StorageResult.ok()

    # --- Typed accessors ---

    def get_theme(self) -> StorageResult[str]:
        return self._get("theme")

    def save_theme(self, theme: str) -> StorageResult[None]:
        return self._set("theme", theme)

    def get_default_bias_mode(self) -> StorageResult[bool]:
        return self._get("default_bias_mode")

    def save_default_bias_mode(self, enabled: bool) -> StorageResult[None]:
        return self._set("default_bias_mode", enabled)

    def get_font_size(self) -> StorageResult[str]:
        return self._get("font_size")

    def save_font_size(self, size: str) -> StorageResult[None]:
        return self._set("font_size", size)

    def get_card_size(self) -> StorageResult[int]:
        return self._get("card_size")

    def save_card_size(self, size: int) -> StorageResult[None]:
        return self._set("card_size", size)

    def get_articles_per_page(self) -> StorageResult[int]:
        return self._get("articles_per_page")

    def save_articles_per_page(self, count: int) -> StorageResult[None]:
        return self._set("articles_per_page", count)

    def get_preferred_categories(self) -> StorageResult[list[str]]:
        return self._get("preferred_categories")

    def save_preferred_categories(self, categories: list[str]) -> StorageResult[None]:
        return self._set("preferred_categories", categories)

    def get_bookmarks(self) -> StorageResult[list[str]]:
        return self._get("bookmarks")

    def save_bookmarks(self, bookmarks: list[str]) -> StorageResult[None]:
        return self._set("bookmarks", bookmarks)

    # --- Bookmarks ---

    def _current_bookmarks(self) -> list[str]:
        result = self.get_bookmarks()
        if not result.success:
            logger.warning("[PREFS] Rebuilding bookmarks after read failure: %s", result.error)
        return list(result.data or [])

    def add_bookmark(self, article_id: str) -> StorageResult[None]:
        """Add an article id to the bookmarks (no-op if already present)."""
        article_id = normalize_id(article_id)
        bookmarks = self._current_bookmarks()
        if article_id in bookmarks:
            return StorageResult.ok()
        return self.save_bookmarks(bookmarks + [article_id])

    def remove_bookmark(self, article_id: str) -> StorageResult[None]:
        """Remove an article id from the bookmarks (no-op if absent)."""
        article_id = normalize_id(article_id)
        bookmarks = self._current_bookmarks()
        if article_id not in bookmarks:
            return StorageResult.ok()
        return self.save_bookmarks([b for b in bookmarks if b != article_id])

    def is_bookmarked(self, article_id: str) -> StorageResult[bool]:
        result = self.get_bookmarks()
        found = normalize_id(article_id) in (result.data or [])
        if not result.success:
            return StorageResult.fail(result.error, found)
        return StorageResult.ok(found)

    # --- Batch ---

    def get_all_preferences(self) -> StorageResult[UserPreferences]:
        """
        Read every preference.

        The data is always a complete record; success is False if any field
        had to fall back because of a failure, with the first error attached.
        """
        values = {}
        first_failure: Optional[StorageResult] = None
        for f in fields(UserPreferences):
            result = self._get(f.name)
            values[f.name] = result.data
            if not result.success and first_failure is None:
                first_failure = result
                first_failure.failed_field = f.name
        prefs = UserPreferences(**values)
        if first_failure is not None:
            return StorageResult.fail(first_failure.error, prefs, first_failure.failed_field)
        return StorageResult.ok(prefs)

    def save_all_preferences(self, preferences: UserPreferences) -> StorageResult[None]:
        """
        Write every preference, all or nothing.

        All values are validated before anything is written. Writes stop at
        the first rejected field and the fields already written are restored
        to their previous stored values.
        """
        names = [f.name for f in fields(UserPreferences)]
        for name in names:
            problem = _PREFERENCES[name].validate(getattr(preferences, name))
            if problem:
                return StorageResult.fail(ValueError(f"{name} {problem}"), failed_field=name)

        try:
            previous = {name: self.storage.get_item(_PREFERENCES[name].key) for name in names}
        except StorageError as e:
            logger.error("[PREFS] Cannot snapshot preferences before batch save: %s", e)
            return StorageResult.fail(e)

        written: list[str] = []
        for name in names:
            result = self._set(name, getattr(preferences, name))
            if not result.success:
                self._rollback(written, previous)
                return result
            written.append(name)
        return StorageResult.ok()

    def _rollback(self, written: list[str], previous: dict[str, Optional[str]]) -> None:
        for name in reversed(written):
            key = _PREFERENCES[name].key
            try:
                if previous[name] is None:
                    self.storage.remove_item(key)
                else:
                    self.storage.set_item(key, previous[name])
            except StorageError as e:
                logger.error("[PREFS] Rollback of %s failed: %s", name, e)

    def reset_preferences(self) -> StorageResult[None]:
        """Restore every preference to its default."""
        return self.save_all_preferences(UserPreferences())

    # --- Reading history and timestamps ---

    def _get_json_list(self, key: str) -> StorageResult[list[str]]:
        try:
            raw = self.storage.get_item(key)
            return StorageResult.ok([] if raw is None else _decode_string_list(raw))
        except StorageError as e:
            logger.warning("[PREFS] Could not read %s: %s", key, e)
            return StorageResult.fail(e, [])

    def get_reading_history(self) -> StorageResult[list[str]]:
        """Article ids read, most recent first."""
        return self._get_json_list(STORAGE_KEYS["reading_history"])

    def track_read_article(self, article_id: str) -> StorageResult[None]:
        """Record an article as read (kept once, newest first, capped)."""
        article_id = normalize_id(article_id)
        history = self.get_reading_history().data or []
        if article_id in history:
            return StorageResult.ok()
        updated = [article_id] + history
        return self._set_raw(STORAGE_KEYS["reading_history"], json.dumps(updated[:READING_HISTORY_LIMIT]))

    def _set_raw(self, key: str, value: str) -> StorageResult[None]:
        try:
            self.storage.set_item(key, value)
        except StorageError as e:
            logger.error("[PREFS] Failed to save %s: %s", key, e)
            return StorageResult.fail(e)
        return StorageResult.ok()

    def _record_now(self, key: str) -> StorageResult[datetime]:
        now = datetime.now(timezone.utc)
        result = self._set_raw(key, now.isoformat())
        return StorageResult(success=result.success, data=now, error=result.error)

    def _get_timestamp(self, key: str) -> StorageResult[Optional[datetime]]:
        try:
            raw = self.storage.get_item(key)
        except StorageError as e:
            return StorageResult.fail(e, None)
        if not raw:
            return StorageResult.ok(None)
        try:
            return StorageResult.ok(datetime.fromisoformat(raw))
        except ValueError as e:
            return StorageResult.fail(StorageParseError(f"bad timestamp in {key}: {e}"), None)

    def record_visit(self) -> StorageResult[datetime]:
        return self._record_now(STORAGE_KEYS["last_visited"])

    def get_last_visit(self) -> StorageResult[Optional[datetime]]:
        return self._get_timestamp(STORAGE_KEYS["last_visited"])

    def record_sync_timestamp(self) -> StorageResult[datetime]:
        return self._record_now(STORAGE_KEYS["sync_timestamp"])

    def get_last_sync_timestamp(self) -> StorageResult[Optional[datetime]]:
        return self._get_timestamp(STORAGE_KEYS["sync_timestamp"])

    # --- Cached lookups ---

    def get_cached_categories(self, max_age: float, now: Optional[float] = None) -> Optional[list[str]]:
        """Category list saved by save_cached_categories, if younger than max_age seconds."""
        now = time.time() if now is None else now
        try:
            raw = self.storage.get_item(STORAGE_KEYS["categories"])
            data = json.loads(raw) if raw else None
        except (StorageError, json.JSONDecodeError) as e:
            logger.warning("[PREFS] Ignoring cached categories: %s", e)
            return None
        if not isinstance(data, dict):
            return None
        categories, timestamp = data.get("categories"), data.get("timestamp")
        if not isinstance(categories, list) or not categories or not isinstance(timestamp, (int, float)):
            return None
        if now - timestamp >= max_age:
            return None
        return [str(c) for c in categories]

    def save_cached_categories(self, categories: list[str], now: Optional[float] = None) -> StorageResult[None]:
        payload = {"categories": list(categories), "timestamp": time.time() if now is None else now}
        return self._set_raw(STORAGE_KEYS["categories"], json.dumps(payload))

    def get_article_cache(self) -> StorageResult[dict[str, Any]]:
        """Persisted article-list cache entries (see ArticleCache.export)."""
        try:
            raw = self.storage.get_item(STORAGE_KEYS["articles_list_cache"])
        except StorageError as e:
            return StorageResult.fail(e, {})
        if not raw:
            return StorageResult.ok({})
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            return StorageResult.fail(StorageParseError(str(e)), {})
        return StorageResult.ok(data if isinstance(data, dict) else {})

    def save_article_cache(self, entries: dict[str, Any]) -> StorageResult[None]:
        return self._set_raw(STORAGE_KEYS["articles_list_cache"], json.dumps(entries))

    # --- Housekeeping ---

    def clear_all(self) -> StorageResult[None]:
        """Remove every BiasBrief key from the storage."""
        try:
            for key in STORAGE_KEYS.values():
                self.storage.remove_item(key)
        except StorageError as e:
            logger.error("[PREFS] Failed to clear storage: %s", e)
            return StorageResult.fail(e)
        return StorageResult.ok()
