"""Bookmark membership as a set layered on the preference store."""

import logging
from typing import Any, Optional

from ..news.models import normalize_id
from ..storage.preferences import PreferenceStore

logger = logging.getLogger(__name__)


class BookmarkManager:
    """
    In-session bookmark set.

    The in-memory set is authoritative for the session: a rejected write
    (quota, unavailable storage) is reported through `error` but the toggle
    still takes effect until the process ends.
    """

    def __init__(self, preferences: PreferenceStore):
        self.preferences = preferences
        result = preferences.get_bookmarks()
        self._ids: list[str] = list(result.data or [])
        self.error: Optional[Exception] = None if result.success else result.error
        self._unsubscribe = preferences.subscribe(self._on_preference_change)

    def close(self) -> None:
        self._unsubscribe()

    def _on_preference_change(self, name: str, value: Any) -> None:
        if name == "bookmarks":
            self._ids = list(value or [])

    def ids(self) -> list[str]:
        """Bookmarked article ids in the order they were added."""
        return list(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def is_bookmarked(self, article_id: Any) -> bool:
        return normalize_id(article_id) in self._ids

    def toggle(self, article_id: Any) -> bool:
        """
        Flip membership of an article.

        Returns:
            True if the article is bookmarked afterwards
        """
        article_id = normalize_id(article_id)
        if article_id in self._ids:
            self._ids = [i for i in self._ids if i != article_id]
            bookmarked = False
        else:
            self._ids = self._ids + [article_id]
            bookmarked = True

        # The session set is authoritative and always written whole
        result = self.preferences.save_bookmarks(list(self._ids))

        if result.success:
            self.error = None
        else:
            self.error = result.error
            logger.warning("[BOOKMARKS] Could not persist bookmark %s: %s", article_id, result.error)
        return bookmarked
