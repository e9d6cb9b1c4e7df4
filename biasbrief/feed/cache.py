"""In-memory cache of fetched article pages.

One entry per exact filter/pagination key, no partial matching. The cache is
an owned object (one per feed controller) rather than module state.
"""

import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Optional

from ..news.models import Article, SortOrder

logger = logging.getLogger(__name__)


def cache_key(
    page: int,
    selected_category: str,
    search_query: str,
    articles_per_page: int,
    sort_order: SortOrder | str,
    custom_news_enabled: bool,
    preferred_categories: Iterable[str],
) -> str:
    """
    Deterministic key for one fetch request.

    Fields are serialised in a fixed order; preferred categories are a set, so
    they are de-duplicated and sorted first.
    """
    order = sort_order.value if isinstance(sort_order, SortOrder) else str(sort_order)
    return json.dumps(
        [
            ["page", int(page)],
            ["selectedCategory", selected_category],
            ["searchQuery", search_query],
            ["articlesPerPage", int(articles_per_page)],
            ["sortOrder", order],
            ["customNewsEnabled", bool(custom_news_enabled)],
            ["preferredCategories", sorted(set(preferred_categories))],
        ],
        separators=(",", ":"),
        ensure_ascii=False,
    )


@dataclass
class CacheEntry:
    """A cached page of articles and the filters that produced it."""

    articles: list[Article]
    page: int
    total_pages: int
    total_count: int
    filters: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dict."""
        return {
            "articles": [a.to_dict() for a in self.articles],
            "page": self.page,
            "totalPages": self.total_pages,
            "totalCount": self.total_count,
            "filters": self.filters,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheEntry":
        """Inverse of to_dict; raises KeyError/TypeError/ValueError on bad shape."""
        if not isinstance(data.get("articles"), list) or not isinstance(data.get("filters"), dict):
            raise ValueError("malformed cache entry")
        return cls(
            articles=[Article.from_dict(a) for a in data["articles"]],
            page=int(data["page"]),
            total_pages=int(data["totalPages"]),
            total_count=int(data["totalCount"]),
            filters=dict(data["filters"]),
            timestamp=float(data["timestamp"]),
        )


class ArticleCache:
    """
    Exact-key memoization of article pages.

    Optionally bounded: with a capacity, the least recently used entry is
    evicted once the cache is full.
    """

    def __init__(self, capacity: Optional[int] = None):
        """
        Initialize the cache.

        Args:
            capacity: Maximum number of entries; None or 0 means unbounded
        """
        self.capacity = capacity or None
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry stored under key, or None."""
        entry = self._entries.get(key)
        if entry is not None:
            self._entries.move_to_end(key)
        return entry

    def set(self, key: str, entry: CacheEntry) -> None:
        """Store entry under key, replacing any previous one."""
        self._entries[key] = entry
        self._entries.move_to_end(key)
        if self.capacity is not None:
            while len(self._entries) > self.capacity:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("[CACHE] Evicted %s", evicted)

    def clear(self) -> None:
        """Drop all entries."""
        self._entries.clear()

    def update_article(self, article_id: str, **changes: Any) -> int:
        """
        Patch one article's fields in every cached page that holds it.

        Returns:
            Number of entries that changed
        """
        changed_entries = 0
        for entry in self._entries.values():
            changed = False
            for i, article in enumerate(entry.articles):
                if article.id != article_id:
                    continue
                if all(getattr(article, k) == v for k, v in changes.items()):
                    continue
                entry.articles[i] = replace(article, **changes)
                changed = True
            if changed:
                changed_entries += 1
        return changed_entries

    def export(self) -> dict[str, dict[str, Any]]:
        """Serialisable snapshot of every entry, oldest use first."""
        return {key: entry.to_dict() for key, entry in self._entries.items()}

    def hydrate(
        self,
        entries: dict[str, Any],
        max_age: Optional[float] = None,
        now: Optional[float] = None,
    ) -> int:
        """
        Restore entries produced by export().

        Malformed entries and entries older than max_age seconds are skipped.

        Returns:
            Number of entries restored
        """
        now = time.time() if now is None else now
        restored = 0
        for key, raw in entries.items():
            if not isinstance(raw, dict):
                continue
            try:
                entry = CacheEntry.from_dict(raw)
            except (KeyError, TypeError, ValueError):
                logger.debug("[CACHE] Skipping malformed entry %s", key)
                continue
            if max_age is not None and now - entry.timestamp >= max_age:
                continue
            self.set(key, entry)
            restored += 1
        logger.info("[CACHE] Hydrated %d of %d entries", restored, len(entries))
        return restored
