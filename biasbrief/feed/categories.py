"""Category tabs, loaded once a day through the Category List collaborator."""

import logging
from typing import Iterable, Optional

from ..config.settings import settings
from ..news.sources import ArticleFetchError, ArticleSource
from ..storage.preferences import PreferenceStore
from .derive import ALL_CATEGORIES

logger = logging.getLogger(__name__)


def with_all(names: Iterable[str]) -> list[str]:
    """Prepend "All", drop blanks and duplicates."""
    cleaned = [str(n).strip() for n in names if n is not None]
    return list(dict.fromkeys([ALL_CATEGORIES] + [n for n in cleaned if n]))


class CategoryDirectory:
    """Category list with a storage-backed cache and an "All"-only fallback."""

    def __init__(
        self,
        source: ArticleSource,
        preferences: Optional[PreferenceStore] = None,
        ttl: Optional[float] = None,
    ):
        """
        Args:
            source: Category List collaborator
            preferences: Store whose storage caches the list (None disables caching)
            ttl: Cache lifetime in seconds (default from settings)
        """
        self.source = source
        self.preferences = preferences
        self.ttl = settings.categories_cache_ttl if ttl is None else ttl
        self.error: Optional[str] = None

    async def load(self, force: bool = False, now: Optional[float] = None) -> list[str]:
        """
        Return the category tabs, "All" first.

        Args:
            force: Skip the cached list
            now: Current epoch time (tests)
        """
        if not force and self.preferences is not None:
            cached = self.preferences.get_cached_categories(self.ttl, now=now)
            if cached:
                logger.debug("[CATEGORIES] Using cached list (%d)", len(cached))
                return with_all(cached)

        try:
            names = await self.source.list_categories()
        except ArticleFetchError as e:
            logger.warning("[CATEGORIES] Could not load categories: %s", e)
            self.error = str(e)
            return [ALL_CATEGORIES]

        self.error = None
        categories = with_all(names)
        if self.preferences is not None:
            self.preferences.save_cached_categories(categories, now=now)
        logger.info("[CATEGORIES] Loaded %d categories", len(categories))
        return categories
