"""Firestore-backed article source."""

import asyncio
import logging
from functools import partial
from typing import Any, Iterable, Optional

from google.api_core import exceptions as gcp_exceptions
from google.cloud import firestore

from ..config.settings import settings
from ..feed.derive import ALL_CATEGORIES
from .models import Article, ArticlePage, SortOrder
from .sources import ArticleFetchError, ArticleSource, page_from_articles

logger = logging.getLogger(__name__)


class FirestoreArticleSource(ArticleSource):
    """
    Reads articles, section names and front pages from Firestore.

    Firestore cannot do substring search and the stored dates are loosely
    formatted, so the section filter runs in the query while search, date
    sort and windowing run in Python with the shared feed rules.
    """

    def __init__(self, client: Optional[Any] = None):
        if client is None:
            project = settings.firestore_project
            client = firestore.Client(project=project) if project else firestore.Client()
        self.db = client
        self.articles = self.db.collection(settings.articles_collection)
        self.sections = self.db.collection(settings.sections_collection)
        self.front_pages = self.db.collection(settings.front_page_collection)

    @staticmethod
    def _to_article(doc: Any) -> Article:
        data = doc.to_dict() or {}
        data["id"] = doc.id
        return Article.from_dict(data)

    def _stream(self, section: Optional[str]) -> list[Article]:
        query = self.articles
        if section and section != ALL_CATEGORIES:
            query = query.where("section", "==", section)
        return [self._to_article(doc) for doc in query.stream()]

    def _get_by_ids(self, ids: list[str]) -> list[Article]:
        refs = [self.articles.document(i) for i in ids if i and "/" not in i]
        if not refs:
            return []
        return [self._to_article(snap) for snap in self.db.get_all(refs) if snap.exists]

    def _query_sync(
        self,
        page: int,
        page_size: int,
        sort_order: SortOrder,
        category: Optional[str],
        search_query: Optional[str],
        ids: Optional[list[str]],
        preferred_categories: Optional[list[str]],
    ) -> ArticlePage:
        if ids is not None:
            articles = self._get_by_ids(ids)
        elif preferred_categories and (not category or category == ALL_CATEGORIES):
            articles = self._stream(None)
        else:
            articles = self._stream(category)

        logger.debug("[FIRESTORE] Loaded %d candidate articles", len(articles))
        return page_from_articles(
            articles, page, page_size, sort_order, category, search_query, ids, preferred_categories
        )

    async def _run(self, func, *args):
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, partial(func, *args))
        except gcp_exceptions.GoogleAPIError as e:
            logger.error("[FIRESTORE] Request failed: %s", e)
            raise ArticleFetchError(f"Firestore request failed: {e}") from e

    async def query(
        self,
        page: int = 1,
        page_size: int = 9,
        sort_order: SortOrder = SortOrder.NEW_TO_OLD,
        category: Optional[str] = None,
        search_query: Optional[str] = None,
        ids: Optional[Iterable[str]] = None,
        preferred_categories: Optional[Iterable[str]] = None,
    ) -> ArticlePage:
        return await self._run(
            self._query_sync,
            page,
            page_size,
            sort_order,
            category,
            search_query,
            [str(i) for i in ids] if ids is not None else None,
            list(preferred_categories) if preferred_categories else None,
        )

    def _sections_sync(self) -> list[str]:
        doc = self.sections.document(settings.sections_document).get()
        if not doc.exists:
            return []
        data = doc.to_dict() or {}
        return [str(name) for name in data.get("sectionNames") or []]

    async def list_categories(self) -> list[str]:
        return await self._run(self._sections_sync)

    def _front_page_sync(self, section_id: str) -> Optional[list[dict[str, Any]]]:
        doc = self.front_pages.document(section_id).get()
        if not doc.exists:
            return None
        data = doc.to_dict() or {}
        return list(data.get("articles") or [])

    async def front_page(self, section_id: str) -> Optional[list[dict[str, Any]]]:
        """Front-page article list, or None if the section has no document."""
        return await self._run(self._front_page_sync, section_id)


# Singleton
_source_instance: Optional[FirestoreArticleSource] = None


def get_firestore_source() -> Optional[FirestoreArticleSource]:
    """Get or create the Firestore article source singleton."""
    global _source_instance
    if _source_instance is None:
        try:
            _source_instance = FirestoreArticleSource()
        except Exception as e:
            logger.error("[FIRESTORE] Failed to initialize Firestore: %s", e)
            return None
    return _source_instance
