"""Article sources: the Article Query and Category List collaborators.

The feed core only talks to an ArticleSource. Implementations:

- InMemoryArticleSource: a fixed list (JSON file backend, tests)
- FirestoreArticleSource (firestore_source.py): the hosted document store
- HttpArticleSource (client.py): the web API, as seen from a client
"""

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Optional

from ..feed import derive
from .dates import sort_key
from .models import Article, ArticlePage, SortOrder

logger = logging.getLogger(__name__)


class ArticleFetchError(Exception):
    """An article or category request failed (transport, status or payload)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ArticleSource:
    """Interface for article backends."""

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
        """
        Fetch one page of articles.

        With ids, every matching article is returned at once regardless of
        page and page_size.
        """
        raise NotImplementedError

    async def list_categories(self) -> list[str]:
        """Section names available as category tabs."""
        raise NotImplementedError

    async def front_page(self, section_id: str) -> Optional[list[dict[str, Any]]]:
        """Curated front-page articles for a section id, or None if unknown."""
        raise NotImplementedError

    async def get_article(self, article_id: str) -> Optional[Article]:
        """Single article lookup by id."""
        page = await self.query(ids=[article_id])
        return page.articles[0] if page.articles else None

    async def all_articles(
        self,
        sort_order: SortOrder = SortOrder.NEW_TO_OLD,
        page_size: int = 200,
    ) -> list[Article]:
        """Walk every page of the unfiltered feed."""
        collected: list[Article] = []
        page = 1
        while True:
            result = await self.query(page=page, page_size=page_size, sort_order=sort_order)
            collected.extend(result.articles)
            if not result.articles or page >= result.total_pages:
                break
            page += 1
        logger.debug("[SOURCE] Loaded %d articles over %d pages", len(collected), page)
        return collected


def page_from_articles(
    articles: Iterable[Article],
    page: int,
    page_size: int,
    sort_order: SortOrder,
    category: Optional[str],
    search_query: Optional[str],
    ids: Optional[Iterable[str]],
    preferred_categories: Optional[Iterable[str]],
) -> ArticlePage:
    """Server-side query semantics over an in-memory list (shared with Firestore)."""
    preferred = list(preferred_categories or [])
    view = derive.derive(
        articles,
        category=category or derive.ALL_CATEGORIES,
        search_query=search_query or "",
        sort_order=sort_order,
        page=page,
        per_page=page_size,
        preferred_categories=preferred,
        custom_news=bool(preferred),
        bookmark_ids=list(ids) if ids is not None else None,
    )
    return ArticlePage(
        articles=view.articles,
        total_count=view.total_count,
        page=view.current_page,
        total_pages=view.total_pages,
    )


class InMemoryArticleSource(ArticleSource):
    """Serves a fixed list of articles with the shared derivation rules."""

    def __init__(
        self,
        articles: Iterable[Article | dict[str, Any]],
        sections: Optional[list[str]] = None,
        section_ids: Optional[dict[str, str]] = None,
    ):
        """
        Args:
            articles: Articles or raw article records
            sections: Category list to report (default: sections seen in the articles)
            section_ids: Section name -> front-page id map (default: slugified names)
        """
        self.articles = [a if isinstance(a, Article) else Article.from_dict(a) for a in articles]
        self.sections = sections
        self.section_ids = section_ids or {}

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
        return page_from_articles(
            self.articles, page, page_size, sort_order, category, search_query, ids, preferred_categories
        )

    async def list_categories(self) -> list[str]:
        if self.sections is not None:
            return list(self.sections)
        return list(dict.fromkeys(a.section for a in self.articles if a.section))

    async def front_page(self, section_id: str, limit: int = 10) -> Optional[list[dict[str, Any]]]:
        """Latest articles of a section; None if no article belongs to it."""
        if section_id == "all":
            candidates = self.articles
        else:
            candidates = [a for a in self.articles if self._section_id(a.section) == section_id]
            if not candidates:
                return None
        latest = sorted(candidates, key=lambda a: sort_key(a.date), reverse=True)[:limit]
        return [a.to_dict() for a in latest]

    def _section_id(self, section: str) -> str:
        """Front-page id of a section name; unmapped names are slugified ("US news" -> "us-news")."""
        if section in self.section_ids:
            return self.section_ids[section]
        return section.strip().lower().replace(" ", "-")


def load_articles(path: Path | str) -> list[Article]:
    """
    Load articles from a JSON file.

    Args:
        path: File holding {"articles": [...]} or a bare list

    Returns:
        Normalised articles; empty if the file does not exist
    """
    path = Path(path)
    if not path.exists():
        logger.warning("[SOURCE] Articles file not found: %s", path)
        return []

    with open(path, encoding="utf-8") as f:
        data = json.load(f)

    raw_articles = data.get("articles", []) if isinstance(data, dict) else data
    articles = [Article.from_dict(raw) for raw in raw_articles if isinstance(raw, dict)]
    logger.info("[SOURCE] Loaded %d articles from %s", len(articles), path.name)
    return articles
