"""Feed derivation: filtering, sorting and page windowing.

Pure functions shared by the client-side feed controller and the server-side
article sources, so both sides agree on what a filter means. Steps run in a
fixed order:

1. bookmark set (bookmarks-only view)
2. preferred categories (custom feed with the "All" tab)
3. selected section tab
4. search query
5. date sort
6. page window (skipped for the bookmarks-only view)

The section tab filters on `Article.section`; the preferred-categories feed
filters on `Article.category`.
"""

import math
from dataclasses import dataclass
from typing import Iterable, Optional

from ..news.dates import sort_key
from ..news.models import Article, SortOrder

ALL_CATEGORIES = "All"


@dataclass(frozen=True)
class FeedView:
    """Result of a derivation pass."""

    articles: list[Article]
    total_count: int
    total_pages: int
    current_page: int


def normalize_query(query: Optional[str]) -> str:
    """Whitespace-only queries mean "no search"."""
    return (query or "").strip()


def matches_query(article: Article, query: Optional[str]) -> bool:
    """Case-insensitive substring match over both titles, snippet and body."""
    needle = normalize_query(query).lower()
    if not needle:
        return True
    haystacks = (article.title_biased, article.title_unbiased, article.title, article.snippet, article.body)
    return any(needle in (h or "").lower() for h in haystacks)


def filter_by_section(articles: Iterable[Article], category: Optional[str]) -> list[Article]:
    """Keep articles whose section equals the selected tab ("All" keeps everything)."""
    if not category or category == ALL_CATEGORIES:
        return list(articles)
    return [a for a in articles if a.section == category]


def filter_by_preferred(articles: Iterable[Article], preferred: Iterable[str]) -> list[Article]:
    """Keep articles whose category is one of the preferred categories."""
    wanted = set(preferred)
    return [a for a in articles if a.category in wanted]


def filter_by_ids(articles: Iterable[Article], ids: Iterable[str]) -> list[Article]:
    """Keep articles whose id is in ids."""
    wanted = {str(i) for i in ids}
    return [a for a in articles if a.id in wanted]


def search(articles: Iterable[Article], query: Optional[str]) -> list[Article]:
    """Apply the search query (empty query keeps everything)."""
    return [a for a in articles if matches_query(a, query)]


def sort_articles(articles: Iterable[Article], order: SortOrder) -> list[Article]:
    """
    Sort by parsed date.

    Unparsable dates count as the earliest date, so they end up last for
    new-to-old and first for old-to-new. The sort is stable.
    """
    return sorted(articles, key=lambda a: sort_key(a.date), reverse=order == SortOrder.NEW_TO_OLD)


def total_pages_for(count: int, per_page: int) -> int:
    """Number of pages for count items; never less than one."""
    per_page = max(1, per_page)
    return max(1, math.ceil(count / per_page))


def clamp_page(page: int, total_pages: int) -> int:
    """Clamp a 1-based page into [1, total_pages]."""
    return min(max(1, page), max(1, total_pages))


def window(articles: list[Article], page: int, per_page: int) -> list[Article]:
    """Slice out one 1-based page."""
    per_page = max(1, per_page)
    start = (page - 1) * per_page
    return articles[start:start + per_page]


def derive(
    articles: Iterable[Article],
    *,
    category: str = ALL_CATEGORIES,
    search_query: str = "",
    sort_order: SortOrder = SortOrder.NEW_TO_OLD,
    page: int = 1,
    per_page: int = 9,
    preferred_categories: Iterable[str] = (),
    custom_news: bool = False,
    bookmark_ids: Optional[Iterable[str]] = None,
    paginate: bool = True,
) -> FeedView:
    """
    Run the full derivation over an in-memory article list.

    Args:
        articles: Source articles
        category: Selected section tab ("All" disables it)
        search_query: Free-text query
        sort_order: Date ordering
        page: Requested 1-based page; clamped into range
        per_page: Page size
        preferred_categories: Categories for the custom feed
        custom_news: Whether the custom feed is active
        bookmark_ids: When given, only these ids are kept and the result is not paged
        paginate: Set False when the articles are already one server page

    Returns:
        FeedView with the visible articles and page totals
    """
    if bookmark_ids is not None:
        selected = filter_by_ids(articles, bookmark_ids)
    elif custom_news and category == ALL_CATEGORIES:
        selected = filter_by_preferred(articles, preferred_categories)
    else:
        selected = filter_by_section(articles, category)

    selected = sort_articles(search(selected, search_query), sort_order)

    if bookmark_ids is not None or not paginate:
        return FeedView(articles=selected, total_count=len(selected), total_pages=1, current_page=1)

    total = total_pages_for(len(selected), per_page)
    current = clamp_page(page, total)
    return FeedView(
        articles=window(selected, current, per_page),
        total_count=len(selected),
        total_pages=total,
        current_page=current,
    )
