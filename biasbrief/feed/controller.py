"""
Feed controller: owns the filter/sort/page state and decides fetch-vs-cache.

State changes are synchronous; fetching is async:

    controller.set_category("Sport")
    await controller.fetch_page()
    view = controller.snapshot()

Two data modes:

- server: every page is fetched from the article source (or taken from the
  ArticleCache on an exact key match); totals come from the source.
- client: refresh() loads the whole feed once and every derivation step,
  windowing included, runs locally.

Only the most recently started fetch may update the state. Each fetch takes a
sequence number and remembers the key it was made for; a response whose
sequence number or key no longer matches is discarded.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterable, Optional

from ..config.settings import settings
from ..news.debias import DebiasResult, HeadlineDebiaser
from ..news.models import Article, SortOrder, normalize_id
from ..news.sources import ArticleFetchError, ArticleSource
from ..storage.preferences import PreferenceStore, StorageResult
from .bookmarks import BookmarkManager
from .cache import ArticleCache, CacheEntry, cache_key
from .derive import ALL_CATEGORIES, FeedView, derive, normalize_query, total_pages_for

logger = logging.getLogger(__name__)


class FeedMode(str, Enum):
    SERVER = "server"
    CLIENT = "client"


@dataclass
class FeedState:
    """Filter, sort and pagination state."""

    selected_category: str = ALL_CATEGORIES
    search_query: str = ""
    sort_order: SortOrder = SortOrder.NEW_TO_OLD
    current_page: int = 1
    articles_per_page: int = 9
    show_bookmarks_only: bool = False
    custom_news_enabled: bool = False
    preferred_categories: list[str] = field(default_factory=list)

    def cache_key(self) -> str:
        return cache_key(
            page=self.current_page,
            selected_category=self.selected_category,
            search_query=normalize_query(self.search_query),
            articles_per_page=self.articles_per_page,
            sort_order=self.sort_order,
            custom_news_enabled=self.custom_news_enabled,
            preferred_categories=self.preferred_categories,
        )

    def to_filters(self) -> dict[str, Any]:
        return {
            "selectedCategory": self.selected_category,
            "searchQuery": normalize_query(self.search_query),
            "sortOrder": self.sort_order.value,
            "articlesPerPage": self.articles_per_page,
            "customNewsEnabled": self.custom_news_enabled,
            "preferredCategories": sorted(set(self.preferred_categories)),
        }


@dataclass(frozen=True)
class FeedSnapshot:
    """What the presentation layer renders."""

    articles: list[Article]
    total_pages: int
    total_count: int
    current_page: int
    is_loading: bool
    error: Optional[str]
    notice: Optional[str]
    show_pagination: bool
    state: FeedState


class FeedController:
    """Mediates every interaction that changes the displayed feed."""

    def __init__(
        self,
        source: ArticleSource,
        preferences: PreferenceStore,
        cache: Optional[ArticleCache] = None,
        mode: FeedMode | str = FeedMode.SERVER,
        custom_news_enabled: bool = False,
        articles_per_page: Optional[int] = None,
        debiaser: Optional[HeadlineDebiaser] = None,
    ):
        """
        Args:
            source: Article Query collaborator
            preferences: Preference store (page size, preferred categories, bookmarks)
            cache: Article cache owned by this controller (a new bounded one by default)
            mode: "server" or "client" paging
            custom_news_enabled: Start with the preferred-categories feed active
            articles_per_page: Page size; defaults to the stored preference
            debiaser: Headline-Debias collaborator for unbias_title()
        """
        self.source = source
        self.preferences = preferences
        self.cache = cache if cache is not None else ArticleCache(settings.article_cache_capacity)
        self.mode = FeedMode(mode)
        self.debiaser = debiaser
        self.bookmarks = BookmarkManager(preferences)

        if articles_per_page is None:
            articles_per_page = preferences.get_articles_per_page().data
        self.state = FeedState(
            articles_per_page=max(1, int(articles_per_page)),
            custom_news_enabled=custom_news_enabled,
            preferred_categories=list(preferences.get_preferred_categories().data or []),
        )

        self.is_loading = False
        self.error: Optional[str] = None
        self.notice: Optional[str] = None

        self._all_articles: list[Article] = []
        self._loaded = False
        self._page_articles: list[Article] = []
        self._bookmark_articles: list[Article] = []
        self._total_pages = 1
        self._total_count = 0
        self._totals_known = False

        self._request_seq = 0
        self._request_key: Optional[str] = None
        self._saved_view: Optional[tuple[str, int]] = None
        self._pending: Optional[asyncio.Task] = None
        self._unsubscribe = preferences.subscribe(self._on_preference_change)

    def close(self) -> None:
        """Stop listening to preference changes and drop any background refetch."""
        self._unsubscribe()
        self.bookmarks.close()
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    # --- Derivation ---

    def _view(self) -> FeedView:
        s = self.state
        bookmark_ids = self.bookmarks.ids() if s.show_bookmarks_only else None

        if self.mode is FeedMode.CLIENT:
            return derive(
                self._all_articles,
                category=s.selected_category,
                search_query=s.search_query,
                sort_order=s.sort_order,
                page=s.current_page,
                per_page=s.articles_per_page,
                preferred_categories=s.preferred_categories,
                custom_news=s.custom_news_enabled,
                bookmark_ids=bookmark_ids,
            )

        if bookmark_ids is not None:
            return derive(
                self._bookmark_articles,
                search_query=s.search_query,
                sort_order=s.sort_order,
                bookmark_ids=bookmark_ids,
            )

        # The adopted server page is already filtered, sorted and windowed.
        return FeedView(
            articles=list(self._page_articles),
            total_count=self._total_count,
            total_pages=self._total_pages,
            current_page=s.current_page,
        )

    def snapshot(self) -> FeedSnapshot:
        """Immutable view of the current feed."""
        view = self._view()
        return FeedSnapshot(
            articles=view.articles,
            total_pages=view.total_pages,
            total_count=view.total_count,
            current_page=view.current_page,
            is_loading=self.is_loading,
            error=self.error,
            notice=self.notice,
            show_pagination=view.total_pages > 1 and not self.state.show_bookmarks_only,
            state=replace(self.state, preferred_categories=list(self.state.preferred_categories)),
        )

    def total_pages(self) -> int:
        return self._view().total_pages

    def _feed_total_pages(self) -> Optional[int]:
        """Page count of the regular feed, or None while it is unknown."""
        if self.mode is FeedMode.CLIENT:
            if not self._loaded:
                return None
            s = self.state
            return derive(
                self._all_articles,
                category=s.selected_category,
                search_query=s.search_query,
                per_page=s.articles_per_page,
                preferred_categories=s.preferred_categories,
                custom_news=s.custom_news_enabled,
            ).total_pages
        return self._total_pages if self._totals_known else None

    def _clamp_to_feed(self) -> None:
        total = self._feed_total_pages()
        if total is not None:
            self.state.current_page = min(self.state.current_page, total)

    # --- State changes ---

    def set_category(self, category: Optional[str]) -> None:
        """Select a category tab and go back to page 1."""
        self.state.selected_category = (category or "").strip() or ALL_CATEGORIES
        self.state.current_page = 1
        self._saved_view = None
        self._totals_known = False

    def set_search_query(self, query: Optional[str]) -> None:
        self.state.search_query = query or ""
        self.state.current_page = 1
        self._totals_known = False

    def set_sort_order(self, order: SortOrder | str) -> None:
        self.state.sort_order = SortOrder.parse(order, default=self.state.sort_order)

    def set_articles_per_page(self, count: int) -> StorageResult[None]:
        """
        Change the page size, clamp the current page and persist the size.

        Returns:
            Result of persisting the preference
        """
        count = max(1, int(count))
        self.state.articles_per_page = count
        if self.mode is FeedMode.SERVER and self._totals_known:
            self._total_pages = total_pages_for(self._total_count, count)
        # The bookmarks view is unpaged; its saved page is clamped on leaving
        if not self.state.show_bookmarks_only:
            self._clamp_to_feed()

        result = self.preferences.save_articles_per_page(count)
        self._note_storage(result, "page size")
        return result

    def go_to_page(self, page: int) -> int:
        """
        Move to a page, clamped into [1, total_pages]. Returns the page.

        Before anything is loaded the total is unknown, so only the lower
        bound applies; the source clamps the rest.
        """
        page = max(1, int(page))
        if self.state.show_bookmarks_only:
            page = 1
        else:
            total = self._feed_total_pages()
            if total is not None:
                page = min(page, total)
        self.state.current_page = page
        return page

    def toggle_bookmarks_only(self, enabled: Optional[bool] = None) -> bool:
        """
        Enter or leave the bookmarks-only view.

        Leaving restores the category and page active when the view was
        entered. Returns the new mode.
        """
        if enabled is None:
            enabled = not self.state.show_bookmarks_only
        if enabled == self.state.show_bookmarks_only:
            return enabled

        if enabled:
            self._saved_view = (self.state.selected_category, self.state.current_page)
        elif self._saved_view is not None:
            self.state.selected_category, self.state.current_page = self._saved_view
            self._saved_view = None
        self.state.show_bookmarks_only = enabled
        if not enabled:
            self._clamp_to_feed()
        return enabled

    def toggle_bookmark(self, article_id: Any) -> bool:
        """
        Flip an article's bookmark.

        Removing the last bookmark while the bookmarks-only view is active
        leaves that view. Returns the new membership.
        """
        bookmarked = self.bookmarks.toggle(article_id)
        if self.bookmarks.error is not None:
            self.notice = f"Bookmark could not be saved: {self.bookmarks.error}"
        if self.state.show_bookmarks_only and not len(self.bookmarks):
            logger.info("[FEED] Last bookmark removed, leaving bookmarks view")
            self.toggle_bookmarks_only(False)
        return bookmarked

    def is_bookmarked(self, article_id: Any) -> bool:
        return self.bookmarks.is_bookmarked(article_id)

    def set_custom_news(self, enabled: bool) -> None:
        """Switch the preferred-categories feed on or off."""
        self.state.custom_news_enabled = bool(enabled)
        self.state.current_page = 1
        self._totals_known = False

    def set_preferred_categories(self, categories: Iterable[str]) -> StorageResult[None]:
        """Change and persist the preferred categories."""
        self._adopt_preferred(categories)
        result = self.preferences.save_preferred_categories(list(self.state.preferred_categories))
        self._note_storage(result, "preferred categories")
        return result

    def _adopt_preferred(self, categories: Iterable[str]) -> bool:
        updated = list(dict.fromkeys(str(c) for c in categories))
        if updated == self.state.preferred_categories:
            return False
        self.state.preferred_categories = updated
        self.state.current_page = 1
        self._totals_known = False
        return True

    def _note_storage(self, result: StorageResult, what: str) -> None:
        if result.success:
            return
        self.notice = f"Could not save {what}: {result.error}"
        logger.warning("[FEED] %s", self.notice)

    def dismiss_notice(self) -> None:
        self.notice = None

    # --- External changes ---

    def _on_preference_change(self, name: str, value: Any) -> None:
        if name != "preferred_categories":
            return
        if not self._adopt_preferred(value or []):
            return
        logger.info("[FEED] Preferred categories changed elsewhere: %s", self.state.preferred_categories)
        if self.mode is FeedMode.SERVER and self.state.custom_news_enabled:
            self._schedule_fetch()

    def _schedule_fetch(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No running loop: the next fetch_page() call picks up the new state.
            return
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = loop.create_task(self.fetch_page())
        self._pending.add_done_callback(_log_refetch_failure)

    # --- Fetching ---

    def _current_request_key(self) -> str:
        if self.state.show_bookmarks_only:
            return "bookmarks:" + json.dumps(sorted(self.bookmarks.ids()))
        return self.state.cache_key()

    def _begin(self) -> tuple[int, str]:
        self._request_seq += 1
        self._request_key = self._current_request_key()
        self.is_loading = True
        return self._request_seq, self._request_key

    def _is_current(self, seq: int, key: str) -> bool:
        return seq == self._request_seq and key == self._current_request_key()

    def _supersede(self) -> None:
        """Invalidate any fetch in flight without starting a new one."""
        self._request_seq += 1
        self.is_loading = False
        self.error = None

    def _adopt_entry(self, entry: CacheEntry) -> None:
        self._loaded = True
        self._totals_known = True
        self._page_articles = list(entry.articles)
        self._total_pages = max(1, entry.total_pages)
        self._total_count = entry.total_count
        self.state.current_page = min(max(1, entry.page), self._total_pages)

    async def fetch_page(self) -> FeedSnapshot:
        """
        Bring the displayed feed in line with the current state.

        A failed fetch keeps the last displayed articles and sets `error`.
        """
        if self.mode is FeedMode.CLIENT:
            if not self._loaded:
                return await self.refresh()
            return self.snapshot()

        if self.state.show_bookmarks_only:
            return await self._fetch_bookmarks()

        key = self.state.cache_key()
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("[FEED] Cache hit for page %d", self.state.current_page)
            self._supersede()
            self._adopt_entry(cached)
            return self.snapshot()

        seq, key = self._begin()
        s = self.state
        try:
            page = await self.source.query(
                page=s.current_page,
                page_size=s.articles_per_page,
                sort_order=s.sort_order,
                category=s.selected_category,
                search_query=normalize_query(s.search_query) or None,
                preferred_categories=s.preferred_categories if s.custom_news_enabled else None,
            )
        except ArticleFetchError as e:
            return self._fail(seq, e)

        if not self._is_current(seq, key):
            return self._discard(seq, "response")

        entry = CacheEntry(
            articles=page.articles,
            page=page.page,
            total_pages=page.total_pages,
            total_count=page.total_count,
            filters=s.to_filters(),
        )
        self.cache.set(key, entry)
        self._adopt_entry(entry)
        self.is_loading = False
        self.error = None
        logger.info(
            "[FEED] Page %d/%d (%d articles, %d total)",
            self.state.current_page, self._total_pages, len(entry.articles), entry.total_count,
        )
        return self.snapshot()

    async def _fetch_bookmarks(self) -> FeedSnapshot:
        ids = self.bookmarks.ids()
        if not ids:
            self._supersede()
            self._bookmark_articles = []
            return self.snapshot()

        seq, key = self._begin()
        try:
            page = await self.source.query(ids=ids, sort_order=self.state.sort_order)
        except ArticleFetchError as e:
            return self._fail(seq, e)

        if not self._is_current(seq, key):
            return self._discard(seq, "bookmarks response")

        self._bookmark_articles = list(page.articles)
        self.is_loading = False
        self.error = None
        return self.snapshot()

    async def refresh(self) -> FeedSnapshot:
        """
        Reload from the source.

        In client mode this bulk-loads the whole feed; in server mode it drops
        the cache and fetches the current page again.
        """
        if self.mode is FeedMode.SERVER:
            self.cache.clear()
            return await self.fetch_page()

        seq, _ = self._begin()
        try:
            articles = await self.source.all_articles(sort_order=self.state.sort_order)
        except ArticleFetchError as e:
            return self._fail(seq, e)

        if seq != self._request_seq:
            return self._discard(seq, "reload")

        self._all_articles = articles
        self._loaded = True
        self.is_loading = False
        self.error = None
        if not self.state.show_bookmarks_only:
            self._clamp_to_feed()
        logger.info("[FEED] Loaded %d articles", len(articles))
        return self.snapshot()

    async def retry(self) -> FeedSnapshot:
        """Re-run the last fetch after a failure."""
        if self.mode is FeedMode.CLIENT and not self._loaded:
            return await self.refresh()
        return await self.fetch_page()

    def _discard(self, seq: int, what: str) -> FeedSnapshot:
        logger.debug("[FEED] Discarding superseded %s #%d", what, seq)
        if seq == self._request_seq:
            # Still the latest request, but the state changed while it was in flight
            self.is_loading = False
        return self.snapshot()

    def _fail(self, seq: int, error: ArticleFetchError) -> FeedSnapshot:
        logger.warning("[FEED] Fetch #%d failed: %s", seq, error)
        if seq == self._request_seq:
            self.is_loading = False
            self.error = str(error) or "Failed to load articles"
        return self.snapshot()

    # --- Headlines ---

    def find_article(self, article_id: Any) -> Optional[Article]:
        article_id = normalize_id(article_id)
        for pool in (self._page_articles, self._bookmark_articles, self._all_articles):
            for article in pool:
                if article.id == article_id:
                    return article
        return None

    async def unbias_title(self, article_id: Any) -> DebiasResult:
        """
        Ask for an unbiased headline and patch it into every held copy.

        On failure the biased title stays and `notice` is set.
        """
        article_id = normalize_id(article_id)
        article = self.find_article(article_id)
        if article is None:
            return DebiasResult(article_id, "", success=False, error="Article is not loaded")
        if self.debiaser is None:
            return DebiasResult(article_id, article.display_title(biased=True), success=False,
                                error="Headline debiasing is not configured")

        result = await self.debiaser.unbias_title(article)
        if not result.success:
            self.notice = result.error
            return result

        self.cache.update_article(article_id, title_unbiased=result.title)
        self._page_articles = _patched(self._page_articles, article_id, result.title)
        self._bookmark_articles = _patched(self._bookmark_articles, article_id, result.title)
        self._all_articles = _patched(self._all_articles, article_id, result.title)
        return result

    # --- Cache persistence ---

    def persist_cache(self) -> StorageResult[None]:
        """Save the article cache into the preference storage."""
        return self.preferences.save_article_cache(self.cache.export())

    def restore_cache(self, now: Optional[float] = None) -> int:
        """Load still-fresh cache entries saved by persist_cache()."""
        result = self.preferences.get_article_cache()
        return self.cache.hydrate(result.data or {}, max_age=settings.article_cache_max_age, now=now)


def _log_refetch_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error("[FEED] Background refetch failed: %s", error, exc_info=error)


def _patched(articles: list[Article], article_id: str, title: str) -> list[Article]:
    return [replace(a, title_unbiased=title) if a.id == article_id else a for a in articles]
