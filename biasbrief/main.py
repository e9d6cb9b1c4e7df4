#!/usr/bin/env python3
"""
BiasBrief command-line feed reader.

Browses the news feed served by a running BiasBrief API (or the local
articles file) with the same filtering, paging and bookmark rules as the web
client. Preferences persist in a JSON file, or on a user's Firestore profile
with --profile.

Usage:
    python -m biasbrief.main                          # Latest articles
    python -m biasbrief.main --category Sport --page 2
    python -m biasbrief.main --search senate --sort old-to-new
    python -m biasbrief.main --bookmark 42            # Bookmark article 42
    python -m biasbrief.main --bookmarks-only
    python -m biasbrief.main --categories
    python -m biasbrief.main --profile u1             # Preferences on a Firestore profile
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .config.settings import settings
from .feed.categories import CategoryDirectory
from .feed.controller import FeedController, FeedMode, FeedSnapshot
from .news.client import HttpArticleSource
from .news.models import SortOrder
from .news.sources import ArticleSource, InMemoryArticleSource, load_articles
from .storage.backends import JsonFileStorage, KeyValueStorage
from .storage.firestore_profile import FirestoreProfileStorage
from .storage.preferences import PreferenceStore

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Browse the BiasBrief news feed")

    parser.add_argument("--category", default="All", help="Section tab to show (default: All)")
    parser.add_argument("--search", default="", help="Case-insensitive search over titles, snippet and body")
    parser.add_argument("--page", type=int, default=1, help="Page number (default: 1)")
    parser.add_argument(
        "--per-page",
        type=int,
        default=None,
        help="Articles per page; saved as a preference (default: stored preference)",
    )
    parser.add_argument(
        "--sort",
        choices=[o.value for o in SortOrder],
        default=SortOrder.NEW_TO_OLD.value,
        help="Date order (default: new-to-old)",
    )
    parser.add_argument("--bookmarks-only", action="store_true", help="Show only bookmarked articles")
    parser.add_argument("--custom", action="store_true", help="Show the preferred-categories feed")
    parser.add_argument(
        "--preferred",
        default=None,
        help="Comma-separated preferred categories to save before browsing",
    )
    headlines = parser.add_mutually_exclusive_group()
    headlines.add_argument("--biased", action="store_true", help="Show the original headlines")
    headlines.add_argument("--unbiased", action="store_true", help="Show the unbiased headlines")
    parser.add_argument("--bookmark", metavar="ID", help="Bookmark an article and exit")
    parser.add_argument("--unbookmark", metavar="ID", help="Remove a bookmark and exit")
    parser.add_argument("--categories", action="store_true", help="List the category tabs and exit")
    parser.add_argument(
        "--local",
        action="store_true",
        help=f"Read {settings.articles_file.name} instead of calling the API",
    )
    parser.add_argument(
        "--api-url",
        default=settings.api_base_url,
        help=f"BiasBrief API base URL (default: {settings.api_base_url})",
    )
    parser.add_argument(
        "--preferences",
        type=Path,
        default=settings.preferences_file,
        help=f"Preferences file (default: {settings.preferences_file})",
    )
    parser.add_argument(
        "--profile",
        metavar="USER_ID",
        default=None,
        help="Keep preferences on this user's Firestore profile instead of the local file",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    return parser.parse_args(argv)


def open_storage(args: argparse.Namespace) -> KeyValueStorage:
    """Signed-in users keep preferences on their profile document."""
    if args.profile:
        logger.debug("[PREFS] Using Firestore profile %s", args.profile)
        return FirestoreProfileStorage(args.profile)
    return JsonFileStorage(args.preferences)


def print_feed(snapshot: FeedSnapshot, controller: FeedController, biased: bool) -> None:
    """Render one feed snapshot."""
    state = snapshot.state
    if state.show_bookmarks_only:
        heading = "Bookmarks"
    elif state.custom_news_enabled and state.selected_category == "All":
        heading = f"My news ({', '.join(state.preferred_categories) or 'no preferred categories'})"
    else:
        heading = state.selected_category
    if state.search_query.strip():
        heading += f' matching "{state.search_query.strip()}"'

    print("=" * 60)
    print(heading)
    print("=" * 60)

    if not snapshot.articles:
        print("\nNo articles found.")

    for article in snapshot.articles:
        mark = "*" if controller.is_bookmarked(article.id) else " "
        print(f"\n{mark} [{article.id}] {article.display_title(biased)}")
        details = [d for d in (article.section, article.date, article.reading_time()) if d]
        print(f"    {' | '.join(details)}")
        if article.snippet:
            print(f"    {article.snippet[:120]}")

    print()
    if snapshot.show_pagination:
        print(f"Page {snapshot.current_page} of {snapshot.total_pages} ({snapshot.total_count} articles)")
    else:
        print(f"{snapshot.total_count} articles")
    if snapshot.notice:
        print(f"Note: {snapshot.notice}")


def toggle_bookmark(store: PreferenceStore, article_id: str, add: bool) -> int:
    result = store.add_bookmark(article_id) if add else store.remove_bookmark(article_id)
    if not result.success:
        print(f"Could not update bookmarks: {result.error}")
        return 1
    print(f"{'Bookmarked' if add else 'Removed bookmark'} {article_id}")
    return 0


async def list_categories(source: ArticleSource, store: PreferenceStore) -> int:
    directory = CategoryDirectory(source, store)
    for name in await directory.load():
        print(name)
    if directory.error:
        print(f"Note: categories unavailable ({directory.error})")
    return 0


async def browse(args: argparse.Namespace, source: ArticleSource, store: PreferenceStore) -> int:
    """Load and print one page of the feed."""
    controller = FeedController(
        source,
        store,
        mode=FeedMode.CLIENT if args.local else FeedMode.SERVER,
        custom_news_enabled=args.custom,
    )
    try:
        if args.preferred is not None:
            controller.set_preferred_categories(c.strip() for c in args.preferred.split(",") if c.strip())
        if args.per_page:
            controller.set_articles_per_page(args.per_page)
        controller.set_category(args.category)
        controller.set_search_query(args.search)
        controller.set_sort_order(args.sort)
        if args.bookmarks_only:
            controller.toggle_bookmarks_only(True)
        controller.go_to_page(args.page)

        snapshot = await controller.fetch_page()

        if snapshot.error:
            print(f"Failed to load articles: {snapshot.error}")
            return 1

        biased = store.get_default_bias_mode().data
        if args.biased or args.unbiased:
            biased = args.biased
        print_feed(snapshot, controller, biased)
        store.record_visit()
        return 0
    finally:
        controller.close()


async def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    store = PreferenceStore(open_storage(args))

    if args.bookmark:
        return toggle_bookmark(store, args.bookmark, add=True)
    if args.unbookmark:
        return toggle_bookmark(store, args.unbookmark, add=False)

    if args.local:
        source: ArticleSource = InMemoryArticleSource(load_articles(settings.articles_file))
    else:
        source = HttpArticleSource(base_url=args.api_url)

    try:
        if args.categories:
            return await list_categories(source, store)
        return await browse(args, source, store)
    finally:
        if isinstance(source, HttpArticleSource):
            await source.aclose()


def cli() -> None:
    """CLI entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
