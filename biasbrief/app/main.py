"""FastAPI web application for BiasBrief."""

import logging
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Query

from .dependencies import get_article_source
from .models import ArticleResponse, FrontPageResponse, HealthResponse, NewsResponse, SectionsResponse
from ..config.settings import load_section_map, settings
from ..news.models import SortOrder
from ..news.sources import ArticleFetchError, ArticleSource

logger = logging.getLogger(__name__)

app = FastAPI(title="BiasBrief")

SECTION_MAP = load_section_map()


def _split(value: Optional[str]) -> Optional[list[str]]:
    """Comma-separated query parameter to a list (None stays None)."""
    if value is None:
        return None
    return [part.strip() for part in value.split(",") if part.strip()]


def _backend_error(what: str, e: ArticleFetchError) -> HTTPException:
    logger.error("[API] %s failed: %s", what, e)
    return HTTPException(status_code=500, detail=f"Failed to fetch {what}")


def _unexpected_error(what: str) -> HTTPException:
    logger.exception("[API] Unexpected error fetching %s", what)
    return HTTPException(status_code=500, detail=f"Failed to fetch {what}")


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


# ============================================================================
# Articles
# ============================================================================


@app.get("/api/news", response_model=NewsResponse)
async def list_news(
    q: Optional[str] = None,
    page: int = Query(1, ge=1),
    pageSize: int = Query(settings.default_articles_per_page, ge=1, le=200),
    sortOrder: Optional[str] = None,
    category: Optional[str] = None,
    preferredCategories: Optional[str] = None,
    ids: Optional[str] = None,
    source: ArticleSource = Depends(get_article_source),
):
    """
    Query articles.

    `ids` returns exactly those articles (all of them, unpaged). Otherwise the
    feed is filtered by `category` (a section name, "All" for everything) or,
    with `preferredCategories` and no specific category, by article category;
    then searched with `q`, sorted and paged.
    """
    try:
        result = await source.query(
            page=page,
            page_size=pageSize,
            sort_order=SortOrder.parse(sortOrder),
            category=category,
            search_query=q,
            ids=_split(ids),
            preferred_categories=_split(preferredCategories),
        )
    except ArticleFetchError as e:
        raise _backend_error("articles", e) from e
    except Exception as e:
        raise _unexpected_error("articles") from e

    logger.info("[API] /api/news page %d/%d (%d of %d)", result.page, result.total_pages,
                len(result.articles), result.total_count)
    return NewsResponse(**result.to_payload())


@app.get("/api/news/{article_id}", response_model=ArticleResponse)
async def get_news_article(article_id: str, source: ArticleSource = Depends(get_article_source)):
    """Single article by id."""
    try:
        article = await source.get_article(article_id)
    except ArticleFetchError as e:
        raise _backend_error("article", e) from e
    except Exception as e:
        raise _unexpected_error("article") from e
    if article is None:
        raise HTTPException(status_code=404, detail="Article not found")
    return ArticleResponse(article=article.to_dict())


@app.get("/api/sections", response_model=SectionsResponse)
async def list_sections(source: ArticleSource = Depends(get_article_source)):
    """Section names for the category tabs."""
    try:
        categories = await source.list_categories()
    except ArticleFetchError as e:
        raise _backend_error("sections", e) from e
    except Exception as e:
        raise _unexpected_error("sections") from e
    return SectionsResponse(categories=categories)


@app.get("/api/front-page-articles", response_model=FrontPageResponse)
async def front_page_articles(
    section: Optional[str] = None,
    source: ArticleSource = Depends(get_article_source),
):
    """Front-page articles for a section display name (e.g. "US news")."""
    if not section or section not in SECTION_MAP:
        raise HTTPException(status_code=400, detail="Invalid or missing section parameter")

    try:
        articles = await source.front_page(SECTION_MAP[section])
    except ArticleFetchError as e:
        raise _backend_error("front-page articles", e) from e
    except Exception as e:
        raise _unexpected_error("front-page articles") from e
    if articles is None:
        raise HTTPException(status_code=404, detail="Section not found")
    return FrontPageResponse(articles=articles)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
