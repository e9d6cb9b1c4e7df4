"""HTTP client for the BiasBrief web API (Article Query and Category List)."""

import logging
from typing import Any, Iterable, Optional

import httpx

from ..config.settings import settings
from .models import ArticlePage, SortOrder
from .sources import ArticleFetchError, ArticleSource

logger = logging.getLogger(__name__)


class HttpArticleSource(ArticleSource):
    """
    Article source backed by GET /api/news and GET /api/sections.

    Every failure (transport error, timeout, non-2xx status, malformed JSON)
    is raised as ArticleFetchError.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            base_url: API root (default from settings)
            timeout: Request timeout in seconds (default from settings)
            client: Pre-built AsyncClient (tests inject one with a MockTransport)
        """
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout = settings.request_timeout if timeout is None else timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _get_json(self, path: str, params: Optional[dict[str, str]] = None) -> dict[str, Any]:
        client = self._get_client()
        try:
            resp = await client.get(path, params=params)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            raise ArticleFetchError(
                f"{path} returned {e.response.status_code}", status_code=e.response.status_code
            ) from e
        except httpx.HTTPError as e:
            raise ArticleFetchError(f"{path} request failed: {e}") from e
        except ValueError as e:
            raise ArticleFetchError(f"{path} returned malformed JSON") from e

        if not isinstance(data, dict):
            raise ArticleFetchError(f"{path} returned an unexpected payload")
        return data

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
        params = {
            "page": str(page),
            "pageSize": str(page_size),
            "sortOrder": SortOrder.parse(sort_order).value,
        }
        if search_query:
            params["q"] = search_query
        if category:
            params["category"] = category
        preferred = list(preferred_categories or [])
        if preferred:
            params["preferredCategories"] = ",".join(preferred)
        if ids is not None:
            params["ids"] = ",".join(str(i) for i in ids)

        logger.debug("[SOURCE] GET /api/news %s", params)
        data = await self._get_json("/api/news", params)
        if not isinstance(data.get("articles"), list):
            raise ArticleFetchError("/api/news payload has no articles list")
        try:
            return ArticlePage.from_payload(data, page, page_size)
        except (TypeError, ValueError, AttributeError) as e:
            raise ArticleFetchError(f"/api/news payload is malformed: {e}") from e

    async def list_categories(self) -> list[str]:
        data = await self._get_json("/api/sections")
        categories = data.get("categories")
        if not isinstance(categories, list):
            raise ArticleFetchError("/api/sections payload has no categories list")
        return [str(c) for c in categories if c]
