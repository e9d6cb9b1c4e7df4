"""Headline debiasing and article summaries via external LLM webhooks.

Unbiasing a title is a two-step protocol: trigger the webhook, then re-query
the Article Query Endpoint for the title the webhook persisted. The webhook's
own response body is not trusted.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ..config.settings import settings
from .models import Article
from .sources import ArticleFetchError, ArticleSource

logger = logging.getLogger(__name__)


@dataclass
class DebiasResult:
    """Result from a debias or summarise call."""

    article_id: str
    title: str  # Unbiased title, or the fallback title on failure
    success: bool
    error: Optional[str] = None
    summary: Optional[str] = None


def _extract_summary(data: Any) -> Optional[str]:
    """The summarise webhook answers with an object or a one-element list."""
    if isinstance(data, list) and data and isinstance(data[0], dict):
        data = data[0]
    if isinstance(data, dict):
        summary = data.get("unbiased_summary")
        if isinstance(summary, str) and summary.strip():
            return summary
    return None


class HeadlineDebiaser:
    """Client for the unbias-title and summarise-and-unbias webhooks."""

    def __init__(
        self,
        source: ArticleSource,
        unbias_url: Optional[str] = None,
        summarize_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            source: Article source used to re-read the persisted title
            unbias_url: Unbias-title webhook (default from settings)
            summarize_url: Summarise webhook (default from settings)
            timeout: Request timeout in seconds
            client: Pre-built AsyncClient
        """
        self.source = source
        self.unbias_url = unbias_url if unbias_url is not None else settings.unbias_title_webhook_url
        self.summarize_url = summarize_url if summarize_url is not None else settings.summarize_webhook_url
        self.timeout = settings.request_timeout if timeout is None else timeout
        self._client = client

    async def _post(self, url: str, payload: dict[str, Any]) -> httpx.Response:
        if not url:
            raise ValueError("webhook URL is not configured")
        if self._client is not None:
            resp = await self._client.post(url, json=payload)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(url, json=payload)
        resp.raise_for_status()
        return resp

    async def unbias_title(self, article: Article) -> DebiasResult:
        """
        Ask the webhook to unbias an article's headline and read back the result.

        On any failure the biased (or plain) title is returned with success=False.
        """
        fallback = article.display_title(biased=True)
        logger.info("[DEBIAS] Unbiasing title of article %s", article.id)

        try:
            await self._post(self.unbias_url, {"id": article.id, "titleBiased": article.title_biased or article.title})
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("[DEBIAS] Unbias webhook failed for %s: %s", article.id, e)
            return DebiasResult(article.id, fallback, success=False, error="Failed to unbias title. Please try again.")

        try:
            refreshed = await self.source.get_article(article.id)
        except ArticleFetchError as e:
            logger.warning("[DEBIAS] Could not re-read article %s: %s", article.id, e)
            return DebiasResult(article.id, fallback, success=False, error="Could not fetch updated unbiased title.")

        if refreshed is None or not refreshed.title_unbiased.strip():
            return DebiasResult(article.id, fallback, success=False, error="No unbiased title was stored.")

        return DebiasResult(article.id, refreshed.title_unbiased, success=True)

    async def summarize(self, article: Article) -> DebiasResult:
        """Fetch (or reuse) the unbiased summary of an article body."""
        title = article.display_title(biased=False)
        if article.unbiased_summary:
            return DebiasResult(article.id, title, success=True, summary=article.unbiased_summary)
        if not article.body:
            return DebiasResult(article.id, title, success=False, error="Article content is not available.")

        try:
            resp = await self._post(self.summarize_url, {"id": article.id, "body": article.body})
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("[DEBIAS] Summarise webhook failed for %s: %s", article.id, e)
            return DebiasResult(article.id, title, success=False, error="Failed to summarize and unbias article")

        summary = _extract_summary(data)
        if summary is None:
            return DebiasResult(article.id, title, success=False, error="No summary returned from server.")
        return DebiasResult(article.id, title, success=True, summary=summary)
