"""FastAPI dependencies."""

import logging
from typing import Optional

from fastapi import HTTPException, status

from ..config.settings import load_section_map, settings
from ..news.firestore_source import get_firestore_source
from ..news.sources import ArticleSource, InMemoryArticleSource, load_articles

logger = logging.getLogger(__name__)

_file_source: Optional[InMemoryArticleSource] = None


def get_article_source() -> ArticleSource:
    """Article backend chosen by settings.article_backend (503 if unavailable)."""
    global _file_source
    backend = settings.article_backend.strip().lower()

    if backend == "firestore":
        source = get_firestore_source()
        if source is None:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Article store unavailable",
            )
        return source

    if backend == "file":
        if _file_source is None:
            _file_source = InMemoryArticleSource(
                load_articles(settings.articles_file), section_ids=load_section_map()
            )
        return _file_source

    logger.error("[API] Unknown article backend: %s", backend)
    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Unknown article backend: {backend}",
    )
