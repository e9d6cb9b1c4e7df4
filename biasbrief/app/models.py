"""Pydantic response models for the web API."""

from typing import Any

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str = "healthy"


class NewsResponse(BaseModel):
    """One page of /api/news results."""

    articles: list[dict[str, Any]] = []
    totalCount: int = 0
    totalPages: int = 1
    page: int = 1


class ArticleResponse(BaseModel):
    """Single article lookup."""

    article: dict[str, Any]


class SectionsResponse(BaseModel):
    """Section names for the category tabs."""

    categories: list[str] = []


class FrontPageResponse(BaseModel):
    """Curated front-page articles for one section."""

    articles: list[dict[str, Any]] = []
