"""Data models for news articles and article pages."""

import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class SortOrder(str, Enum):
    """Article ordering by publication date."""

    NEW_TO_OLD = "new-to-old"
    OLD_TO_NEW = "old-to-new"

    @classmethod
    def parse(cls, value: Optional[str], default: Optional["SortOrder"] = None) -> "SortOrder":
        """Parse a wire value, falling back to new-to-old."""
        try:
            return cls(value)
        except ValueError:
            return default or cls.NEW_TO_OLD


# Raw keys consumed by Article.from_dict; anything else lands in `extra`
_KNOWN_KEYS = {
    "id", "section", "category", "titleBiased", "title_biased", "titleUnbiased",
    "title_unbiased", "title", "snippet", "description", "trailText", "body",
    "content", "date", "imageUrl", "image_url", "image", "source", "webUrl",
    "web_url", "unbiased_summary",
}

_TAG_RE = re.compile(r"<[^>]+>")


def _first(raw: dict, *keys: str) -> str:
    """Return the first non-empty string value among keys."""
    for key in keys:
        value = raw.get(key)
        if value is not None and str(value).strip() != "":
            return str(value)
    return ""


def normalize_id(value: Any) -> str:
    """Article ids are opaque strings; numeric ids keep their decimal form."""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip() if value is not None else ""


@dataclass
class Article:
    """News article normalised from a document-store record."""

    id: str
    section: str = ""
    category: str = ""
    title_biased: str = ""
    title_unbiased: str = ""
    title: str = ""
    snippet: str = ""
    body: str = ""
    content: str = ""
    date: str = ""
    image_url: Optional[str] = None
    source: str = ""
    web_url: Optional[str] = None
    unbiased_summary: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Article":
        """Build an Article from a raw record, resolving alternate field names once."""
        return cls(
            id=normalize_id(raw.get("id")),
            section=_first(raw, "section"),
            category=_first(raw, "category"),
            title_biased=_first(raw, "titleBiased", "title_biased"),
            title_unbiased=_first(raw, "titleUnbiased", "title_unbiased"),
            title=_first(raw, "title"),
            snippet=_first(raw, "snippet", "description", "trailText"),
            body=_first(raw, "body"),
            content=_first(raw, "content"),
            date=_first(raw, "date"),
            image_url=_first(raw, "imageUrl", "image_url", "image") or None,
            source=_first(raw, "source"),
            web_url=_first(raw, "webUrl", "web_url") or None,
            unbiased_summary=_first(raw, "unbiased_summary") or None,
            extra={k: v for k, v in raw.items() if k not in _KNOWN_KEYS},
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase wire format."""
        data = dict(self.extra)
        data.update({
            "id": self.id,
            "section": self.section,
            "category": self.category,
            "titleBiased": self.title_biased,
            "titleUnbiased": self.title_unbiased,
            "title": self.title,
            "snippet": self.snippet,
            "body": self.body,
            "content": self.content,
            "date": self.date,
            "imageUrl": self.image_url,
            "source": self.source,
            "webUrl": self.web_url,
        })
        if self.unbiased_summary:
            data["unbiased_summary"] = self.unbiased_summary
        return data

    def display_title(self, biased: bool) -> str:
        """Headline for the current bias mode, with fallbacks for blank variants."""
        if biased:
            candidates = (self.title_biased, self.title_unbiased, self.title)
        else:
            candidates = (self.title_unbiased, self.title_biased, self.title)
        for candidate in candidates:
            if candidate and candidate.strip():
                return candidate
        return "Untitled"

    def reading_time(self, words_per_minute: int = 200) -> str:
        """Estimated reading time of the body, e.g. "3 min read"."""
        text = _TAG_RE.sub("", self.body or "").strip()
        words = len(text.split()) if text else 0
        minutes = max(1, math.ceil(words / words_per_minute))
        return f"{minutes} min read"


@dataclass
class ArticlePage:
    """One page of results from the Article Query Endpoint."""

    articles: list[Article]
    total_count: int
    page: int = 1
    total_pages: int = 1

    @classmethod
    def from_payload(cls, data: dict[str, Any], page: int, page_size: int) -> "ArticlePage":
        """Build a page from an /api/news JSON payload."""
        articles = [Article.from_dict(a) for a in data["articles"]]
        total_count = int(data.get("totalCount") or len(articles))
        total_pages = int(data.get("totalPages") or max(1, math.ceil(total_count / page_size)))
        return cls(
            articles=articles,
            total_count=total_count,
            page=int(data.get("page") or page),
            total_pages=total_pages,
        )

    def to_payload(self) -> dict[str, Any]:
        """Convert to the /api/news JSON payload."""
        return {
            "articles": [a.to_dict() for a in self.articles],
            "totalCount": self.total_count,
            "totalPages": self.total_pages,
            "page": self.page,
        }
