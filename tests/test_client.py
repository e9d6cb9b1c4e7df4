import asyncio
import json

import httpx
import pytest

from biasbrief.news.client import HttpArticleSource
from biasbrief.news.models import SortOrder
from biasbrief.news.sources import ArticleFetchError

BASE_URL = "http://api.test"


def _source(handler):
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return HttpArticleSource(base_url=BASE_URL, client=client)


def _article(article_id, **fields):
    return {"id": article_id, "titleBiased": f"Shocking {article_id}", "titleUnbiased": f"Calm {article_id}", **fields}


def test_query_sends_filters_and_parses_page():
    seen = []

    def handler(request):
        seen.append(request.url)
        return httpx.Response(200, json={
            "articles": [_article(7, section="Sport", trailText="Short")],
            "totalCount": 19,
            "totalPages": 3,
            "page": 2,
        })

    source = _source(handler)
    page = asyncio.run(source.query(
        page=2,
        page_size=9,
        sort_order=SortOrder.OLD_TO_NEW,
        category="Sport",
        search_query="final",
        preferred_categories=["Sport", "Culture"],
    ))

    params = seen[0].params
    assert seen[0].path == "/api/news"
    assert params["page"] == "2"
    assert params["pageSize"] == "9"
    assert params["sortOrder"] == "old-to-new"
    assert params["category"] == "Sport"
    assert params["q"] == "final"
    assert params["preferredCategories"] == "Sport,Culture"
    assert "ids" not in params

    assert page.total_count == 19
    assert page.total_pages == 3
    assert page.page == 2
    assert page.articles[0].id == "7"
    assert page.articles[0].snippet == "Short"


def test_query_by_ids():
    seen = []

    def handler(request):
        seen.append(request.url.params)
        return httpx.Response(200, json={"articles": [_article("a"), _article("b")]})

    page = asyncio.run(_source(handler).query(ids=["a", "b"]))

    assert seen[0]["ids"] == "a,b"
    assert "q" not in seen[0]
    assert [a.id for a in page.articles] == ["a", "b"]
    assert page.total_count == 2
    assert page.total_pages == 1


def test_server_error_becomes_fetch_error():
    source = _source(lambda request: httpx.Response(500, json={"detail": "boom"}))

    with pytest.raises(ArticleFetchError) as excinfo:
        asyncio.run(source.query())

    assert excinfo.value.status_code == 500
    assert "500" in str(excinfo.value)


def test_malformed_json_becomes_fetch_error():
    source = _source(lambda request: httpx.Response(200, content=b"<html>not json</html>"))

    with pytest.raises(ArticleFetchError, match="malformed JSON"):
        asyncio.run(source.query())


def test_missing_articles_list_becomes_fetch_error():
    source = _source(lambda request: httpx.Response(200, json={"totalCount": 3}))

    with pytest.raises(ArticleFetchError, match="no articles list"):
        asyncio.run(source.query())


def test_transport_error_becomes_fetch_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ArticleFetchError) as excinfo:
        asyncio.run(_source(handler).query())

    assert excinfo.value.status_code is None


def test_list_categories():
    def handler(request):
        assert request.url.path == "/api/sections"
        return httpx.Response(200, json={"categories": ["World news", "", "Sport"]})

    assert asyncio.run(_source(handler).list_categories()) == ["World news", "Sport"]


def test_list_categories_rejects_bad_payload():
    source = _source(lambda request: httpx.Response(200, json={"sections": []}))

    with pytest.raises(ArticleFetchError):
        asyncio.run(source.list_categories())


def test_get_article_returns_none_when_missing():
    source = _source(lambda request: httpx.Response(200, json={"articles": []}))
    assert asyncio.run(source.get_article("404")) is None


def test_all_articles_walks_every_page():
    pages = {
        "1": [_article(1), _article(2)],
        "2": [_article(3), _article(4)],
        "3": [_article(5)],
    }

    def handler(request):
        page = request.url.params["page"]
        return httpx.Response(200, content=json.dumps({
            "articles": pages[page],
            "totalCount": 5,
            "totalPages": 3,
            "page": int(page),
        }))

    articles = asyncio.run(_source(handler).all_articles(page_size=2))

    assert [a.id for a in articles] == ["1", "2", "3", "4", "5"]
