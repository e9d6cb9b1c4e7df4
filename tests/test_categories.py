import asyncio

from biasbrief.feed.categories import CategoryDirectory, with_all
from biasbrief.news.sources import ArticleFetchError, ArticleSource


class FakeCategories(ArticleSource):
    def __init__(self, names=None, error=None):
        self.names = names or []
        self.error = error
        self.calls = 0

    async def list_categories(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.names)


def test_with_all_prepends_and_dedupes():
    assert with_all(["Sport", "All", " World news ", "Sport", "", None]) == ["All", "Sport", "World news"]
    assert with_all([]) == ["All"]


def test_load_without_cache():
    source = FakeCategories(["Sport", "Technology"])
    directory = CategoryDirectory(source)

    assert asyncio.run(directory.load()) == ["All", "Sport", "Technology"]
    assert asyncio.run(directory.load()) == ["All", "Sport", "Technology"]
    assert source.calls == 2


def test_cached_list_is_reused_until_it_expires(store):
    source = FakeCategories(["Sport"])
    directory = CategoryDirectory(source, store, ttl=60)

    assert asyncio.run(directory.load(now=1000.0)) == ["All", "Sport"]
    source.names = ["Sport", "Film"]
    assert asyncio.run(directory.load(now=1030.0)) == ["All", "Sport"]
    assert source.calls == 1

    assert asyncio.run(directory.load(now=1100.0)) == ["All", "Sport", "Film"]
    assert source.calls == 2


def test_force_bypasses_cache(store):
    source = FakeCategories(["Sport"])
    directory = CategoryDirectory(source, store)
    asyncio.run(directory.load())

    source.names = ["Film"]
    assert asyncio.run(directory.load(force=True)) == ["All", "Film"]


def test_failure_falls_back_to_all():
    directory = CategoryDirectory(FakeCategories(error=ArticleFetchError("down", status_code=503)))

    assert asyncio.run(directory.load()) == ["All"]
    assert directory.error == "down"
