import pytest

from biasbrief.news.models import Article
from biasbrief.storage.backends import MemoryStorage
from biasbrief.storage.preferences import PreferenceStore


@pytest.fixture
def make_article():
    """Factory for articles with readable defaults."""

    def _make(article_id, section="World news", category="News", date="2024-01-01", **fields):
        fields.setdefault("title_biased", f"Shocking headline {article_id}")
        fields.setdefault("title_unbiased", f"Headline {article_id}")
        return Article(id=str(article_id), section=section, category=category, date=date, **fields)

    return _make


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage):
    store = PreferenceStore(storage)
    yield store
    store.close()
