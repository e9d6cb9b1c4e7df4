import asyncio

import pytest
from google.api_core import exceptions as gcp_exceptions
from google.cloud import firestore

from biasbrief.feed.controller import FeedController
from biasbrief.news.firestore_source import FirestoreArticleSource
from biasbrief.news.sources import ArticleFetchError
from biasbrief.storage.errors import QuotaExceededError, StorageUnavailableError
from biasbrief.storage.firestore_profile import FirestoreProfileStorage
from biasbrief.storage.preferences import PreferenceStore


# --- Minimal in-process Firestore ---


class FakeSnapshot:
    def __init__(self, doc_id, data):
        self.id = doc_id
        self.exists = data is not None
        self._data = data

    def to_dict(self):
        return dict(self._data) if self._data is not None else None


class FakeDocRef:
    def __init__(self, collection, doc_id):
        self.collection = collection
        self.id = doc_id
        self.updates = []

    def get(self):
        self.collection.check()
        return FakeSnapshot(self.id, self.collection.docs.get(self.id))

    def set(self, data, merge=False):
        self.collection.check()
        current = self.collection.docs.get(self.id) or {}
        if merge:
            for key, value in data.items():
                if isinstance(value, dict) and isinstance(current.get(key), dict):
                    current[key] = {**current[key], **value}
                else:
                    current[key] = value
        else:
            current = dict(data)
        self.collection.docs[self.id] = current

    def update(self, data):
        self.collection.check()
        self.updates.append(data)


class FakeQuery:
    def __init__(self, collection, filters=()):
        self.collection = collection
        self.filters = list(filters)

    def where(self, field, op, value):
        assert op == "=="
        return FakeQuery(self.collection, self.filters + [(field, value)])

    def stream(self):
        self.collection.check()
        for doc_id, data in self.collection.docs.items():
            if all(data.get(f) == v for f, v in self.filters):
                yield FakeSnapshot(doc_id, data)


class FakeCollection(FakeQuery):
    def __init__(self, docs, error=None):
        super().__init__(self)
        self.docs = docs
        self.error = error
        self.refs = {}

    def check(self):
        if self.error is not None:
            raise self.error

    def document(self, doc_id):
        if doc_id not in self.refs:
            self.refs[doc_id] = FakeDocRef(self, doc_id)
        return self.refs[doc_id]


class FakeClient:
    def __init__(self, data=None, error=None):
        self.collections = {name: FakeCollection(docs, error) for name, docs in (data or {}).items()}
        self.error = error

    def collection(self, name):
        if name not in self.collections:
            self.collections[name] = FakeCollection({}, self.error)
        return self.collections[name]

    def get_all(self, refs):
        for ref in refs:
            yield ref.get()


@pytest.fixture
def firestore_data():
    return {
        "articles": {
            "a1": {"section": "Sport", "category": "Sport", "titleBiased": "Rout!", "date": "2024-05-02"},
            "a2": {"section": "Sport", "category": "Sport", "titleBiased": "Comeback", "date": "2024-05-03"},
            "a3": {"section": "World news", "category": "News", "titleBiased": "Summit", "date": "2024-05-01"},
        },
        "sections": {"0": {"sectionNames": ["World news", "Sport"]}},
        "front-page-articles": {"sport": {"articles": [{"id": "a2"}, {"id": "a1"}]}},
    }


@pytest.fixture
def source(firestore_data):
    return FirestoreArticleSource(client=FakeClient(firestore_data))


# --- Article source ---


def test_query_by_section(source):
    page = asyncio.run(source.query(category="Sport"))

    assert [a.id for a in page.articles] == ["a2", "a1"]
    assert page.total_count == 2
    assert page.articles[0].title_biased == "Comeback"


def test_query_all_with_search(source):
    page = asyncio.run(source.query(search_query="summit"))
    assert [a.id for a in page.articles] == ["a3"]


def test_query_preferred_categories(source):
    page = asyncio.run(source.query(preferred_categories=["News"]))
    assert [a.id for a in page.articles] == ["a3"]


def test_query_by_ids_skips_missing(source):
    page = asyncio.run(source.query(ids=["a3", "missing", "bad/id"]))
    assert [a.id for a in page.articles] == ["a3"]


def test_get_article(source):
    assert asyncio.run(source.get_article("a1")).section == "Sport"
    assert asyncio.run(source.get_article("nope")) is None


def test_list_categories(source):
    assert asyncio.run(source.list_categories()) == ["World news", "Sport"]


def test_list_categories_without_document():
    source = FirestoreArticleSource(client=FakeClient())
    assert asyncio.run(source.list_categories()) == []


def test_front_page(source):
    assert asyncio.run(source.front_page("sport")) == [{"id": "a2"}, {"id": "a1"}]
    assert asyncio.run(source.front_page("film")) is None


def test_unavailable_store_raises_fetch_error(firestore_data):
    client = FakeClient(firestore_data, error=gcp_exceptions.ServiceUnavailable("backend down"))
    source = FirestoreArticleSource(client=client)

    with pytest.raises(ArticleFetchError, match="backend down"):
        asyncio.run(source.query())
    with pytest.raises(ArticleFetchError):
        asyncio.run(source.list_categories())


def test_retry_timeout_raises_fetch_error(firestore_data):
    client = FakeClient(firestore_data, error=gcp_exceptions.RetryError("Deadline of 60.0s exceeded", None))
    source = FirestoreArticleSource(client=client)

    with pytest.raises(ArticleFetchError, match="Deadline"):
        asyncio.run(source.query())


def test_feed_reports_retry_timeout_as_error(firestore_data, store):
    client = FakeClient(firestore_data, error=gcp_exceptions.RetryError("Deadline of 60.0s exceeded", None))
    controller = FeedController(FirestoreArticleSource(client=client), store)

    snapshot = asyncio.run(controller.fetch_page())

    assert snapshot.error
    assert not snapshot.is_loading
    assert snapshot.articles == []


# --- Profile storage ---


def test_profile_storage_round_trip():
    client = FakeClient()
    storage = FirestoreProfileStorage("user-1", client=client)

    storage.set_item("bias-brief-theme", "dark")
    storage.set_item("bias-brief-font-size", "large")

    doc = client.collection("biasbrief_profiles").docs["user-1"]
    assert doc["preferences"] == {"bias-brief-theme": "dark", "bias-brief-font-size": "large"}
    assert doc["updated_at"] is firestore.SERVER_TIMESTAMP
    assert storage.get_item("bias-brief-theme") == "dark"
    assert storage.get_item("bias-brief-card-size") is None
    assert sorted(storage.keys()) == ["bias-brief-font-size", "bias-brief-theme"]


def test_profile_storage_remove_uses_field_path():
    client = FakeClient({"biasbrief_profiles": {"user-1": {"preferences": {"bias-brief-theme": "dark"}}}})
    storage = FirestoreProfileStorage("user-1", client=client)

    storage.remove_item("bias-brief-theme")
    storage.remove_item("bias-brief-absent")

    updates = storage.doc_ref.updates
    assert updates == [{"preferences.`bias-brief-theme`": firestore.DELETE_FIELD}]


def test_preference_store_clear_all_over_profile():
    client = FakeClient(
        {"biasbrief_profiles": {"user-1": {"preferences": {"bias-brief-theme": "dark", "bias-brief-bookmarks": "[\"a1\"]"}}}}
    )
    storage = FirestoreProfileStorage("user-1", client=client)

    result = PreferenceStore(storage).clear_all()

    assert result.success
    deleted = [key for update in storage.doc_ref.updates for key in update]
    assert sorted(deleted) == ["preferences.`bias-brief-bookmarks`", "preferences.`bias-brief-theme`"]


def test_profile_storage_quota():
    client = FakeClient(error=gcp_exceptions.ResourceExhausted("quota"))
    storage = FirestoreProfileStorage("user-1", client=client)

    with pytest.raises(QuotaExceededError):
        storage.set_item("bias-brief-theme", "dark")


def test_profile_storage_oversized_value():
    storage = FirestoreProfileStorage("user-1", client=FakeClient())

    with pytest.raises(QuotaExceededError):
        storage.set_item("bias-brief-bookmarks", "x" * (1024 * 1024 + 1))


def test_preference_store_over_unreachable_profile():
    client = FakeClient(error=gcp_exceptions.ServiceUnavailable("offline"))
    store = PreferenceStore(FirestoreProfileStorage("user-1", client=client))

    result = store.get_theme()

    assert not result.success
    assert isinstance(result.error, StorageUnavailableError)
    assert result.data == "light"
    assert not store.save_theme("dark").success
