from __future__ import annotations

from pathlib import Path
import io
import sys

import pytest
from google.api_core import exceptions as gcloud_exceptions

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from recipeshare import gcp_storage
from recipeshare.gcp_storage import FirestoreRecipeStore
from recipeshare.models import Recipe
from recipeshare.storage import RawDocument, StoreError


class FakeSnapshot:
    def __init__(self, doc_id, data):
        self.id = doc_id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return None if self._data is None else dict(self._data)


class FakeDocument:
    def __init__(self, collection, doc_id):
        self._collection = collection
        self.id = doc_id

    def get(self, **kwargs):
        self._collection.calls.append(("get", kwargs))
        self._collection.raise_if_failing()
        return FakeSnapshot(self.id, self._collection.docs.get(self.id))

    def set(self, data, **kwargs):
        self._collection.calls.append(("set", kwargs))
        self._collection.raise_if_failing()
        self._collection.docs[self.id] = data


class FakeCollection:
    def __init__(self):
        self.docs = {}
        self.calls = []
        self.error = None

    def raise_if_failing(self):
        if self.error is not None:
            raise self.error

    def stream(self, **kwargs):
        self.calls.append(("stream", kwargs))
        self.raise_if_failing()
        for doc_id, data in self.docs.items():
            yield FakeSnapshot(doc_id, data)

    def document(self, doc_id):
        return FakeDocument(self, doc_id)


class FakeFirestoreClient:
    collections = {}

    def __init__(self, project=None):
        self.project = project

    def collection(self, name):
        return self.collections.setdefault(name, FakeCollection())


class FakeBlob:
    def __init__(self, bucket, name):
        self._bucket = bucket
        self.name = name
        self.content_type = None

    def upload_from_file(self, stream, content_type=None, **kwargs):
        self._bucket.blobs[self.name] = (stream.read(), content_type)

    def download_as_bytes(self, **kwargs):
        if self.name not in self._bucket.blobs:
            raise gcloud_exceptions.NotFound("no such object")
        data, self.content_type = self._bucket.blobs[self.name]
        return data


class FakeBucket:
    def __init__(self, name):
        self.name = name
        self.blobs = {}

    def blob(self, name):
        return FakeBlob(self, name)


class FakeStorageClient:
    buckets = {}

    def __init__(self, project=None):
        self.project = project

    def bucket(self, name):
        return self.buckets.setdefault(name, FakeBucket(name))


@pytest.fixture
def fake_backend(monkeypatch):
    monkeypatch.setattr(FakeFirestoreClient, "collections", {})
    monkeypatch.setattr(FakeStorageClient, "buckets", {})
    monkeypatch.setattr(gcp_storage.firestore, "Client", FakeFirestoreClient)
    monkeypatch.setattr(gcp_storage.storage, "Client", FakeStorageClient)
    return FakeFirestoreClient.collections, FakeStorageClient.buckets


def make_store(**kwargs):
    kwargs.setdefault("bucket_name", "photos")
    return FirestoreRecipeStore(project="demo", **kwargs)


def test_save_writes_encoded_fields_under_recipe_id(fake_backend):
    collections, _ = fake_backend
    store = make_store(timeout=3.0)
    recipe = Recipe.create(title="Yakisoba", steps=["Fry"], author_name="Nao")

    store.save(recipe)

    assert collections["recipes"].docs[recipe.id] == {
        "title": "Yakisoba",
        "imagePath": None,
        "steps": ["Fry"],
        "authorName": "Nao",
    }
    assert collections["recipes"].calls == [("set", {"retry": None, "timeout": 3.0})]


def test_fetch_all_returns_raw_documents(fake_backend):
    collections, _ = fake_backend
    store = make_store()
    collections["recipes"].docs.update({"a": {"title": "A"}, "b": {"title": "B"}})

    assert store.fetch_all() == [RawDocument("a", {"title": "A"}), RawDocument("b", {"title": "B"})]


def test_fetch_one_missing_is_none(fake_backend):
    store = make_store()

    assert store.fetch_one("nope") is None


def test_fetch_one_returns_document(fake_backend):
    collections, _ = fake_backend
    store = make_store()
    collections["recipes"].docs["abc"] = {"title": "Tempura"}

    assert store.fetch_one("abc") == RawDocument("abc", {"title": "Tempura"})


@pytest.mark.parametrize("method,args", [("fetch_all", ()), ("fetch_one", ("abc",))])
def test_backend_errors_become_store_errors(fake_backend, method, args):
    collections, _ = fake_backend
    store = make_store()
    collections["recipes"].error = gcloud_exceptions.ServiceUnavailable("offline")

    with pytest.raises(StoreError):
        getattr(store, method)(*args)


def test_save_error_becomes_store_error(fake_backend):
    collections, _ = fake_backend
    store = make_store()
    collections["recipes"].error = gcloud_exceptions.DeadlineExceeded("slow")

    with pytest.raises(StoreError):
        store.save(Recipe.create(title="Ramen", steps=[], author_name="Go"))


def test_upload_and_resolve_image(fake_backend):
    _, buckets = fake_backend
    store = make_store()

    path = store.upload_image("abc", "my photo.png", io.BytesIO(b"data"), "image/png")

    assert path == "recipes/abc/my_photo.png"
    assert buckets["photos"].blobs[path] == (b"data", "image/png")
    image = store.resolve_image(path)
    assert image.stream.read() == b"data"
    assert image.content_type == "image/png"


def test_resolve_missing_image_is_none(fake_backend):
    store = make_store()

    assert store.resolve_image("recipes/none.png") is None


def test_upload_requires_bucket(fake_backend):
    store = make_store(bucket_name=None)

    with pytest.raises(RuntimeError):
        store.upload_image("abc", "photo.png", io.BytesIO(b"data"))
    assert store.resolve_image("recipes/abc/photo.png") is None


def test_from_env(fake_backend, monkeypatch):
    monkeypatch.setenv("GCP_PROJECT", "demo")
    monkeypatch.setenv("RECIPES_COLLECTION", "shared")
    monkeypatch.setenv("GCS_BUCKET", "pics")
    monkeypatch.setenv("RECIPES_REQUEST_TIMEOUT", "2.5")
    collections, _ = fake_backend

    store = FirestoreRecipeStore.from_env()
    store.fetch_all()

    assert collections["shared"].calls == [("stream", {"retry": None, "timeout": 2.5})]
