import copy
import itertools
import json
from datetime import datetime, timezone

import httpx
import pytest
from fastapi.testclient import TestClient

from cart import CartStore, MemoryStorage
from emails import Mailer
from storage import ObjectStorage


def _get(doc, dotted):
    for part in dotted.split("."):
        if not isinstance(doc, dict) or part not in doc:
            return None
        doc = doc[part]
    return doc


def _set(doc, dotted, value):
    *parents, last = dotted.split(".")
    for part in parents:
        doc = doc.setdefault(part, {})
    doc[last] = value


class FakeStore:
    """In-memory stand-in for `database.DocumentStore`."""

    def __init__(self):
        self.collections = {}
        self._ids = itertools.count(1)
        self.fail_create = False
        self.fail_increment_for = set()
        self.increments = []

    def _coll(self, name):
        return self.collections.setdefault(name, {})

    def seed(self, collection_name, doc_id, data):
        self._coll(collection_name)[doc_id] = {**data, "id": doc_id}

    async def create_document(self, collection_name, data):
        if self.fail_create:
            raise RuntimeError("write failed")
        now = datetime.now(timezone.utc)
        doc_id = f"doc{next(self._ids)}"
        doc = {**copy.deepcopy(data), "createdAt": now, "updatedAt": now, "id": doc_id}
        self._coll(collection_name)[doc_id] = doc
        return copy.deepcopy(doc)

    async def get_document(self, collection_name, doc_id):
        doc = self._coll(collection_name).get(doc_id)
        return copy.deepcopy(doc)

    async def find_one(self, collection_name, filter_dict):
        docs = await self.get_documents(collection_name, filter_dict, limit=1)
        return docs[0] if docs else None

    async def get_documents(self, collection_name, filter_dict=None, sort=None, limit=100):
        docs = [
            d for d in self._coll(collection_name).values()
            if all(_get(d, k) == v for k, v in (filter_dict or {}).items())
        ]
        for key, direction in reversed(sort or []):
            docs.sort(key=lambda d: (_get(d, key) is None, _get(d, key)), reverse=direction < 0)
        return copy.deepcopy(docs[:limit])

    async def update_document(self, collection_name, doc_id, data):
        doc = self._coll(collection_name).get(doc_id)
        if doc is None:
            return False
        for key, value in data.items():
            _set(doc, key, value)
        return True

    async def add_to_set(self, collection_name, doc_id, field, value):
        doc = self._coll(collection_name).get(doc_id)
        if doc is None:
            return False
        current = _get(doc, field) or []
        if value not in current:
            _set(doc, field, current + [value])
        return True

    async def delete_document(self, collection_name, doc_id):
        return self._coll(collection_name).pop(doc_id, None) is not None

    async def increment_field(self, collection_name, doc_id, field, delta):
        if doc_id in self.fail_increment_for:
            raise RuntimeError(f"increment failed for {doc_id}")
        self.increments.append((collection_name, doc_id, field, delta))
        doc = self._coll(collection_name).get(doc_id)
        if doc is None:
            return False
        _set(doc, field, (_get(doc, field) or 0) + delta)
        return True


class RecordingTransport:
    """httpx transport that records requests and answers from a handler."""

    def __init__(self, handler=None):
        self.requests = []
        self.handler = handler or self.default

    def default(self, request):
        return httpx.Response(200, json={"id": f"email_{len(self.requests)}"})

    def __call__(self, request):
        self.requests.append(request)
        return self.handler(request)

    def payloads(self):
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def cart():
    return CartStore(MemoryStorage())


@pytest.fixture
def email_transport():
    return RecordingTransport()


@pytest.fixture
def mailer(email_transport):
    client = httpx.AsyncClient(transport=httpx.MockTransport(email_transport))
    return Mailer("re_test", "orders@saaj.test", "admin@saaj.test",
                  contact_email="contact@saaj.test", client=client)


@pytest.fixture
def storage_transport():
    return RecordingTransport(lambda request: httpx.Response(200, json={"Key": "ok"}))


@pytest.fixture
def storage(storage_transport):
    client = httpx.AsyncClient(transport=httpx.MockTransport(storage_transport))
    return ObjectStorage("https://proj.supabase.co", "anon-key", "images", client=client)


@pytest.fixture
def client(store, mailer, storage):
    from database import get_store
    from main import app, get_mailer, get_storage

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_storage] = lambda: storage
    yield TestClient(app)
    app.dependency_overrides.clear()
