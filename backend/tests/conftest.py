"""
Pytest configuration and shared test helpers for backend tests.
"""
import asyncio
import copy
import os
import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

# Skip MongoDB connection when running under pytest.
os.environ.setdefault("PYTEST_RUNNING", "1")

backend_root = Path(__file__).resolve().parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

import pytest
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

# Shared TestClient fixture so tests can use in-process requests without a running server.
from fastapi.testclient import TestClient
from server import app
from database import database


# ============================================================================
# In-memory Motor double
# ============================================================================
# Implements only the collection calls the entitlements services make. Every
# call yields to the event loop first, so concurrent coroutines interleave the
# way they would against a real server; the read-modify-write of a single call
# is atomic, like a single MongoDB document operation.

_COMPARISONS = {
    "$lte": lambda value, bound: value is not None and value <= bound,
    "$lt": lambda value, bound: value is not None and value < bound,
    "$gte": lambda value, bound: value is not None and value >= bound,
    "$gt": lambda value, bound: value is not None and value > bound,
    "$ne": lambda value, bound: value != bound,
}


def _matches(doc, query):
    for field, condition in query.items():
        value = doc.get(field)
        if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            for op, bound in condition.items():
                if not _COMPARISONS[op](value, bound):
                    return False
        elif condition is None:
            if value is not None:
                return False
        elif field not in doc or value != condition:
            return False
    return True


def _project(doc, projection):
    doc = copy.deepcopy(doc)
    if not projection:
        return doc
    included = [k for k, v in projection.items() if v and k != "_id"]
    if included:
        doc = {k: v for k, v in doc.items() if k in included or (k == "_id" and projection.get("_id", 1))}
    for k, v in projection.items():
        if not v:
            doc.pop(k, None)
    return doc


def _apply_update(doc, update, inserting=False):
    if inserting:
        doc.update(copy.deepcopy(update.get("$setOnInsert", {})))
    doc.update(copy.deepcopy(update.get("$set", {})))
    for field, amount in update.get("$inc", {}).items():
        doc[field] = doc.get(field, 0) + amount


class FakeCursor:
    def __init__(self, docs):
        self._docs = docs

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for doc in self._docs:
            await asyncio.sleep(0)
            yield doc

    async def to_list(self, length=None):
        await asyncio.sleep(0)
        return list(self._docs if length is None else self._docs[:length])


class FakeCollection:
    def __init__(self, name, unique_key=None):
        self.name = name
        self.unique_key = unique_key
        self.docs = []
        self.indexes = []

    def _find(self, query):
        return [doc for doc in self.docs if _matches(doc, query)]

    def _check_unique(self, new_doc):
        for doc in self.docs:
            if "_id" in new_doc and doc.get("_id") == new_doc["_id"]:
                raise DuplicateKeyError(f"E11000 duplicate key error collection: {self.name} index: _id_")
            if self.unique_key and all(doc.get(k) == new_doc.get(k) for k in self.unique_key):
                raise DuplicateKeyError(f"E11000 duplicate key error collection: {self.name}")

    async def create_index(self, keys, **kwargs):
        self.indexes.append((keys, kwargs))
        return str(keys)

    async def find_one(self, query=None, projection=None):
        await asyncio.sleep(0)
        found = self._find(query or {})
        return _project(found[0], projection) if found else None

    def find(self, query=None, projection=None):
        return FakeCursor([_project(doc, projection) for doc in self._find(query or {})])

    async def insert_one(self, document):
        await asyncio.sleep(0)
        document.setdefault("_id", ObjectId())
        self._check_unique(document)
        self.docs.append(copy.deepcopy(document))
        return SimpleNamespace(inserted_id=document["_id"], acknowledged=True)

    async def update_one(self, query, update, upsert=False):
        await asyncio.sleep(0)
        found = self._find(query)
        if found:
            _apply_update(found[0], update)
            return SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)
        if upsert:
            doc = await self._upsert_doc(query, update)
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=doc["_id"])
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)

    async def find_one_and_update(
        self,
        query,
        update,
        projection=None,
        upsert=False,
        return_document=ReturnDocument.BEFORE,
    ):
        await asyncio.sleep(0)
        found = self._find(query)
        if not found:
            if not upsert:
                return None
            doc = await self._upsert_doc(query, update)
            return _project(doc, projection) if return_document == ReturnDocument.AFTER else None

        doc = found[0]
        before = _project(doc, projection)
        _apply_update(doc, update)
        return _project(doc, projection) if return_document == ReturnDocument.AFTER else before

    async def _upsert_doc(self, query, update):
        # Equality fields of the filter seed the new document, as in MongoDB
        doc = {
            k: v for k, v in query.items()
            if not (isinstance(v, dict) and any(key.startswith("$") for key in v))
        }
        _apply_update(doc, update, inserting=True)
        doc["_id"] = ObjectId()
        self._check_unique(doc)
        self.docs.append(doc)
        return doc


class FakeDatabase:
    UNIQUE_KEYS = {"usage_quotas": ("organization_id", "period")}

    def __init__(self):
        self._collections = {}

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        if name not in self._collections:
            self._collections[name] = FakeCollection(name, self.UNIQUE_KEYS.get(name))
        return self._collections[name]

    def __getitem__(self, name):
        return getattr(self, name)

    async def command(self, name):
        return {"ok": 1.0}


@pytest.fixture
def fake_db():
    """Fresh in-memory database per test."""
    return FakeDatabase()


@pytest.fixture
def client():
    """Return a TestClient for the main FastAPI app (server:app). Use for unit-style API tests."""
    return TestClient(app)


@pytest.fixture
def api_client(fake_db):
    """TestClient whose routes see fake_db through database.get_db()."""
    with patch.object(database, "get_db", return_value=fake_db):
        yield TestClient(app)
