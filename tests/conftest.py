"""
Pytest configuration and shared fixtures for MDB Policy Store tests.

This module provides:
- Mock motor client/database/collection fixtures for error-path tests
- An in-memory motor stand-in for running a real Casbin enforcer in unit tests
- Real MongoDB fixtures (testcontainers) for integration tests
- Casbin model factories
"""

import copy
import itertools
from typing import Any, Dict, List
from unittest.mock import AsyncMock, MagicMock, patch

import casbin
import pytest
import pytest_asyncio
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo.errors import CollectionInvalid

from mdb_policy_store import MongoAdapter
from mdb_policy_store.observability import get_metrics_collector


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: tests that need a real MongoDB (testcontainers)"
    )


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test with an empty global metrics collector."""
    get_metrics_collector().reset()
    yield
    get_metrics_collector().reset()


# ============================================================================
# CASBIN MODEL FIXTURES
# ============================================================================


def make_model(fields: str = "sub, obj, act", with_roles: bool = False) -> casbin.Model:
    """Build a Casbin model whose request/policy carry the given fields."""
    names = [name.strip() for name in fields.split(",")]
    matcher = " && ".join(f"r.{name} == p.{name}" for name in names)
    if with_roles:
        matcher = matcher.replace(f"r.{names[0]} == p.{names[0]}", f"g(r.{names[0]}, p.{names[0]})")

    model = casbin.Model()
    model.add_def("r", "r", fields)
    model.add_def("p", "p", fields)
    if with_roles:
        model.add_def("g", "g", "_, _")
    model.add_def("e", "e", "some(where (p.eft == allow))")
    model.add_def("m", "m", matcher)
    return model


@pytest.fixture
def model_factory():
    """Factory building Casbin models, e.g. model_factory("sub, obj, act, type, owner")."""
    return make_model


@pytest.fixture
def acl_model() -> casbin.Model:
    return make_model()


@pytest.fixture
def rbac_model() -> casbin.Model:
    return make_model(with_roles=True)


# ============================================================================
# IN-MEMORY MOTOR STAND-IN
# ============================================================================


def _matches(doc: Dict[str, Any], query: Dict[str, Any]) -> bool:
    for key, expected in query.items():
        if isinstance(expected, dict) and "$in" in expected:
            if doc.get(key) not in expected["$in"]:
                return False
        elif key not in doc or doc[key] != expected:
            return False
    return True


class FakeCursor:
    def __init__(self, docs: List[Dict[str, Any]]):
        self._docs = docs

    async def to_list(self, length=None):
        return self._docs if length is None else self._docs[:length]


DEFAULT_ID_INDEX = {"name": "_id_", "key": {"_id": 1}}


class FakeCollection:
    """Minimal async collection holding documents in a list."""

    _ids = itertools.count(1)

    def __init__(self, database: "FakeDatabase", name: str):
        self.database = database
        self.name = name
        self.docs: List[Dict[str, Any]] = []
        self.indexes: List[Dict[str, Any]] = [dict(DEFAULT_ID_INDEX)]

    def _store(self, doc: Dict[str, Any]) -> Any:
        self.database.existing.add(self.name)
        doc.setdefault("_id", next(self._ids))
        self.docs.append(copy.deepcopy(doc))
        return doc["_id"]

    def find(self, query=None):
        return FakeCursor([copy.deepcopy(d) for d in self.docs if _matches(d, query or {})])

    async def insert_one(self, doc):
        return MagicMock(inserted_id=self._store(doc))

    async def insert_many(self, docs, ordered=True):
        return MagicMock(inserted_ids=[self._store(doc) for doc in docs])

    async def delete_one(self, query):
        for i, doc in enumerate(self.docs):
            if _matches(doc, query):
                del self.docs[i]
                return MagicMock(deleted_count=1)
        return MagicMock(deleted_count=0)

    async def delete_many(self, query):
        before = len(self.docs)
        self.docs = [d for d in self.docs if not _matches(d, query)]
        return MagicMock(deleted_count=before - len(self.docs))

    async def update_one(self, query, update):
        for doc in self.docs:
            if _matches(doc, query):
                doc.update(copy.deepcopy(update.get("$set", {})))
                for key in update.get("$unset", {}):
                    doc.pop(key, None)
                return MagicMock(matched_count=1, modified_count=1)
        return MagicMock(matched_count=0, modified_count=0)

    def list_indexes(self):
        return FakeCursor([dict(index) for index in self.indexes])

    async def create_index(self, keys, name=None):
        self.database.existing.add(self.name)
        name = name or "_".join(f"{field}_{direction}" for field, direction in keys)
        self.indexes.append({"name": name, "key": dict(keys)})
        return name

    async def drop(self):
        self.database.dropped.append(self.name)
        self.database.existing.discard(self.name)
        self.docs = []
        self.indexes = [dict(DEFAULT_ID_INDEX)]


class FakeDatabase:
    def __init__(self, name: str):
        self.name = name
        self.handles: Dict[str, FakeCollection] = {}
        self.existing: set = set()
        self.created: List[str] = []
        self.dropped: List[str] = []

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self.handles:
            self.handles[name] = FakeCollection(self, name)
        return self.handles[name]

    async def list_collection_names(self, filter=None):
        names = sorted(self.existing)
        if filter and "name" in filter:
            names = [n for n in names if n == filter["name"]]
        return names

    async def create_collection(self, name: str):
        if name in self.existing:
            raise CollectionInvalid(f"collection {name} already exists")
        self.created.append(name)
        self.existing.add(name)
        return self[name]


class FakeMotorClient:
    def __init__(self):
        self.databases: Dict[str, FakeDatabase] = {}
        self.admin = MagicMock()
        self.admin.command = AsyncMock(return_value={"ok": 1})
        self.closed = False

    def __getitem__(self, name: str) -> FakeDatabase:
        return self.databases.setdefault(name, FakeDatabase(name))

    def close(self):
        self.closed = True


@pytest.fixture
def fake_mongo_client() -> FakeMotorClient:
    """In-memory client shared by every adapter created during a test."""
    return FakeMotorClient()


@pytest.fixture
def patch_motor_client(fake_mongo_client):
    """Route AsyncIOMotorClient in the adapter module to the in-memory client."""
    with patch(
        "mdb_policy_store.adapter.AsyncIOMotorClient", return_value=fake_mongo_client
    ) as client_cls:
        yield client_cls


@pytest_asyncio.fixture
async def adapter(patch_motor_client):
    """An opened adapter backed by the in-memory client."""
    adapter = await MongoAdapter.new_adapter(
        uri="mongodb://localhost:27017", database="casbin", collection="policies"
    )
    yield adapter
    if adapter._client is not None:
        await adapter.close()


@pytest.fixture
def stored_policies(fake_mongo_client):
    """Return the documents currently stored in casbin.policies."""

    def _stored(collection: str = "policies") -> List[Dict[str, Any]]:
        return fake_mongo_client["casbin"][collection].docs

    return _stored


# ============================================================================
# MOCK MONGODB FIXTURES
# ============================================================================


@pytest.fixture
def mock_mongo_collection() -> MagicMock:
    """Create a mock MongoDB collection."""
    collection = MagicMock(spec=AsyncIOMotorCollection)
    collection.name = "policies"
    collection.find = MagicMock(return_value=MagicMock(to_list=AsyncMock(return_value=[])))
    collection.insert_one = AsyncMock(return_value=MagicMock(inserted_id="test_id"))
    collection.insert_many = AsyncMock(return_value=MagicMock(inserted_ids=["id1", "id2"]))
    collection.update_one = AsyncMock(return_value=MagicMock(modified_count=1))
    collection.delete_one = AsyncMock(return_value=MagicMock(deleted_count=1))
    collection.delete_many = AsyncMock(return_value=MagicMock(deleted_count=2))
    collection.list_indexes = MagicMock(
        return_value=MagicMock(to_list=AsyncMock(return_value=[]))
    )
    collection.create_index = AsyncMock(side_effect=lambda keys, **kw: kw.get("name", "idx"))
    collection.drop = AsyncMock()
    return collection


@pytest.fixture
def mock_mongo_database(mock_mongo_collection) -> MagicMock:
    """Create a mock MongoDB database whose every collection is mock_mongo_collection."""
    db = MagicMock()
    db.name = "casbin"
    db.__getitem__.return_value = mock_mongo_collection
    db.list_collection_names = AsyncMock(return_value=["policies"])
    db.create_collection = AsyncMock()
    return db


@pytest.fixture
def mock_mongo_client(mock_mongo_database) -> MagicMock:
    """Create a mock MongoDB client."""
    client = MagicMock()
    client.admin = MagicMock()
    client.admin.command = AsyncMock(return_value={"ok": 1})
    client.__getitem__.return_value = mock_mongo_database
    client.close = MagicMock()
    return client


@pytest.fixture
def mock_adapter(mock_mongo_client) -> MongoAdapter:
    """An unopened adapter whose client is mock_mongo_client."""
    with patch("mdb_policy_store.adapter.AsyncIOMotorClient", return_value=mock_mongo_client):
        return MongoAdapter("mongodb://localhost:27017", "casbin", "policies")


# ============================================================================
# REAL MONGODB FIXTURES (for integration tests)
# ============================================================================


@pytest.fixture(scope="session")
def mongodb_container():
    """
    Start a MongoDB container for integration tests.

    Session-scoped: the container starts once and is reused.
    """
    try:
        from testcontainers.mongodb import MongoDbContainer
    except ImportError:
        pytest.skip("testcontainers not installed. Install with: pip install -e '.[test]'")

    container = MongoDbContainer("mongo:7.0")
    try:
        container.start()
    except Exception as e:  # docker unavailable
        pytest.skip(f"MongoDB container could not be started: {e}")
    yield container
    container.stop()


@pytest.fixture
def mongodb_connection_string(mongodb_container) -> str:
    return mongodb_container.get_connection_url()


@pytest_asyncio.fixture
async def real_mongo_client(mongodb_connection_string):
    """Real motor client for inspecting what the adapter stored."""
    client = AsyncIOMotorClient(mongodb_connection_string)
    yield client
    await client.drop_database("casbin_test")
    client.close()
