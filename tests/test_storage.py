from datetime import datetime, timedelta, timezone
import itertools

import pytest

from calcsvc.errors import PersistenceFailure
from calcsvc.storage import (
    HistoryStoreConfig,
    MemoryHistoryStore,
    MongoHistoryStore,
    build_store,
)


def _ticking_clock(step_ms: int = 1):
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    counter = itertools.count()
    return lambda: start + timedelta(milliseconds=step_ms * next(counter))


def test_memory_store_latest_is_newest_first():
    store = MemoryHistoryStore(clock=_ticking_clock())
    for i in range(5):
        store.insert("add", {"num1": float(i), "num2": 1.0}, i + 1.0)
    latest = store.latest(3)
    assert [r.result for r in latest] == [5.0, 4.0, 3.0]
    assert latest[0].timestamp > latest[1].timestamp > latest[2].timestamp


def test_memory_store_ties_keep_insertion_order():
    fixed = datetime(2024, 1, 1, tzinfo=timezone.utc)
    store = MemoryHistoryStore(clock=lambda: fixed)
    store.insert("add", {"num1": 1.0, "num2": 1.0}, 2.0)
    store.insert("sqrt", {"num1": 9.0}, 3.0)
    assert [r.operation for r in store.latest(10)] == ["sqrt", "add"]


def test_memory_store_clear_is_idempotent():
    store = MemoryHistoryStore()
    store.insert("mod", {"num1": 17.0, "num2": 5.0}, 2.0)
    assert store.clear() == 1
    assert store.clear() == 0
    assert store.latest(100) == []


def test_memory_store_rejects_negative_limit():
    with pytest.raises(ValueError):
        MemoryHistoryStore().latest(-1)


def test_record_to_dict():
    store = MemoryHistoryStore(clock=_ticking_clock())
    record = store.insert("divide", {"num1": 20.0, "num2": 5.0}, 4.0)
    payload = record.to_dict()
    assert payload["operation"] == "divide"
    assert payload["parameters"] == {"num1": 20, "num2": 5}
    assert payload["result"] == 4
    assert payload["timestamp"] == "2024-01-01T00:00:00+00:00"
    assert payload["id"] == "1"


class _InsertResult:
    def __init__(self, inserted_id):
        self.inserted_id = inserted_id


class _DeleteResult:
    def __init__(self, deleted_count):
        self.deleted_count = deleted_count


class _Cursor:
    def __init__(self, docs):
        self._docs = list(docs)

    def sort(self, keys):
        for key, direction in reversed(keys):
            self._docs.sort(key=lambda doc: doc[key], reverse=direction < 0)
        return self

    def limit(self, n):
        self._docs = self._docs[:n]
        return self

    def __iter__(self):
        return iter(self._docs)


class _Collection:
    def __init__(self, fail_insert: bool = False) -> None:
        self.docs: list[dict] = []
        self.fail_insert = fail_insert
        self._ids = itertools.count(1)

    def insert_one(self, document):
        if self.fail_insert:
            raise RuntimeError("connection refused")
        doc = dict(document)
        doc["_id"] = next(self._ids)
        self.docs.append(doc)
        return _InsertResult(doc["_id"])

    def find(self):
        return _Cursor(self.docs)

    def delete_many(self, filter):
        count = len(self.docs)
        self.docs.clear()
        return _DeleteResult(count)


def _mongo_store(collection: _Collection, clock=None) -> MongoHistoryStore:
    store = MongoHistoryStore.__new__(MongoHistoryStore)
    store.mongodb_uri = "mongodb://example"
    store.client = None
    store.collection = collection
    store._descending = -1
    store._clock = clock or _ticking_clock()
    return store


def test_mongo_store_insert_and_latest():
    collection = _Collection()
    store = _mongo_store(collection)
    store.insert("add", {"num1": 5.0, "num2": 3.0}, 8.0)
    store.insert("sqrt", {"num1": 25.0}, 5.0)

    latest = store.latest(100)
    assert [r.operation for r in latest] == ["sqrt", "add"]
    assert latest[0].id == "2"
    assert latest[1].parameters == {"num1": 5.0, "num2": 3.0}
    assert store.latest(1)[0].operation == "sqrt"
    assert store.latest(0) == []


def test_mongo_store_ties_sorted_by_id():
    fixed = datetime(2024, 1, 1, tzinfo=timezone.utc)
    store = _mongo_store(_Collection(), clock=lambda: fixed)
    store.insert("add", {"num1": 1.0, "num2": 1.0}, 2.0)
    store.insert("multiply", {"num1": 2.0, "num2": 2.0}, 4.0)
    assert [r.operation for r in store.latest(10)] == ["multiply", "add"]


def test_mongo_store_insert_failure_is_persistence_failure():
    store = _mongo_store(_Collection(fail_insert=True))
    with pytest.raises(PersistenceFailure, match="mongo insert failed"):
        store.insert("add", {"num1": 1.0, "num2": 2.0}, 3.0)


def test_mongo_store_naive_timestamps_are_utc():
    collection = _Collection()
    store = _mongo_store(collection)
    collection.docs.append(
        {"_id": 99, "operation": "add", "parameters": {"num1": 1, "num2": 2}, "result": 3, "timestamp": datetime(2024, 5, 1)}
    )
    record = store.latest(1)[0]
    assert record.timestamp.tzinfo is timezone.utc
    assert record.result == 3.0


def test_mongo_store_clear():
    collection = _Collection()
    store = _mongo_store(collection)
    store.insert("add", {"num1": 1.0, "num2": 2.0}, 3.0)
    assert store.clear() == 1
    assert store.clear() == 0


def test_build_store_memory_and_unknown():
    assert isinstance(build_store(HistoryStoreConfig()), MemoryHistoryStore)
    with pytest.raises(ValueError, match="memory or mongo"):
        build_store(HistoryStoreConfig(backend="redis"))  # type: ignore[arg-type]


def test_build_store_mongo_requires_uri():
    with pytest.raises(ValueError, match="mongodb_uri"):
        build_store(HistoryStoreConfig(backend="mongo", mongodb_uri=""))
