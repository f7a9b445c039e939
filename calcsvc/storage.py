from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import itertools
import logging
from threading import Lock
from typing import Literal, Mapping

from .errors import PersistenceFailure
from .models import CalculationRecord

_LOGGER = logging.getLogger("calcsvc.storage")


@dataclass(frozen=True)
class HistoryStoreConfig:
    backend: Literal["memory", "mongo"] = "memory"
    mongodb_uri: str = "mongodb://localhost:27017/calculator"
    database: str = "calculator"
    collection: str = "calculations"
    server_selection_timeout_ms: int = 5000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HistoryStore:
    """Append-only calculation history.

    Timestamps are assigned by the store when a record is inserted. ``latest``
    returns newest first; records inserted within the same clock tick keep
    insertion order (the later insert sorts first).
    """

    def insert(self, operation: str, parameters: Mapping[str, float], result: float) -> CalculationRecord:
        raise NotImplementedError

    def latest(self, limit: int) -> list[CalculationRecord]:
        raise NotImplementedError

    def clear(self) -> int:
        raise NotImplementedError

    def close(self) -> None:
        return None


class MemoryHistoryStore(HistoryStore):
    def __init__(self, clock=_utcnow) -> None:
        self._clock = clock
        self._records: list[tuple[int, CalculationRecord]] = []
        self._seq = itertools.count(1)
        self._lock = Lock()

    def insert(self, operation: str, parameters: Mapping[str, float], result: float) -> CalculationRecord:
        with self._lock:
            seq = next(self._seq)
            record = CalculationRecord(
                operation=operation,
                parameters=dict(parameters),
                result=result,
                timestamp=self._clock(),
                id=str(seq),
            )
            self._records.append((seq, record))
        return record

    def latest(self, limit: int) -> list[CalculationRecord]:
        if limit < 0:
            raise ValueError("limit must be non-negative")
        with self._lock:
            ordered = sorted(self._records, key=lambda item: (item[1].timestamp, item[0]), reverse=True)
        return [record for _, record in ordered[:limit]]

    def clear(self) -> int:
        with self._lock:
            removed = len(self._records)
            self._records.clear()
        return removed


class MongoHistoryStore(HistoryStore):
    def __init__(
        self,
        mongodb_uri: str,
        database: str,
        collection: str,
        *,
        server_selection_timeout_ms: int = 5000,
        clock=_utcnow,
    ):
        self.mongodb_uri = mongodb_uri
        self._clock = clock
        try:
            import pymongo
        except Exception as exc:  # pragma: no cover - runtime path
            raise ImportError("pymongo is required for MongoDB history storage.") from exc

        self.client = pymongo.MongoClient(
            mongodb_uri,
            serverSelectionTimeoutMS=server_selection_timeout_ms,
            tz_aware=True,
        )
        self.collection = self.client[database][collection]
        self._descending = pymongo.DESCENDING

    def insert(self, operation: str, parameters: Mapping[str, float], result: float) -> CalculationRecord:
        document = {
            "operation": operation,
            "parameters": dict(parameters),
            "result": result,
            "timestamp": self._clock(),
        }
        try:
            inserted = self.collection.insert_one(document)
        except Exception as exc:
            raise PersistenceFailure(f"mongo insert failed for {operation}: {exc}") from exc
        return _record_from_document({**document, "_id": inserted.inserted_id})

    def latest(self, limit: int) -> list[CalculationRecord]:
        if limit < 0:
            raise ValueError("limit must be non-negative")
        if limit == 0:
            return []
        # ObjectIds grow with insertion order and break timestamp ties.
        cursor = self.collection.find().sort([("timestamp", self._descending), ("_id", self._descending)]).limit(limit)
        return [_record_from_document(doc) for doc in cursor]

    def clear(self) -> int:
        outcome = self.collection.delete_many({})
        return int(outcome.deleted_count)

    def close(self) -> None:
        self.client.close()


def _record_from_document(doc: Mapping[str, object]) -> CalculationRecord:
    timestamp = doc["timestamp"]
    if isinstance(timestamp, datetime) and timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return CalculationRecord(
        operation=str(doc["operation"]),
        parameters={str(k): float(v) for k, v in dict(doc.get("parameters") or {}).items()},
        result=float(doc["result"]),
        timestamp=timestamp,
        id=str(doc["_id"]) if doc.get("_id") is not None else None,
    )


def build_store(config: HistoryStoreConfig) -> HistoryStore:
    if config.backend == "memory":
        return MemoryHistoryStore()
    if config.backend == "mongo":
        if not config.mongodb_uri:
            raise ValueError("mongodb_uri is required for mongo backend")
        _LOGGER.info("Using MongoDB history store database=%s collection=%s", config.database, config.collection)
        return MongoHistoryStore(
            config.mongodb_uri,
            config.database,
            config.collection,
            server_selection_timeout_ms=config.server_selection_timeout_ms,
        )
    raise ValueError("history store backend must be memory or mongo")
