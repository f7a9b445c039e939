from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..storage import HistoryStoreConfig


class StoreConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    backend: Literal["memory", "mongo"] = "memory"
    mongodb_uri: str = "mongodb://localhost:27017/calculator"
    database: str = "calculator"
    collection: str = "calculations"
    server_selection_timeout_ms: int = Field(5000, gt=0)

    @field_validator("database", "collection")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("store database and collection names must be non-empty")
        return value


class RecorderConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    max_queue: int = Field(1000, ge=1)
    shutdown_timeout_sec: float = Field(5.0, ge=0.0)


class MetricsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    default_collectors: bool = True
    duration_buckets_ms: List[float] = Field(default_factory=lambda: [0.1, 5.0, 15.0, 50.0, 100.0, 500.0])

    @field_validator("duration_buckets_ms")
    @classmethod
    def _increasing(cls, value: List[float]) -> List[float]:
        if not value:
            raise ValueError("metrics.duration_buckets_ms must be non-empty")
        for prev, cur in zip(value, value[1:]):
            if cur <= prev:
                raise ValueError("metrics.duration_buckets_ms must be strictly increasing")
        return value


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    access_log_path: Optional[str] = None

    @field_validator("level", mode="before")
    @classmethod
    def _upper(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value


class ServiceConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    host: str = "0.0.0.0"
    port: int = Field(3002, ge=1, le=65535)
    history_limit: int = Field(100, ge=1, le=1000)
    store: StoreConfig = Field(default_factory=StoreConfig)
    recorder: RecorderConfig = Field(default_factory=RecorderConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def to_store_config(self) -> HistoryStoreConfig:
        return HistoryStoreConfig(
            backend=self.store.backend,
            mongodb_uri=self.store.mongodb_uri,
            database=self.store.database,
            collection=self.store.collection,
            server_selection_timeout_ms=self.store.server_selection_timeout_ms,
        )
