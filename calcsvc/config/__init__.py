from __future__ import annotations

import json
import logging
import os
from typing import Any, Mapping

from pydantic import ValidationError
import yaml

from .models import (
    LoggingConfig,
    MetricsConfig,
    RecorderConfig,
    ServiceConfig,
    StoreConfig,
)

__all__ = [
    "LoggingConfig",
    "MetricsConfig",
    "RecorderConfig",
    "ServiceConfig",
    "StoreConfig",
    "ValidationError",
    "config_from_env",
    "load_config",
    "parse_config",
]

_LOGGER = logging.getLogger("calcsvc.config")


def load_config(path: str) -> dict:
    if path.endswith(".json"):
        with open(path, "r", encoding="utf-8") as handle:
            return json.load(handle)
    if path.endswith(".yaml") or path.endswith(".yml"):
        with open(path, "r", encoding="utf-8") as handle:
            return yaml.safe_load(handle) or {}
    raise ValueError("Config file must be .json or .yaml")


def parse_config(data: Mapping[str, object]) -> ServiceConfig:
    return ServiceConfig.model_validate(data)


def _read_non_negative_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        _LOGGER.warning("Invalid %s=%r; using %d", name, raw, default)
        return default
    return max(0, value)


def _read_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    normalized = raw.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    _LOGGER.warning("Invalid %s=%r; using %s", name, raw, default)
    return default


def config_from_env(env: Mapping[str, str] | None = None) -> ServiceConfig:
    """Build the service config from ``CALC_*`` variables.

    ``CALC_CONFIG`` names a JSON/YAML file used as the base; individual
    variables override it. Malformed numeric or boolean values are logged and
    ignored.
    """
    if env is None:
        env = os.environ
    base: dict[str, Any] = {}
    if env.get("CALC_CONFIG"):
        base = load_config(env["CALC_CONFIG"])
    cfg = parse_config(base)

    store = cfg.store.model_copy(
        update={
            "backend": env.get("CALC_STORE_BACKEND", cfg.store.backend).strip().lower(),
            "mongodb_uri": env.get("MONGODB_URI", cfg.store.mongodb_uri),
            "database": env.get("CALC_MONGODB_DATABASE", cfg.store.database),
            "collection": env.get("CALC_MONGODB_COLLECTION", cfg.store.collection),
            "server_selection_timeout_ms": _read_non_negative_int(
                env, "CALC_MONGODB_TIMEOUT_MS", cfg.store.server_selection_timeout_ms
            )
            or cfg.store.server_selection_timeout_ms,
        }
    )
    recorder = cfg.recorder.model_copy(
        update={
            "enabled": _read_bool(env, "CALC_RECORDER_ASYNC", cfg.recorder.enabled),
            "max_queue": max(1, _read_non_negative_int(env, "CALC_RECORDER_MAX_QUEUE", cfg.recorder.max_queue)),
        }
    )
    metrics = cfg.metrics.model_copy(
        update={
            "enabled": _read_bool(env, "CALC_METRICS_ENABLED", cfg.metrics.enabled),
            "default_collectors": _read_bool(env, "CALC_METRICS_DEFAULT_COLLECTORS", cfg.metrics.default_collectors),
        }
    )
    logging_cfg = cfg.logging.model_copy(
        update={
            "level": env.get("CALC_LOG_LEVEL", cfg.logging.level).strip().upper(),
            "access_log_path": env.get("CALC_ACCESS_LOG_PATH") or cfg.logging.access_log_path,
        }
    )
    data = cfg.model_dump()
    data.update(
        {
            "host": env.get("CALC_HOST", cfg.host),
            "port": _read_non_negative_int(env, "PORT", cfg.port) or cfg.port,
            "history_limit": _read_non_negative_int(env, "CALC_HISTORY_LIMIT", cfg.history_limit) or cfg.history_limit,
            "store": store.model_dump(),
            "recorder": recorder.model_dump(),
            "metrics": metrics.model_dump(),
            "logging": logging_cfg.model_dump(),
        }
    )
    # Re-validate so env overrides go through the same constraints as files.
    return parse_config(data)
