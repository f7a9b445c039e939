from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
import json
import logging
import os
import time
from typing import Any
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import ServiceConfig, config_from_env
from .config.models import LoggingConfig
from .errors import CalculatorError, InternalFailure
from .metrics import ServiceMetrics
from .models import json_number
from .operations import OPERATIONS, Operation, calculate
from .recorder import HistoryRecorder
from .storage import HistoryStore, build_store
from .validation import validate_params

_ACCESS_LOGGER = logging.getLogger("calcsvc.access")
_SERVER_LOGGER = logging.getLogger("calcsvc.server")
_PACKAGE_LOGGER = logging.getLogger("calcsvc")
_NOT_FOUND_MESSAGE = "Invalid request path, please check the interface address"
_INTERNAL_ERROR_MESSAGE = "internal server error"
_CLEARED_MESSAGE = "History cleared successfully"


def _configure_logging(cfg: LoggingConfig) -> None:
    _PACKAGE_LOGGER.setLevel(cfg.level)
    if not _PACKAGE_LOGGER.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        _PACKAGE_LOGGER.addHandler(handler)

    if not any(type(h) is logging.StreamHandler for h in _ACCESS_LOGGER.handlers):
        access_handler = logging.StreamHandler()
        access_handler.setFormatter(logging.Formatter("%(message)s"))
        _ACCESS_LOGGER.addHandler(access_handler)
    _ACCESS_LOGGER.setLevel(logging.INFO)
    _ACCESS_LOGGER.propagate = False

    if not cfg.access_log_path:
        return
    abspath = os.path.abspath(cfg.access_log_path)
    for handler in _ACCESS_LOGGER.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == abspath:
            return
    parent_dir = os.path.dirname(abspath)
    if parent_dir:
        os.makedirs(parent_dir, exist_ok=True)
    file_handler = logging.FileHandler(abspath)
    file_handler.setFormatter(logging.Formatter("%(message)s"))
    _ACCESS_LOGGER.addHandler(file_handler)


def _log_json(logger: logging.Logger, payload: dict[str, Any]) -> None:
    logger.info(json.dumps(payload, sort_keys=True, separators=(",", ":")))


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _route_template(request: Request) -> str:
    # Unmatched paths fall back to the raw path.
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


def _original_path(request: Request) -> str:
    query = request.url.query
    return f"{request.url.path}?{query}" if query else request.url.path


def _operation_endpoint(operation: Operation):
    def endpoint(request: Request) -> dict[str, Any]:
        params = validate_params(request.query_params, single=operation.single)
        result = calculate(operation.name, params)
        request.app.state.recorder.submit(operation.name, params.as_parameters(), result)
        return {"result": json_number(result)}

    endpoint.__name__ = f"{operation.name}_endpoint"
    return endpoint


def create_app(
    config: ServiceConfig | None = None,
    *,
    store: HistoryStore | None = None,
    metrics: ServiceMetrics | None = None,
    recorder: HistoryRecorder | None = None,
) -> FastAPI:
    """Build the calculator app with its own store, recorder and metrics registry."""
    cfg = config if config is not None else ServiceConfig()
    _configure_logging(cfg.logging)
    if store is None:
        store = build_store(cfg.to_store_config())
    if metrics is None and cfg.metrics.enabled:
        metrics = ServiceMetrics(
            buckets_ms=cfg.metrics.duration_buckets_ms,
            default_collectors=cfg.metrics.default_collectors,
        )
    if recorder is None:
        recorder = HistoryRecorder(
            store,
            max_queue=cfg.recorder.max_queue,
            asynchronous=cfg.recorder.enabled,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.recorder.close(cfg.recorder.shutdown_timeout_sec)
        app.state.store.close()

    app = FastAPI(title="Calculator API", version="1.0", lifespan=lifespan)
    app.state.config = cfg
    app.state.store = store
    app.state.metrics = metrics
    app.state.recorder = recorder

    @app.exception_handler(CalculatorError)
    async def _calculator_error_handler(request: Request, exc: CalculatorError):
        return _error_response(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return _error_response(404, _NOT_FOUND_MESSAGE)
        return _error_response(exc.status_code, str(exc.detail))

    @app.middleware("http")
    async def _metrics_middleware(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        sink: ServiceMetrics | None = request.app.state.metrics
        if sink is not None:
            sink.request_started(request.method)
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            _SERVER_LOGGER.exception("Unhandled server error for %s %s", request.method, request.url.path)
            response = _error_response(500, _INTERNAL_ERROR_MESSAGE)
        finally:
            if sink is not None:
                sink.request_finished(request.method)

        duration_ms = (time.perf_counter() - start) * 1000.0
        route = _route_template(request)
        if sink is not None:
            sink.observe_request(
                method=request.method,
                route=route,
                status_code=response.status_code,
                duration_ms=duration_ms,
            )
        response.headers["x-request-id"] = request_id
        _log_json(
            _ACCESS_LOGGER,
            {
                "ts": datetime.now(timezone.utc).isoformat(),
                "event": "access",
                "request_id": request_id,
                "method": request.method,
                "path": _original_path(request),
                "route": route,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 3),
            },
        )
        return response

    @app.get("/metrics")
    def prometheus_metrics_endpoint(request: Request):
        sink: ServiceMetrics | None = request.app.state.metrics
        if sink is None:
            return _error_response(503, "metrics not available")
        try:
            data = sink.render()
        except Exception:
            _SERVER_LOGGER.exception("Metrics rendering failed")
            return _error_response(500, "Failed to render metrics")
        return Response(content=data, media_type=sink.content_type)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    for operation in OPERATIONS.values():
        app.add_api_route(
            f"/{operation.name}",
            _operation_endpoint(operation),
            methods=["GET"],
            name=operation.name,
        )

    @app.get("/history")
    def read_history(request: Request):
        limit = request.app.state.config.history_limit
        try:
            records = request.app.state.store.latest(limit)
        except Exception as exc:
            _SERVER_LOGGER.exception("Error fetching history")
            raise InternalFailure("Failed to retrieve calculation history") from exc
        return {"history": [record.to_dict() for record in records]}

    @app.delete("/history")
    def clear_history(request: Request):
        state = request.app.state
        if not state.recorder.flush(timeout=state.config.recorder.shutdown_timeout_sec):
            _SERVER_LOGGER.warning("Clearing history with %d calculations still queued", state.recorder.pending())
        try:
            removed = state.store.clear()
        except Exception as exc:
            _SERVER_LOGGER.exception("Error clearing history")
            raise InternalFailure("Failed to clear calculation history") from exc
        _SERVER_LOGGER.info("Cleared %d history records", removed)
        return {"message": _CLEARED_MESSAGE}

    return app


app = create_app(config_from_env())
